"""
Constants for the AWS billable resource counter.

This module defines all magic strings and numbers used across the codebase
to prevent typos, ensure consistency, and make maintenance easier.
"""

# =============================================================================
# Regions
# =============================================================================

# Region used for account-level API calls (describe_regions, IAM, STS)
API_REGION = "us-east-1"

# Used when the live region query fails or returns nothing.
# Order is part of the output contract, do not sort.
FALLBACK_REGIONS = (
    "us-east-1",
    "us-east-2",
    "us-west-1",
    "us-west-2",
    "ap-south-1",
    "ap-northeast-1",
    "ap-northeast-2",
    "ap-southeast-1",
    "ap-southeast-2",
    "eu-north-1",
    "eu-central-1",
    "eu-west-1",
    "sa-east-1",
    "eu-west-2",
    "eu-west-3",
    "ca-central-1",
)

# =============================================================================
# Delegated Access
# =============================================================================

ORG_ACCESS_ROLE_NAME = "OrganizationAccountAccessRole"
ROLE_SESSION_NAME = "rescount-sizing"

# STS minimum; long enough for one account's region sweep
DEFAULT_SESSION_DURATION = 900
MIN_SESSION_DURATION = 900
MAX_SESSION_DURATION = 43200

# =============================================================================
# Billing Conversion (fixed business ratios)
# =============================================================================

EC2_BILLABLE_MULTIPLIER = 1
LAMBDA_FUNCTIONS_PER_BILLABLE = 50
CLUSTER_BILLABLE_MULTIPLIER = 2

# =============================================================================
# Resource Types
# =============================================================================

RESOURCE_EC2_INSTANCES = "ec2_instances"
RESOURCE_LAMBDA_FUNCTIONS = "lambda_functions"
RESOURCE_EKS_CLUSTERS = "eks_clusters"
RESOURCE_ECS_CLUSTERS = "ecs_clusters"

RESOURCE_LABELS = {
    RESOURCE_EC2_INSTANCES: "EC2 Instances",
    RESOURCE_LAMBDA_FUNCTIONS: "Lambda Functions",
    RESOURCE_EKS_CLUSTERS: "EKS Clusters",
    RESOURCE_ECS_CLUSTERS: "ECS Clusters",
}

# Shown in place of a count when the query failed
UNKNOWN_COUNT = "unknown"

# =============================================================================
# Default Configuration Values
# =============================================================================

DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_PARALLEL_REGIONS = 1
DEFAULT_CONNECT_TIMEOUT = 10
DEFAULT_READ_TIMEOUT = 60

# =============================================================================
# Exit Codes
# =============================================================================

EXIT_OK = 0
EXIT_SETUP_ERROR = 1
EXIT_INTERRUPTED = 130

"""
AWS billable resource counter library.
"""
# Import constants module for easy access
from . import constants
from .aggregator import count_account, count_resources
from .constants import (
    # Billing conversion
    CLUSTER_BILLABLE_MULTIPLIER,
    EC2_BILLABLE_MULTIPLIER,
    LAMBDA_FUNCTIONS_PER_BILLABLE,
    # Regions
    FALLBACK_REGIONS,
    # Delegated access
    ORG_ACCESS_ROLE_NAME,
)
from .counters import (
    count_ec2_instances,
    count_ecs_clusters,
    count_eks_clusters,
    count_lambda_functions,
    count_region,
)
from .credentials import (
    AccessError,
    CredentialContext,
    CredentialStack,
    assume_account_role,
)
from .models import (
    Account,
    AccountResult,
    BillableSummary,
    CountResult,
    CountRun,
    OrganizationInfo,
    ResourceCounts,
    calculate_billable,
)
from .scope import SetupError, describe_organization, list_accounts, list_org_accounts, list_regions
from .utils import (
    generate_run_id,
    get_timestamp,
    setup_logging,
    write_csv,
    write_json,
)

__all__ = [
    # Constants
    'constants',
    'CLUSTER_BILLABLE_MULTIPLIER',
    'EC2_BILLABLE_MULTIPLIER',
    'LAMBDA_FUNCTIONS_PER_BILLABLE',
    'FALLBACK_REGIONS',
    'ORG_ACCESS_ROLE_NAME',
    # Models
    'Account',
    'AccountResult',
    'BillableSummary',
    'CountResult',
    'CountRun',
    'OrganizationInfo',
    'ResourceCounts',
    'calculate_billable',
    # Credentials
    'AccessError',
    'CredentialContext',
    'CredentialStack',
    'assume_account_role',
    # Scope
    'SetupError',
    'describe_organization',
    'list_accounts',
    'list_org_accounts',
    'list_regions',
    # Counters
    'count_ec2_instances',
    'count_lambda_functions',
    'count_eks_clusters',
    'count_ecs_clusters',
    'count_region',
    # Aggregation
    'count_account',
    'count_resources',
    # Utils
    'generate_run_id',
    'get_timestamp',
    'write_json',
    'write_csv',
    'setup_logging',
]

"""
Per-region resource counters.

Each counter takes the credential context explicitly and returns a
CountResult. A failed query never raises: it is logged and counted as zero
with the error recorded, so one region or service cannot stop the sweep.
"""
import logging
from typing import Callable, Dict, List, Tuple

from .constants import (
    RESOURCE_EC2_INSTANCES,
    RESOURCE_ECS_CLUSTERS,
    RESOURCE_EKS_CLUSTERS,
    RESOURCE_LAMBDA_FUNCTIONS,
)
from .credentials import CredentialContext
from .models import CountResult
from .utils import retry_with_backoff

logger = logging.getLogger(__name__)


def _as_count(value) -> int:
    """Coerce a response field to a non-negative int (missing counts as 0)."""
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError):
        return 0


def _run_counter(label: str, query: Callable[[CredentialContext, str], int],
                 context: CredentialContext, region: str) -> CountResult:
    try:
        count = query(context, region)
    except Exception as e:
        logger.error(f"[{region}] Failed to count {label}: {e}")
        return CountResult(count=0, error=str(e))

    logger.info(f"[{region}] Found {count} {label}")
    return CountResult(count=count)


# =============================================================================
# EC2
# =============================================================================

@retry_with_backoff()
def _query_ec2_instances(context: CredentialContext, region: str) -> int:
    ec2 = context.client('ec2', region)
    paginator = ec2.get_paginator('describe_instances')

    total = 0
    for page in paginator.paginate(PaginationConfig={'PageSize': 1000}):
        for reservation in page.get('Reservations', []) or []:
            total += len(reservation.get('Instances', []) or [])
    return total


def count_ec2_instances(context: CredentialContext, region: str) -> CountResult:
    """Count EC2 instances (any state) across all reservations in a region."""
    return _run_counter("EC2 instances", _query_ec2_instances, context, region)


# =============================================================================
# Lambda
# =============================================================================

@retry_with_backoff()
def _query_lambda_functions(context: CredentialContext, region: str) -> int:
    lambda_client = context.client('lambda', region)
    response = lambda_client.get_account_settings()
    return _as_count((response.get('AccountUsage') or {}).get('FunctionCount'))


def count_lambda_functions(context: CredentialContext, region: str) -> CountResult:
    """
    Count Lambda functions from the account usage report.

    Uses GetAccountSettings rather than paging through ListFunctions.
    """
    return _run_counter("Lambda functions", _query_lambda_functions, context, region)


# =============================================================================
# Containers
# =============================================================================

@retry_with_backoff()
def _query_eks_clusters(context: CredentialContext, region: str) -> int:
    eks = context.client('eks', region)
    paginator = eks.get_paginator('list_clusters')

    total = 0
    for page in paginator.paginate():
        total += len(page.get('clusters', []) or [])
    return total


def count_eks_clusters(context: CredentialContext, region: str) -> CountResult:
    """Count EKS clusters in a region."""
    return _run_counter("EKS clusters", _query_eks_clusters, context, region)


@retry_with_backoff()
def _query_ecs_clusters(context: CredentialContext, region: str) -> int:
    ecs = context.client('ecs', region)
    paginator = ecs.get_paginator('list_clusters')

    total = 0
    for page in paginator.paginate():
        total += len(page.get('clusterArns', []) or [])
    return total


def count_ecs_clusters(context: CredentialContext, region: str) -> CountResult:
    """Count ECS clusters in a region."""
    return _run_counter("ECS clusters", _query_ecs_clusters, context, region)


# Fixed order: reports and totals iterate this list
COUNTERS: List[Tuple[str, Callable[[CredentialContext, str], CountResult]]] = [
    (RESOURCE_EC2_INSTANCES, count_ec2_instances),
    (RESOURCE_LAMBDA_FUNCTIONS, count_lambda_functions),
    (RESOURCE_EKS_CLUSTERS, count_eks_clusters),
    (RESOURCE_ECS_CLUSTERS, count_ecs_clusters),
]


def count_region(context: CredentialContext, region: str) -> Dict[str, CountResult]:
    """Run every counter for one region, keyed by resource type."""
    logger.debug(f"Counting resources in {region}...")
    return {resource_type: counter(context, region) for resource_type, counter in COUNTERS}

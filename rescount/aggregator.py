"""
Multi-account, multi-region aggregation.

Walks accounts sequentially. For each member account the caller's
credential context is saved, the delegated role is assumed, every region is
counted with the member credentials, and the saved context is restored on
every exit path. Accounts whose role cannot be assumed are skipped and
contribute zero.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence

from .constants import DEFAULT_PARALLEL_REGIONS, DEFAULT_SESSION_DURATION, ORG_ACCESS_ROLE_NAME
from .counters import count_region
from .credentials import AccessError, CredentialContext, CredentialStack, assume_account_role
from .models import Account, AccountResult, CountResult, CountRun, OrganizationInfo
from .report import Reporter
from .scope import describe_identity, discover_regions

logger = logging.getLogger(__name__)


def _count_regions(
    context: CredentialContext,
    regions: Sequence[str],
    parallel_regions: int,
) -> List[Dict[str, CountResult]]:
    """Count every region, returning results in region order."""
    if parallel_regions <= 1 or len(regions) <= 1:
        return [count_region(context, region) for region in regions]

    logger.info(f"Counting {len(regions)} regions in parallel (workers={parallel_regions})")
    executor = ThreadPoolExecutor(max_workers=parallel_regions)
    try:
        # map() preserves input order
        results = list(executor.map(lambda region: count_region(context, region), regions))
    except BaseException:
        executor.shutdown(wait=False, cancel_futures=True)
        raise
    executor.shutdown(wait=True)
    return results


def count_account(
    context: CredentialContext,
    account: Account,
    regions: Optional[Sequence[str]] = None,
    reporter: Optional[Reporter] = None,
    parallel_regions: int = DEFAULT_PARALLEL_REGIONS,
) -> AccountResult:
    """
    Count all resources of one account with an already-active context.

    Args:
        context: Credentials for this account
        account: Account being counted
        regions: Regions to count (None = query enabled regions)
        reporter: Optional reporter for per-region output
        parallel_regions: Number of regions to count concurrently (1 = serial)

    Returns:
        AccountResult with fresh per-account counts
    """
    result = AccountResult(account=account)

    if regions is None:
        region_list, fallback = discover_regions(context)
    else:
        region_list, fallback = list(regions), False
    result.regions = region_list

    if reporter:
        reporter.regions_discovered(region_list, fallback=fallback)

    logger.info(f"Counting account {account.display} across {len(region_list)} regions")

    for region, region_results in zip(region_list, _count_regions(context, region_list, parallel_regions)):
        result.counts.add_results(region_results)
        if any(not r.ok for r in region_results.values()):
            result.failed_regions.append(region)
        if reporter:
            reporter.region_counts(region, region_results)

    if reporter:
        reporter.account_totals(account, result.counts)

    return result


def count_resources(
    stack: CredentialStack,
    accounts: Sequence[Account],
    root_id: str = "",
    regions: Optional[Sequence[str]] = None,
    reporter: Optional[Reporter] = None,
    role_name: str = ORG_ACCESS_ROLE_NAME,
    duration_seconds: int = DEFAULT_SESSION_DURATION,
    parallel_regions: int = DEFAULT_PARALLEL_REGIONS,
    organization: Optional[OrganizationInfo] = None,
) -> CountRun:
    """
    Count resources across every listed account and sum global totals.

    Every account is visited. A failed role assumption skips that account
    (zero contribution) without aborting the run, and the active credential
    context is always restored to what it was before the account.

    Args:
        stack: Credential stack whose active context is the caller's
        accounts: Accounts to visit, in order
        root_id: Organization master account id (no delegation needed for it)
        regions: Explicit region list (None = query per account)
        reporter: Optional console reporter
        role_name: Role assumed in member accounts
        duration_seconds: Requested session lifetime for assumed roles
        parallel_regions: Regions counted concurrently within an account
        organization: Organization details for the run summary

    Returns:
        CountRun with per-account results and global totals
    """
    run = CountRun(organization=organization)

    for account in accounts:
        with stack.scope() as saved:
            try:
                member_context = assume_account_role(
                    saved, account.id, root_id,
                    role_name=role_name, duration_seconds=duration_seconds,
                )
            except AccessError as e:
                logger.warning(f"Failed to assume role in account {account.id} ({account.name}), skipping: {e}")
                if reporter:
                    reporter.account_header(account)
                    reporter.account_skipped(account, str(e))
                run.accounts.append(AccountResult(account=account, skipped=True, error=str(e)))
                continue

            if member_context is not saved:
                stack.push(member_context)

            identity = describe_identity(stack.active)
            if reporter:
                reporter.account_header(account, identity)

            account_result = count_account(
                stack.active, account, regions,
                reporter=reporter, parallel_regions=parallel_regions,
            )
            account_result.identity = identity

        run.totals.add(account_result.counts)
        run.accounts.append(account_result)
        logger.info(
            f"Account {account.display}: {account_result.counts.ec2_instances} EC2, "
            f"{account_result.counts.lambda_functions} Lambda, "
            f"{account_result.counts.total_clusters} clusters "
            f"(running cluster total {run.total_clusters})"
        )

    return run

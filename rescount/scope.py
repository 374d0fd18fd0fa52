"""
Account and region discovery.
"""
import logging
from typing import List, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from .constants import API_REGION, FALLBACK_REGIONS
from .credentials import CredentialContext
from .models import Account, AccountIdentity, OrganizationInfo

logger = logging.getLogger(__name__)

SINGLE_ACCOUNT_NAME = "current credentials"


class SetupError(Exception):
    """Unrecoverable setup failure. The run cannot continue."""


def describe_organization(context: CredentialContext) -> OrganizationInfo:
    """
    Describe the AWS Organization of the given credentials.

    Raises:
        SetupError: If the organization cannot be described or has no master account
    """
    try:
        org = context.client('organizations')
        response = org.describe_organization()
    except (ClientError, BotoCoreError) as e:
        error_code = e.response.get('Error', {}).get('Code', '') if isinstance(e, ClientError) else ''
        if error_code == 'AWSOrganizationsNotInUseException':
            logger.error("AWS Organizations is not enabled for this account")
        raise SetupError(
            "001 Failed to describe AWS Organization, check AWS credentials and "
            f"access to the AWS Organizations API: {e}"
        ) from e

    organization = response.get('Organization', {})
    master_account_id = organization.get('MasterAccountId', '')
    if not master_account_id:
        raise SetupError(
            "001 Failed to describe AWS Organization: response has no master account id"
        )

    return OrganizationInfo(id=organization.get('Id', ''), master_account_id=master_account_id)


def list_org_accounts(context: CredentialContext, master_account_id: str = "") -> List[Account]:
    """
    List all member accounts of the organization.

    Requires organizations:ListAccounts permission.

    Raises:
        SetupError: If the listing fails or returns no accounts
    """
    accounts = []
    try:
        org = context.client('organizations')
        paginator = org.get_paginator('list_accounts')

        for page in paginator.paginate():
            for account in page.get('Accounts', []):
                account_id = account.get('Id', '')
                if not account_id:
                    continue
                accounts.append(Account(
                    id=account_id,
                    name=account.get('Name', ''),
                    is_organization_root=account_id == master_account_id,
                ))
    except (ClientError, BotoCoreError) as e:
        raise SetupError(
            "002 Failed to list AWS Organization accounts, check AWS credentials and "
            f"access to the AWS Organizations API: {e}"
        ) from e

    if not accounts:
        raise SetupError("002 AWS Organization returned no member accounts")

    logger.info(f"Discovered {len(accounts)} accounts in organization")
    return accounts


def list_accounts(context: CredentialContext,
                  use_org: bool) -> Tuple[List[Account], Optional[OrganizationInfo]]:
    """
    Build the list of accounts to visit.

    Outside organization mode this is a single synthetic account standing for
    the current credentials, with an empty id (so it never needs delegation).

    Returns:
        (accounts, the organization or None outside organization mode)

    Raises:
        SetupError: In organization mode, if discovery fails
    """
    if not use_org:
        return [Account(id="", name=SINGLE_ACCOUNT_NAME)], None

    organization = describe_organization(context)
    accounts = list_org_accounts(context, organization.master_account_id)
    return accounts, organization


def discover_regions(context: CredentialContext) -> Tuple[List[str], bool]:
    """
    Get the sorted list of enabled regions, or the fallback list.

    Never raises: a failed or empty query yields FALLBACK_REGIONS in their
    declared order.

    Returns:
        (regions, True if the fallback list was used)
    """
    try:
        ec2 = context.client('ec2', API_REGION)
        response = ec2.describe_regions()
        regions = sorted(r['RegionName'] for r in response.get('Regions', []) if r.get('RegionName'))
    except (ClientError, BotoCoreError) as e:
        logger.warning(f"Failed to query regions, using default region list: {e}")
        return list(FALLBACK_REGIONS), True

    if not regions:
        logger.warning("Region query returned no regions, using default region list")
        return list(FALLBACK_REGIONS), True

    return regions, False


def list_regions(context: CredentialContext) -> List[str]:
    """Regions to visit for the given credentials (live, else fallback)."""
    return discover_regions(context)[0]


def describe_identity(context: CredentialContext) -> AccountIdentity:
    """
    Look up account number and alias for display. Never raises.
    """
    account_number = ''
    alias = ''

    try:
        account_number = context.client('sts').get_caller_identity().get('Account', '')
    except (ClientError, BotoCoreError) as e:
        logger.debug(f"Failed to get caller identity: {e}")

    try:
        aliases = context.client('iam').list_account_aliases().get('AccountAliases', [])
        alias = aliases[0] if aliases else ''
    except (ClientError, BotoCoreError) as e:
        logger.debug(f"Failed to list account aliases: {e}")

    return AccountIdentity(account_number=account_number, alias=alias)

"""
Credential context and delegated access.

A CredentialContext is an immutable set of AWS credentials. Every provider
call receives the context explicitly, so nothing depends on process-wide
environment credentials once the base context has been resolved.

CredentialStack tracks the active context while walking an organization:

    stack = CredentialStack(base_context)
    for account in accounts:
        with stack.scope():
            stack.push(assume_account_role(stack.active, account.id, root_id))
            ...  # counters use stack.active
        # stack.active == base_context again, on every exit path
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .constants import (
    API_REGION,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_READ_TIMEOUT,
    DEFAULT_SESSION_DURATION,
    ORG_ACCESS_ROLE_NAME,
    ROLE_SESSION_NAME,
)
from .utils import mask_account_id

logger = logging.getLogger(__name__)

# Retries are handled by retry_with_backoff, keep botocore's own to a minimum
BOTO_CONFIG = Config(
    retries={'max_attempts': 2, 'mode': 'standard'},
    connect_timeout=DEFAULT_CONNECT_TIMEOUT,
    read_timeout=DEFAULT_READ_TIMEOUT,
)


class AccessError(Exception):
    """Delegated access into a member account failed.

    Raised per account; callers skip the account and keep going.
    """
    def __init__(self, account_id: str, message: str, original_error: Optional[Exception] = None):
        self.account_id = account_id
        self.original_error = original_error
        super().__init__(message)


@dataclass(frozen=True)
class CredentialContext:
    """A set of AWS credentials. Compared by value."""
    access_key: str
    secret_key: str
    session_token: Optional[str] = None

    def __repr__(self) -> str:
        # Never print secrets, even in tracebacks
        return f"CredentialContext(access_key={self.access_key[:4]}...)"

    def session(self, region: Optional[str] = None) -> boto3.Session:
        """Create a boto3 session bound to these credentials."""
        return boto3.Session(
            aws_access_key_id=self.access_key,
            aws_secret_access_key=self.secret_key,
            aws_session_token=self.session_token,
            region_name=region,
        )

    def client(self, service: str, region: str = API_REGION):
        """Create a boto3 client bound to these credentials."""
        return self.session(region).client(service, region_name=region, config=BOTO_CONFIG)


def get_session(profile: Optional[str] = None, region: Optional[str] = None) -> boto3.Session:
    """Create boto3 session from the default credential chain (or a profile)."""
    return boto3.Session(profile_name=profile, region_name=region)


def context_from_session(session: boto3.Session) -> CredentialContext:
    """
    Freeze the credentials of a boto3 session into a CredentialContext.

    Raises:
        RuntimeError: If the session has no resolvable credentials
    """
    credentials = session.get_credentials()
    if credentials is None:
        raise RuntimeError("No AWS credentials found in the default credential chain")
    frozen = credentials.get_frozen_credentials()
    return CredentialContext(
        access_key=frozen.access_key,
        secret_key=frozen.secret_key,
        session_token=frozen.token,
    )


def get_account_id(context: CredentialContext) -> str:
    """Get AWS account ID of the given credentials."""
    sts = context.client('sts')
    return sts.get_caller_identity()['Account']


def build_role_arn(account_id: str, role_name: str = ORG_ACCESS_ROLE_NAME) -> str:
    return f"arn:aws:iam::{account_id}:role/{role_name}"


def assume_account_role(
    context: CredentialContext,
    account_id: str,
    root_id: str = "",
    role_name: str = ORG_ACCESS_ROLE_NAME,
    duration_seconds: int = DEFAULT_SESSION_DURATION,
) -> CredentialContext:
    """
    Obtain short-lived credentials scoped to a member account.

    The organization master account needs no delegation, so when
    account_id equals root_id the given context is returned unchanged.

    Args:
        context: Credentials used to make the AssumeRole call
        account_id: Target member account
        root_id: Organization master account id ("" outside organization mode)
        role_name: Role to assume in the member account
        duration_seconds: Requested session lifetime

    Returns:
        CredentialContext for the member account

    Raises:
        AccessError: If the role cannot be assumed for any reason
    """
    if account_id == root_id:
        logger.info(f"Account {account_id or 'current'} is the master account, skipping assume role")
        return context

    role_arn = build_role_arn(account_id, role_name)
    try:
        sts = context.client('sts')
        response = sts.assume_role(
            RoleArn=role_arn,
            RoleSessionName=ROLE_SESSION_NAME,
            DurationSeconds=duration_seconds,
        )
        credentials = response['Credentials']
        logger.info(f"Assumed role in account {account_id}")
        return CredentialContext(
            access_key=credentials['AccessKeyId'],
            secret_key=credentials['SecretAccessKey'],
            session_token=credentials['SessionToken'],
        )
    except (ClientError, BotoCoreError, KeyError) as e:
        # Mask account ID in logs to prevent information disclosure
        masked_arn = mask_account_id(role_arn)
        logger.warning(f"Failed to assume role {masked_arn}: {e}")
        raise AccessError(
            account_id,
            f"Failed to assume role into member account {account_id}: {e}",
            original_error=e,
        ) from e


class CredentialStack:
    """
    Active credential context with save/restore around delegated access.

    The bottom of the stack is the base (caller) context and is never popped.
    """

    def __init__(self, base: CredentialContext):
        self._stack: List[CredentialContext] = [base]

    @property
    def base(self) -> CredentialContext:
        return self._stack[0]

    @property
    def active(self) -> CredentialContext:
        return self._stack[-1]

    @property
    def depth(self) -> int:
        return len(self._stack)

    def push(self, context: CredentialContext) -> None:
        """Make context the active one."""
        self._stack.append(context)

    def restore(self, saved: CredentialContext) -> None:
        """
        Unconditionally make `saved` the active context.

        Contexts pushed since `saved` was active are discarded. If `saved` is
        no longer on the stack it becomes the new active entry.
        """
        for index in range(len(self._stack) - 1, -1, -1):
            if self._stack[index] == saved:
                del self._stack[index + 1:]
                return
        self._stack.append(saved)

    @contextmanager
    def scope(self) -> Iterator[CredentialContext]:
        """
        Save the active context and restore it on every exit path.

        Yields the saved context.
        """
        depth = len(self._stack)
        saved = self.active
        try:
            yield saved
        finally:
            del self._stack[depth:]
            if self.active != saved:
                self.restore(saved)
            logger.debug("Restored saved credential context")

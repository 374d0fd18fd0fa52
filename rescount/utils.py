"""
Utility functions for the billable resource counter.

Logging Level Standards:
------------------------
- ERROR: Counter failures that zero out a resource type in a region
         "[us-east-1] Failed to count EC2 instances: {e}"
- WARNING: Per-account failures that skip an account
           "Failed to assume role in account {id}: {e}"
- INFO: Progress messages, resource counts
        "[us-east-1] Found 42 EC2 instances"
- DEBUG: Per-call detail that doesn't affect the totals
"""
import csv
import hashlib
import io
import json
import logging
import os
import re
import sys
import uuid
from datetime import datetime, timezone
from typing import IO, Any, Callable, Dict, List, Optional, TypeVar

import boto3
from botocore.exceptions import (
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .constants import DEFAULT_RETRY_ATTEMPTS

logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Transport-level failures worth another attempt. API errors (ClientError)
# are never retried: they become a zero count immediately.
TRANSIENT_ERRORS = (
    EndpointConnectionError,
    ConnectTimeoutError,
    ReadTimeoutError,
    ConnectionClosedError,
)


def retry_with_backoff(
    max_attempts: int = DEFAULT_RETRY_ATTEMPTS,
    min_wait: float = 1,
    max_wait: float = 30,
    exceptions: tuple = TRANSIENT_ERRORS
) -> Callable[[F], F]:
    """
    Retry the decorated call with exponential backoff.

    Only `exceptions` trigger another attempt. After `max_attempts` the last
    exception propagates unchanged.

    Example:
        @retry_with_backoff(max_attempts=5)
        def list_clusters(...):
            ...
    """
    policy = retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    return policy  # type: ignore[return-value]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_run_id() -> str:
    """Run identifier of the form YYYYMMDD-HHMMSS-<8 hex chars>."""
    return f"{_utc_now():%Y%m%d-%H%M%S}-{uuid.uuid4().hex[:8]}"


def get_timestamp() -> str:
    """ISO 8601 UTC timestamp with a trailing Z."""
    return _utc_now().isoformat().replace('+00:00', 'Z')


def parse_csv_list(value: Any) -> List[str]:
    """Split a comma-separated string (or pass through a list) into clean items."""
    if not value:
        return []
    items = value if isinstance(value, (list, tuple)) else str(value).split(',')
    return [str(item).strip() for item in items if str(item).strip()]


# =============================================================================
# Redaction
# =============================================================================

_ACCOUNT_ID = re.compile(r'\d{12}')


def mask_account_id(arn: str) -> str:
    """
    Replace account ids in an ARN with ***.

    arn:aws:iam::123456789012:role/MyRole -> arn:aws:iam::***:role/MyRole
    """
    return _ACCOUNT_ID.sub('***', arn)


def hash_sensitive_id(value: str, prefix: str = "") -> str:
    """
    Stable short token for an identifier (first 8 hex chars of SHA-256).

    The same input always gives the same token, so redacted log lines can
    still be correlated: 123456789012 -> acc-xxxxxxxx with prefix "acc-".
    """
    if not value:
        return value
    return prefix + hashlib.sha256(value.encode()).hexdigest()[:8]


def _redact_arn(match: "re.Match") -> str:
    prefix, service, region, account, resource = match.groups()
    return f"{prefix}:{service}:{region or '*'}:{hash_sensitive_id(account)}:{resource}"


# ARNs go first so their embedded account id is handled as part of the ARN
_REDACTIONS = (
    (re.compile(r'(arn:aws[-a-z]*):([a-z0-9-]+):([a-z0-9-]*):(\d{12}):([^\s,\]}"\']+)'), _redact_arn),
    (re.compile(r'\b(\d{12})\b'), lambda m: hash_sensitive_id(m.group(1), 'acc-')),
    (re.compile(r'\b((?:AKIA|ASIA)[A-Z0-9]{16})\b'), lambda m: f"{m.group(1)[:4]}-{hash_sensitive_id(m.group(1))}"),
)


def redact_log_message(message: str) -> str:
    """Hash account ids, ARNs and access key ids found in a log message."""
    for pattern, replacement in _REDACTIONS:
        if not message:
            break
        message = pattern.sub(replacement, message)
    return message


class RedactingFilter(logging.Filter):
    """Redacts identifiers from records before they reach a persistent log."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = redact_log_message(str(record.msg))
        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                redact_log_message(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


# =============================================================================
# Logging
# =============================================================================

def _make_handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    return handler


def setup_logging(level: str = "INFO", output_dir: Optional[str] = None) -> logging.Logger:
    """
    Configure the root logger.

    Logs go to stderr so stdout carries only the report. With `output_dir`
    a redacted copy is also written to rescount_log_<timestamp>.log there.
    Calling this again replaces the previous handlers.
    """
    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()
    root.addHandler(_make_handler(logging.StreamHandler(sys.stderr), numeric_level))

    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
        log_file = os.path.join(output_dir, f"rescount_log_{_utc_now():%Y%m%d_%H%M%S}.log")
        file_handler = _make_handler(logging.FileHandler(log_file, mode='w'), numeric_level)
        file_handler.addFilter(RedactingFilter())
        root.addHandler(file_handler)
        root.info(f"Logging to: {log_file}")

    # botocore and urllib3 are noisy below WARNING
    for noisy in ('botocore', 'urllib3'):
        logging.getLogger(noisy).setLevel(max(numeric_level, logging.WARNING))

    return logging.getLogger(__name__)


# =============================================================================
# Result files
# =============================================================================

def _open_private(filepath: str, newline: Optional[str] = None) -> IO[str]:
    # Owner read/write only: result files list account ids
    fd = os.open(filepath, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    return os.fdopen(fd, 'w', newline=newline)


def write_json(data: Any, filepath: str, s3_client=None) -> None:
    """Write data as indented JSON to a local path or s3:// URL."""
    body = json.dumps(data, indent=2, default=str)
    if filepath.startswith("s3://"):
        write_to_s3(body, filepath, s3_client=s3_client)
        return

    with _open_private(filepath) as f:
        f.write(body)
    print(f"Wrote {filepath}")


def write_csv(data: List[Dict], filepath: str, fieldnames: Optional[List[str]] = None,
              s3_client=None) -> None:
    """Write rows as CSV to a local path or s3:// URL. No rows, no file."""
    if not data:
        return

    columns = fieldnames or list(data[0].keys())
    buffer = io.StringIO(newline='')
    writer = csv.DictWriter(buffer, fieldnames=columns)
    writer.writeheader()
    writer.writerows(data)

    if filepath.startswith("s3://"):
        write_to_s3(buffer.getvalue(), filepath, content_type="text/csv", s3_client=s3_client)
        return

    with _open_private(filepath, newline='') as f:
        f.write(buffer.getvalue())
    print(f"Wrote {filepath}")


def write_to_s3(body: str, s3_path: str, content_type: str = "application/json",
                s3_client=None) -> None:
    """
    Upload a string to s3://bucket/key.

    Pass `s3_client` to write with specific credentials (e.g. the --profile
    session); otherwise the default credential chain is used.
    """
    bucket, _, key = s3_path[len("s3://"):].partition("/")
    key = key or "output.json"

    try:
        client = s3_client or boto3.client('s3')
        client.put_object(Bucket=bucket, Key=key, Body=body, ContentType=content_type)
    except Exception as e:
        logger.error(f"Failed to write s3://{bucket}/{key}: {e}")
        raise
    print(f"Wrote s3://{bucket}/{key}")

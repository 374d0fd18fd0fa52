"""
Configuration Management

Settings come from three layers, lowest priority first:
1. Environment variables (RESCOUNT_*)
2. YAML config file (--config, else ./rescount-config.yaml or ~/.rescount/config.yaml)
3. Command-line arguments

Config file example:
```yaml
log_level: INFO
output: "./counts"

aws:
  profile: billing-admin
  org: true
  org_role: OrganizationAccountAccessRole
  session_duration: 900
  parallel_regions: 4
  skip_accounts:
    - "999999999999"
  regions:
    - us-east-1
    - us-west-2
```
"""
import logging
import os
import re
import stat
from pathlib import Path
from typing import Any, Dict, NamedTuple, Optional

import yaml

from .constants import MAX_SESSION_DURATION, MIN_SESSION_DURATION

logger = logging.getLogger(__name__)


CONFIG_SEARCH_PATHS = (
    './rescount-config.yaml',
    './rescount-config.yml',
    '~/.rescount/config.yaml',
    '~/.rescount/config.yml',
)

# ${NAME} or ${NAME:-fallback}
_ENV_REFERENCE = re.compile(r'\$\{([^}:]+)(?::-([^}]*))?\}')


class Setting(NamedTuple):
    """One configurable value and where it lives in each layer."""
    path: str       # dotted key in the YAML file
    arg: str        # argparse attribute
    env: str        # environment variable
    kind: type = str


SETTINGS = (
    Setting('output', 'output', 'RESCOUNT_OUTPUT'),
    Setting('log_level', 'log_level', 'RESCOUNT_LOG_LEVEL'),
    Setting('aws.profile', 'profile', 'RESCOUNT_AWS_PROFILE'),
    Setting('aws.org', 'org', 'RESCOUNT_ORG', bool),
    Setting('aws.org_role', 'org_role', 'RESCOUNT_ORG_ROLE'),
    Setting('aws.regions', 'regions', 'RESCOUNT_REGIONS', list),
    Setting('aws.skip_accounts', 'skip_accounts', 'RESCOUNT_SKIP_ACCOUNTS', list),
    Setting('aws.session_duration', 'session_duration', 'RESCOUNT_SESSION_DURATION', int),
    Setting('aws.parallel_regions', 'parallel_regions', 'RESCOUNT_PARALLEL_REGIONS', int),
)


def _split(value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [v.strip() for v in str(value).split(',') if v.strip()]


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def _expand_env(value: Any) -> Any:
    """Replace ${NAME} references in every string of a loaded YAML tree."""
    if isinstance(value, dict):
        return {key: _expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env(item) for item in value]
    if isinstance(value, str):
        return _ENV_REFERENCE.sub(lambda m: os.environ.get(m.group(1), m.group(2) or ''), value)
    return value


def _lookup(tree: Dict[str, Any], path: str) -> Any:
    node: Any = tree
    for part in path.split('.'):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def _assign(tree: Dict[str, Any], path: str, value: Any) -> None:
    *parents, leaf = path.split('.')
    for part in parents:
        tree = tree.setdefault(part, {})
    tree[leaf] = value


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Read a YAML config file, expanding ${NAME} references."""
    path = Path(config_path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    if path.stat().st_mode & (stat.S_IRWXG | stat.S_IRWXO):
        logger.warning(f"Config file {config_path} is readable by other users, "
                       f"consider: chmod 600 {config_path}")

    logger.info(f"Loading config from {path}")
    with open(path) as f:
        return _expand_env(yaml.safe_load(f) or {})


def find_default_config() -> Optional[str]:
    for candidate in CONFIG_SEARCH_PATHS:
        path = Path(candidate).expanduser()
        if path.exists():
            return str(path)
    return None


def load_env_config() -> Dict[str, Any]:
    """Collect RESCOUNT_* environment variables into a config tree."""
    config: Dict[str, Any] = {}

    for setting in SETTINGS:
        raw = os.environ.get(setting.env)
        if raw is None:
            continue

        if setting.kind is list:
            value: Any = _split(raw)
        elif setting.kind is bool:
            value = _to_bool(raw)
        elif setting.kind is int:
            try:
                value = int(raw)
            except ValueError:
                logger.warning(f"Ignoring non-integer {setting.env}={raw!r}")
                continue
        else:
            value = raw

        _assign(config, setting.path, value)

    return config


def merge_configs(*configs: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge config trees; later trees win, None never overrides."""
    merged: Dict[str, Any] = {}
    for config in configs:
        for key, value in config.items():
            if value is None:
                continue
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = merge_configs(merged[key], value)
            else:
                merged[key] = value
    return merged


def args_to_config(args) -> Dict[str, Any]:
    """Config tree of the options actually given on the command line."""
    config: Dict[str, Any] = {}
    for setting in SETTINGS:
        value = getattr(args, setting.arg, None)
        # store_true flags read False when absent
        if value is None or value is False:
            continue
        if setting.kind is list:
            value = _split(value)
        _assign(config, setting.path, value)
    return config


def config_to_args(config: Dict[str, Any], args) -> None:
    """Write merged settings back onto the argparse namespace."""
    for setting in SETTINGS:
        value = _lookup(config, setting.path)
        if value is None:
            continue
        if setting.kind is list:
            # the CLI keeps lists as comma-separated strings
            value = ','.join(_split(value))
        elif setting.kind is bool:
            # ${VAR:-false} in the file expands to a string
            value = _to_bool(value)
        elif setting.kind is int:
            value = int(value)
        setattr(args, setting.arg, value)


def validate_config(args) -> None:
    """
    Clamp the session duration to what STS accepts.

    Raises:
        ValueError: If parallel_regions is below 1
    """
    duration = getattr(args, 'session_duration', None)
    if duration is not None and not MIN_SESSION_DURATION <= duration <= MAX_SESSION_DURATION:
        clamped = min(max(duration, MIN_SESSION_DURATION), MAX_SESSION_DURATION)
        logger.warning(f"Session duration {duration}s is outside "
                       f"{MIN_SESSION_DURATION}-{MAX_SESSION_DURATION}s, using {clamped}s")
        args.session_duration = clamped

    parallel = getattr(args, 'parallel_regions', None)
    if parallel is not None and parallel < 1:
        raise ValueError(f"parallel_regions must be at least 1, got {parallel}")


def load_config(args) -> Dict[str, Any]:
    """
    Merge environment, config file and command line, then apply to `args`.

    Raises:
        FileNotFoundError: If --config names a file that does not exist
        ValueError: If a merged value is out of range
    """
    layers = []

    env_config = load_env_config()
    if env_config:
        logger.debug(f"Environment settings: {sorted(env_config)}")
        layers.append(env_config)

    config_path = getattr(args, 'config', None) or find_default_config()
    if config_path:
        layers.append(load_config_file(config_path))

    layers.append(args_to_config(args))

    merged = merge_configs(*layers)
    config_to_args(merged, args)
    validate_config(args)
    return merged


def generate_sample_config() -> str:
    return '''# Billable resource counter configuration
#
# Values may reference environment variables:
#   ${NAME}             value of NAME (empty if unset)
#   ${NAME:-fallback}   value of NAME, or fallback

# Directory (or s3://bucket/prefix) for JSON/CSV results; console only if unset
# output: "./counts"

# DEBUG, INFO, WARNING or ERROR
log_level: WARNING

aws:
  # Named AWS profile; the default credential chain is used if unset
  # profile: my-profile

  # Count every account of the AWS Organization
  org: false

  # Role assumed in each member account
  org_role: OrganizationAccountAccessRole

  # Assumed-role session lifetime in seconds (900-43200)
  session_duration: 900

  # Regions counted at the same time within one account
  parallel_regions: 1

  # Regions to count; every enabled region if unset
  # regions:
  #   - us-east-1
  #   - us-west-2

  # Accounts left out of an organization run
  # skip_accounts:
  #   - "999999999999"
'''

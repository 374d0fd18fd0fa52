#!/usr/bin/env python3
"""
AWS Billable Resource Counter

Counts EC2 instances, Lambda functions, EKS clusters and ECS clusters across
every enabled region of the current account, or of every member account of
an AWS Organization, and converts the totals into billable units.

Usage:
    python3 aws_count.py
    python3 aws_count.py --org
    python3 aws_count.py --org --skip-accounts 111111111111 --output ./counts
"""
import argparse
import logging
import os
import sys
from typing import List, Optional

from rescount.aggregator import count_resources
from rescount.config import generate_sample_config, load_config
from rescount.constants import (
    DEFAULT_PARALLEL_REGIONS,
    DEFAULT_SESSION_DURATION,
    EXIT_INTERRUPTED,
    EXIT_OK,
    EXIT_SETUP_ERROR,
    ORG_ACCESS_ROLE_NAME,
)
from rescount.credentials import CredentialStack, context_from_session, get_account_id, get_session
from rescount.models import CountRun
from rescount.report import Reporter
from rescount.scope import SetupError, list_accounts
from rescount.utils import (
    generate_run_id,
    get_timestamp,
    parse_csv_list,
    setup_logging,
    write_csv,
    write_json,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='AWS Billable Resource Counter',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Single account (current credentials)
  python3 aws_count.py

  # Every member account of the AWS Organization
  python3 aws_count.py --org

  # Specific regions, skipping an account
  python3 aws_count.py --org --regions us-east-1,us-west-2 --skip-accounts 111111111111

  # Count 4 regions at a time and save JSON/CSV results
  python3 aws_count.py --org --parallel-regions 4 --output ./counts
"""
    )

    parser.add_argument('--config', '-c', help='Path to YAML config file')
    parser.add_argument('--generate-config', action='store_true',
                        help='Generate a sample config file and exit')
    parser.add_argument('--profile', help='AWS profile name (default: credential chain)')
    parser.add_argument('--org', action='store_true',
                        help='Count every account of the AWS Organization')
    parser.add_argument('--regions', help='Comma-separated list of regions (default: all enabled)')
    parser.add_argument('--skip-accounts',
                        help='Comma-separated list of account IDs to skip (with --org)')
    parser.add_argument('--org-role',
                        help=f'Role assumed in each member account (default: {ORG_ACCESS_ROLE_NAME})')
    parser.add_argument('--session-duration', type=int, metavar='SECONDS',
                        help=f'Assumed-role session lifetime (default: {DEFAULT_SESSION_DURATION})')
    parser.add_argument('--parallel-regions', type=int, metavar='N',
                        help=f'Regions counted in parallel per account (default: {DEFAULT_PARALLEL_REGIONS})')
    parser.add_argument('--output', '-o',
                        help='Directory or S3 path for JSON/CSV results (default: console only)')
    parser.add_argument('--log-level', help='Logging level (default: WARNING)')
    return parser


def _apply_defaults(args) -> None:
    # Applied after config merging so file and env values are not masked
    if not args.org_role:
        args.org_role = ORG_ACCESS_ROLE_NAME
    if args.session_duration is None:
        args.session_duration = DEFAULT_SESSION_DURATION
    if args.parallel_regions is None:
        args.parallel_regions = DEFAULT_PARALLEL_REGIONS
    if not args.log_level:
        args.log_level = 'WARNING'


def write_results(run: CountRun, output: str, s3_client=None) -> None:
    """Write the JSON summary and per-account CSV into `output`."""
    run_id = generate_run_id()
    timestamp = get_timestamp()
    file_ts = '_'.join(run_id.split('-')[:2])

    summary = {'run_id': run_id, 'timestamp': timestamp, **run.to_dict()}

    base = output.rstrip('/')
    if not base.startswith('s3://'):
        os.makedirs(base, exist_ok=True)

    write_json(summary, f"{base}/rescount_summary_{file_ts}.json", s3_client=s3_client)
    rows = [r.to_dict() for r in run.accounts]
    for row in rows:
        row['failed_regions'] = ';'.join(row['failed_regions'])
    write_csv(rows, f"{base}/rescount_accounts_{file_ts}.csv", s3_client=s3_client)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.generate_config:
        print(generate_sample_config())
        return EXIT_OK

    setup_logging(args.log_level or 'WARNING')

    try:
        load_config(args)
    except FileNotFoundError as e:
        logger.error(str(e))
        print(f"ERROR: {e}")
        return EXIT_SETUP_ERROR
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        print(f"ERROR: {e}")
        return EXIT_SETUP_ERROR

    _apply_defaults(args)

    # Reconfigure now that config may have changed level and output
    log_dir = args.output if args.output and not args.output.startswith('s3://') else None
    setup_logging(args.log_level, output_dir=log_dir)

    try:
        base_context = context_from_session(get_session(args.profile))
        base_account_id = get_account_id(base_context)
    except Exception as e:
        logger.error(f"Failed to resolve AWS credentials: {e}")
        logger.error("Check your AWS credentials are configured correctly.")
        print(f"ERROR: Failed to resolve AWS credentials: {e}")
        return EXIT_SETUP_ERROR

    logger.info(f"Running as account {base_account_id}")

    reporter = Reporter()
    regions = parse_csv_list(args.regions) or None

    try:
        accounts, organization = list_accounts(base_context, use_org=args.org)
    except SetupError as e:
        logger.error(str(e))
        print(f"ERROR: {e}")
        return EXIT_SETUP_ERROR

    root_id = organization.master_account_id if organization else ""

    skip_accounts = set(parse_csv_list(args.skip_accounts))
    if skip_accounts:
        for account in accounts:
            if account.id in skip_accounts:
                logger.info(f"Skipping account {account.id} ({account.name})")
        accounts = [a for a in accounts if a.id not in skip_accounts]

    if organization is not None:
        reporter.organization_summary(organization, len(accounts))

    stack = CredentialStack(base_context)
    try:
        run = count_resources(
            stack,
            accounts,
            root_id=root_id,
            regions=regions,
            reporter=reporter,
            role_name=args.org_role,
            duration_seconds=args.session_duration,
            parallel_regions=args.parallel_regions,
            organization=organization,
        )
    except KeyboardInterrupt:
        logger.warning("Interrupted, no summary produced")
        print("\nInterrupted by user.")
        return EXIT_INTERRUPTED

    reporter.final_summary(run)

    if args.output:
        # S3 results are written with the same credentials as the count
        s3_client = base_context.client('s3') if args.output.startswith('s3://') else None
        write_results(run, args.output, s3_client=s3_client)

    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())

"""
End-to-end tests for the aws_count.py command line using moto.

Covers:
- Single account and organization runs
- Setup failures and exit codes
- Account skipping and result files
"""
import json
import os
import sys
from unittest.mock import patch

import boto3
import pytest
from moto import mock_aws

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import aws_count
from rescount.credentials import AccessError


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def aws_credentials():
    """Mocked AWS Credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"


@pytest.fixture
def cli_env(aws_credentials, monkeypatch, tmp_path):
    """Isolated working directory with no RESCOUNT_* settings; Lambda counts as 0."""
    for key in list(os.environ):
        if key.startswith('RESCOUNT_'):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv('HOME', str(tmp_path))
    with patch('rescount.counters._query_lambda_functions', return_value=0):
        yield tmp_path


def _run_instances(count, **client_kwargs):
    boto3.client("ec2", region_name="us-east-1", **client_kwargs).run_instances(
        ImageId="ami-12345678", MinCount=count, MaxCount=count, InstanceType="t2.micro")


def _member_client_kwargs(member_id):
    creds = boto3.client("sts", region_name="us-east-1").assume_role(
        RoleArn=f"arn:aws:iam::{member_id}:role/OrganizationAccountAccessRole",
        RoleSessionName="seed",
    )["Credentials"]
    return {
        'aws_access_key_id': creds["AccessKeyId"],
        'aws_secret_access_key': creds["SecretAccessKey"],
        'aws_session_token': creds["SessionToken"],
    }


def _create_org(*names):
    org = boto3.client("organizations", region_name="us-east-1")
    org.create_organization(FeatureSet="ALL")
    return [
        org.create_account(AccountName=name, Email=f"{name}@example.com")["CreateAccountStatus"]["AccountId"]
        for name in names
    ]


# =============================================================================
# Basic runs
# =============================================================================

class TestSingleAccount:

    def test_generate_config(self, capsys):
        assert aws_count.main(['--generate-config']) == 0
        assert "org_role: OrganizationAccountAccessRole" in capsys.readouterr().out

    @mock_aws
    def test_counts_current_account(self, cli_env, capsys):
        _run_instances(3)
        boto3.client("ecs", region_name="us-east-1").create_cluster(clusterName="svc")

        assert aws_count.main(['--regions', 'us-east-1']) == 0

        out = capsys.readouterr().out
        assert "Processing Account: current credentials" in out
        assert "Total EC2 Instances across all regions: 3" in out
        assert "Total ECS Clusters across all regions: 1" in out
        assert "Total Billable Units: 5" in out

    @mock_aws
    def test_writes_result_files(self, cli_env):
        _run_instances(2)
        out_dir = cli_env / "counts"

        assert aws_count.main(['--regions', 'us-east-1', '--output', str(out_dir)]) == 0

        files = os.listdir(out_dir)
        summaries = [f for f in files if f.startswith("rescount_summary_")]
        csvs = [f for f in files if f.startswith("rescount_accounts_")]
        logs = [f for f in files if f.startswith("rescount_log_")]
        assert len(summaries) == 1 and len(csvs) == 1 and len(logs) == 1

        with open(out_dir / summaries[0]) as f:
            summary = json.load(f)
        assert summary['billable']['total'] == 2
        assert summary['accounts'][0]['account_id'] == "123456789012"
        assert 'run_id' in summary

    @mock_aws
    def test_writes_results_to_s3_with_base_credentials(self, cli_env):
        _run_instances(1)
        s3 = boto3.client("s3", region_name="us-east-1")
        s3.create_bucket(Bucket="counts")

        with patch('rescount.utils.boto3.client') as default_client:
            assert aws_count.main(['--regions', 'us-east-1', '--output', 's3://counts/run']) == 0

        default_client.assert_not_called()
        keys = [obj["Key"] for obj in s3.list_objects_v2(Bucket="counts")["Contents"]]
        assert any(k.startswith("run/rescount_summary_") for k in keys)
        assert any(k.startswith("run/rescount_accounts_") for k in keys)


# =============================================================================
# Setup failures
# =============================================================================

class TestSetupFailures:

    def test_missing_config_file(self, cli_env, capsys):
        assert aws_count.main(['--config', str(cli_env / "missing.yaml")]) == 1
        assert "ERROR:" in capsys.readouterr().out

    def test_invalid_parallel_regions(self, cli_env):
        assert aws_count.main(['--parallel-regions', '0']) == 1

    def test_no_credentials(self, cli_env, capsys):
        with patch('aws_count.context_from_session', side_effect=RuntimeError("No AWS credentials found")):
            assert aws_count.main([]) == 1
        assert "ERROR: Failed to resolve AWS credentials" in capsys.readouterr().out

    @mock_aws
    def test_org_mode_without_organization(self, cli_env, capsys):
        assert aws_count.main(['--org', '--regions', 'us-east-1']) == 1
        assert "ERROR: 001" in capsys.readouterr().out


# =============================================================================
# Organization runs
# =============================================================================

class TestOrganization:

    @mock_aws
    def test_counts_every_account(self, cli_env, capsys):
        member_a, member_b = _create_org("dev", "prod")
        _run_instances(1)
        _run_instances(2, **_member_client_kwargs(member_a))
        _run_instances(4, **_member_client_kwargs(member_b))

        assert aws_count.main(['--org', '--regions', 'us-east-1']) == 0

        out = capsys.readouterr().out
        assert "Total number of member accounts: 3" in out
        assert f"dev ({member_a})" in out
        assert "Total Billable Units: 7" in out

    @mock_aws
    def test_org_mode_goes_through_account_listing(self, cli_env):
        _create_org("dev")
        from rescount import scope

        with patch('aws_count.list_accounts', wraps=scope.list_accounts) as listing:
            assert aws_count.main(['--org', '--regions', 'us-east-1']) == 0

        assert listing.call_args.kwargs['use_org'] is True

    @mock_aws
    def test_skip_accounts(self, cli_env, capsys):
        member_a, member_b = _create_org("dev", "prod")
        _run_instances(2, **_member_client_kwargs(member_a))
        _run_instances(4, **_member_client_kwargs(member_b))

        assert aws_count.main(['--org', '--regions', 'us-east-1', '--skip-accounts', member_b]) == 0

        out = capsys.readouterr().out
        assert "Total number of member accounts: 2" in out
        assert member_b not in out
        assert "Total Billable Units: 2" in out

    @mock_aws
    def test_denied_member_is_skipped(self, cli_env, capsys):
        member_a, member_b = _create_org("dev", "locked")
        _run_instances(2, **_member_client_kwargs(member_a))
        _run_instances(4, **_member_client_kwargs(member_b))

        from rescount import aggregator
        real_assume = aggregator.assume_account_role

        def deny_locked(context, account_id, root_id="", **kwargs):
            if account_id == member_b:
                raise AccessError(account_id, f"Failed to assume role into member account {account_id}")
            return real_assume(context, account_id, root_id, **kwargs)

        with patch('rescount.aggregator.assume_account_role', side_effect=deny_locked):
            assert aws_count.main(['--org', '--regions', 'us-east-1']) == 0

        out = capsys.readouterr().out
        assert "Total Billable Units: 2" in out
        assert f"Skipped accounts (1): {member_b}" in out

    @mock_aws
    def test_interrupt_exits_130(self, cli_env, capsys):
        _create_org("dev")
        with patch('aws_count.count_resources', side_effect=KeyboardInterrupt):
            assert aws_count.main(['--org', '--regions', 'us-east-1']) == 130
        assert "Interrupted" in capsys.readouterr().out

"""
Console reporting for counting runs.

Uses rich when stdout is a TTY, and falls back to plain banner text
otherwise (e.g., when piping output to a file).

Usage:
    reporter = Reporter()
    reporter.account_header(account, identity)
    reporter.regions_discovered(regions)
    for region in regions:
        reporter.region_counts(region, results)
    reporter.account_totals(account, counts)
    reporter.final_summary(run)
"""
import sys
from typing import Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .constants import (
    RESOURCE_EC2_INSTANCES,
    RESOURCE_ECS_CLUSTERS,
    RESOURCE_EKS_CLUSTERS,
    RESOURCE_LABELS,
    RESOURCE_LAMBDA_FUNCTIONS,
)
from .models import Account, AccountIdentity, CountResult, CountRun, OrganizationInfo, ResourceCounts

BANNER = "#" * 83
FOOTNOTE = "Totals are based upon resource counts at the time that this script is executed."


class Reporter:
    """Renders progress banners and the final billable summary."""

    def __init__(self, show_progress: bool = True, console: Optional[Console] = None):
        self.show_progress = show_progress and sys.stdout.isatty()
        if console is None and self.show_progress:
            console = Console()
        # None selects plain output
        self._console: Optional[Console] = console

    def _plain(self, *lines: str) -> None:
        for line in lines:
            print(line)

    def organization_summary(self, organization: OrganizationInfo, total_accounts: int) -> None:
        """Print the organization banner before any account is processed."""
        if self._console is not None:
            table = Table(show_header=False, box=None)
            table.add_column("Field", style="cyan")
            table.add_column("Value", style="green")
            table.add_row("Organization ID", organization.id)
            table.add_row("Master Account", organization.master_account_id)
            table.add_row("Member Accounts", str(total_accounts))
            self._console.print(Panel(table, title="AWS Organization"))
        else:
            self._plain(
                BANNER,
                "AWS Organization Billable Resource Count",
                f"  AWS Organization ID: {organization.id}",
                f"  AWS Organization Master Account Number: {organization.master_account_id}",
                f"  Total number of member accounts: {total_accounts}",
                BANNER,
                "",
            )

    def account_header(self, account: Account, identity: Optional[AccountIdentity] = None) -> None:
        """Print the per-account header."""
        number = identity.account_number if identity else ''
        alias = identity.alias if identity else ''
        if self._console is not None:
            self._console.rule(f"[bold blue]Account: {account.display}")
            if number or alias:
                self._console.print(f"  Account Number: {number}  Alias: {alias or '-'}")
        else:
            self._plain(BANNER, f"Processing Account: {account.display}")
            if number or alias:
                self._plain(f"  AWS Account Number: {number}", f"  Account Alias: {alias}")
            self._plain(BANNER, "")

    def account_skipped(self, account: Account, error: str) -> None:
        if self._console is not None:
            self._console.print(f"  [yellow]Warning:[/] skipping {account.display}: {error}")
        else:
            self._plain(f"  Warning: Failed to assume role into member account {account.display}, skipping ...", "")

    def regions_discovered(self, regions: List[str], fallback: bool = False) -> None:
        if self._console is not None:
            note = " [yellow](default region list)[/]" if fallback else ""
            self._console.print(f"  Regions: {len(regions)}{note}")
        else:
            if fallback:
                self._plain("  Warning: Using default region list")
            self._plain(f"  Total number of regions: {len(regions)}", "")

    def region_counts(self, region: str, results: Dict[str, CountResult]) -> None:
        """Print one region's counts. Failed queries show as unknown."""
        parts = [f"{RESOURCE_LABELS[key]}: {result.display}" for key, result in results.items()]
        if self._console is not None:
            self._console.print(f"  [cyan]{region:<16}[/] " + "  ".join(parts))
        else:
            self._plain(f"  Region {region}: " + ", ".join(parts))

    def account_totals(self, account: Account, counts: ResourceCounts) -> None:
        lines = [
            f"Total {label} across all regions: {value}"
            for label, value in format_counts(counts).items()
        ]
        if self._console is not None:
            for line in lines:
                self._console.print(f"  [green]{line}[/]")
            self._console.print()
        else:
            self._plain(BANNER, *lines, BANNER, "")

    def final_summary(self, run: CountRun) -> None:
        """Print raw and billable totals for the whole run."""
        totals = run.totals
        billable = run.billable
        rows = [
            ("EC2 Instances", totals.ec2_instances, billable.ec2),
            ("ECS/EKS Clusters", run.total_clusters, billable.clusters),
            ("Lambda Functions", totals.lambda_functions, billable.lambda_),
        ]

        if self._console is not None:
            table = Table(title="AWS Billable Resources Summary")
            table.add_column("Resource", style="cyan")
            table.add_column("Count", justify="right")
            table.add_column("Billable Units", justify="right", style="green")
            for label, count, units in rows:
                table.add_row(label, f"{count:,}", f"{units:,}")
            table.add_section()
            table.add_row("[bold]Total", "", f"[bold]{billable.total:,}")
            self._console.print(Panel(table))
            if run.skipped_accounts:
                self._console.print(f"[yellow]Skipped accounts ({len(run.skipped_accounts)}): "
                                    f"{', '.join(run.skipped_accounts)}[/]")
            self._console.print(FOOTNOTE)
        else:
            self._plain(BANNER, "AWS Billable Resources Summary:")
            for label, count, units in rows:
                self._plain(f"  Count of {label + ':':<19} {count} Billable Units: {units}")
            self._plain("", f"Total Billable Units: {billable.total}", BANNER, "")
            if run.skipped_accounts:
                self._plain(f"Skipped accounts ({len(run.skipped_accounts)}): {', '.join(run.skipped_accounts)}", "")
            self._plain(FOOTNOTE)


def format_counts(counts: ResourceCounts) -> Dict[str, int]:
    """Counts keyed by display label, in report order."""
    return {
        RESOURCE_LABELS[RESOURCE_EC2_INSTANCES]: counts.ec2_instances,
        RESOURCE_LABELS[RESOURCE_LAMBDA_FUNCTIONS]: counts.lambda_functions,
        RESOURCE_LABELS[RESOURCE_EKS_CLUSTERS]: counts.eks_clusters,
        RESOURCE_LABELS[RESOURCE_ECS_CLUSTERS]: counts.ecs_clusters,
    }

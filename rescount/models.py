"""
Data models for the billable resource counter.
"""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .constants import (
    CLUSTER_BILLABLE_MULTIPLIER,
    EC2_BILLABLE_MULTIPLIER,
    LAMBDA_FUNCTIONS_PER_BILLABLE,
    UNKNOWN_COUNT,
)


@dataclass(frozen=True)
class Account:
    """An account to visit. Single-account mode uses an empty id."""
    id: str
    name: str = ""
    is_organization_root: bool = False

    @property
    def display(self) -> str:
        if self.name and self.id:
            return f"{self.name} ({self.id})"
        return self.name or self.id or "current credentials"


@dataclass(frozen=True)
class OrganizationInfo:
    id: str
    master_account_id: str


@dataclass(frozen=True)
class AccountIdentity:
    """Account number and alias of the active credentials."""
    account_number: str = ""
    alias: str = ""


@dataclass(frozen=True)
class CountResult:
    """
    Result of a single counter call.

    A failed query is recorded as count 0 with the error message set, so
    sums stay correct while reports can show the count as unknown.
    """
    count: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def display(self) -> str:
        return UNKNOWN_COUNT if self.error else str(self.count)


@dataclass
class ResourceCounts:
    """Raw resource counts for one account or for the whole run."""
    ec2_instances: int = 0
    lambda_functions: int = 0
    eks_clusters: int = 0
    ecs_clusters: int = 0

    @property
    def total_clusters(self) -> int:
        return self.eks_clusters + self.ecs_clusters

    def add(self, other: "ResourceCounts") -> "ResourceCounts":
        """Accumulate another set of counts into this one (in place)."""
        self.ec2_instances += other.ec2_instances
        self.lambda_functions += other.lambda_functions
        self.eks_clusters += other.eks_clusters
        self.ecs_clusters += other.ecs_clusters
        return self

    def add_results(self, results: Dict[str, CountResult]) -> "ResourceCounts":
        """Accumulate one region's counter results, keyed by resource type."""
        for resource_type, result in results.items():
            setattr(self, resource_type, getattr(self, resource_type) + result.count)
        return self

    def to_dict(self) -> Dict[str, int]:
        """Convert to dictionary for serialization."""
        return asdict(self)


@dataclass(frozen=True)
class BillableSummary:
    """Billable units derived from global resource counts."""
    ec2: int = 0
    lambda_: int = 0
    eks: int = 0
    ecs: int = 0

    @property
    def clusters(self) -> int:
        return self.eks + self.ecs

    @property
    def total(self) -> int:
        return self.ec2 + self.lambda_ + self.eks + self.ecs

    def to_dict(self) -> Dict[str, int]:
        return {
            'ec2': self.ec2,
            'lambda': self.lambda_,
            'eks': self.eks,
            'ecs': self.ecs,
            'clusters': self.clusters,
            'total': self.total,
        }


def calculate_billable(totals: ResourceCounts) -> BillableSummary:
    """
    Apply the fixed billing conversion to global counts.

    EC2 instances count 1:1, Lambda functions 50:1 (floor division),
    EKS and ECS clusters 1:2 each.
    """
    return BillableSummary(
        ec2=totals.ec2_instances * EC2_BILLABLE_MULTIPLIER,
        lambda_=totals.lambda_functions // LAMBDA_FUNCTIONS_PER_BILLABLE,
        eks=totals.eks_clusters * CLUSTER_BILLABLE_MULTIPLIER,
        ecs=totals.ecs_clusters * CLUSTER_BILLABLE_MULTIPLIER,
    )


@dataclass
class AccountResult:
    """Outcome of counting one account."""
    account: Account
    counts: ResourceCounts = field(default_factory=ResourceCounts)
    regions: List[str] = field(default_factory=list)
    identity: Optional[AccountIdentity] = None
    skipped: bool = False
    error: Optional[str] = None
    # Regions where at least one counter failed
    failed_regions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'account_id': self.account.id or (self.identity.account_number if self.identity else ''),
            'account_name': self.account.name,
            'account_alias': self.identity.alias if self.identity else '',
            'skipped': self.skipped,
            'error': self.error,
            'region_count': len(self.regions),
            'failed_regions': list(self.failed_regions),
            **self.counts.to_dict(),
        }


@dataclass
class CountRun:
    """Aggregated result of a full counting run."""
    accounts: List[AccountResult] = field(default_factory=list)
    totals: ResourceCounts = field(default_factory=ResourceCounts)
    organization: Optional[OrganizationInfo] = None

    @property
    def billable(self) -> BillableSummary:
        return calculate_billable(self.totals)

    @property
    def total_clusters(self) -> int:
        return self.totals.total_clusters

    @property
    def skipped_accounts(self) -> List[str]:
        return [r.account.id for r in self.accounts if r.skipped]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'organization': asdict(self.organization) if self.organization else None,
            'account_count': len(self.accounts),
            'skipped_accounts': self.skipped_accounts,
            'totals': self.totals.to_dict(),
            'total_clusters': self.total_clusters,
            'billable': self.billable.to_dict(),
            'accounts': [r.to_dict() for r in self.accounts],
        }

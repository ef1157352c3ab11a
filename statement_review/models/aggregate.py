"""
Aggregate models for the monthly review dashboard.

Derived on every query from the report list; never persisted.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .report import FLAG_ORDER, ViolationFlag

NOT_AVAILABLE = "N/A"


def percent(part: int, whole: int) -> int:
    """Whole-number percentage rounded half up, 0 when whole is 0."""
    if not whole:
        return 0
    return (200 * part + whole) // (2 * whole)


def ratio(part: int, whole: int) -> float:
    """Unrounded percentage, 0.0 when whole is 0."""
    if not whole:
        return 0.0
    return part / whole * 100


@dataclass
class AggregateBucket:
    """Review counts for one program / risk / balance / phase combination."""

    account_type: str = NOT_AVAILABLE
    risk_type: str = NOT_AVAILABLE
    account_balance: str = NOT_AVAILABLE
    account_phase: str = NOT_AVAILABLE
    total: int = 0
    approved: int = 0
    rejected: int = 0

    @property
    def key(self) -> Tuple[str, str, str, str]:
        return (self.account_type, self.risk_type, self.account_balance, self.account_phase)

    @property
    def acceptance_ratio(self) -> int:
        return percent(self.approved, self.total)

    def to_dict(self) -> Dict:
        return {
            "account_type": self.account_type,
            "risk_type": self.risk_type,
            "account_balance": self.account_balance,
            "account_phase": self.account_phase,
            "total": self.total,
            "approved": self.approved,
            "rejected": self.rejected,
            "acceptance_ratio": self.acceptance_ratio,
        }


@dataclass
class AgentBreakdown:
    """Decisions made by one reviewing agent."""

    agent: str
    total: int = 0
    share: int = 0  # % of the month's reports
    approved: int = 0
    by_reason: Dict[ViolationFlag, int] = field(
        default_factory=lambda: {flag: 0 for flag in FLAG_ORDER}
    )
    multiple_violations: int = 0

    def to_dict(self) -> Dict:
        return {
            "agent": self.agent,
            "total": self.total,
            "share": self.share,
            "approved": self.approved,
            "by_reason": {flag.label: self.by_reason[flag] for flag in FLAG_ORDER},
            "multiple_violations": self.multiple_violations,
        }


@dataclass
class FunnelCounts:
    """Reviews per program stage: phase1 -> phase2 -> funded -> payout."""

    phase1: int = 0
    phase2: int = 0
    funded: int = 0
    payout: int = 0  # approved funded reviews
    month_total: int = 0

    @property
    def phase1_pct(self) -> int:
        return percent(self.phase1, self.month_total)

    @property
    def phase2_pct(self) -> int:
        return percent(self.phase2, self.month_total)

    @property
    def funded_pct(self) -> int:
        return percent(self.funded, self.month_total)

    @property
    def payout_pct(self) -> int:
        return percent(self.payout, self.month_total)

    def to_dict(self) -> Dict:
        return {
            "phase1": {"count": self.phase1, "pct": self.phase1_pct},
            "phase2": {"count": self.phase2, "pct": self.phase2_pct},
            "funded": {"count": self.funded, "pct": self.funded_pct},
            "payout": {"count": self.payout, "pct": self.payout_pct},
        }


@dataclass
class MonthlySummary:
    """Everything the review dashboard shows for one calendar month."""

    month: Optional[str] = None  # YYYY-MM
    total: int = 0
    approved: int = 0
    rejected: int = 0
    approved_ratio: float = 0.0
    rejected_ratio: float = 0.0

    agents: List[AgentBreakdown] = field(default_factory=list)
    buckets: List[AggregateBucket] = field(default_factory=list)
    funnel: FunnelCounts = field(default_factory=FunnelCounts)

    def to_dict(self) -> Dict:
        return {
            "month": self.month,
            "total": self.total,
            "approved": self.approved,
            "rejected": self.rejected,
            "approved_ratio": round(self.approved_ratio, 2),
            "rejected_ratio": round(self.rejected_ratio, 2),
            "agents": [a.to_dict() for a in self.agents],
            "buckets": [b.to_dict() for b in self.buckets],
            "funnel": self.funnel.to_dict(),
        }

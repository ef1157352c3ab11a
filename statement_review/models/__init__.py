"""Statement review models."""

from .trade import StatementHeader, StatementPlatform, TradeRecord
from .news import NewsEvent
from .report import (
    AccountPhase,
    AccountType,
    Decision,
    Report,
    RiskType,
    ViolationFlag,
)
from .aggregate import (
    AgentBreakdown,
    AggregateBucket,
    FunnelCounts,
    MonthlySummary,
)

__all__ = [
    "StatementHeader",
    "StatementPlatform",
    "TradeRecord",
    "NewsEvent",
    "AccountPhase",
    "AccountType",
    "Decision",
    "Report",
    "RiskType",
    "ViolationFlag",
    "AgentBreakdown",
    "AggregateBucket",
    "FunnelCounts",
    "MonthlySummary",
]

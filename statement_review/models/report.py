"""
Compliance report models matching the report store schema.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional

TRUTHY_VALUES = {"true", "yes", "1", "y"}


class ViolationFlag(Enum):
    """Rule breach recorded against a reviewed account."""

    UNDER_THIRTY_SECONDS = "under_thirty_seconds"
    EIGHTY_PERCENT_PROFIT_TARGET = "eighty_percent_profit_target"
    FIFTY_PERCENT_MARGIN = "fifty_percent_margin"
    HEDGE_TRADE_VIOLATION = "hedge_trade_violation"
    STABILITY_RULE = "stability_rule"

    @property
    def label(self) -> str:
        """Display label used by tables, charts and exports."""
        return _FLAG_LABELS[self]

    @property
    def column(self) -> str:
        """Report store column holding this flag."""
        return _FLAG_COLUMNS[self]

    @classmethod
    def parse(cls, value: str) -> "ViolationFlag":
        """Parse a flag from its value, name or display label."""
        text = str(value).strip()
        for flag in cls:
            if text.lower() in (flag.value, flag.name.lower(), flag.label.lower()):
                return flag
        raise ValueError(f"Unknown violation flag: {value!r}")


_FLAG_LABELS = {
    ViolationFlag.UNDER_THIRTY_SECONDS: "Under 30 Seconds",
    ViolationFlag.EIGHTY_PERCENT_PROFIT_TARGET: "80% Profit Target",
    ViolationFlag.FIFTY_PERCENT_MARGIN: "50% Margin",
    ViolationFlag.HEDGE_TRADE_VIOLATION: "Hedge Trade Violation",
    ViolationFlag.STABILITY_RULE: "Stability Rule",
}

_FLAG_COLUMNS = {
    ViolationFlag.UNDER_THIRTY_SECONDS: "thirty_second_trades",
    ViolationFlag.EIGHTY_PERCENT_PROFIT_TARGET: "rule_80_percent",
    ViolationFlag.FIFTY_PERCENT_MARGIN: "margin_violations",
    ViolationFlag.HEDGE_TRADE_VIOLATION: "news_hedge_trades",
    ViolationFlag.STABILITY_RULE: "stability_rule",
}

# Fixed display order for flags
FLAG_ORDER: List[ViolationFlag] = list(ViolationFlag)


class _CaseInsensitiveEnum(Enum):
    @classmethod
    def parse(cls, value: Optional[str]):
        """Parse a value regardless of case; None and blanks give None."""
        if value is None or not str(value).strip():
            return None
        text = str(value).strip().lower()
        for member in cls:
            if text in (member.value.lower(), member.name.lower()):
                return member
        raise ValueError(f"Invalid {cls.__name__}: {value!r}")


class Decision(_CaseInsensitiveEnum):
    """Agent decision on a report. Set once, never transitioned."""

    APPROVED = "Approved"
    REJECTED = "Rejected"
    REVIEW = "Review"


class AccountPhase(_CaseInsensitiveEnum):
    """Stage of a funded-account evaluation program."""

    PHASE1 = "phase1"
    PHASE2 = "phase2"
    FUNDED = "funded"


class AccountType(_CaseInsensitiveEnum):
    """Evaluation program."""

    FLASH = "FLASH"
    LEGEND = "LEGEND"
    PEAK_SCALP = "PEAK_SCALP"
    BLACK = "BLACK"


class RiskType(_CaseInsensitiveEnum):
    """Program risk profile."""

    AGGRESSIVE = "AGGRESSIVE"
    NORMAL = "NORMAL"


def _is_truthy(raw) -> bool:
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return False
    return str(raw).strip().lower() in TRUTHY_VALUES


@dataclass
class Report:
    """A reviewing agent's decision on one account statement."""

    account_login: str
    decision: Optional[Decision]
    agent: str
    created_at: datetime
    violations: FrozenSet[ViolationFlag] = field(default_factory=frozenset)
    id: Optional[int] = None
    account_phase: Optional[str] = None
    meta_trader_version: Optional[str] = None
    note: Optional[str] = None
    account_type: Optional[str] = None
    risk_type: Optional[str] = None
    account_balance: Optional[float] = None

    @classmethod
    def from_row(cls, row: Dict) -> "Report":
        """Create from database row."""
        violations = frozenset(
            flag for flag in ViolationFlag if _is_truthy(row.get(flag.column))
        )
        balance = row.get("account_balance")
        return cls(
            id=row.get("id"),
            account_login=str(row.get("trading_login") or row["account_login"]),
            violations=violations,
            decision=Decision.parse(row.get("decision")),
            agent=row.get("agent") or "",
            created_at=row["created_at"],
            account_phase=row.get("account_phase"),
            meta_trader_version=row.get("meta_trader_version"),
            note=row.get("note"),
            account_type=row.get("account_type"),
            risk_type=row.get("risk_type"),
            account_balance=float(balance) if balance is not None else None,
        )

    def to_row(self) -> Dict:
        """Convert to a report store row (without id)."""
        row = {
            "account_login": self.account_login,
            "trading_login": self.account_login,
            "decision": self.decision.value if self.decision else None,
            "agent": self.agent,
            "created_at": self.created_at,
            "account_phase": self.account_phase,
            "meta_trader_version": self.meta_trader_version,
            "note": self.note,
            "account_type": self.account_type,
            "risk_type": self.risk_type,
            "account_balance": self.account_balance,
        }
        for flag in ViolationFlag:
            row[flag.column] = "true" if flag in self.violations else "false"
        return row

    @property
    def is_multiple_violation(self) -> bool:
        """More than one flag: counted as "Multiple Violations"."""
        return len(self.violations) > 1

    def violation_labels(self) -> List[str]:
        """Flag labels in fixed display order."""
        return [flag.label for flag in FLAG_ORDER if flag in self.violations]

    def to_csv_row(self) -> List[str]:
        """Flat export row for the full statements table."""
        return [
            self.account_login,
            self.agent,
            self.decision.value if self.decision else "",
            self.account_phase or "",
            " | ".join(self.violation_labels()),
            self.meta_trader_version or "",
            self.created_at.strftime("%Y-%m-%d"),
            self.note or "",
        ]

    def to_dict(self) -> Dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "account_login": self.account_login,
            "violations": self.violation_labels(),
            "decision": self.decision.value if self.decision else None,
            "agent": self.agent,
            "created_at": self.created_at.isoformat(),
            "account_phase": self.account_phase,
            "meta_trader_version": self.meta_trader_version,
            "note": self.note,
            "account_type": self.account_type,
            "risk_type": self.risk_type,
            "account_balance": self.account_balance,
        }


def flags_from_labels(labels: Iterable[str]) -> FrozenSet[ViolationFlag]:
    """Parse a collection of flag names or labels."""
    return frozenset(ViolationFlag.parse(label) for label in labels)

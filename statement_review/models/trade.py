"""
Trade and statement models extracted from broker statements.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional


class StatementPlatform(Enum):
    """Trading platform that produced a statement."""

    MT4 = "MT4"
    MT5 = "MT5"

    @classmethod
    def parse(cls, value: str) -> "StatementPlatform":
        """Parse a platform name regardless of case."""
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown statement platform: {value!r}") from None


@dataclass(frozen=True)
class TradeRecord:
    """One closed order read from a statement row."""

    ticket: str
    open_time: datetime
    close_time: datetime
    net_amount: Decimal

    symbol: Optional[str] = None
    position_type: Optional[str] = None  # "buy" or "sell"
    lot_size: Optional[Decimal] = None
    open_price: Optional[Decimal] = None
    commission: Optional[Decimal] = None
    swap: Optional[Decimal] = None

    @property
    def duration_seconds(self) -> float:
        """Seconds between open and close."""
        return (self.close_time - self.open_time).total_seconds()

    @property
    def is_profitable(self) -> bool:
        return self.net_amount > 0

    @property
    def net_effect(self) -> Decimal:
        """Balance effect including commission and swap."""
        return self.net_amount + (self.commission or 0) + (self.swap or 0)

    def overlaps(self, other: "TradeRecord") -> bool:
        """Check if both trades were open at the same time."""
        return self.open_time < other.close_time and self.close_time > other.open_time

    def to_dict(self) -> Dict:
        """Convert to dictionary."""
        return {
            "ticket": self.ticket,
            "open_time": self.open_time.isoformat(),
            "close_time": self.close_time.isoformat(),
            "net_amount": str(self.net_amount),
            "duration_seconds": self.duration_seconds,
            "symbol": self.symbol,
            "position_type": self.position_type,
            "lot_size": str(self.lot_size) if self.lot_size is not None else None,
            "open_price": str(self.open_price) if self.open_price is not None else None,
            "commission": str(self.commission) if self.commission is not None else None,
            "swap": str(self.swap) if self.swap is not None else None,
        }


@dataclass
class StatementHeader:
    """Account details read from the non-trade rows of a statement."""

    platform: Optional[StatementPlatform] = None
    account_login: Optional[str] = None
    initial_balance: Optional[Decimal] = None
    total_net_profit: Optional[Decimal] = None

    def to_dict(self) -> Dict:
        return {
            "platform": self.platform.value if self.platform else None,
            "account_login": self.account_login,
            "initial_balance": (
                str(self.initial_balance) if self.initial_balance is not None else None
            ),
            "total_net_profit": (
                str(self.total_net_profit) if self.total_net_profit is not None else None
            ),
        }

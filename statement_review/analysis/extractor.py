"""
Trade record extractor.

Reads closed orders from a MetaTrader HTML statement. Column positions are
described by a versioned ColumnLayout instead of being scattered through
the parsing code.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterator, List, Optional

from bs4 import BeautifulSoup

from ..models.trade import StatementHeader, StatementPlatform, TradeRecord

logger = logging.getLogger(__name__)

BROKER_TIME_FORMATS = [
    "%Y.%m.%d %H:%M:%S",
    "%Y.%m.%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
]

# Markers searched in the raw statement text, checked in order
PLATFORM_MARKERS = [
    (StatementPlatform.MT5, "Opogroup-Server"),
    (StatementPlatform.MT5, "Trade History Report"),
    (StatementPlatform.MT4, "Closed Transactions"),
    (StatementPlatform.MT4, "Currency"),
]

ACCOUNT_LOGIN_PATTERN = re.compile(r"Account:\s*([0-9]+)", re.IGNORECASE)
NET_PROFIT_PATTERN = re.compile(r"total net profit[:\s]*([\d\s.,-]+)", re.IGNORECASE)

# Roles every trade row must provide
REQUIRED_ROLES = ("open_time", "ticket", "close_time", "amount")


@dataclass(frozen=True)
class ColumnLayout:
    """Named column roles of a statement trade row."""

    version: str
    columns: Dict[str, int]
    balance_cell: int

    def __post_init__(self):
        missing = [role for role in REQUIRED_ROLES if role not in self.columns]
        if missing:
            raise ValueError(f"Layout {self.version} lacks columns: {', '.join(missing)}")

    @property
    def min_cells(self) -> int:
        return max(self.columns.values()) + 1

    def index(self, role: str) -> Optional[int]:
        return self.columns.get(role)


MT5_LAYOUT = ColumnLayout(
    version="mt5-positions-v1",
    columns={
        "open_time": 0,
        "ticket": 1,
        "symbol": 2,
        "position_type": 3,
        "lot_size": 5,
        "open_price": 6,
        "close_time": 9,
        "commission": 11,
        "swap": 12,
        "amount": 13,
    },
    balance_cell=12,
)

MT4_LAYOUT = ColumnLayout(
    version="mt4-closed-transactions-v1",
    columns={
        "ticket": 0,
        "open_time": 1,
        "position_type": 2,
        "lot_size": 3,
        "symbol": 4,
        "open_price": 5,
        "close_time": 8,
        "commission": 10,
        "swap": 12,
        "amount": 13,
    },
    balance_cell=4,
)

LAYOUTS = {
    StatementPlatform.MT4: MT4_LAYOUT,
    StatementPlatform.MT5: MT5_LAYOUT,
}


def parse_amount(text: Optional[str]) -> Optional[Decimal]:
    """Parse a money or size value, dropping whitespace and thousands separators."""
    if text is None:
        return None
    cleaned = re.sub(r"[\s,]", "", text)
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def parse_broker_time(text: Optional[str]) -> Optional[datetime]:
    """Parse a broker server timestamp; None when unrecognised."""
    if not text:
        return None
    text = text.strip()
    for fmt in BROKER_TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def detect_platform(html: str) -> Optional[StatementPlatform]:
    """Guess which platform exported the statement."""
    for platform, marker in PLATFORM_MARKERS:
        if marker in html:
            return platform
    return None


def _cell(cells: List[str], layout: ColumnLayout, role: str) -> Optional[str]:
    idx = layout.index(role)
    if idx is None or idx >= len(cells):
        return None
    return cells[idx]


def parse_row(
    cells: List[str],
    layout: ColumnLayout = MT5_LAYOUT,
    positive_only: bool = True,
) -> Optional[TradeRecord]:
    """
    Build a TradeRecord from the text of one table row.

    Returns None for rows that are not well-formed trades: too few
    cells, unparsable timestamps or amount, a close before the open, or
    (with positive_only) a non-positive amount.
    """
    if len(cells) < layout.min_cells:
        return None

    amount = parse_amount(_cell(cells, layout, "amount"))
    if amount is None:
        return None
    if positive_only and amount <= 0:
        return None

    open_time = parse_broker_time(_cell(cells, layout, "open_time"))
    close_time = parse_broker_time(_cell(cells, layout, "close_time"))
    if open_time is None or close_time is None:
        return None
    if close_time < open_time:
        return None

    lot_text = _cell(cells, layout, "lot_size")
    if lot_text and "/" in lot_text:
        # MT5 shows "filled / requested" volume
        lot_text = lot_text.split("/")[0]

    position_type = _cell(cells, layout, "position_type")
    symbol = _cell(cells, layout, "symbol")

    return TradeRecord(
        ticket=(_cell(cells, layout, "ticket") or "").strip(),
        open_time=open_time,
        close_time=close_time,
        net_amount=amount,
        symbol=symbol.strip().upper() if symbol else None,
        position_type=position_type.strip().lower() if position_type else None,
        lot_size=parse_amount(lot_text),
        open_price=parse_amount(_cell(cells, layout, "open_price")),
        commission=parse_amount(_cell(cells, layout, "commission")),
        swap=parse_amount(_cell(cells, layout, "swap")),
    )


def _row_cells(html: str) -> Iterator[List[str]]:
    soup = BeautifulSoup(html, "html.parser")
    for row in soup.find_all("tr"):
        yield [td.get_text(" ", strip=True) for td in row.find_all("td")]


class TradeSequence:
    """
    Lazy, restartable sequence of trades in a statement.

    Every iteration re-reads the statement, so iterating twice gives the
    same records in the same order.
    """

    def __init__(
        self,
        html: str,
        layout: ColumnLayout = MT5_LAYOUT,
        positive_only: bool = True,
    ):
        self._html = html
        self.layout = layout
        self.positive_only = positive_only

    def __iter__(self) -> Iterator[TradeRecord]:
        skipped = 0
        for row_number, cells in enumerate(_row_cells(self._html)):
            if not cells:
                continue
            record = parse_row(cells, self.layout, self.positive_only)
            if record is None:
                skipped += 1
                logger.debug(f"Skipping statement row {row_number}")
                continue
            yield record
        if skipped:
            logger.debug(f"Skipped {skipped} non-trade or malformed rows")

    def to_list(self) -> List[TradeRecord]:
        return list(self)

    def total_amount(self) -> Decimal:
        """Sum of net amounts over the sequence."""
        return sum((t.net_amount for t in self), Decimal("0"))


@dataclass
class StatementExtractor:
    """Reads trades and account details from broker statements."""

    default_platform: StatementPlatform = StatementPlatform.MT5
    layouts: Dict[StatementPlatform, ColumnLayout] = field(
        default_factory=lambda: dict(LAYOUTS)
    )

    def layout_for(self, html: str) -> ColumnLayout:
        """Pick the column layout for a statement."""
        platform = detect_platform(html) or self.default_platform
        return self.layouts[platform]

    def extract(
        self,
        html: str,
        positive_only: bool = True,
        layout: Optional[ColumnLayout] = None,
    ) -> TradeSequence:
        """
        Get the trades of a statement.

        Args:
            html: Raw statement HTML
            positive_only: Drop trades with a non-positive amount
            layout: Column layout (detected from the statement if omitted)

        Returns:
            Lazy TradeSequence in statement row order
        """
        if not isinstance(html, str):
            raise TypeError(f"Statement must be text, got {type(html).__name__}")
        return TradeSequence(html, layout or self.layout_for(html), positive_only)

    def read_header(self, html: str) -> StatementHeader:
        """Read account login, initial balance and total net profit."""
        if not isinstance(html, str):
            raise TypeError(f"Statement must be text, got {type(html).__name__}")

        platform = detect_platform(html)
        layout = self.layouts[platform or self.default_platform]
        header = StatementHeader(platform=platform)

        balance_candidate = None
        for cells in _row_cells(html):
            text = " ".join(cells)
            lowered = text.lower()

            if header.account_login is None:
                match = ACCOUNT_LOGIN_PATTERN.search(text)
                if match:
                    header.account_login = match.group(1)

            if header.total_net_profit is None and "total net profit" in lowered:
                match = NET_PROFIT_PATTERN.search(text)
                if match:
                    header.total_net_profit = parse_amount(match.group(1))

            if header.initial_balance is None and (
                "initial deposit" in lowered or "initial balance" in lowered
            ):
                value = _balance_value(cells, layout)
                if value is not None:
                    header.initial_balance = value
            elif balance_candidate is None and "balance" in lowered:
                value = _balance_value(cells, layout)
                if value is not None and value > 0:
                    balance_candidate = value

        if header.initial_balance is None and balance_candidate is not None:
            header.initial_balance = balance_candidate

        return header


def _balance_value(cells: List[str], layout: ColumnLayout) -> Optional[Decimal]:
    if layout.balance_cell >= len(cells):
        return None
    return parse_amount(re.sub(r"[^\d.,\s-]", "", cells[layout.balance_cell]))

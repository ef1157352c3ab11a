"""
Violation rule predicates.

Every rule is a callable ``(trades, context) -> bool``. Thresholds are
fixed when a rule is built; evaluation keeps no state between calls.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from ..errors import RuleConfigurationError
from ..models.news import NewsEvent
from ..models.report import AccountPhase, AccountType, RiskType, ViolationFlag
from ..models.trade import TradeRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleContext:
    """Account and market data a rule may need beyond the trades."""

    initial_balance: Decimal = Decimal("0")
    total_net_profit: Optional[Decimal] = None
    account_type: Optional[AccountType] = None
    risk_type: Optional[RiskType] = None
    phase: Optional[AccountPhase] = None
    funded: bool = False
    news_events: Tuple[NewsEvent, ...] = ()
    contract_sizes: Mapping[str, float] = field(default_factory=dict)
    leverage: Mapping[str, float] = field(default_factory=dict)


RulePredicate = Callable[[Sequence[TradeRecord], RuleContext], bool]


def _check_threshold(name: str, value: float) -> float:
    if value is None or value < 0:
        raise RuleConfigurationError(f"{name} must be a non-negative number, got {value!r}")
    return float(value)


# ─── Under thirty seconds ──────────────────────────────────────────


class UnderThirtySecondsRule:
    """Profitable trades held for less than the threshold."""

    flag = ViolationFlag.UNDER_THIRTY_SECONDS
    per_trade = True

    def __init__(self, threshold_seconds: float = 30.0):
        self.threshold_seconds = _check_threshold("threshold_seconds", threshold_seconds)

    def matches(self, trade: TradeRecord) -> bool:
        return trade.net_amount > 0 and trade.duration_seconds < self.threshold_seconds

    def __call__(
        self,
        trades: Sequence[TradeRecord],
        context: Optional[RuleContext] = None,
    ) -> bool:
        return any(self.matches(t) for t in trades)


# ─── 80% profit target ─────────────────────────────────────────────


@dataclass
class ProfitChain:
    """Overlapping trades whose combined profit reached the limit."""

    trades: List[TradeRecord]
    total_profit: float
    closing_balance: float

    def to_dict(self) -> Dict:
        return {
            "tickets": [t.ticket for t in self.trades],
            "total_profit": round(self.total_profit, 2),
            "closing_balance": round(self.closing_balance, 2),
        }


def find_profit_chains(
    trades: Sequence[TradeRecord],
    initial_balance: float,
    max_allowed_profit: float,
) -> List[ProfitChain]:
    """
    Group trades into chains of overlapping positions and return the
    chains whose positive profit reached max_allowed_profit.
    """
    ordered = sorted(trades, key=lambda t: t.open_time)
    violations: List[ProfitChain] = []

    chain: List[TradeRecord] = []
    chain_profit = 0.0
    balance = float(initial_balance)

    def close_chain():
        if chain and chain_profit >= max_allowed_profit:
            violations.append(ProfitChain(list(chain), chain_profit, balance))

    for trade in ordered:
        overlapping = any(trade.open_time <= t.close_time for t in chain)
        if chain and not overlapping:
            close_chain()
            chain = []
            chain_profit = 0.0

        chain.append(trade)
        if trade.net_amount > 0:
            chain_profit += float(trade.net_amount)
        balance += float(trade.net_effect)

    close_chain()
    logger.debug(f"{len(violations)} trade chains reached {max_allowed_profit:.2f}")
    return violations


class EightyPercentProfitRule:
    """A single chain of trades may not earn most of the profit target."""

    flag = ViolationFlag.EIGHTY_PERCENT_PROFIT_TARGET
    per_trade = False

    def __init__(
        self,
        limit_ratio: float = 0.8,
        profit_targets: Optional[Dict[str, Dict[str, float]]] = None,
        funded_target_ratio: float = 0.8,
    ):
        self.limit_ratio = _check_threshold("limit_ratio", limit_ratio)
        self.funded_target_ratio = _check_threshold("funded_target_ratio", funded_target_ratio)
        self.profit_targets = profit_targets or {
            "default": {"phase1": 0.10, "phase2": 0.05},
        }
        if "default" not in self.profit_targets:
            raise RuleConfigurationError("profit_targets needs a 'default' entry")

    def target_pct(self, context: RuleContext) -> float:
        """Profit target as a share of balance for the account's program."""
        if context.risk_type == RiskType.AGGRESSIVE and "aggressive" in self.profit_targets:
            targets = self.profit_targets["aggressive"]
        elif context.account_type and context.account_type.value.lower() in self.profit_targets:
            targets = self.profit_targets[context.account_type.value.lower()]
        else:
            targets = self.profit_targets["default"]
        phase = "phase2" if context.phase == AccountPhase.PHASE2 else "phase1"
        return float(targets.get(phase, 0.0))

    def profit_target(self, context: RuleContext) -> float:
        """Profit target in account currency."""
        net_profit = context.total_net_profit
        if context.funded and net_profit is not None and net_profit > 0:
            return float(net_profit) * self.funded_target_ratio
        return float(context.initial_balance) * self.target_pct(context)

    def max_allowed_profit(self, context: RuleContext) -> float:
        return self.profit_target(context) * self.limit_ratio

    def chains(
        self,
        trades: Sequence[TradeRecord],
        context: RuleContext,
    ) -> List[ProfitChain]:
        limit = self.max_allowed_profit(context)
        if limit <= 0:
            return []
        return find_profit_chains(trades, float(context.initial_balance), limit)

    def __call__(self, trades: Sequence[TradeRecord], context: RuleContext) -> bool:
        return bool(self.chains(trades, context))


# ─── 50% margin around news ────────────────────────────────────────


@dataclass
class MarginViolation:
    """Margin used by trades opened around one news event."""

    news_event: NewsEvent
    trades: List[TradeRecord]
    total_margin: float
    threshold: float

    def to_dict(self) -> Dict:
        return {
            "news_event": self.news_event.to_dict(),
            "tickets": [t.ticket for t in self.trades],
            "total_margin": round(self.total_margin, 2),
            "threshold": round(self.threshold, 2),
        }


def trade_margin(trade: TradeRecord, context: RuleContext, default_leverage: float) -> float:
    """Margin required to open a trade."""
    symbol = (trade.symbol or "").upper()
    contract_size = float(context.contract_sizes.get(symbol, 0))
    leverage = float(context.leverage.get(symbol, default_leverage)) or default_leverage
    if not contract_size or trade.open_price is None or trade.lot_size is None:
        return 0.0
    return contract_size * float(trade.open_price) * float(trade.lot_size) / leverage


def find_margin_violations(
    trades: Sequence[TradeRecord],
    context: RuleContext,
    threshold_ratio: float = 0.5,
    default_leverage: float = 50.0,
    window_minutes: int = 30,
) -> List[MarginViolation]:
    """Find news events around which the opened margin exceeded the threshold."""
    threshold = float(context.initial_balance) * threshold_ratio
    window = timedelta(minutes=window_minutes)
    violations = []

    for news in context.news_events:
        scheduled = news.scheduled_at()
        if scheduled is None:
            logger.debug(f"Skipping news event with unreadable date: {news}")
            continue

        in_window = [
            t for t in trades
            if scheduled - window <= t.open_time <= scheduled + window
        ]
        if not in_window:
            continue

        total_margin = sum(trade_margin(t, context, default_leverage) for t in in_window)
        if total_margin > threshold:
            violations.append(MarginViolation(news, in_window, total_margin, threshold))

    return violations


class MarginUsageRule:
    """Margin opened around a news event may not exceed half the balance."""

    flag = ViolationFlag.FIFTY_PERCENT_MARGIN
    per_trade = False

    def __init__(
        self,
        threshold_ratio: float = 0.5,
        default_leverage: float = 50.0,
        window_minutes: int = 30,
    ):
        self.threshold_ratio = _check_threshold("threshold_ratio", threshold_ratio)
        self.default_leverage = _check_threshold("default_leverage", default_leverage)
        if not self.default_leverage:
            raise RuleConfigurationError("default_leverage must be positive")
        self.window_minutes = int(_check_threshold("window_minutes", window_minutes))

    def violations(
        self,
        trades: Sequence[TradeRecord],
        context: RuleContext,
    ) -> List[MarginViolation]:
        return find_margin_violations(
            trades,
            context,
            self.threshold_ratio,
            self.default_leverage,
            self.window_minutes,
        )

    def __call__(self, trades: Sequence[TradeRecord], context: RuleContext) -> bool:
        return bool(self.violations(trades, context))


# ─── Hedging around news ───────────────────────────────────────────


@dataclass(frozen=True)
class Correlation:
    same_direction: Tuple[str, ...] = ()
    opposite_direction: Tuple[str, ...] = ()
    not_same_direction: Tuple[str, ...] = ()
    not_opposite_direction: Tuple[str, ...] = ()


INDICES_AND_CRYPTO = ("BTCUSD", "ETHUSD", "SOLUSD", "DOGUSD", "GBPUSD", "XAUUSD")

CORRELATIONS: Dict[str, Correlation] = {
    "USD": Correlation(same_direction=("DXY",)),
    "CAD": Correlation(opposite_direction=("USDCAD", "WTIUSD", "BRNUSD")),
    "XAUUSD": Correlation(
        same_direction=("USDCHF", "USDJPY"),
        not_opposite_direction=("USDJPY",),
    ),
    "USDJPY": Correlation(
        same_direction=("XAUUSD", "DJIUSD", "NDXUSD", "SPXUSD"),
        not_opposite_direction=("XAUUSD", "DJIUSD", "NDXUSD", "SPXUSD"),
    ),
    "GBPJPY": Correlation(same_direction=("XAUUSD", "DJIUSD", "NDXUSD", "SPXUSD", "USDJPY")),
    "DJIUSD": Correlation(same_direction=INDICES_AND_CRYPTO),
    "NDXUSD": Correlation(same_direction=INDICES_AND_CRYPTO),
    "SPXUSD": Correlation(same_direction=INDICES_AND_CRYPTO),
    "DXY": Correlation(
        same_direction=("GBPUSD", "EURUSD"),
        opposite_direction=("XAUUSD", "DJIUSD", "NDXUSD", "SPXUSD"),
    ),
    "EURUSD": Correlation(same_direction=("DJIUSD", "NDXUSD", "SPXUSD")),
}

FUTURES_SYMBOLS = {"DJI30SEP25"}
_MONTH_CODES = ("JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC")


def normalize_symbol(symbol: Optional[str]) -> str:
    """Upper-case a symbol and strip a futures month/year suffix."""
    if not symbol:
        return ""
    upper = symbol.strip().upper()
    if len(upper) > 5 and upper[-5:-2] in _MONTH_CODES and upper[-2:].isdigit():
        return upper[:-5]
    return upper


def is_related_to_news(symbol: Optional[str], currency: str) -> bool:
    """Check whether a symbol moves with news for the given currency."""
    if not symbol or not currency:
        return False
    currency = currency.upper()
    if symbol.strip().upper() in FUTURES_SYMBOLS and currency == "USD":
        return True
    normalized = normalize_symbol(symbol)
    if currency in normalized:
        return True
    correlation = CORRELATIONS.get(currency)
    if correlation:
        return normalized in correlation.same_direction or normalized in correlation.opposite_direction
    return False


def _hedged_by(correlation: Optional[Correlation], other: str, same_side: bool) -> bool:
    if correlation is None:
        return False
    if same_side and other in correlation.same_direction and other not in correlation.not_same_direction:
        return True
    if (
        not same_side
        and other in correlation.opposite_direction
        and other not in correlation.not_opposite_direction
    ):
        return True
    return False


def are_hedged(first: TradeRecord, second: TradeRecord) -> bool:
    """Check whether two open trades offset each other."""
    if not first.position_type or not second.position_type:
        return False
    if not first.overlaps(second):
        return False

    same_side = first.position_type == second.position_type
    if first.symbol == second.symbol and not same_side:
        return True
    if not first.symbol or not second.symbol:
        return False

    a, b = first.symbol.upper(), second.symbol.upper()
    return _hedged_by(CORRELATIONS.get(a), b, same_side) or _hedged_by(
        CORRELATIONS.get(b), a, same_side
    )


def _connected_groups(trades: List[TradeRecord]) -> List[List[TradeRecord]]:
    neighbours: Dict[int, Set[int]] = {i: set() for i in range(len(trades))}
    for i in range(len(trades)):
        for j in range(i + 1, len(trades)):
            if are_hedged(trades[i], trades[j]):
                neighbours[i].add(j)
                neighbours[j].add(i)

    seen: Set[int] = set()
    groups = []
    for start in range(len(trades)):
        if start in seen:
            continue
        component = []
        stack = [start]
        seen.add(start)
        while stack:
            node = stack.pop()
            component.append(node)
            for nxt in neighbours[node]:
                if nxt not in seen:
                    seen.add(nxt)
                    stack.append(nxt)
        if len(component) > 1:
            groups.append([trades[i] for i in sorted(component)])
    return groups


@dataclass
class HedgeGroup:
    """Trades that hedged each other around one news event."""

    trades: List[TradeRecord]
    news_event: Optional[NewsEvent] = None

    @property
    def identifier(self) -> str:
        return ",".join(sorted(t.ticket for t in self.trades))

    @property
    def net_profit(self) -> float:
        return sum(float(t.net_amount) for t in self.trades)

    def to_dict(self) -> Dict:
        return {
            "tickets": [t.ticket for t in self.trades],
            "symbols": sorted({t.symbol for t in self.trades if t.symbol}),
            "net_profit": round(self.net_profit, 2),
            "news_event": self.news_event.to_dict() if self.news_event else None,
        }


def find_hedge_groups(
    trades: Sequence[TradeRecord],
    news_events: Sequence[NewsEvent],
    window_minutes: int = 30,
) -> List[HedgeGroup]:
    """Find groups of hedged trades held across a news event window."""
    window = timedelta(minutes=window_minutes)
    groups: List[HedgeGroup] = []
    seen: Set[str] = set()

    for news in news_events:
        scheduled = news.scheduled_at()
        if scheduled is None or not news.currency:
            continue
        start, end = scheduled - window, scheduled + window

        related = [
            t for t in trades
            if t.open_time <= end
            and t.close_time >= start
            and is_related_to_news(t.symbol, news.currency)
        ]
        if len(related) < 2:
            continue

        for component in _connected_groups(sorted(related, key=lambda t: t.open_time)):
            group = HedgeGroup(component, news)
            if group.identifier not in seen:
                seen.add(group.identifier)
                groups.append(group)

    return groups


class NewsHedgeRule:
    """Hedged positions may not be held across high-impact news."""

    flag = ViolationFlag.HEDGE_TRADE_VIOLATION
    per_trade = False

    def __init__(self, window_minutes: int = 30):
        self.window_minutes = int(_check_threshold("window_minutes", window_minutes))

    def groups(self, trades: Sequence[TradeRecord], context: RuleContext) -> List[HedgeGroup]:
        return find_hedge_groups(trades, context.news_events, self.window_minutes)

    def __call__(self, trades: Sequence[TradeRecord], context: RuleContext) -> bool:
        return bool(self.groups(trades, context))


# ─── Stability rule ────────────────────────────────────────────────


def daily_profits(trades: Sequence[TradeRecord]) -> Dict[str, float]:
    """Net profit per close date (YYYY-MM-DD), in date order."""
    totals: Dict[str, float] = {}
    for trade in sorted(trades, key=lambda t: t.close_time):
        key = trade.close_time.strftime("%Y-%m-%d")
        totals[key] = totals.get(key, 0.0) + float(trade.net_effect)
    return totals


def stability_rate(trades: Sequence[TradeRecord], total_net_profit: Optional[float]) -> float:
    """Largest daily profit as a percentage of total profit."""
    if not trades or not total_net_profit or total_net_profit <= 0:
        return 0.0
    highest = max([0.0] + list(daily_profits(trades).values()))
    return highest / float(total_net_profit) * 100


class StabilityRule:
    """No single day may account for too much of the total profit."""

    flag = ViolationFlag.STABILITY_RULE
    per_trade = False

    def __init__(self, threshold_pct: float = 20.0):
        self.threshold_pct = _check_threshold("threshold_pct", threshold_pct)

    def rate(self, trades: Sequence[TradeRecord], context: RuleContext) -> float:
        net_profit = context.total_net_profit
        if net_profit is None:
            net_profit = sum((t.net_effect for t in trades), Decimal("0"))
        return stability_rate(trades, float(net_profit))

    def __call__(self, trades: Sequence[TradeRecord], context: RuleContext) -> bool:
        return self.rate(trades, context) > self.threshold_pct

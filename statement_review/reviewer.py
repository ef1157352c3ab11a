"""
Statement reviewer.

Runs one compliance review: reads the statement, gathers news and
leverage data for the aggregate rules, classifies the trades and
optionally records the agent's decision as a report.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, FrozenSet, List, Optional, Union

from .analysis.classifier import ViolationClassifier
from .analysis.extractor import StatementExtractor
from .analysis.rules import (
    EightyPercentProfitRule,
    HedgeGroup,
    MarginUsageRule,
    MarginViolation,
    NewsHedgeRule,
    ProfitChain,
    RuleContext,
    StabilityRule,
)
from .config import ReviewSettings, RulesConfig
from .data.news_client import NewsClient
from .data.report_repository import ReportRepository
from .data.rules_client import RulesClient
from .errors import NewsFeedError, ReviewError
from .models.news import NewsEvent
from .models.report import (
    FLAG_ORDER,
    AccountPhase,
    AccountType,
    Decision,
    Report,
    RiskType,
    ViolationFlag,
)
from .models.trade import StatementHeader, StatementPlatform, TradeRecord

logger = logging.getLogger(__name__)

NEWS_RULES = (ViolationFlag.FIFTY_PERCENT_MARGIN, ViolationFlag.HEDGE_TRADE_VIOLATION)


@dataclass
class StatementReview:
    """Outcome of reviewing one statement."""

    header: StatementHeader = field(default_factory=StatementHeader)
    trades: List[TradeRecord] = field(default_factory=list)  # positive amounts only
    all_trades: List[TradeRecord] = field(default_factory=list)
    flagged_trades: List[TradeRecord] = field(default_factory=list)
    flags: FrozenSet[ViolationFlag] = frozenset()

    profit_chains: List[ProfitChain] = field(default_factory=list)
    margin_violations: List[MarginViolation] = field(default_factory=list)
    hedge_groups: List[HedgeGroup] = field(default_factory=list)
    stability_rate: Optional[float] = None

    diagnostics: List[str] = field(default_factory=list)

    @property
    def trades_total(self) -> Decimal:
        return sum((t.net_amount for t in self.trades), Decimal("0"))

    @property
    def flagged_total(self) -> Decimal:
        return sum((t.net_amount for t in self.flagged_trades), Decimal("0"))

    @property
    def is_empty(self) -> bool:
        return not self.all_trades

    def violation_labels(self) -> List[str]:
        return [flag.label for flag in FLAG_ORDER if flag in self.flags]

    def to_report(
        self,
        agent: str,
        decision: Union[Decision, str],
        phase: Optional[Union[AccountPhase, str]] = None,
        account_type: Optional[Union[AccountType, str]] = None,
        risk_type: Optional[Union[RiskType, str]] = None,
        note: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Report:
        """Build the report an agent files for this review."""
        if not self.header.account_login:
            raise ReviewError("Statement has no account login; cannot file a report")
        decision = decision if isinstance(decision, Decision) else Decision.parse(decision)
        if decision is None:
            raise ReviewError("A decision is required to file a report")

        phase = _parse_enum(AccountPhase, phase)
        account_type = _parse_enum(AccountType, account_type)
        risk_type = _parse_enum(RiskType, risk_type)
        balance = self.header.initial_balance

        return Report(
            account_login=self.header.account_login,
            decision=decision,
            agent=agent,
            created_at=created_at or datetime.now(),
            violations=self.flags,
            account_phase=phase.value if phase else None,
            meta_trader_version=self.header.platform.value if self.header.platform else None,
            note=note,
            account_type=account_type.value if account_type else None,
            risk_type=risk_type.value if risk_type else None,
            account_balance=float(balance) if balance is not None else None,
        )

    def to_dict(self) -> Dict:
        """Convert to dictionary."""
        return {
            "header": self.header.to_dict(),
            "trade_count": len(self.trades),
            "trades_total": str(self.trades_total),
            "flagged_trades": [t.to_dict() for t in self.flagged_trades],
            "flagged_total": str(self.flagged_total),
            "violations": self.violation_labels(),
            "profit_chains": [c.to_dict() for c in self.profit_chains],
            "margin_violations": [m.to_dict() for m in self.margin_violations],
            "hedge_groups": [g.to_dict() for g in self.hedge_groups],
            "stability_rate": (
                round(self.stability_rate, 2) if self.stability_rate is not None else None
            ),
            "diagnostics": list(self.diagnostics),
        }


def _parse_enum(enum_cls, value):
    if value is None or isinstance(value, enum_cls):
        return value
    return enum_cls.parse(value)


class StatementReviewer:
    """
    Main entry point for statement reviews.

    Collaborators are optional: without a news client the news rules see
    no events, and without a repository leverage falls back to the
    configured default and reports cannot be saved.
    """

    def __init__(
        self,
        settings: ReviewSettings,
        news_client: Optional[NewsClient] = None,
        rules_client: Optional[RulesClient] = None,
        repository: Optional[ReportRepository] = None,
    ):
        self.settings = settings
        self.news_client = news_client
        self.rules_client = rules_client
        self.repository = repository
        self.extractor = StatementExtractor(
            default_platform=StatementPlatform.parse(settings.default_platform)
        )

    def rules_config(self) -> RulesConfig:
        """Local rule settings, overlaid with the shared ones when enabled."""
        if self.settings.use_redis_rules and self.rules_client:
            return self.rules_client.merged_rules(self.settings.rules)
        return self.settings.rules

    def review_file(self, path: str, **kwargs) -> StatementReview:
        """Review a statement file; bytes that are not valid UTF-8 become U+FFFD."""
        if not path or not os.path.exists(path):
            logger.warning(f"Statement file not found: {path}")
            return StatementReview(diagnostics=[f"Statement file not found: {path}"])

        with open(path, "r", encoding="utf-8", errors="replace") as f:
            html = f.read()
        return self.review(html, **kwargs)

    def review(
        self,
        html: Optional[str],
        account_type: Optional[Union[AccountType, str]] = None,
        risk_type: Optional[Union[RiskType, str]] = None,
        phase: Optional[Union[AccountPhase, str]] = None,
        funded: Optional[bool] = None,
        fetch_news: bool = True,
    ) -> StatementReview:
        """
        Review one statement.

        Args:
            html: Raw statement HTML
            account_type: Evaluation program of the account
            risk_type: Risk profile of the program
            phase: Program stage; funded defaults to phase == funded
            funded: Override for the funded-account profit target
            fetch_news: Load news events for the news-window rules

        Returns:
            StatementReview with trades, flags, rule details and diagnostics
        """
        if not html or not html.strip():
            logger.warning("Empty statement submitted for review")
            return StatementReview(diagnostics=["No statement content provided"])

        account_type = _parse_enum(AccountType, account_type)
        risk_type = _parse_enum(RiskType, risk_type)
        phase = _parse_enum(AccountPhase, phase)
        if funded is None:
            funded = phase == AccountPhase.FUNDED

        review = StatementReview(header=self.extractor.read_header(html))
        layout = self.extractor.layout_for(html)
        review.trades = self.extractor.extract(html, layout=layout).to_list()
        review.all_trades = self.extractor.extract(html, positive_only=False, layout=layout).to_list()

        if not review.all_trades:
            review.diagnostics.append("No trade rows found in statement")
            review.diagnostics.append(f"Rows were read with the {layout.version} column layout")
            logger.info(f"Statement contains no readable trades ({layout.version} layout)")
            return review

        rules_config = self.rules_config()
        classifier = ViolationClassifier.from_config(rules_config)
        enabled = set(classifier.enabled_flags)

        if review.header.initial_balance is None and enabled - {ViolationFlag.UNDER_THIRTY_SECONDS}:
            review.diagnostics.append("Initial balance not found in statement")

        context = RuleContext(
            initial_balance=review.header.initial_balance or Decimal("0"),
            total_net_profit=review.header.total_net_profit,
            account_type=account_type,
            risk_type=risk_type,
            phase=phase,
            funded=funded,
            news_events=tuple(self._news_events(review, enabled, fetch_news)),
            contract_sizes=self._contract_sizes(rules_config),
            leverage=self._leverage(enabled),
        )

        review.flags = classifier.classify(review.all_trades, context)
        review.flagged_trades = classifier.flagged_trades(review.trades)
        self._collect_details(review, classifier, context)

        logger.info(
            f"Reviewed account {review.header.account_login or 'unknown'}: "
            f"{len(review.trades)} trades, {len(review.flagged_trades)} under threshold, "
            f"violations={review.violation_labels() or 'none'}"
        )
        return review

    def save(self, review: StatementReview, agent: str, decision: Union[Decision, str], **kwargs) -> int:
        """Persist the agent's decision on a review. Returns the report id."""
        if self.repository is None:
            raise ReviewError("No report repository configured")
        report = review.to_report(agent, decision, **kwargs)
        return self.repository.create_report(report)

    def _news_events(
        self,
        review: StatementReview,
        enabled: set,
        fetch_news: bool,
    ) -> List[NewsEvent]:
        if not fetch_news or not enabled.intersection(NEWS_RULES):
            return []
        if self.news_client is None:
            review.diagnostics.append("No news feed configured; news rules saw no events")
            return []
        try:
            return self.news_client.get_high_impact_news()
        except NewsFeedError as e:
            review.diagnostics.append(f"News feed unavailable: {e}")
            return []

    def _contract_sizes(self, rules_config: RulesConfig) -> Dict[str, float]:
        return {symbol.upper(): size for symbol, size in rules_config.contract_sizes.items()}

    def _leverage(self, enabled: set) -> Dict[str, float]:
        if self.repository is None or ViolationFlag.FIFTY_PERCENT_MARGIN not in enabled:
            return {}
        return self.repository.get_leverage_map()

    def _collect_details(
        self,
        review: StatementReview,
        classifier: ViolationClassifier,
        context: RuleContext,
    ) -> None:
        trades = review.all_trades

        rule = classifier.rule(ViolationFlag.EIGHTY_PERCENT_PROFIT_TARGET)
        if isinstance(rule, EightyPercentProfitRule):
            review.profit_chains = rule.chains(trades, context)

        rule = classifier.rule(ViolationFlag.FIFTY_PERCENT_MARGIN)
        if isinstance(rule, MarginUsageRule):
            review.margin_violations = rule.violations(trades, context)

        rule = classifier.rule(ViolationFlag.HEDGE_TRADE_VIOLATION)
        if isinstance(rule, NewsHedgeRule):
            review.hedge_groups = rule.groups(trades, context)

        rule = classifier.rule(ViolationFlag.STABILITY_RULE)
        if isinstance(rule, StabilityRule):
            review.stability_rate = rule.rate(trades, context)

"""
Violation classifier.

Applies a configured set of rule predicates to a statement's trades and
returns the union of the flags that fire. No rule suppresses another.
"""

import logging
from typing import Dict, FrozenSet, Iterable, List, Optional

from ..config import RulesConfig
from ..errors import RuleConfigurationError
from ..models.report import FLAG_ORDER, ViolationFlag
from ..models.trade import TradeRecord
from .rules import (
    EightyPercentProfitRule,
    MarginUsageRule,
    NewsHedgeRule,
    RuleContext,
    RulePredicate,
    StabilityRule,
    UnderThirtySecondsRule,
)

logger = logging.getLogger(__name__)


def build_rules(rules_config: Optional[RulesConfig] = None) -> Dict[ViolationFlag, RulePredicate]:
    """Build the enabled rule predicates from configuration."""
    config = rules_config or RulesConfig()
    rules: Dict[ViolationFlag, RulePredicate] = {}

    for name in config.enabled_checks:
        try:
            flag = ViolationFlag.parse(name)
        except ValueError as e:
            raise RuleConfigurationError(str(e)) from None

        if flag == ViolationFlag.UNDER_THIRTY_SECONDS:
            rules[flag] = UnderThirtySecondsRule(config.thirty_second_threshold)
        elif flag == ViolationFlag.EIGHTY_PERCENT_PROFIT_TARGET:
            rules[flag] = EightyPercentProfitRule(
                config.profit_limit_ratio,
                config.profit_targets,
                config.funded_profit_target_ratio,
            )
        elif flag == ViolationFlag.FIFTY_PERCENT_MARGIN:
            rules[flag] = MarginUsageRule(
                config.margin_threshold_ratio,
                config.default_leverage,
                config.news_window_minutes,
            )
        elif flag == ViolationFlag.HEDGE_TRADE_VIOLATION:
            rules[flag] = NewsHedgeRule(config.news_window_minutes)
        elif flag == ViolationFlag.STABILITY_RULE:
            rules[flag] = StabilityRule(config.stability_threshold_pct)

    logger.debug(f"Enabled checks: {', '.join(f.value for f in rules)}")
    return rules


class ViolationClassifier:
    """
    Classifies a statement's trades against violation rules.

    Rules are callables ``(trades, context) -> bool`` keyed by the flag
    they raise. Classification is a pure function of the trades, the
    context and the rules; nothing is kept between calls.
    """

    def __init__(self, rules: Optional[Dict[ViolationFlag, RulePredicate]] = None):
        if rules is None:
            rules = {ViolationFlag.UNDER_THIRTY_SECONDS: UnderThirtySecondsRule()}
        for flag, rule in rules.items():
            if not isinstance(flag, ViolationFlag):
                raise RuleConfigurationError(f"Unknown violation flag: {flag!r}")
            if not callable(rule):
                raise RuleConfigurationError(f"Rule for {flag.value} is not callable")
        self._rules = dict(rules)

    @classmethod
    def from_config(cls, rules_config: Optional[RulesConfig] = None) -> "ViolationClassifier":
        return cls(build_rules(rules_config))

    @property
    def enabled_flags(self) -> List[ViolationFlag]:
        return [flag for flag in FLAG_ORDER if flag in self._rules]

    def rule(self, flag: ViolationFlag) -> Optional[RulePredicate]:
        return self._rules.get(flag)

    def classify(
        self,
        trades: Iterable[TradeRecord],
        context: Optional[RuleContext] = None,
    ) -> FrozenSet[ViolationFlag]:
        """
        Evaluate every enabled rule.

        Args:
            trades: Trades of one statement
            context: Account and news data for aggregate rules

        Returns:
            Union of the flags whose rule returned True
        """
        trade_list = list(trades)
        context = context or RuleContext()
        flags = set()
        for flag in self.enabled_flags:
            if self._rules[flag](trade_list, context):
                flags.add(flag)
        return frozenset(flags)

    def classify_trade(self, trade: TradeRecord) -> FrozenSet[ViolationFlag]:
        """Apply only the rules that judge a single trade on its own."""
        flags = set()
        for flag in self.enabled_flags:
            rule = self._rules[flag]
            if getattr(rule, "per_trade", False) and rule([trade], RuleContext()):
                flags.add(flag)
        return frozenset(flags)

    def flagged_trades(self, trades: Iterable[TradeRecord]) -> List[TradeRecord]:
        """Trades that trip the thirty-second rule, in input order."""
        rule = self._rules.get(ViolationFlag.UNDER_THIRTY_SECONDS)
        if rule is None:
            return []
        matches = getattr(rule, "matches", None)
        if matches is None:
            return [t for t in trades if rule([t], RuleContext())]
        return [t for t in trades if matches(t)]

"""Tests for violation rule predicates."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from statement_review.analysis.rules import (
    EightyPercentProfitRule,
    MarginUsageRule,
    NewsHedgeRule,
    RuleContext,
    StabilityRule,
    UnderThirtySecondsRule,
    are_hedged,
    daily_profits,
    find_hedge_groups,
    find_profit_chains,
    is_related_to_news,
    normalize_symbol,
    stability_rate,
)
from statement_review.errors import RuleConfigurationError
from statement_review.models.news import NewsEvent
from statement_review.models.report import AccountPhase, RiskType

T0 = datetime(2024, 1, 1, 10, 0)


class TestUnderThirtySecondsRule:
    """Tests for UnderThirtySecondsRule."""

    def test_short_winner_flagged(self, make_trade):
        rule = UnderThirtySecondsRule()
        assert rule.matches(make_trade(seconds=15, amount="100.50"))
        assert rule([make_trade(seconds=29, amount="0.01")], RuleContext())

    def test_threshold_is_exclusive(self, make_trade):
        rule = UnderThirtySecondsRule()
        assert not rule.matches(make_trade(seconds=30))
        assert not rule.matches(make_trade(seconds=45))

    def test_losing_trade_not_flagged(self, make_trade):
        rule = UnderThirtySecondsRule()
        assert not rule.matches(make_trade(seconds=5, amount="-5"))
        assert not rule.matches(make_trade(seconds=5, amount="0"))

    def test_custom_threshold(self, make_trade):
        rule = UnderThirtySecondsRule(threshold_seconds=60)
        assert rule.matches(make_trade(seconds=45))

    def test_negative_threshold_rejected(self):
        with pytest.raises(RuleConfigurationError):
            UnderThirtySecondsRule(-1)


class TestEightyPercentProfitRule:
    """Tests for the 80% profit target rule."""

    def test_overlapping_trades_form_one_chain(self, make_trade):
        trades = [
            make_trade("T1", T0, seconds=1800, amount="500"),
            make_trade("T2", T0 + timedelta(minutes=15), seconds=2700, amount="400"),
            make_trade("T3", T0 + timedelta(hours=2), seconds=600, amount="300"),
        ]
        chains = find_profit_chains(trades, initial_balance=10000, max_allowed_profit=800)

        assert len(chains) == 1
        assert [t.ticket for t in chains[0].trades] == ["T1", "T2"]
        assert chains[0].total_profit == 900
        assert chains[0].closing_balance == 10900

    def test_losses_do_not_reduce_chain_profit(self, make_trade):
        trades = [
            make_trade("T1", T0, seconds=1800, amount="850"),
            make_trade("T2", T0 + timedelta(minutes=5), seconds=60, amount="-400"),
        ]
        chains = find_profit_chains(trades, initial_balance=10000, max_allowed_profit=800)
        assert len(chains) == 1
        assert chains[0].total_profit == 850

    def test_phase1_target(self, make_trade):
        rule = EightyPercentProfitRule()
        context = RuleContext(initial_balance=Decimal("10000"), phase=AccountPhase.PHASE1)

        assert rule.max_allowed_profit(context) == pytest.approx(800)
        assert rule([make_trade(amount="800")], context)
        assert not rule([make_trade(amount="799")], context)

    def test_separate_trades_do_not_add_up(self, make_trade):
        rule = EightyPercentProfitRule()
        context = RuleContext(initial_balance=Decimal("10000"))
        trades = [
            make_trade("T1", T0, seconds=60, amount="500"),
            make_trade("T2", T0 + timedelta(hours=1), seconds=60, amount="500"),
        ]
        assert not rule(trades, context)

    def test_aggressive_targets(self):
        rule = EightyPercentProfitRule(
            profit_targets={
                "default": {"phase1": 0.10, "phase2": 0.05},
                "aggressive": {"phase1": 0.20, "phase2": 0.10},
            }
        )
        context = RuleContext(
            initial_balance=Decimal("10000"),
            risk_type=RiskType.AGGRESSIVE,
            phase=AccountPhase.PHASE2,
        )
        assert rule.profit_target(context) == pytest.approx(1000)

    def test_funded_target_uses_net_profit(self, make_trade):
        rule = EightyPercentProfitRule()
        context = RuleContext(
            initial_balance=Decimal("10000"),
            total_net_profit=Decimal("1000"),
            funded=True,
        )
        assert rule.profit_target(context) == pytest.approx(800)
        assert rule([make_trade(amount="700")], context)

    def test_missing_default_target_rejected(self):
        with pytest.raises(RuleConfigurationError):
            EightyPercentProfitRule(profit_targets={"aggressive": {"phase1": 0.2}})

    def test_zero_balance_never_flags(self, make_trade):
        assert not EightyPercentProfitRule()([make_trade(amount="5000")], RuleContext())


class TestMarginUsageRule:
    """Tests for the 50% margin rule."""

    def _context(self, news, **kwargs):
        return RuleContext(
            initial_balance=Decimal("10000"),
            news_events=(news,),
            contract_sizes={"EURUSD": 100000},
            **kwargs,
        )

    def test_margin_over_half_balance(self, make_trade, usd_news):
        # 100000 * 1.1 * 3 / 50 = 6600
        trade = make_trade(symbol="EURUSD", lot_size=Decimal("3"), open_price=Decimal("1.1"))
        rule = MarginUsageRule()
        violations = rule.violations([trade], self._context(usd_news))

        assert len(violations) == 1
        assert violations[0].total_margin == pytest.approx(6600)
        assert violations[0].threshold == pytest.approx(5000)

    def test_margin_under_threshold(self, make_trade, usd_news):
        trade = make_trade(symbol="EURUSD", lot_size=Decimal("2"), open_price=Decimal("1.1"))
        assert not MarginUsageRule()([trade], self._context(usd_news))

    def test_symbol_leverage_applies(self, make_trade, usd_news):
        trade = make_trade(symbol="EURUSD", lot_size=Decimal("3"), open_price=Decimal("1.1"))
        context = self._context(usd_news, leverage={"EURUSD": 100})
        assert not MarginUsageRule()([trade], context)

    def test_trades_outside_window_ignored(self, make_trade, usd_news):
        trade = make_trade(
            open_time=T0 + timedelta(hours=2),
            symbol="EURUSD",
            lot_size=Decimal("3"),
            open_price=Decimal("1.1"),
        )
        assert not MarginUsageRule()([trade], self._context(usd_news))

    def test_no_news_no_violation(self, make_trade):
        trade = make_trade(symbol="EURUSD", lot_size=Decimal("3"), open_price=Decimal("1.1"))
        context = RuleContext(initial_balance=Decimal("10000"), contract_sizes={"EURUSD": 100000})
        assert not MarginUsageRule()([trade], context)

    def test_zero_leverage_rejected(self):
        with pytest.raises(RuleConfigurationError):
            MarginUsageRule(default_leverage=0)


class TestHedging:
    """Tests for hedge detection around news."""

    def test_normalize_symbol(self):
        assert normalize_symbol("DJI30SEP25") == "DJI30"
        assert normalize_symbol("eurusd") == "EURUSD"
        assert normalize_symbol(None) == ""

    def test_related_to_news(self):
        assert is_related_to_news("EURUSD", "USD")
        assert is_related_to_news("DJI30SEP25", "USD")
        assert is_related_to_news("USDCAD", "CAD")
        assert is_related_to_news("WTIUSD", "CAD")
        assert not is_related_to_news("EURGBP", "JPY")

    def test_same_symbol_opposite_direction(self, make_trade):
        buy = make_trade("1", T0, seconds=1800, symbol="EURUSD", position_type="buy")
        sell = make_trade("2", T0 + timedelta(minutes=5), seconds=1800, symbol="EURUSD", position_type="sell")
        assert are_hedged(buy, sell)

    def test_same_direction_same_symbol_not_hedged(self, make_trade):
        first = make_trade("1", T0, seconds=1800, symbol="EURUSD", position_type="buy")
        second = make_trade("2", T0, seconds=1800, symbol="EURUSD", position_type="buy")
        assert not are_hedged(first, second)

    def test_correlated_same_direction(self, make_trade):
        gold = make_trade("1", T0, seconds=1800, symbol="XAUUSD", position_type="buy")
        franc = make_trade("2", T0, seconds=1800, symbol="USDCHF", position_type="buy")
        assert are_hedged(gold, franc)
        assert are_hedged(franc, gold)

    def test_non_overlapping_not_hedged(self, make_trade):
        buy = make_trade("1", T0, seconds=60, symbol="EURUSD", position_type="buy")
        sell = make_trade("2", T0 + timedelta(minutes=5), seconds=60, symbol="EURUSD", position_type="sell")
        assert not are_hedged(buy, sell)

    def test_hedge_groups_around_news(self, make_trade, usd_news):
        trades = [
            make_trade("1", T0, seconds=1800, symbol="EURUSD", position_type="buy", amount="50"),
            make_trade("2", T0 + timedelta(minutes=5), seconds=1800, symbol="EURUSD", position_type="sell", amount="-20"),
            make_trade("3", T0, seconds=1800, symbol="EURGBP", position_type="sell"),
        ]
        groups = find_hedge_groups(trades, [usd_news])

        assert len(groups) == 1
        assert groups[0].identifier == "1,2"
        assert groups[0].net_profit == pytest.approx(30)

    def test_duplicate_groups_reported_once(self, make_trade, usd_news):
        second_release = NewsEvent(date="2024-01-01", time="10:20", currency="USD")
        trades = [
            make_trade("1", T0, seconds=1800, symbol="EURUSD", position_type="buy"),
            make_trade("2", T0, seconds=1800, symbol="EURUSD", position_type="sell"),
        ]
        assert len(find_hedge_groups(trades, [usd_news, second_release])) == 1

    def test_rule_without_news(self, make_trade):
        trades = [
            make_trade("1", T0, seconds=1800, symbol="EURUSD", position_type="buy"),
            make_trade("2", T0, seconds=1800, symbol="EURUSD", position_type="sell"),
        ]
        assert not NewsHedgeRule()(trades, RuleContext())

    def test_rule_with_news(self, make_trade, usd_news):
        trades = [
            make_trade("1", T0, seconds=1800, symbol="EURUSD", position_type="buy"),
            make_trade("2", T0, seconds=1800, symbol="EURUSD", position_type="sell"),
        ]
        assert NewsHedgeRule()(trades, RuleContext(news_events=(usd_news,)))


class TestStabilityRule:
    """Tests for the stability rule."""

    def test_daily_profits_by_close_date(self, make_trade):
        trades = [
            make_trade("1", datetime(2024, 1, 1, 10), amount="100"),
            make_trade("2", datetime(2024, 1, 1, 15), amount="50", commission=Decimal("-5")),
            make_trade("3", datetime(2024, 1, 2, 10), amount="-30"),
        ]
        assert daily_profits(trades) == {"2024-01-01": 145.0, "2024-01-02": -30.0}

    def test_concentrated_profit_violates(self, make_trade):
        trades = [
            make_trade("1", datetime(2024, 1, 1, 10), amount="100"),
            make_trade("2", datetime(2024, 1, 2, 10), amount="100"),
            make_trade("3", datetime(2024, 1, 3, 10), amount="300"),
        ]
        rule = StabilityRule()
        context = RuleContext(total_net_profit=Decimal("500"))

        assert rule.rate(trades, context) == pytest.approx(60.0)
        assert rule(trades, context)

    def test_even_profit_is_compliant(self, make_trade):
        trades = [
            make_trade(str(day), datetime(2024, 1, day, 10), amount="100")
            for day in range(1, 11)
        ]
        assert not StabilityRule()(trades, RuleContext(total_net_profit=Decimal("1000")))

    def test_no_profit_is_compliant(self, make_trade):
        trades = [make_trade(amount="-100")]
        assert stability_rate(trades, 0) == 0.0
        assert stability_rate([], 500) == 0.0
        assert not StabilityRule()(trades, RuleContext(total_net_profit=Decimal("-100")))

    def test_net_profit_derived_from_trades(self, make_trade):
        trades = [
            make_trade("1", datetime(2024, 1, 1, 10), amount="100"),
            make_trade("2", datetime(2024, 1, 2, 10), amount="100"),
        ]
        assert StabilityRule().rate(trades, RuleContext()) == pytest.approx(50.0)

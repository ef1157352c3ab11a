"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from statement_review.config import ReviewSettings, RulesConfig
from statement_review.models.news import NewsEvent
from statement_review.models.report import Decision, Report, ViolationFlag
from statement_review.models.trade import TradeRecord

ALL_CHECKS = [flag.value for flag in ViolationFlag]


def mt5_row(
    open_time,
    ticket,
    close_time,
    amount,
    symbol="EURUSD",
    position_type="buy",
    volume="1.00",
    price="1.10000",
    commission="0.00",
    swap="0.00",
):
    """One MT5 positions row with 14 cells."""
    cells = [
        open_time, ticket, symbol, position_type, "", volume, price,
        "", "", close_time, "", commission, swap, amount,
    ]
    return "<tr>" + "".join(f"<td>{c}</td>" for c in cells) + "</tr>"


@pytest.fixture
def settings():
    """Create default test settings."""
    return ReviewSettings()


@pytest.fixture
def all_checks_settings():
    """Settings with every violation check enabled."""
    return ReviewSettings(rules=RulesConfig(enabled_checks=ALL_CHECKS))


@pytest.fixture
def scenario_html():
    """Three rows: a 15s winner, a loser and a 45s winner with a thousands separator."""
    return (
        "<html><body><table>"
        "<tr><th>Time</th><th>Position</th></tr>"
        + mt5_row("2024-01-01T10:00:00", "A", "2024-01-01T10:00:15", "100.50")
        + mt5_row("2024-01-01T11:00:00", "B", "2024-01-01T11:00:10", "-5.00")
        + mt5_row("2024-01-01T12:00:00", "C", "2024-01-01T12:00:45", "1,200.00")
        + "</table></body></html>"
    )


@pytest.fixture
def mt5_statement():
    """A full MT5 statement with account details."""
    header_cells = "".join("<td></td>" for _ in range(11))
    return (
        "<html><body><table>"
        "<tr><td>Trade History Report</td></tr>"
        "<tr><td>Opogroup-Server</td></tr>"
        "<tr><td>Account: 5012345 (USD, Hedge)</td></tr>"
        f"<tr><td>Initial Deposit:</td>{header_cells}<td>10 000.00</td></tr>"
        + mt5_row("2024.03.04 09:00:00", "9001", "2024.03.04 09:00:20", "150.00",
                  volume="0.50 / 0.50")
        + mt5_row("2024.03.04 10:00:00", "9002", "2024.03.04 10:30:00", "-40.00",
                  position_type="sell")
        + mt5_row("2024.03.05 14:00:00", "9003", "2024.03.05 15:00:00", "90.00",
                  symbol="XAUUSD", price="2100.50")
        + "<tr><td>Total Net Profit:</td><td>200.00</td></tr>"
        "</table></body></html>"
    )


@pytest.fixture
def make_trade():
    """Factory for trades opened at a given time."""

    def _make(
        ticket="1",
        open_time=datetime(2024, 1, 1, 10, 0),
        seconds=60,
        amount="100",
        **kwargs,
    ):
        return TradeRecord(
            ticket=ticket,
            open_time=open_time,
            close_time=open_time + timedelta(seconds=seconds),
            net_amount=Decimal(amount),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_report():
    """Factory for reports created in January 2024."""

    def _make(
        decision=Decision.APPROVED,
        violations=(),
        agent="alice@firm.com",
        created_at=datetime(2024, 1, 15, 12, 0),
        **kwargs,
    ):
        return Report(
            account_login=kwargs.pop("account_login", "700100"),
            decision=decision,
            agent=agent,
            created_at=created_at,
            violations=frozenset(violations),
            **kwargs,
        )

    return _make


@pytest.fixture
def usd_news():
    """A high-impact USD release at 10:10 on 2024-01-01."""
    return NewsEvent(date="2024-01-01", time="10:10", currency="USD", event="CPI m/m", impact="High")

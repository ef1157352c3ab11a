"""Tests for the trade record extractor."""

from datetime import datetime
from decimal import Decimal

import pytest

from statement_review.analysis.extractor import (
    MT4_LAYOUT,
    MT5_LAYOUT,
    ColumnLayout,
    StatementExtractor,
    detect_platform,
    parse_amount,
    parse_broker_time,
    parse_row,
)
from statement_review.models.trade import StatementPlatform

from conftest import mt5_row


class TestParsing:
    """Tests for cell-level parsing."""

    def test_parse_amount_strips_separators(self):
        assert parse_amount("1,200.00") == Decimal("1200.00")
        assert parse_amount("10 000.50") == Decimal("10000.50")
        assert parse_amount("-5.00") == Decimal("-5.00")

    def test_parse_amount_rejects_garbage(self):
        assert parse_amount("") is None
        assert parse_amount(None) is None
        assert parse_amount("n/a") is None
        assert parse_amount("NaN") is None

    def test_parse_broker_time_formats(self):
        expected = datetime(2024, 1, 1, 10, 0, 15)
        assert parse_broker_time("2024.01.01 10:00:15") == expected
        assert parse_broker_time("2024-01-01T10:00:15") == expected
        assert parse_broker_time("2024-01-01 10:00:15") == expected
        assert parse_broker_time("2024.01.01 10:00") == datetime(2024, 1, 1, 10, 0)

    def test_parse_broker_time_unrecognised(self):
        assert parse_broker_time("01/01/2024 10:00") is None
        assert parse_broker_time("") is None

    def test_detect_platform(self):
        assert detect_platform("<td>Opogroup-Server</td>") == StatementPlatform.MT5
        assert detect_platform("<td>Closed Transactions:</td>") == StatementPlatform.MT4
        assert detect_platform("<table></table>") is None


class TestColumnLayout:
    """Tests for ColumnLayout."""

    def test_min_cells(self):
        assert MT5_LAYOUT.min_cells == 14
        assert MT4_LAYOUT.min_cells == 14

    def test_missing_role_rejected(self):
        with pytest.raises(ValueError):
            ColumnLayout(version="broken", columns={"ticket": 0}, balance_cell=1)


class TestParseRow:
    """Tests for parse_row."""

    def _cells(self, open_time, close_time, amount):
        cells = [""] * 14
        cells[0], cells[1], cells[9], cells[13] = open_time, "42", close_time, amount
        return cells

    def test_close_before_open_is_dropped(self):
        cells = self._cells("2024.01.01 10:00:00", "2024.01.01 09:59:00", "10.00")
        assert parse_row(cells) is None

    def test_short_row_is_dropped(self):
        assert parse_row(["2024.01.01 10:00:00", "42", "10.00"]) is None

    def test_non_positive_kept_when_requested(self):
        cells = self._cells("2024.01.01 10:00:00", "2024.01.01 10:01:00", "-3.00")
        assert parse_row(cells) is None
        record = parse_row(cells, positive_only=False)
        assert record.net_amount == Decimal("-3.00")

    def test_mt4_row(self):
        cells = [""] * 14
        cells[0] = "5551"
        cells[1] = "2024.02.01 08:00:00"
        cells[2] = "Sell"
        cells[3] = "0.20"
        cells[4] = "gbpusd"
        cells[5] = "1.26500"
        cells[8] = "2024.02.01 08:00:25"
        cells[10] = "-1.40"
        cells[13] = "35.00"

        record = parse_row(cells, MT4_LAYOUT)

        assert record.ticket == "5551"
        assert record.symbol == "GBPUSD"
        assert record.position_type == "sell"
        assert record.lot_size == Decimal("0.20")
        assert record.commission == Decimal("-1.40")
        assert record.duration_seconds == 25


class TestStatementExtractor:
    """Tests for StatementExtractor."""

    def test_scenario_rows(self, scenario_html):
        trades = StatementExtractor().extract(scenario_html).to_list()

        assert [t.ticket for t in trades] == ["A", "C"]
        assert trades[0].duration_seconds == 15
        assert trades[1].duration_seconds == 45
        assert trades[1].net_amount == Decimal("1200.00")

    def test_total_amount(self, scenario_html):
        sequence = StatementExtractor().extract(scenario_html)
        assert sequence.total_amount() == Decimal("1300.50")

    def test_sequence_is_restartable(self, scenario_html):
        sequence = StatementExtractor().extract(scenario_html)
        assert list(sequence) == list(sequence)

    def test_extract_is_idempotent(self, scenario_html):
        extractor = StatementExtractor()
        first = extractor.extract(scenario_html).to_list()
        second = extractor.extract(scenario_html).to_list()
        assert first == second

    def test_unparsable_timestamps_excluded(self):
        html = (
            "<table>"
            + mt5_row("yesterday", "X", "2024-01-01T10:00:15", "50.00")
            + mt5_row("2024-01-01T10:00:00", "Y", "later", "50.00")
            + mt5_row("2024-01-01T10:00:00", "Z", "2024-01-01T10:05:00", "50.00")
            + "</table>"
        )
        trades = StatementExtractor().extract(html).to_list()
        assert [t.ticket for t in trades] == ["Z"]

    def test_empty_statement(self):
        sequence = StatementExtractor().extract("")
        assert sequence.to_list() == []
        assert sequence.total_amount() == Decimal("0")

    def test_rejects_non_text(self):
        with pytest.raises(TypeError):
            StatementExtractor().extract(b"<table></table>")

    def test_all_trades_include_losses(self, mt5_statement):
        extractor = StatementExtractor()
        positive = extractor.extract(mt5_statement).to_list()
        everything = extractor.extract(mt5_statement, positive_only=False).to_list()

        assert [t.ticket for t in positive] == ["9001", "9003"]
        assert [t.ticket for t in everything] == ["9001", "9002", "9003"]

    def test_mt5_volume_uses_filled_lots(self, mt5_statement):
        first = StatementExtractor().extract(mt5_statement).to_list()[0]
        assert first.lot_size == Decimal("0.50")
        assert first.symbol == "EURUSD"
        assert first.position_type == "buy"

    def test_read_header(self, mt5_statement):
        header = StatementExtractor().read_header(mt5_statement)

        assert header.platform == StatementPlatform.MT5
        assert header.account_login == "5012345"
        assert header.initial_balance == Decimal("10000.00")
        assert header.total_net_profit == Decimal("200.00")

    def test_read_header_without_details(self, scenario_html):
        header = StatementExtractor().read_header(scenario_html)

        assert header.platform is None
        assert header.account_login is None
        assert header.initial_balance is None

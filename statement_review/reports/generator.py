"""
Report generator.

Formats monthly summaries and statement reviews for people: markdown for
the dashboard and chat, CSV for the spreadsheet exports.
"""

import csv
import io
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from ..models.aggregate import AggregateBucket, MonthlySummary
from ..models.report import FLAG_ORDER, Report
from ..reviewer import StatementReview

logger = logging.getLogger(__name__)

STATEMENT_CSV_HEADERS = [
    "Statement Number",
    "Agent",
    "Decision",
    "Phase",
    "Violations",
    "Version",
    "Date",
    "Notes",
]

BUCKET_CSV_HEADERS = [
    "Account Type",
    "Risk Type",
    "Account Balance",
    "Phase",
    "Total Handled",
    "Approved",
    "Rejected",
    "Accept Ratio",
]


def _csv_text(headers: List[str], rows: Iterable[List]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue()


class ReportGenerator:
    """Generates formatted output from summaries and reviews."""

    def __init__(self, generated_at: Optional[datetime] = None):
        self._generated_at = generated_at

    def to_markdown(self, summary: MonthlySummary) -> str:
        """
        Convert a monthly summary to markdown format.

        Args:
            summary: The monthly summary

        Returns:
            Markdown formatted string
        """
        lines = []
        generated_at = self._generated_at or datetime.now()

        lines.append("# Statement Review Report")
        lines.append("")
        lines.append(f"Generated: {generated_at.strftime('%Y-%m-%d %H:%M:%S')}")
        lines.append(f"Month: {summary.month or 'all'}")
        lines.append("")

        lines.append("## Summary")
        lines.append("")
        lines.append(f"- **Statements Reviewed:** {summary.total}")
        lines.append(f"- **Approved:** {summary.approved} ({summary.approved_ratio:.1f}%)")
        lines.append(f"- **Rejected:** {summary.rejected} ({summary.rejected_ratio:.1f}%)")
        lines.append("")

        if summary.agents:
            lines.append("## Agents")
            lines.append("")
            reasons = [flag.label for flag in FLAG_ORDER]
            lines.append(
                "| Agent | Cases | Share | Approved | " + " | ".join(reasons) + " | Multiple Violations |"
            )
            lines.append("|" + "---|" * (len(reasons) + 5))
            for agent in summary.agents:
                counts = " | ".join(str(agent.by_reason[flag]) for flag in FLAG_ORDER)
                lines.append(
                    f"| {agent.agent} | {agent.total} | {agent.share}% | {agent.approved} | "
                    f"{counts} | {agent.multiple_violations} |"
                )
            lines.append("")

        if summary.buckets:
            lines.append("## Applications")
            lines.append("")
            lines.append("| Account Type | Risk Type | Balance | Phase | Total | Approved | Rejected | Accept Ratio |")
            lines.append("|---|---|---|---|---|---|---|---|")
            for b in summary.buckets:
                lines.append(
                    f"| {b.account_type} | {b.risk_type} | {b.account_balance} | {b.account_phase} | "
                    f"{b.total} | {b.approved} | {b.rejected} | {b.acceptance_ratio}% |"
                )
            lines.append("")

        f = summary.funnel
        lines.append("## Funnel")
        lines.append("")
        lines.append("| Stage | Count | Percentage |")
        lines.append("|-------|-------|------------|")
        lines.append(f"| Phase 1 | {f.phase1} | {f.phase1_pct}% |")
        lines.append(f"| Phase 2 | {f.phase2} | {f.phase2_pct}% |")
        lines.append(f"| Funded | {f.funded} | {f.funded_pct}% |")
        lines.append(f"| Payout | {f.payout} | {f.payout_pct}% |")
        lines.append("")

        lines.append("---")
        lines.append("*Report generated by statement-review-service*")

        return "\n".join(lines)

    def to_summary(self, summary: MonthlySummary) -> str:
        """Brief one-paragraph summary."""
        busiest = max(summary.agents, key=lambda a: a.total, default=None)
        text = (
            f"Reviewed {summary.total} statements for {summary.month or 'all months'}. "
            f"Approved {summary.approved} ({summary.approved_ratio:.0f}%), "
            f"rejected {summary.rejected} ({summary.rejected_ratio:.0f}%). "
            f"{summary.funnel.payout} funded accounts approved for payout."
        )
        if busiest:
            text += f" Busiest agent: {busiest.agent} with {busiest.total} cases."
        return text

    def review_to_markdown(self, review: StatementReview) -> str:
        """Markdown view of a single statement review."""
        lines = []
        header = review.header

        lines.append("# Statement Review")
        lines.append("")
        lines.append(f"- **Account:** {header.account_login or 'unknown'}")
        lines.append(f"- **Platform:** {header.platform.value if header.platform else 'unknown'}")
        if header.initial_balance is not None:
            lines.append(f"- **Initial Balance:** {header.initial_balance}")
        if header.total_net_profit is not None:
            lines.append(f"- **Total Net Profit:** {header.total_net_profit}")
        lines.append(f"- **Profitable Trades:** {len(review.trades)} (total {review.trades_total})")
        lines.append(f"- **Violations:** {', '.join(review.violation_labels()) or 'none'}")
        lines.append("")

        if review.flagged_trades:
            lines.append("## Trades Under 30 Seconds")
            lines.append("")
            lines.append("| Ticket | Open | Close | Seconds | Amount |")
            lines.append("|--------|------|-------|---------|--------|")
            for t in review.flagged_trades:
                lines.append(
                    f"| {t.ticket} | {t.open_time.strftime('%Y-%m-%d %H:%M:%S')} | "
                    f"{t.close_time.strftime('%Y-%m-%d %H:%M:%S')} | "
                    f"{t.duration_seconds:.0f} | {t.net_amount} |"
                )
            lines.append("")
            lines.append(f"Total: **{review.flagged_total}**")
            lines.append("")

        if review.profit_chains:
            lines.append("## Profit Target Chains")
            lines.append("")
            for chain in review.profit_chains:
                tickets = ", ".join(t.ticket for t in chain.trades)
                lines.append(f"- {tickets}: profit {chain.total_profit:.2f}")
            lines.append("")

        if review.margin_violations:
            lines.append("## Margin Around News")
            lines.append("")
            for mv in review.margin_violations:
                lines.append(
                    f"- {mv.news_event.currency} {mv.news_event.event} "
                    f"({mv.news_event.date} {mv.news_event.time}): "
                    f"margin {mv.total_margin:.2f} over {mv.threshold:.2f}"
                )
            lines.append("")

        if review.hedge_groups:
            lines.append("## Hedged Trades Around News")
            lines.append("")
            for group in review.hedge_groups:
                symbols = ", ".join(sorted({t.symbol for t in group.trades if t.symbol}))
                lines.append(f"- {group.identifier} ({symbols}): net {group.net_profit:.2f}")
            lines.append("")

        if review.stability_rate is not None:
            lines.append(f"Stability rate: **{review.stability_rate:.2f}%**")
            lines.append("")

        if review.diagnostics:
            lines.append("## Diagnostics")
            lines.append("")
            for message in review.diagnostics:
                lines.append(f"- {message}")
            lines.append("")

        return "\n".join(lines)

    def statements_csv(self, reports: Iterable[Report]) -> str:
        """Full statements table as CSV."""
        return _csv_text(STATEMENT_CSV_HEADERS, (r.to_csv_row() for r in reports))

    def buckets_csv(self, buckets: Iterable[AggregateBucket]) -> str:
        """Application summary table as CSV."""
        rows = (
            [
                b.account_type,
                b.risk_type,
                b.account_balance,
                b.account_phase,
                b.total,
                b.approved,
                b.rejected,
                f"{b.acceptance_ratio}%",
            ]
            for b in buckets
        )
        return _csv_text(BUCKET_CSV_HEADERS, rows)

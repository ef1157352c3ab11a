"""
Report aggregator.

Computes the monthly review dashboard from a list of reports: decision
ratios, per-agent breakdown, program buckets and the phase funnel. Every
view is derived from the single MonthlySummary built here.
"""

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from ..models.aggregate import (
    NOT_AVAILABLE,
    AgentBreakdown,
    AggregateBucket,
    FunnelCounts,
    MonthlySummary,
    percent,
    ratio,
)
from ..models.report import AccountPhase, Decision, Report

logger = logging.getLogger(__name__)

UNKNOWN_AGENT = "UNKNOWN"

# Bucket fields accepted by filter_buckets
BUCKET_FILTER_FIELDS = ("account_type", "risk_type", "account_balance", "account_phase")


def month_key(value: datetime) -> str:
    return value.strftime("%Y-%m")


def reports_for_month(reports: Iterable[Report], month: Optional[str]) -> List[Report]:
    """Reports created in the given YYYY-MM month (all reports if month is None)."""
    if month is None:
        return list(reports)
    return [r for r in reports if month_key(r.created_at) == month]


def agent_name(agent: Optional[str]) -> str:
    """Display name of an agent: email domain dropped, upper-cased."""
    if not agent or not agent.strip():
        return UNKNOWN_AGENT
    return agent.split("@")[0].strip().upper() or UNKNOWN_AGENT


def format_balance(balance: Optional[float]) -> str:
    if balance is None:
        return NOT_AVAILABLE
    if float(balance).is_integer():
        return str(int(balance))
    return str(balance)


def _phase_of(report: Report) -> Optional[AccountPhase]:
    try:
        return AccountPhase.parse(report.account_phase)
    except ValueError:
        return None


class ReportAggregator:
    """Builds MonthlySummary views over a report list."""

    def summarize(self, reports: Iterable[Report], month: Optional[str] = None) -> MonthlySummary:
        """
        Summarize reports for a month.

        Args:
            reports: Reports from the report store
            month: YYYY-MM to restrict to, or None to use every report

        Returns:
            MonthlySummary with totals, agents, buckets and funnel
        """
        selected = reports_for_month(reports, month)
        total = len(selected)
        approved = sum(1 for r in selected if r.decision == Decision.APPROVED)
        rejected = sum(1 for r in selected if r.decision == Decision.REJECTED)

        summary = MonthlySummary(
            month=month,
            total=total,
            approved=approved,
            rejected=rejected,
            approved_ratio=ratio(approved, total),
            rejected_ratio=ratio(rejected, total),
            agents=self.agent_breakdown(selected),
            buckets=self.buckets(selected),
            funnel=self.funnel(selected),
        )
        logger.debug(f"Summarized {total} reports for {month or 'all months'}")
        return summary

    def agent_breakdown(self, reports: List[Report]) -> List[AgentBreakdown]:
        """Per-agent counts in order of first appearance."""
        agents: Dict[str, AgentBreakdown] = OrderedDict()
        for report in reports:
            name = agent_name(report.agent)
            entry = agents.setdefault(name, AgentBreakdown(agent=name))
            entry.total += 1
            if report.decision == Decision.APPROVED:
                entry.approved += 1
            elif report.decision == Decision.REJECTED:
                if report.is_multiple_violation:
                    entry.multiple_violations += 1
                elif report.violations:
                    (flag,) = report.violations
                    entry.by_reason[flag] += 1

        for entry in agents.values():
            entry.share = percent(entry.total, len(reports))
        return list(agents.values())

    def buckets(self, reports: List[Report]) -> List[AggregateBucket]:
        """Counts per (account type, risk type, balance, phase)."""
        buckets: Dict[tuple, AggregateBucket] = OrderedDict()
        for report in reports:
            bucket = AggregateBucket(
                account_type=report.account_type or NOT_AVAILABLE,
                risk_type=report.risk_type or NOT_AVAILABLE,
                account_balance=format_balance(report.account_balance),
                account_phase=report.account_phase or NOT_AVAILABLE,
            )
            bucket = buckets.setdefault(bucket.key, bucket)
            bucket.total += 1
            if report.decision == Decision.APPROVED:
                bucket.approved += 1
            elif report.decision == Decision.REJECTED:
                bucket.rejected += 1
        return list(buckets.values())

    def funnel(self, reports: List[Report]) -> FunnelCounts:
        """Reviews per program stage, plus approved funded reviews as payouts."""
        funnel = FunnelCounts(month_total=len(reports))
        for report in reports:
            phase = _phase_of(report)
            if phase == AccountPhase.PHASE1:
                funnel.phase1 += 1
            elif phase == AccountPhase.PHASE2:
                funnel.phase2 += 1
            elif phase == AccountPhase.FUNDED:
                funnel.funded += 1
                if report.decision == Decision.APPROVED:
                    funnel.payout += 1
        return funnel


def _upper(value: Optional[str]) -> str:
    return value.upper() if value else ""


SORT_KEYS: Dict[str, Callable[[Report], str]] = {
    "agent": lambda r: _upper(r.agent),
    "decision": lambda r: _upper(r.decision.value if r.decision else None),
    "phase": lambda r: _upper(r.account_phase),
    "violations": lambda r: ", ".join(r.violation_labels()).upper(),
    "version": lambda r: _upper(r.meta_trader_version),
    "date": lambda r: r.created_at.isoformat(),
}


def sort_reports(
    reports: Iterable[Report],
    column: Optional[str] = None,
    descending: bool = False,
) -> List[Report]:
    """
    Order reports for the full statements table.

    Without a column, newest reports come first. With a column the sort is
    stable, so ties keep their incoming order.
    """
    if not column:
        return sorted(reports, key=lambda r: r.created_at, reverse=True)
    key = SORT_KEYS.get(column.lower())
    if key is None:
        raise ValueError(f"Unknown sort column: {column!r}")
    return sorted(reports, key=key, reverse=descending)


def search_reports(reports: Iterable[Report], query: Optional[str]) -> List[Report]:
    """Case-insensitive substring search over the visible report fields."""
    if not query:
        return list(reports)
    needle = query.lower()

    def haystack(report: Report) -> List[str]:
        return [
            report.account_login or "",
            report.decision.value if report.decision else "",
            format_balance(report.account_balance) if report.account_balance is not None else "",
            " ".join(report.violation_labels()),
            report.note or "",
            report.meta_trader_version or "",
            report.created_at.strftime("%Y-%m-%d"),
        ]

    return [r for r in reports if any(needle in field.lower() for field in haystack(r))]


def filter_buckets(
    buckets: Iterable[AggregateBucket],
    filters: Optional[Dict[str, str]] = None,
) -> List[AggregateBucket]:
    """Keep buckets matching every (field, value) filter, ignoring case."""
    if not filters:
        return list(buckets)
    unknown = [f for f in filters if f not in BUCKET_FILTER_FIELDS]
    if unknown:
        raise ValueError(f"Unknown bucket filter: {', '.join(unknown)}")

    return [
        bucket
        for bucket in buckets
        if all(
            str(getattr(bucket, name)).lower() == str(value).lower()
            for name, value in filters.items()
        )
    ]

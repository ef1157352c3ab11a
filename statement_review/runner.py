"""
Statement review runner.

Command line entry point for reviews, monthly summaries and exports.
"""

import argparse
import json
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

from .analysis.aggregator import ReportAggregator, sort_reports
from .config import ReviewSettings, load_settings
from .data.news_client import NewsClient
from .data.report_repository import ReportRepository
from .data.rules_client import RulesClient
from .errors import ReviewError
from .reports.generator import ReportGenerator
from .reviewer import StatementReviewer

logger = logging.getLogger(__name__)


def month_range(month: str) -> Tuple[datetime, datetime]:
    """First instant of a YYYY-MM month and of the month after it."""
    try:
        start = datetime.strptime(month, "%Y-%m")
    except ValueError:
        raise ValueError(f"Month must be YYYY-MM, got {month!r}") from None
    if start.month == 12:
        return start, start.replace(year=start.year + 1, month=1)
    return start, start.replace(month=start.month + 1)


class ReviewRunner:
    """
    Main runner for the statement review service.

    Supports:
    - review: Review a statement file, optionally filing a report
    - summary: Monthly review dashboard
    - export: CSV export of the statements or application tables
    - delete: Delete a filed report
    - init-db: Create the report store tables
    """

    def __init__(self, config_path: Optional[str] = None, settings: Optional[ReviewSettings] = None):
        self.settings = settings or load_settings(config_path)
        self.repository = ReportRepository(self.settings)
        self.news_client = NewsClient(self.settings.news_api_url, self.settings.news_timeout)
        self.rules_client: Optional[RulesClient] = None
        if self.settings.use_redis_rules:
            self.rules_client = RulesClient(self.settings)
            if not self.rules_client.connect():
                logger.warning("Shared rule settings unavailable, using local settings")
        self.aggregator = ReportAggregator()
        self.report_generator = ReportGenerator()
        self._shutdown_called = False

    def _reviewer(self, with_repository: bool) -> StatementReviewer:
        return StatementReviewer(
            self.settings,
            news_client=self.news_client,
            rules_client=self.rules_client,
            repository=self.repository if with_repository else None,
        )

    def _write(self, content: str, output_path: Optional[str], default_name: str) -> str:
        if output_path is None:
            output_dir = Path(self.settings.report_output_dir)
            output_dir.mkdir(parents=True, exist_ok=True)
            output_path = str(output_dir / default_name)
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(content)
        logger.info(f"Saved to {output_path}")
        return output_path

    def review_statement(
        self,
        path: str,
        account_type: Optional[str] = None,
        risk_type: Optional[str] = None,
        phase: Optional[str] = None,
        funded: Optional[bool] = None,
        fetch_news: bool = True,
        format: str = "json",
        output_path: Optional[str] = None,
        use_database: bool = False,
        save: bool = False,
        agent: Optional[str] = None,
        decision: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Tuple[str, Optional[int]]:
        """
        Review a statement file.

        Returns:
            Rendered review (or the output path when written to a file)
            and the id of the filed report, if any
        """
        reviewer = self._reviewer(with_repository=use_database or save)
        review = reviewer.review_file(
            path,
            account_type=account_type,
            risk_type=risk_type,
            phase=phase,
            funded=funded,
            fetch_news=fetch_news,
        )

        report_id = None
        if save:
            if not agent or not decision:
                raise ReviewError("--agent and --decision are required with --save")
            report_id = reviewer.save(
                review,
                agent,
                decision,
                phase=phase,
                account_type=account_type,
                risk_type=risk_type,
                note=note,
            )

        if format == "json":
            content = json.dumps(review.to_dict(), indent=2, default=str)
        elif format == "markdown":
            content = self.report_generator.review_to_markdown(review)
        else:
            raise ValueError(f"Unsupported format: {format}")

        if output_path:
            return self._write(content, output_path, "review.txt"), report_id
        return content, report_id

    def monthly_summary(
        self,
        month: Optional[str] = None,
        format: str = "json",
        output_path: Optional[str] = None,
    ) -> str:
        """Build the review dashboard for a month (current month by default)."""
        month = month or datetime.now().strftime("%Y-%m")
        since, until = month_range(month)
        reports = self.repository.list_reports(since=since, until=until)
        summary = self.aggregator.summarize(reports, month)

        if format == "json":
            content = json.dumps(summary.to_dict(), indent=2)
        elif format == "markdown":
            content = self.report_generator.to_markdown(summary)
        elif format == "text":
            content = self.report_generator.to_summary(summary)
        else:
            raise ValueError(f"Unsupported format: {format}")

        if output_path:
            return self._write(content, output_path, f"summary_{month}.txt")
        return content

    def export(self, month: str, kind: str = "statements", output_path: Optional[str] = None) -> str:
        """Export a month's statements or application buckets as CSV."""
        since, until = month_range(month)
        reports = self.repository.list_reports(since=since, until=until)

        if kind == "statements":
            content = self.report_generator.statements_csv(sort_reports(reports))
        elif kind == "buckets":
            summary = self.aggregator.summarize(reports, month)
            content = self.report_generator.buckets_csv(summary.buckets)
        else:
            raise ValueError(f"Unsupported export kind: {kind}")

        return self._write(content, output_path, f"{kind}_{month}.csv")

    def delete(self, report_id: int) -> bool:
        return self.repository.delete_report(report_id)

    def init_db(self) -> None:
        self.repository.ensure_schema()

    def shutdown(self) -> None:
        """Clean up resources. Safe to call more than once."""
        if self._shutdown_called:
            return
        self._shutdown_called = True
        self.repository.close()
        if self.rules_client:
            self.rules_client.close()


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Broker statement compliance review service"
    )
    parser.add_argument(
        "--config",
        "-c",
        help="Path to config file",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: from config)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Review command
    review_parser = subparsers.add_parser("review", help="Review a statement file")
    review_parser.add_argument("file", help="HTML statement exported from MT4/MT5")
    review_parser.add_argument(
        "--phase",
        choices=["phase1", "phase2", "funded"],
        help="Program stage of the account",
    )
    review_parser.add_argument("--account-type", help="Evaluation program (FLASH, LEGEND, ...)")
    review_parser.add_argument("--risk-type", help="Risk profile (AGGRESSIVE, NORMAL)")
    review_parser.add_argument(
        "--funded",
        action="store_true",
        default=None,
        help="Use the funded-account profit target",
    )
    review_parser.add_argument(
        "--no-news",
        action="store_true",
        help="Skip the news feed; news-window rules see no events",
    )
    review_parser.add_argument(
        "--use-db",
        action="store_true",
        help="Read per-symbol leverage from the report store",
    )
    review_parser.add_argument(
        "--format",
        "-f",
        choices=["json", "markdown"],
        default="json",
        help="Output format",
    )
    review_parser.add_argument("--output", "-o", help="Output file path")
    review_parser.add_argument(
        "--save",
        action="store_true",
        help="File a report with the agent's decision",
    )
    review_parser.add_argument("--agent", help="Reviewing agent (email or name)")
    review_parser.add_argument(
        "--decision",
        choices=["Approved", "Rejected", "Review"],
        help="Agent decision",
    )
    review_parser.add_argument("--note", help="Free-text note for the report")

    # Summary command
    summary_parser = subparsers.add_parser("summary", help="Monthly review summary")
    summary_parser.add_argument("--month", "-m", help="Month as YYYY-MM (default: current)")
    summary_parser.add_argument(
        "--format",
        "-f",
        choices=["json", "markdown", "text"],
        default="json",
        help="Output format",
    )
    summary_parser.add_argument("--output", "-o", help="Output file path")

    # Export command
    export_parser = subparsers.add_parser("export", help="Export a month as CSV")
    export_parser.add_argument("--month", "-m", required=True, help="Month as YYYY-MM")
    export_parser.add_argument(
        "--kind",
        "-k",
        choices=["statements", "buckets"],
        default="statements",
        help="Table to export",
    )
    export_parser.add_argument("--output", "-o", help="Output file path")

    # Delete command
    delete_parser = subparsers.add_parser("delete", help="Delete a filed report")
    delete_parser.add_argument("id", type=int, help="Report id")

    # Init-db command
    subparsers.add_parser("init-db", help="Create the report store tables")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    settings = load_settings(args.config)

    # Setup logging
    logging.basicConfig(
        level=getattr(logging, (args.log_level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    runner = ReviewRunner(settings=settings)

    def _handle_shutdown(signum, frame):
        sig_name = signal.Signals(signum).name
        logger.info(f"Received {sig_name}, shutting down statement-review...")
        runner.shutdown()
        sys.exit(0)

    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    try:
        if args.command == "review":
            content, report_id = runner.review_statement(
                args.file,
                account_type=args.account_type,
                risk_type=args.risk_type,
                phase=args.phase,
                funded=args.funded,
                fetch_news=not args.no_news,
                format=args.format,
                output_path=args.output,
                use_database=args.use_db,
                save=args.save,
                agent=args.agent,
                decision=args.decision,
                note=args.note,
            )
            print(content)
            if report_id is not None:
                print(f"Filed report {report_id}")

        elif args.command == "summary":
            print(runner.monthly_summary(args.month, args.format, args.output))

        elif args.command == "export":
            path = runner.export(args.month, args.kind, args.output)
            print(f"Export saved to: {path}")

        elif args.command == "delete":
            if runner.delete(args.id):
                print(f"Deleted report {args.id}")
            else:
                print(f"No report with id {args.id}")
                sys.exit(1)

        elif args.command == "init-db":
            runner.init_db()
            print("Report store tables ready")

    except (ReviewError, ValueError) as e:
        logger.error(str(e))
        sys.exit(1)
    finally:
        runner.shutdown()


if __name__ == "__main__":
    main()

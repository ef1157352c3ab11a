"""
Report store repository.

Reads and writes compliance reports and the per-symbol leverage table in
the back-office PostgreSQL database. Failures raise PersistenceError so
callers never mistake an outage for an empty month.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

import psycopg2
from psycopg2.extras import RealDictCursor

from ..config import ReviewSettings
from ..errors import PersistenceError
from ..models.report import Report, ViolationFlag

logger = logging.getLogger(__name__)

REPORT_COLUMNS = [
    ("account_login", "VARCHAR(50) NOT NULL"),
    ("trading_login", "VARCHAR(50)"),
    ("decision", "VARCHAR(20)"),
    ("agent", "VARCHAR(255)"),
    ("created_at", "TIMESTAMP NOT NULL DEFAULT NOW()"),
    ("account_phase", "VARCHAR(20)"),
    ("meta_trader_version", "VARCHAR(20)"),
    ("note", "TEXT"),
    ("account_type", "VARCHAR(50)"),
    ("risk_type", "VARCHAR(50)"),
    ("account_balance", "DECIMAL(14, 2)"),
] + [(flag.column, "VARCHAR(10)") for flag in ViolationFlag]


class ReportRepository:
    """Repository for compliance report database operations."""

    MAX_QUERY_LIMIT = 10000

    def __init__(self, settings: ReviewSettings):
        self.settings = settings
        self._conn = None

    def connect(self) -> None:
        """Connect to the report store."""
        db = self.settings.database
        try:
            self._conn = psycopg2.connect(
                host=db.reports_host,
                port=db.reports_port,
                dbname=db.reports_db,
                user=db.reports_user,
                password=db.reports_password,
                connect_timeout=db.connect_timeout,
                options=f"-c statement_timeout={db.statement_timeout_ms}",
            )
            self._conn.set_session(autocommit=False)
            logger.info(f"Connected to report store at {db.reports_host}")
        except psycopg2.Error as e:
            self._conn = None
            logger.error(f"Failed to connect to report store: {e}")
            raise PersistenceError(f"Cannot connect to report store: {e}") from e

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            try:
                self._conn.close()
            except psycopg2.Error as e:
                logger.debug(f"Error closing report store connection: {e}")
            self._conn = None

    def _ensure_connected(self) -> None:
        """Check connection health and reconnect if needed."""
        if self._conn is None:
            self.connect()
            return
        try:
            with self._conn.cursor() as cur:
                cur.execute("SELECT 1")
        except psycopg2.Error:
            logger.warning("Report store connection lost, reconnecting")
            self.close()
            self.connect()

    def _rollback(self) -> None:
        try:
            self._conn.rollback()
        except psycopg2.Error:
            logger.debug("Rollback failed on report store connection")

    def ensure_schema(self) -> None:
        """Create the reports and leverage tables if they are missing."""
        self._ensure_connected()
        column_sql = ", ".join(f'"{name}" {col_type}' for name, col_type in REPORT_COLUMNS)
        try:
            with self._conn.cursor() as cur:
                cur.execute(
                    f"CREATE TABLE IF NOT EXISTS reports (id SERIAL PRIMARY KEY, {column_sql})"
                )
                cur.execute(
                    "CREATE TABLE IF NOT EXISTS leverage ("
                    "id SERIAL PRIMARY KEY, pair VARCHAR(20) UNIQUE NOT NULL, "
                    "leverage DECIMAL(10, 2) NOT NULL)"
                )
            self._conn.commit()
            logger.info("Report store schema ensured")
        except psycopg2.Error as e:
            logger.error(f"Error creating report store schema: {e}")
            self._rollback()
            raise PersistenceError(f"Cannot create report store schema: {e}") from e

    def list_reports(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[Report]:
        """
        Get reports, newest first.

        Args:
            since: Only reports created at or after this time
            until: Only reports created before this time
            limit: Maximum number of reports

        Returns:
            List of Report objects
        """
        self._ensure_connected()

        query = "SELECT * FROM reports WHERE 1=1"
        params: List = []
        if since:
            query += " AND created_at >= %s"
            params.append(since)
        if until:
            query += " AND created_at < %s"
            params.append(until)
        query += " ORDER BY created_at DESC LIMIT %s"
        params.append(min(limit or self.MAX_QUERY_LIMIT, self.MAX_QUERY_LIMIT))

        try:
            with self._conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
        except psycopg2.Error as e:
            logger.error(f"Error listing reports: {e}")
            self._rollback()
            raise PersistenceError(f"Cannot list reports: {e}") from e

        reports = []
        for row in rows:
            try:
                reports.append(Report.from_row(dict(row)))
            except ValueError as e:
                logger.warning(f"Skipping unreadable report {row.get('id')}: {e}")
        return reports

    def get_report(self, report_id: int) -> Optional[Report]:
        """Get a single report by id, or None if it does not exist."""
        self._ensure_connected()
        try:
            with self._conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute("SELECT * FROM reports WHERE id = %s", (report_id,))
                row = cur.fetchone()
            return Report.from_row(dict(row)) if row else None
        except psycopg2.Error as e:
            logger.error(f"Error loading report {report_id}: {e}")
            self._rollback()
            raise PersistenceError(f"Cannot load report {report_id}: {e}") from e

    def create_report(self, report: Report) -> int:
        """Insert a report and return its id."""
        self._ensure_connected()
        row = report.to_row()
        columns = list(row.keys())
        placeholders = ", ".join(["%s"] * len(columns))
        column_sql = ", ".join(f'"{c}"' for c in columns)

        try:
            with self._conn.cursor() as cur:
                cur.execute(
                    f"INSERT INTO reports ({column_sql}) VALUES ({placeholders}) RETURNING id",
                    [row[c] for c in columns],
                )
                report_id = cur.fetchone()[0]
            self._conn.commit()
            logger.info(f"Created report {report_id} for account {report.account_login}")
            return report_id
        except psycopg2.Error as e:
            logger.error(f"Error creating report for {report.account_login}: {e}")
            self._rollback()
            raise PersistenceError(f"Cannot create report: {e}") from e

    def delete_report(self, report_id: int) -> bool:
        """Delete a report. Returns False when no report had that id."""
        self._ensure_connected()
        try:
            with self._conn.cursor() as cur:
                cur.execute("DELETE FROM reports WHERE id = %s", (report_id,))
                deleted = cur.rowcount > 0
            self._conn.commit()
            if deleted:
                logger.info(f"Deleted report {report_id}")
            return deleted
        except psycopg2.Error as e:
            logger.error(f"Error deleting report {report_id}: {e}")
            self._rollback()
            raise PersistenceError(f"Cannot delete report {report_id}: {e}") from e

    def get_leverage_map(self) -> Dict[str, float]:
        """Leverage per symbol, keyed by upper-case pair."""
        self._ensure_connected()
        try:
            with self._conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute("SELECT pair, leverage FROM leverage")
                rows = cur.fetchall()
        except psycopg2.Error as e:
            logger.error(f"Error loading leverage table: {e}")
            self._rollback()
            raise PersistenceError(f"Cannot load leverage table: {e}") from e

        return {
            str(row["pair"]).upper(): float(row["leverage"])
            for row in rows
            if row.get("pair") and row.get("leverage")
        }

"""Data access layer."""

from .news_client import NewsClient
from .report_repository import ReportRepository
from .rules_client import RulesClient

__all__ = ["NewsClient", "ReportRepository", "RulesClient"]

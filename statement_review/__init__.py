"""
Statement Review Service - Compliance review of broker trading statements.

Extracts closed trades from MetaTrader HTML statements, flags rule
violations and summarizes reviewing agents' decisions by month.
"""

from .reviewer import StatementReview, StatementReviewer
from .runner import ReviewRunner

__version__ = "0.1.0"
__all__ = ["StatementReview", "StatementReviewer", "ReviewRunner"]

"""Statement analysis components."""

from .extractor import StatementExtractor, TradeSequence
from .classifier import ViolationClassifier, build_rules
from .aggregator import ReportAggregator

__all__ = [
    "StatementExtractor",
    "TradeSequence",
    "ViolationClassifier",
    "build_rules",
    "ReportAggregator",
]

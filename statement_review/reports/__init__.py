"""Human-readable outputs."""

from .generator import ReportGenerator

__all__ = ["ReportGenerator"]

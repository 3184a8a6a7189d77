"""Utility functions."""

from .logging import setup_logging, get_logger
from .metrics import (
    AnalysisSummary,
    summarize_results,
    exceeds_fail_on,
    meets_severity,
    format_summary,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "AnalysisSummary",
    "summarize_results",
    "exceeds_fail_on",
    "meets_severity",
    "format_summary",
]

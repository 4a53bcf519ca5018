"""Runner module - round orchestration."""

from .aggregator import Report, ReportEntry, aggregate, select_authoritative
from .executor import ExecutionConfig, RoundExecutor, RoundResult, RoundScheduler

__all__ = [
    "Report",
    "ReportEntry",
    "aggregate",
    "select_authoritative",
    "ExecutionConfig",
    "RoundExecutor",
    "RoundResult",
    "RoundScheduler",
]

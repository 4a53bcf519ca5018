"""Reporting module - JSON output."""

from .json_reporter import JsonReporter

__all__ = ["JsonReporter"]

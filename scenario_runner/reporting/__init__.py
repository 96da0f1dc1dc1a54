"""Reporting module - JSON run reports."""

from .json_reporter import JsonReporter

__all__ = ["JsonReporter"]

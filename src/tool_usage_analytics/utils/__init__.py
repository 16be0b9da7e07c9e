"""Utility helpers for Tool Usage Analytics."""

from .dates import days_ago, month_id, utc_now_iso, utc_today, week_id
from .logging import setup_logging

__all__ = [
    "days_ago",
    "month_id",
    "utc_now_iso",
    "utc_today",
    "week_id",
    "setup_logging",
]

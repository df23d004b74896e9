"""
Utility functions
"""
from helpdesk_dashboard.utils.logger import setup_logger, get_logger
from helpdesk_dashboard.utils.dates import (
    parse_datetime,
    ensure_aware,
    hours_between,
    minutes_between,
)

__all__ = [
    "setup_logger",
    "get_logger",
    "parse_datetime",
    "ensure_aware",
    "hours_between",
    "minutes_between",
]

"""
Import logging module for the trade import core.

Provides append-only import logging for audit and reproducibility.
"""

from tradebook.logging.import_log import (
    DecimalEncoder,
    ImportLogger,
    log_action,
    get_logger,
)

__all__ = [
    "DecimalEncoder",
    "ImportLogger",
    "log_action",
    "get_logger",
]

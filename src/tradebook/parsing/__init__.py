"""
CSV parsing module for the trade import core.

Provides dialect detection, per-broker extraction and the parse entry
points that turn broker CSV exports into normalized trades or raw fills.
"""

from tradebook.parsing.dialects import (
    DIALECTS,
    DialectSpec,
    UnknownDialectError,
    detect_dialect,
    get_dialect,
)
from tradebook.parsing.parser import (
    CSVImportError,
    parse_csv,
    parse_csv_file,
    parse_fills_csv,
    parse_fills_file,
)
from tradebook.parsing.tokenizer import parse_csv_line, split_lines

__all__ = [
    "DIALECTS",
    "DialectSpec",
    "UnknownDialectError",
    "detect_dialect",
    "get_dialect",
    "CSVImportError",
    "parse_csv",
    "parse_csv_file",
    "parse_fills_csv",
    "parse_fills_file",
    "parse_csv_line",
    "split_lines",
]

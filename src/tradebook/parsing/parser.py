"""
CSV import entry points.

parse_csv is the single call the journal makes for an uploaded file: it
detects (or accepts) the broker dialect, dispatches to the dialect's
extractor and folds the per-row results into a CSVParseResult. Bad rows
become warnings; only structural problems become errors.
"""

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from tradebook.models import (
    AUTO,
    ZERO,
    BrokerDialect,
    CSVParseResult,
    FillParseResult,
    IdGenerator,
    RawFill,
    RowResult,
    Side,
    generate_trade_id,
)
from tradebook.parsing.dialects import detect_dialect, get_dialect
from tradebook.parsing.extractors import ExtractContext, fold_rows
from tradebook.parsing.schemas import (
    FILLS_SCHEMA,
    ColumnMapping,
    ColumnRole,
    cell,
    has_timestamp,
    timestamp_text,
)
from tradebook.parsing.tokenizer import parse_csv_line, split_lines
from tradebook.parsing.values import parse_decimal, parse_side, parse_timestamp

logger = logging.getLogger(__name__)

EMPTY_FILE_ERROR = "CSV file is empty"
NO_TRADES_ERROR = "No valid trades found in file"
NO_FILLS_ERROR = "No valid fills found in file"


class CSVImportError(Exception):
    """Raised when a CSV file cannot be read at all."""
    pass


def parse_csv(
    text: str,
    broker: str | BrokerDialect = AUTO,
    default_date: Optional[date | datetime] = None,
    id_generator: Optional[IdGenerator] = None,
    notes_prefix: str = "Imported from",
) -> CSVParseResult:
    """
    Parse broker CSV text into closed trades.

    Args:
        text: Complete CSV text, header row first
        broker: Dialect tag, BrokerDialect, or "auto" to detect from headers
        default_date: Fallback for rows whose date is missing or unparseable
        id_generator: Trade ID generator (random UUID based by default)
        notes_prefix: Start of the provenance note put on every trade

    Returns:
        CSVParseResult with trades, fatal errors and per-row warnings

    Raises:
        UnknownDialectError: If an explicit broker tag is not registered
    """
    id_generator = id_generator or generate_trade_id

    lines = split_lines(text or "")
    if not lines:
        return CSVParseResult(success=False, errors=[EMPTY_FILE_ERROR])

    _, header_line = lines[0]
    headers = parse_csv_line(header_line)

    if isinstance(broker, str) and broker.strip().lower() == AUTO:
        dialect = detect_dialect(headers)
        logger.debug("Detected dialect %s from headers %s", dialect.value, headers)
    else:
        dialect = get_dialect(broker).dialect

    spec = get_dialect(dialect)
    ctx = ExtractContext(
        headers=headers,
        lines=lines[1:],
        id_generator=id_generator,
        default_date=default_date,
        notes=f"{notes_prefix} {spec.label}",
    )
    extraction = spec.parse(ctx)

    trades, row_errors = fold_rows(extraction.rows)
    errors = list(extraction.errors)
    warnings = list(extraction.file_warnings) + [str(e) for e in row_errors]

    if not trades and not errors:
        errors.append(NO_TRADES_ERROR)

    logger.debug(
        "Parsed %d trades (%d warnings, %d errors) as %s",
        len(trades), len(warnings), len(errors), dialect.value,
    )

    return CSVParseResult(
        success=len(trades) > 0,
        trades=trades,
        errors=errors,
        warnings=warnings,
        detected_broker=dialect.value,
    )


def _read_text(path: str | Path) -> str:
    path = Path(path)
    if not path.exists():
        raise CSVImportError(f"CSV file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise CSVImportError(f"Failed to read CSV file {path}: {e}")


def parse_csv_file(
    path: str | Path,
    broker: str | BrokerDialect = AUTO,
    default_date: Optional[date | datetime] = None,
    id_generator: Optional[IdGenerator] = None,
    notes_prefix: str = "Imported from",
) -> CSVParseResult:
    """
    Parse a broker CSV file from disk.

    Raises:
        CSVImportError: If the file does not exist or cannot be decoded
    """
    return parse_csv(_read_text(path), broker, default_date, id_generator, notes_prefix)


def parse_fills_csv(
    text: str,
    default_date: Optional[date | datetime] = None,
) -> FillParseResult:
    """
    Parse a fill-level CSV (one execution per row) into RawFills.

    Expected columns: time, symbol, side, quantity, price, and optionally
    commission and a fill ID. Feed the result to reconstruct_round_trips.

    Args:
        text: Complete CSV text, header row first
        default_date: Fallback for rows whose time is missing or unparseable

    Returns:
        FillParseResult with fills, fatal errors and per-row warnings
    """
    lines = split_lines(text or "")
    if not lines:
        return FillParseResult(success=False, errors=[EMPTY_FILE_ERROR])

    headers = parse_csv_line(lines[0][1])
    mapping = FILLS_SCHEMA.map_columns(headers)
    is_valid, missing = FILLS_SCHEMA.validate_columns(mapping)
    if not has_timestamp(mapping):
        is_valid = False
        missing.insert(0, ColumnRole.TIMESTAMP.value)
    if not is_valid:
        return FillParseResult(
            success=False,
            errors=[f"Could not find required columns: {', '.join(missing)}"],
        )

    rows = [
        _fill_row(number, parse_csv_line(line), mapping, default_date)
        for number, line in lines[1:]
    ]
    fills = [r.value for r in rows if r.is_ok]
    warnings = [str(r.error) for r in rows if r.error is not None]

    errors = [] if fills else [NO_FILLS_ERROR]
    return FillParseResult(success=bool(fills), fills=fills, errors=errors, warnings=warnings)


def parse_fills_file(
    path: str | Path,
    default_date: Optional[date | datetime] = None,
) -> FillParseResult:
    """
    Parse a fill-level CSV file from disk.

    Raises:
        CSVImportError: If the file does not exist or cannot be decoded
    """
    return parse_fills_csv(_read_text(path), default_date)


def _fill_row(
    line_number: int,
    cols: list[str],
    mapping: ColumnMapping,
    default_date: Optional[date | datetime],
) -> RowResult[RawFill]:
    symbol = (cell(cols, mapping, ColumnRole.TICKER) or "").upper()
    if not symbol:
        return RowResult.fail(line_number, "Missing symbol, skipping")

    side_str = cell(cols, mapping, ColumnRole.DIRECTION)
    side: Optional[Side] = parse_side(side_str)
    if side is None:
        return RowResult.fail(line_number, f"Unrecognized side '{side_str or ''}', skipping")

    quantity = parse_decimal(cell(cols, mapping, ColumnRole.QUANTITY))
    price = parse_decimal(cell(cols, mapping, ColumnRole.PRICE))
    if quantity is not None:
        quantity = abs(quantity)
    if quantity is None or price is None or quantity <= 0 or price <= 0:
        return RowResult.fail(line_number, "Quantity and price must be positive, skipping")

    raw_time = timestamp_text(cols, mapping)
    timestamp = parse_timestamp(raw_time, default_date)
    if timestamp is None:
        return RowResult.fail(line_number, f"Unrecognized date '{raw_time or ''}', skipping")

    commission = parse_decimal(cell(cols, mapping, ColumnRole.COMMISSION))
    if commission is not None and commission < 0:
        # Some brokers report fees as negative cash flow
        commission = -commission

    fill_id = cell(cols, mapping, ColumnRole.FILL_ID) or f"line-{line_number}"

    return RowResult.ok(RawFill(
        broker_fill_id=fill_id,
        symbol=symbol,
        side=side,
        quantity=quantity,
        price=price,
        timestamp=timestamp,
        commission=commission if commission is not None else ZERO,
    ))

"""
Per-dialect row extraction.

Every extractor turns the body lines of one CSV file into a list of
RowResult values: a NormalizedTrade, a RowError (becomes a warning), or a
silent skip for rows that are not trades at all. Nothing here raises for
bad data; fatal problems (missing columns) are returned as errors.

Fill-style dialects (TD Ameritrade, Robinhood, WeBull) emit one fill per
row; fills are grouped by (ticker, quantity) and matched as sequential
open/close pairs. That is only correct when every open is closed by exactly
one fill of the same size; use tradebook.reconstruct for anything else.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import NamedTuple, Optional

from tradebook.models import (
    ZERO,
    Direction,
    IdGenerator,
    NormalizedTrade,
    RawFill,
    RowError,
    RowResult,
    Side,
)
from tradebook.parsing.schemas import (
    GENERIC_SCHEMA,
    IB_SCHEMA,
    ROBINHOOD_SCHEMA,
    TD_EXECUTION_SCHEMA,
    TD_STATEMENT_SCHEMA,
    WEBULL_SCHEMA,
    ColumnMapping,
    ColumnRole,
    DialectSchema,
    cell,
    has_timestamp,
    timestamp_text,
)
from tradebook.parsing.tokenizer import parse_csv_line
from tradebook.parsing.values import (
    parse_decimal,
    parse_direction,
    parse_side,
    parse_timestamp,
)


# "BOT +100 AAPL @150.25", "SLD -100 AAPL @152.75", "Sell 50 msft @ 401.10"
DESCRIPTION_PATTERN = re.compile(
    r"^(BOT|SLD|BUY|SELL)\s+([+-]?[\d,]*\.?\d+)\s+([A-Z][A-Z0-9./-]*)\s+@?\s*(\d[\d,]*\.?\d*)",
    re.IGNORECASE,
)

# Section rows in Interactive Brokers statements.
IB_SECTION_MARKERS = {"header", "total", "subtotal"}

# WeBull order states that carry an execution.
WEBULL_FILLED_STATUSES = {"filled", "partially filled", "partial filled"}

ONE_PRICE_COLUMN_WARNING = (
    "Only one price column found; exit price set equal to entry price. "
    "Use fill reconstruction for execution-level files."
)


@dataclass
class ExtractContext:
    """Everything an extractor needs about one file."""
    headers: list[str]
    lines: list[tuple[int, str]]
    id_generator: IdGenerator
    default_date: Optional[date | datetime] = None
    notes: Optional[str] = None


@dataclass
class ExtractionResult:
    """Raw extractor output, folded into a CSVParseResult by the parser."""
    rows: list[RowResult[NormalizedTrade]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    file_warnings: list[str] = field(default_factory=list)


class LineFill(NamedTuple):
    """A parsed fill remembered with its source line."""
    line_number: int
    fill: RawFill


def _map_columns(
    schema: DialectSchema,
    headers: list[str],
    label: str,
) -> tuple[Optional[ColumnMapping], Optional[str]]:
    mapping = schema.map_columns(headers)
    is_valid, missing = schema.validate_columns(mapping)
    if not is_valid:
        return None, f"Could not find required columns for {label}: {', '.join(missing)}"
    return mapping, None


def _positive(value: Optional[Decimal]) -> bool:
    return value is not None and value > ZERO


def _fill_from_cells(
    line_number: int,
    ticker: Optional[str],
    side: Optional[Side],
    quantity_str: Optional[str],
    price_str: Optional[str],
    timestamp: Optional[datetime],
    commission_str: Optional[str] = None,
) -> RowResult[LineFill]:
    """Validate the common fill fields of one row."""
    ticker = (ticker or "").strip().upper()
    if not ticker:
        return RowResult.fail(line_number, "Missing ticker, skipping")

    if side is None:
        return RowResult.fail(line_number, "Unrecognized buy/sell side, skipping")

    quantity = parse_decimal(quantity_str)
    if quantity is None:
        return RowResult.fail(line_number, f"Invalid quantity '{quantity_str or ''}', skipping")
    quantity = abs(quantity)

    price = parse_decimal(price_str)
    if price is not None:
        price = abs(price)

    if not _positive(quantity) or not _positive(price):
        return RowResult.fail(line_number, "Quantity and price must be positive, skipping")

    if timestamp is None:
        return RowResult.fail(line_number, "Unrecognized date and no default date, skipping")

    commission = parse_decimal(commission_str)
    commission = abs(commission) if commission is not None else ZERO

    return RowResult.ok(LineFill(
        line_number,
        RawFill(
            broker_fill_id=f"line-{line_number}",
            symbol=ticker,
            side=side,
            quantity=quantity,
            price=price,
            timestamp=timestamp,
            commission=commission,
        ),
    ))


def match_fill_pairs(
    fills: list[LineFill],
    id_generator: IdGenerator,
    notes: Optional[str] = None,
) -> list[RowResult[NormalizedTrade]]:
    """
    Match fills into round trips by (ticker, quantity).

    Within each key, fills are sorted by time (stable) and consumed as
    non-overlapping pairs: the first fill opens, the next fill on the
    opposite side closes. Commission of both legs is subtracted.

    Args:
        fills: Parsed fills with their line numbers
        id_generator: Trade ID generator
        notes: Provenance note for created trades

    Returns:
        One RowResult per trade or per fill that could not be paired
    """
    groups: dict[tuple[str, Decimal], list[LineFill]] = {}
    for item in fills:
        groups.setdefault((item.fill.symbol, item.fill.quantity), []).append(item)

    results: list[RowResult[NormalizedTrade]] = []

    for (symbol, quantity), group in groups.items():
        key = f"{symbol}_{quantity.normalize():f}"
        pending: Optional[LineFill] = None

        for item in sorted(group, key=lambda i: i.fill.timestamp):
            if pending is None:
                pending = item
                continue

            if item.fill.side == pending.fill.side:
                results.append(RowResult.fail(
                    pending.line_number,
                    f"Incomplete trade for {key}: no matching close before the next "
                    f"{pending.fill.side.value}",
                ))
                pending = item
                continue

            results.append(RowResult.ok(_pair_trade(pending.fill, item.fill, id_generator, notes)))
            pending = None

        if pending is not None:
            results.append(RowResult.fail(
                pending.line_number,
                f"Incomplete trade for {key}: only one side found",
            ))

    return results


def _pair_trade(
    opening: RawFill,
    closing: RawFill,
    id_generator: IdGenerator,
    notes: Optional[str],
) -> NormalizedTrade:
    direction = Direction.LONG if opening.side == Side.BUY else Direction.SHORT
    return NormalizedTrade.create(
        id=id_generator(),
        ticker=opening.symbol,
        direction=direction,
        quantity=opening.quantity,
        entry_price=opening.price,
        exit_price=closing.price,
        timestamp=opening.timestamp,
        commission=opening.commission + closing.commission,
        notes=notes,
    )


def _split_fill_rows(
    rows: list[RowResult[LineFill]],
) -> tuple[list[LineFill], list[RowResult[NormalizedTrade]]]:
    fills = [r.value for r in rows if r.is_ok]
    problems = [RowResult(error=r.error) for r in rows if r.error is not None]
    return fills, problems


# =============================================================================
# TD Ameritrade
# =============================================================================


def extract_td_ameritrade(ctx: ExtractContext) -> ExtractionResult:
    """
    Extract trades from a TD Ameritrade export.

    Two layouts exist: the account statement, where trades hide inside a
    free-text DESCRIPTION ("BOT 100 AAPL @150.25"), and the thinkorswim
    execution log with separate SYMBOL/QTY/PRICE/SIDE columns.
    """
    normalized = [h.strip().lower() for h in ctx.headers]

    if "description" in normalized:
        return _extract_td_statement(ctx)
    if any("symbol" in h for h in normalized):
        return _extract_td_executions(ctx)

    return ExtractionResult(errors=[
        "Could not identify TD Ameritrade format - missing DESCRIPTION or SYMBOL column"
    ])


def _extract_td_statement(ctx: ExtractContext) -> ExtractionResult:
    mapping, error = _map_columns(TD_STATEMENT_SCHEMA, ctx.headers, "TD Ameritrade statement")
    if mapping is None:
        return ExtractionResult(errors=[error])

    rows = [_td_statement_row(number, parse_csv_line(line), mapping, ctx) for number, line in ctx.lines]
    fills, problems = _split_fill_rows(rows)
    return ExtractionResult(rows=problems + match_fill_pairs(fills, ctx.id_generator, ctx.notes))


def _td_statement_row(
    line_number: int,
    cols: list[str],
    mapping: ColumnMapping,
    ctx: ExtractContext,
) -> RowResult[LineFill]:
    description = cell(cols, mapping, ColumnRole.DESCRIPTION)
    if not description:
        return RowResult.fail(line_number, "Empty description, skipping")

    match = DESCRIPTION_PATTERN.match(description)
    if match is None:
        # Dividends, fees, transfers: not trade rows
        return RowResult.skip()

    action, quantity_str, ticker, price_str = match.groups()
    side = Side.BUY if action.upper() in ("BOT", "BUY") else Side.SELL

    timestamp = parse_timestamp(timestamp_text(cols, mapping), ctx.default_date)

    return _fill_from_cells(
        line_number,
        ticker,
        side,
        quantity_str,
        price_str,
        timestamp,
        cell(cols, mapping, ColumnRole.COMMISSION),
    )


def _extract_td_executions(ctx: ExtractContext) -> ExtractionResult:
    mapping, error = _map_columns(TD_EXECUTION_SCHEMA, ctx.headers, "thinkorswim format")
    if mapping is None:
        return ExtractionResult(errors=[error])

    rows = []
    for number, line in ctx.lines:
        cols = parse_csv_line(line)
        rows.append(_fill_from_cells(
            number,
            cell(cols, mapping, ColumnRole.TICKER),
            parse_side(cell(cols, mapping, ColumnRole.DIRECTION)),
            cell(cols, mapping, ColumnRole.QUANTITY),
            cell(cols, mapping, ColumnRole.PRICE),
            parse_timestamp(cell(cols, mapping, ColumnRole.TIMESTAMP), ctx.default_date),
            cell(cols, mapping, ColumnRole.COMMISSION),
        ))

    fills, problems = _split_fill_rows(rows)
    return ExtractionResult(rows=problems + match_fill_pairs(fills, ctx.id_generator, ctx.notes))


# =============================================================================
# Interactive Brokers
# =============================================================================


def extract_interactive_brokers(ctx: ExtractContext) -> ExtractionResult:
    """
    Extract closed trades from an Interactive Brokers statement.

    IB rows already carry realized P&L but no usable direction field, so
    direction is inferred from the P&L sign (>= 0 long, < 0 short) and the
    exit price is back-calculated from it. This is a simplification: a
    losing long is reported as a winning-looking short at the same P&L.
    """
    mapping, error = _map_columns(IB_SCHEMA, ctx.headers, "Interactive Brokers")
    if mapping is None:
        return ExtractionResult(errors=[error])

    rows = [
        _ib_row(number, parse_csv_line(line), mapping, ctx)
        for number, line in ctx.lines
    ]
    return ExtractionResult(rows=rows)


def _ib_row(
    line_number: int,
    cols: list[str],
    mapping: ColumnMapping,
    ctx: ExtractContext,
) -> RowResult[NormalizedTrade]:
    if any(c.strip().lower() in IB_SECTION_MARKERS for c in cols[:2]):
        return RowResult.skip()

    ticker = (cell(cols, mapping, ColumnRole.TICKER) or "").upper()
    if not ticker:
        return RowResult.fail(line_number, "Missing ticker, skipping")

    quantity = parse_decimal(cell(cols, mapping, ColumnRole.QUANTITY))
    price = parse_decimal(cell(cols, mapping, ColumnRole.PRICE))
    if quantity is not None:
        quantity = abs(quantity)
    if not _positive(quantity) or not _positive(price):
        return RowResult.fail(line_number, "Quantity and price must be positive, skipping")

    realized_pl = parse_decimal(cell(cols, mapping, ColumnRole.REALIZED_PL))
    if realized_pl is None:
        return RowResult.fail(line_number, "Invalid realized P&L, skipping")

    timestamp = parse_timestamp(cell(cols, mapping, ColumnRole.TIMESTAMP), ctx.default_date)
    if timestamp is None:
        return RowResult.fail(line_number, "Unrecognized date and no default date, skipping")

    direction = Direction.LONG if realized_pl >= ZERO else Direction.SHORT
    per_unit = realized_pl / quantity
    exit_price = price + per_unit if direction == Direction.LONG else price - per_unit

    return RowResult.ok(NormalizedTrade(
        id=ctx.id_generator(),
        ticker=ticker,
        direction=direction,
        quantity=quantity,
        entry_price=price,
        exit_price=exit_price,
        timestamp=timestamp,
        realized_pl=realized_pl,
        notes=ctx.notes,
    ))


# =============================================================================
# Robinhood / WeBull
# =============================================================================


def extract_robinhood(ctx: ExtractContext) -> ExtractionResult:
    """Extract trades from Robinhood account activity (buy/sell pairs)."""
    mapping, error = _map_columns(ROBINHOOD_SCHEMA, ctx.headers, "Robinhood")
    if mapping is None:
        return ExtractionResult(errors=[error])

    rows = []
    for number, line in ctx.lines:
        cols = parse_csv_line(line)
        trans_code = (cell(cols, mapping, ColumnRole.DIRECTION) or "").upper()

        # Dividends, transfers, interest, ...
        if "BUY" not in trans_code and "SELL" not in trans_code:
            continue

        rows.append(_fill_from_cells(
            number,
            cell(cols, mapping, ColumnRole.TICKER),
            parse_side(trans_code),
            cell(cols, mapping, ColumnRole.QUANTITY),
            cell(cols, mapping, ColumnRole.PRICE),
            parse_timestamp(cell(cols, mapping, ColumnRole.TIMESTAMP), ctx.default_date),
        ))

    fills, problems = _split_fill_rows(rows)
    return ExtractionResult(rows=problems + match_fill_pairs(fills, ctx.id_generator, ctx.notes))


def extract_webull(ctx: ExtractContext) -> ExtractionResult:
    """Extract trades from WeBull order history (buy/sell pairs)."""
    mapping, error = _map_columns(WEBULL_SCHEMA, ctx.headers, "WeBull")
    if mapping is None:
        return ExtractionResult(errors=[error])

    rows = []
    for number, line in ctx.lines:
        cols = parse_csv_line(line)

        status = (cell(cols, mapping, ColumnRole.STATUS) or "").lower()
        if status and status not in WEBULL_FILLED_STATUSES:
            # Cancelled / rejected orders carry no execution
            continue

        rows.append(_fill_from_cells(
            number,
            cell(cols, mapping, ColumnRole.TICKER),
            parse_side(cell(cols, mapping, ColumnRole.DIRECTION)),
            cell(cols, mapping, ColumnRole.QUANTITY),
            cell(cols, mapping, ColumnRole.PRICE),
            parse_timestamp(cell(cols, mapping, ColumnRole.TIMESTAMP), ctx.default_date),
            cell(cols, mapping, ColumnRole.COMMISSION),
        ))

    fills, problems = _split_fill_rows(rows)
    return ExtractionResult(rows=problems + match_fill_pairs(fills, ctx.id_generator, ctx.notes))


# =============================================================================
# Generic
# =============================================================================


def extract_generic(ctx: ExtractContext) -> ExtractionResult:
    """
    Extract trades from a journal-style CSV with flexible column names.

    Rows carrying entry and exit prices (and/or an explicit P&L) are closed
    trades already. With a single price column each row is imported with
    exit == entry, which is only a placeholder.
    """
    mapping, error = _map_columns(GENERIC_SCHEMA, ctx.headers, "generic CSV")
    if mapping is None:
        return ExtractionResult(errors=[error])

    result = ExtractionResult()
    if ColumnRole.ENTRY_PRICE in mapping and ColumnRole.EXIT_PRICE not in mapping:
        result.file_warnings.append(ONE_PRICE_COLUMN_WARNING)

    result.rows = [
        _generic_row(number, parse_csv_line(line), mapping, ctx)
        for number, line in ctx.lines
    ]
    return result


def _generic_row(
    line_number: int,
    cols: list[str],
    mapping: ColumnMapping,
    ctx: ExtractContext,
) -> RowResult[NormalizedTrade]:
    ticker = (cell(cols, mapping, ColumnRole.TICKER) or "").upper()
    if not ticker:
        return RowResult.fail(line_number, "Missing ticker, skipping")

    quantity_str = cell(cols, mapping, ColumnRole.QUANTITY)
    quantity = parse_decimal(quantity_str)
    if quantity is None:
        return RowResult.fail(line_number, f"Invalid quantity '{quantity_str or ''}', skipping")

    if ColumnRole.ENTRY_PRICE not in mapping and ColumnRole.EXIT_PRICE not in mapping:
        return RowResult.fail(line_number, "Missing price data, skipping")

    entry_price = parse_decimal(cell(cols, mapping, ColumnRole.ENTRY_PRICE))
    exit_price = parse_decimal(cell(cols, mapping, ColumnRole.EXIT_PRICE))
    if ColumnRole.EXIT_PRICE not in mapping:
        exit_price = entry_price
    elif ColumnRole.ENTRY_PRICE not in mapping:
        entry_price = exit_price

    if not _positive(quantity) or not _positive(entry_price) or not _positive(exit_price):
        return RowResult.fail(line_number, "Quantity and prices must be positive, skipping")

    if has_timestamp(mapping):
        raw_time = timestamp_text(cols, mapping)
        timestamp = parse_timestamp(raw_time, ctx.default_date)
        if timestamp is None:
            return RowResult.fail(line_number, f"Unrecognized date '{raw_time or ''}', skipping")
    elif ctx.default_date is not None:
        timestamp = parse_timestamp(None, ctx.default_date)
    else:
        return RowResult.fail(line_number, "No timestamp column and no default date, skipping")

    direction = Direction.LONG
    if ColumnRole.DIRECTION in mapping:
        direction = parse_direction(cell(cols, mapping, ColumnRole.DIRECTION))

    commission = parse_decimal(cell(cols, mapping, ColumnRole.COMMISSION))
    commission = abs(commission) if commission is not None else ZERO

    notes = cell(cols, mapping, ColumnRole.NOTES) or ctx.notes

    if ColumnRole.REALIZED_PL in mapping:
        realized_pl = parse_decimal(cell(cols, mapping, ColumnRole.REALIZED_PL))
        if realized_pl is None:
            return RowResult.fail(line_number, "Invalid realized P&L, skipping")
        return RowResult.ok(NormalizedTrade(
            id=ctx.id_generator(),
            ticker=ticker,
            direction=direction,
            quantity=quantity,
            entry_price=entry_price,
            exit_price=exit_price,
            timestamp=timestamp,
            realized_pl=realized_pl,
            commission=commission,
            notes=notes,
        ))

    return RowResult.ok(NormalizedTrade.create(
        id=ctx.id_generator(),
        ticker=ticker,
        direction=direction,
        quantity=quantity,
        entry_price=entry_price,
        exit_price=exit_price,
        timestamp=timestamp,
        commission=commission,
        notes=notes,
    ))


def fold_rows(
    rows: list[RowResult[NormalizedTrade]],
) -> tuple[list[NormalizedTrade], list[RowError]]:
    """Split row results into trades and warnings; skips disappear."""
    trades = [r.value for r in rows if r.is_ok]
    warnings = [r.error for r in rows if r.error is not None]
    return trades, warnings

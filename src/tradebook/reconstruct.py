"""
Round-trip reconstruction from individual fills.

Fills for one symbol are replayed in time order through a running position
(PositionState). Every fill that reduces the position emits one closed
NormalizedTrade; fills that add to it only move the weighted average entry
price. Whatever is still open at the end produces no record.

The reconstructor assumes validated input (see validate_fills), performs no
I/O and raises nothing of its own.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Optional

from tradebook.models import (
    ZERO,
    Direction,
    IdGenerator,
    NormalizedTrade,
    PositionState,
    RawFill,
    generate_trade_id,
)


def aggregate_fills_by_symbol(fills: list[RawFill]) -> dict[str, list[RawFill]]:
    """
    Group fills by symbol, keeping first-seen symbol order.

    Args:
        fills: Fills for any number of symbols

    Returns:
        Dictionary mapping symbol to its fills in input order
    """
    by_symbol: dict[str, list[RawFill]] = defaultdict(list)
    for fill in fills:
        by_symbol[fill.symbol].append(fill)
    return dict(by_symbol)


def _open(state: PositionState, fill: RawFill, signed: Decimal) -> None:
    state.net_quantity = signed
    state.average_entry_price = fill.price
    state.opened_at = fill.timestamp


def _add(state: PositionState, fill: RawFill, signed: Decimal) -> None:
    held = abs(state.net_quantity)
    added = abs(signed)
    state.average_entry_price = (
        held * state.average_entry_price + added * fill.price
    ) / (held + added)
    state.net_quantity += signed


def _reduce(
    state: PositionState,
    fill: RawFill,
    signed: Decimal,
    id_generator: IdGenerator,
    notes: Optional[str],
) -> NormalizedTrade:
    """Close up to the whole position against one fill and return the trade."""
    closing_quantity = min(abs(state.net_quantity), abs(signed))

    trade = NormalizedTrade.create(
        id=id_generator(),
        ticker=fill.symbol,
        direction=state.direction,
        quantity=closing_quantity,
        entry_price=state.average_entry_price,
        exit_price=fill.price,
        timestamp=state.opened_at,
        commission=fill.commission,
        notes=notes,
    )

    remainder = abs(signed) - closing_quantity
    state.net_quantity += signed if remainder == ZERO else -state.net_quantity

    if remainder > ZERO:
        # Crossed through flat: the rest of the fill opens the other side
        new_signed = remainder if signed > ZERO else -remainder
        _open(state, fill, new_signed)
    elif state.is_flat:
        state.average_entry_price = ZERO
        state.opened_at = None

    return trade


def replay_fills(
    fills: list[RawFill],
    id_generator: Optional[IdGenerator] = None,
    notes: Optional[str] = None,
) -> tuple[list[NormalizedTrade], PositionState]:
    """
    Replay one symbol's fills through a position accumulator.

    Fills are stable-sorted by timestamp, so equal timestamps keep input
    order. A fill larger than the open position is split: the closing part
    emits a trade (carrying all of the fill's commission) and the remainder
    opens a new position at the same price and time.

    Args:
        fills: Validated fills for a single symbol, in any order
        id_generator: Trade ID generator (random UUID based by default)
        notes: Provenance note for created trades

    Returns:
        Tuple of (closed trades in emission order, final position state)
    """
    id_generator = id_generator or generate_trade_id
    state = PositionState()
    trades: list[NormalizedTrade] = []

    for fill in sorted(fills, key=lambda f: f.timestamp):
        signed = fill.signed_quantity
        if signed == ZERO:
            continue

        if state.is_flat:
            _open(state, fill, signed)
        elif (state.net_quantity > ZERO) == (signed > ZERO):
            _add(state, fill, signed)
        else:
            trades.append(_reduce(state, fill, signed, id_generator, notes))

    return trades, state


def reconstruct_symbol(
    fills: list[RawFill],
    id_generator: Optional[IdGenerator] = None,
    notes: Optional[str] = None,
) -> list[NormalizedTrade]:
    """
    Reconstruct closed round trips for one symbol.

    Open remainders at the end of the fill list produce no record.
    """
    trades, _ = replay_fills(fills, id_generator, notes)
    return trades


def reconstruct_round_trips(
    fills: list[RawFill],
    id_generator: Optional[IdGenerator] = None,
    notes: Optional[str] = None,
) -> list[NormalizedTrade]:
    """
    Reconstruct closed round trips for fills of any number of symbols.

    Args:
        fills: Validated fills, any symbols, any order
        id_generator: Trade ID generator shared across symbols
        notes: Provenance note for created trades

    Returns:
        Trades grouped by symbol (first-seen symbol order)
    """
    id_generator = id_generator or generate_trade_id
    trades: list[NormalizedTrade] = []
    for symbol_fills in aggregate_fills_by_symbol(fills).values():
        trades.extend(reconstruct_symbol(symbol_fills, id_generator, notes))
    return trades


def open_positions(fills: list[RawFill]) -> dict[str, PositionState]:
    """
    Positions still open after replaying all fills.

    Args:
        fills: Validated fills, any symbols

    Returns:
        Dictionary mapping symbol to its non-flat final state
    """
    result = {}
    for symbol, symbol_fills in aggregate_fills_by_symbol(fills).items():
        # IDs are irrelevant here: the trades are discarded
        _, state = replay_fills(symbol_fills, id_generator=lambda: "", notes=None)
        if not state.is_flat:
            result[symbol] = state
    return result


def validate_fills(fills: list[RawFill]) -> tuple[list[RawFill], list[str]]:
    """
    Split fills into ones safe to reconstruct and descriptions of the rest.

    A fill is rejected when its quantity or price is not a finite positive
    number, its commission is negative or not finite, or its symbol is empty.

    Args:
        fills: Fills from a parser or broker client

    Returns:
        Tuple of (valid fills, list of problem messages)
    """
    valid: list[RawFill] = []
    problems: list[str] = []

    for fill in fills:
        problem = _fill_problem(fill)
        if problem is None:
            valid.append(fill)
        else:
            problems.append(f"Fill {fill.broker_fill_id}: {problem}")

    return valid, problems


def _fill_problem(fill: RawFill) -> Optional[str]:
    if not fill.symbol:
        return "missing symbol"
    if not _finite_positive(fill.quantity):
        return f"quantity must be positive, got {fill.quantity}"
    if not _finite_positive(fill.price):
        return f"price must be positive, got {fill.price}"
    if not isinstance(fill.commission, Decimal) or not fill.commission.is_finite():
        return f"commission must be a finite number, got {fill.commission}"
    if fill.commission < ZERO:
        return f"commission cannot be negative, got {fill.commission}"
    return None


def _finite_positive(value: Decimal) -> bool:
    return isinstance(value, Decimal) and value.is_finite() and value > ZERO


def total_closed_quantity(trades: list[NormalizedTrade], direction: Optional[Direction] = None) -> Decimal:
    """Sum of closed quantity, optionally for one direction."""
    return sum(
        (t.quantity for t in trades if direction is None or t.direction == direction),
        ZERO,
    )

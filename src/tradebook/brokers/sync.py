"""
Broker sync: fetch fills from an API client and reconstruct closed trades.
"""

import logging
from typing import Optional

from tradebook.brokers.base import BrokerClient
from tradebook.models import CSVParseResult, IdGenerator, RawFill, generate_trade_id
from tradebook.reconstruct import open_positions, reconstruct_round_trips, validate_fills

logger = logging.getLogger(__name__)

NO_TRADES_ERROR = "No closed trades found in broker fills"


def trades_from_fills(
    fills: list[RawFill],
    source: str,
    id_generator: Optional[IdGenerator] = None,
    skipped: Optional[list[str]] = None,
) -> CSVParseResult:
    """
    Validate and reconstruct fills into an import result envelope.

    Invalid fills and still-open positions become warnings.

    Args:
        fills: Fills from any source, any symbols
        source: Name recorded as detected_broker and in trade notes
        id_generator: Trade ID generator (random UUID based by default)
        skipped: Records dropped before this point, reported first

    Returns:
        CSVParseResult with the closed trades
    """
    id_generator = id_generator or generate_trade_id

    valid, problems = validate_fills(fills)
    trades = reconstruct_round_trips(valid, id_generator, notes=f"Imported from {source}")

    warnings = list(skipped or []) + list(problems)
    for symbol, state in open_positions(valid).items():
        warnings.append(
            f"Open {state.direction.value} position in {symbol} "
            f"({abs(state.net_quantity)} @ {state.average_entry_price}) not imported"
        )

    errors = [] if trades else [NO_TRADES_ERROR]
    logger.debug("Reconstructed %d trades from %d fills (%s)", len(trades), len(fills), source)

    return CSVParseResult(
        success=bool(trades),
        trades=trades,
        errors=errors,
        warnings=warnings,
        detected_broker=source,
    )


def import_from_broker(
    client: BrokerClient,
    days: int = 7,
    id_generator: Optional[IdGenerator] = None,
) -> CSVParseResult:
    """
    Pull recent fills from a broker and turn them into closed trades.

    Orders the client could not convert are reported as warnings; the
    rest of the batch is still imported.

    Args:
        client: Configured broker client
        days: Look-back window in days
        id_generator: Trade ID generator

    Returns:
        CSVParseResult with detected_broker set to the client name

    Raises:
        BrokerError: If the broker request fails
    """
    fills = client.fetch_fills(days)
    logger.info("Fetched %d fills from %s", len(fills), client.name)
    return trades_from_fills(fills, client.name, id_generator, client.skipped_orders)

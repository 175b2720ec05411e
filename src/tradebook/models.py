"""
Core data models for the trade import core.

This module defines the fundamental data structures used throughout the
package, including raw broker fills, normalized round-trip trades, the
transient position accumulator and the parse result envelopes.
All monetary and share quantities use Decimal for precision.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar
import uuid


ZERO = Decimal("0")

AUTO = "auto"


class Side(Enum):
    """Execution side of a single fill."""
    BUY = "buy"
    SELL = "sell"


class Direction(Enum):
    """Direction of a closed round trip."""
    LONG = "long"
    SHORT = "short"


class BrokerDialect(Enum):
    """CSV layouts the parser understands."""
    TDAMERITRADE = "tdameritrade"
    INTERACTIVEBROKERS = "interactivebrokers"
    ROBINHOOD = "robinhood"
    WEBULL = "webull"
    GENERIC = "generic"


class ActionType(Enum):
    """Types of logged actions for the import log."""
    CSV_PARSED = "CSV_PARSED"
    FILLS_RECONSTRUCTED = "FILLS_RECONSTRUCTED"
    BROKER_SYNCED = "BROKER_SYNCED"
    CONFIG_LOADED = "CONFIG_LOADED"
    TRADES_EXPORTED = "TRADES_EXPORTED"


IdGenerator = Callable[[], str]


def generate_trade_id() -> str:
    """Default trade ID generator (random, collision free in practice)."""
    return f"trade_{uuid.uuid4().hex}"


class SequentialIdGenerator:
    """
    Deterministic ID generator.

    Produces "<prefix>-0001", "<prefix>-0002", ... Useful for tests and for
    exports that must be reproducible run to run.
    """

    def __init__(self, prefix: str = "trade", start: int = 1):
        self.prefix = prefix
        self._next = start

    def __call__(self) -> str:
        value = f"{self.prefix}-{self._next:04d}"
        self._next += 1
        return value


@dataclass(frozen=True)
class RawFill:
    """
    One broker-reported execution.

    Attributes:
        broker_fill_id: Identifier unique per source record
        symbol: Uppercase ticker symbol
        side: BUY or SELL
        quantity: Positive number of shares/contracts/units
        price: Positive execution price
        timestamp: Execution time (naive, UTC for API sources)
        commission: Non-negative commission charged on this fill
    """
    broker_fill_id: str
    symbol: str
    side: Side
    quantity: Decimal
    price: Decimal
    timestamp: datetime
    commission: Decimal = ZERO

    @property
    def signed_quantity(self) -> Decimal:
        """Quantity with sign: positive for buys, negative for sells."""
        return self.quantity if self.side == Side.BUY else -self.quantity


@dataclass(frozen=True)
class NormalizedTrade:
    """
    One closed round trip, the output contract of the import core.

    Attributes:
        id: Generated unique identifier
        ticker: Uppercase ticker symbol
        direction: LONG or SHORT
        quantity: Size of the closing event
        entry_price: (Average) price the position was opened at
        exit_price: Price the position was closed at
        timestamp: Opening time of the position, not the exit time
        realized_pl: Direction-adjusted price delta * quantity - commission
        commission: Commission already subtracted from realized_pl
        notes: Optional import provenance
    """
    id: str
    ticker: str
    direction: Direction
    quantity: Decimal
    entry_price: Decimal
    exit_price: Decimal
    timestamp: datetime
    realized_pl: Decimal
    commission: Decimal = ZERO
    notes: Optional[str] = None

    @classmethod
    def create(
        cls,
        id: str,
        ticker: str,
        direction: Direction,
        quantity: Decimal,
        entry_price: Decimal,
        exit_price: Decimal,
        timestamp: datetime,
        commission: Decimal = ZERO,
        notes: Optional[str] = None,
    ) -> "NormalizedTrade":
        """Factory method that derives realized_pl from the prices."""
        gross = price_delta(direction, entry_price, exit_price) * quantity
        return cls(
            id=id,
            ticker=ticker,
            direction=direction,
            quantity=quantity,
            entry_price=entry_price,
            exit_price=exit_price,
            timestamp=timestamp,
            realized_pl=gross - commission,
            commission=commission,
            notes=notes,
        )

    @property
    def gross_pl(self) -> Decimal:
        """P&L before commission."""
        return price_delta(self.direction, self.entry_price, self.exit_price) * self.quantity

    @property
    def is_winner(self) -> bool:
        return self.realized_pl > ZERO


def price_delta(direction: Direction, entry_price: Decimal, exit_price: Decimal) -> Decimal:
    """Per-unit profit for a position in the given direction."""
    if direction == Direction.LONG:
        return exit_price - entry_price
    return entry_price - exit_price


@dataclass
class PositionState:
    """
    Running position for one symbol during reconstruction.

    Attributes:
        net_quantity: Signed size; positive long, negative short, zero flat
        average_entry_price: Volume-weighted entry price while not flat
        opened_at: Time of the fill that left flat; None while flat
    """
    net_quantity: Decimal = ZERO
    average_entry_price: Decimal = ZERO
    opened_at: Optional[datetime] = None

    @property
    def is_flat(self) -> bool:
        return self.net_quantity == ZERO

    @property
    def direction(self) -> Optional[Direction]:
        if self.net_quantity > ZERO:
            return Direction.LONG
        if self.net_quantity < ZERO:
            return Direction.SHORT
        return None


@dataclass(frozen=True)
class RowError:
    """A recoverable problem with one input row."""
    line_number: Optional[int]
    message: str

    def __str__(self) -> str:
        if self.line_number is None:
            return self.message
        return f"Line {self.line_number}: {self.message}"


T = TypeVar("T")


@dataclass(frozen=True)
class RowResult(Generic[T]):
    """
    Outcome of extracting one row.

    Exactly one of three shapes: a value, an error, or a silent skip
    (rows that are not trade rows at all, such as dividends).
    """
    value: Optional[T] = None
    error: Optional[RowError] = None

    @classmethod
    def ok(cls, value: T) -> "RowResult[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, line_number: Optional[int], message: str) -> "RowResult[T]":
        return cls(error=RowError(line_number, message))

    @classmethod
    def skip(cls) -> "RowResult[T]":
        return cls()

    @property
    def is_ok(self) -> bool:
        return self.value is not None

    @property
    def is_skip(self) -> bool:
        return self.value is None and self.error is None


@dataclass
class CSVParseResult:
    """
    Envelope returned by the CSV parser.

    Attributes:
        success: True iff at least one trade was produced
        trades: Normalized closed trades
        errors: Fatal problems (missing columns, empty file, ...)
        warnings: Per-row problems; those rows were skipped
        detected_broker: Dialect (or broker client name) actually used
    """
    success: bool = False
    trades: list[NormalizedTrade] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    detected_broker: Optional[str] = None

    @property
    def trades_imported(self) -> int:
        return len(self.trades)

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation (Decimals as strings)."""
        return {
            "success": self.success,
            "detected_broker": self.detected_broker,
            "trades_imported": self.trades_imported,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "trades": [
                {
                    "id": t.id,
                    "ticker": t.ticker,
                    "direction": t.direction.value,
                    "quantity": str(t.quantity),
                    "entry_price": str(t.entry_price),
                    "exit_price": str(t.exit_price),
                    "timestamp": t.timestamp.isoformat(),
                    "realized_pl": str(t.realized_pl),
                    "commission": str(t.commission),
                    "notes": t.notes,
                }
                for t in self.trades
            ],
        }


@dataclass
class FillParseResult:
    """Envelope returned when parsing a fill-level CSV."""
    success: bool = False
    fills: list[RawFill] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class ImportConfig:
    """
    Import configuration loaded from YAML.

    Attributes:
        default_broker: Dialect tag or "auto"
        default_date: Fallback date for rows with missing/ambiguous dates
        output_dir: Directory for exported trades and the import log
        log_file: File name of the import log inside output_dir
        notes_prefix: Prefix for provenance notes on imported trades
    """
    default_broker: str = AUTO
    default_date: Optional[date] = None
    output_dir: str = "output"
    log_file: str = "import_log.jsonl"
    notes_prefix: str = "Imported from"


@dataclass
class ImportLogEntry:
    """
    Entry for the append-only import log.

    Attributes:
        timestamp: When the action occurred
        action_type: Type of action
        source: File path or broker name involved (if applicable)
        details: JSON-serializable details dictionary
    """
    timestamp: datetime
    action_type: ActionType
    source: Optional[str]
    details: dict

    @classmethod
    def create(
        cls,
        action_type: ActionType,
        source: Optional[str],
        details: dict,
    ) -> "ImportLogEntry":
        """Factory method with auto-generated timestamp."""
        return cls(
            timestamp=datetime.now(),
            action_type=action_type,
            source=source,
            details=details,
        )

"""
Column schemas for broker CSV dialects.

Each dialect describes which header names play which role (timestamp,
ticker, quantity, ...) and which roles are required for a parse to start.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ColumnRole(Enum):
    """Semantic role a CSV column can play."""
    TIMESTAMP = "timestamp"
    DATE = "date"
    TIME = "time"
    TICKER = "ticker"
    DIRECTION = "direction"
    QUANTITY = "quantity"
    PRICE = "price"
    ENTRY_PRICE = "entry price"
    EXIT_PRICE = "exit price"
    REALIZED_PL = "realized P&L"
    COMMISSION = "commission"
    NOTES = "notes"
    DESCRIPTION = "description"
    STATUS = "status"
    FILL_ID = "fill id"


ColumnMapping = dict[ColumnRole, int]


@dataclass
class ColumnRule:
    """
    How to find one role's column in a header row.

    Exact names are tried first, then substring keywords in priority order.
    A header already claimed by an earlier rule is never reused, so rules
    for specific roles (exit price) must come before generic ones (price).
    """
    role: ColumnRole
    keywords: tuple[str, ...] = ()
    exact: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    required: bool = False

    def find(self, headers: list[str], claimed: set[int]) -> Optional[int]:
        """Return the index of the first matching, unclaimed header."""
        candidates = [
            (index, header)
            for index, header in enumerate(headers)
            if index not in claimed
            and not any(word in header for word in self.exclude)
        ]

        for name in self.exact:
            for index, header in candidates:
                if header == name:
                    return index

        for keyword in self.keywords:
            for index, header in candidates:
                if keyword in header:
                    return index

        return None


@dataclass
class DialectSchema:
    """Column schema for one CSV dialect."""
    name: str
    rules: list[ColumnRule]
    description: str = ""

    @property
    def required_roles(self) -> list[ColumnRole]:
        """Get list of required roles."""
        return [r.role for r in self.rules if r.required]

    def map_columns(self, headers: list[str]) -> ColumnMapping:
        """
        Map roles to column indices.

        Args:
            headers: Raw header names (case and padding are normalised here)

        Returns:
            Dictionary of role -> column index for every role found
        """
        normalized = [h.strip().lower() for h in headers]
        mapping: ColumnMapping = {}
        claimed: set[int] = set()

        for rule in self.rules:
            index = rule.find(normalized, claimed)
            if index is not None:
                mapping[rule.role] = index
                claimed.add(index)

        return mapping

    def validate_columns(self, mapping: ColumnMapping) -> tuple[bool, list[str]]:
        """
        Validate that a mapping covers the required roles.

        Args:
            mapping: Result of map_columns

        Returns:
            Tuple of (is_valid, list of missing role names)
        """
        missing = [role.value for role in self.required_roles if role not in mapping]
        return len(missing) == 0, missing


def cell(cols: list[str], mapping: ColumnMapping, role: ColumnRole) -> Optional[str]:
    """Value of the role's column in a row, or None if unmapped/absent."""
    index = mapping.get(role)
    if index is None or index >= len(cols):
        return None
    return cols[index].strip()


TIMESTAMP_ROLES = (ColumnRole.TIMESTAMP, ColumnRole.DATE, ColumnRole.TIME)


def has_timestamp(mapping: ColumnMapping) -> bool:
    """True if any column carries the row's date or time."""
    return any(role in mapping for role in TIMESTAMP_ROLES)


def timestamp_text(cols: list[str], mapping: ColumnMapping) -> Optional[str]:
    """
    Timestamp text of a row.

    A combined timestamp column wins; otherwise separate date and time
    columns are joined ("2024-01-02" + "09:31").
    """
    if ColumnRole.TIMESTAMP in mapping:
        return cell(cols, mapping, ColumnRole.TIMESTAMP)

    parts = [cell(cols, mapping, role) for role in (ColumnRole.DATE, ColumnRole.TIME)]
    joined = " ".join(p for p in parts if p)
    return joined or None


# Bare "Date" / "Time" headers. These rules run before the TIMESTAMP rule so
# a split date and time is never read as a time-only timestamp.
SPLIT_DATE_RULE = ColumnRule(ColumnRole.DATE, exact=("date", "trade date"))
SPLIT_TIME_RULE = ColumnRule(ColumnRole.TIME, exact=("time", "trade time"))


# TD Ameritrade account statement:
# DATE,TIME,TYPE,REF #,DESCRIPTION,MISC FEES,COMMISSIONS & FEES,AMOUNT,BALANCE
TD_STATEMENT_SCHEMA = DialectSchema(
    name="tdameritrade_statement",
    description="TD Ameritrade account statement (trade details in DESCRIPTION)",
    rules=[
        ColumnRule(ColumnRole.DATE, exact=("date",), required=True),
        ColumnRule(ColumnRole.TIME, exact=("time",)),
        ColumnRule(ColumnRole.DESCRIPTION, exact=("description",), required=True),
        ColumnRule(ColumnRole.COMMISSION, keywords=("commission",)),
    ],
)

# thinkorswim trade history:
# Exec Time,Spread,Side,Qty,Pos Effect,Symbol,Exp,Strike,Type,Price,Net Price,Order Type
TD_EXECUTION_SCHEMA = DialectSchema(
    name="tdameritrade_executions",
    description="TD Ameritrade / thinkorswim execution log",
    rules=[
        ColumnRule(ColumnRole.TIMESTAMP, keywords=("exec time", "date", "time"), required=True),
        ColumnRule(ColumnRole.TICKER, keywords=("symbol", "ticker"), required=True),
        ColumnRule(ColumnRole.DIRECTION, keywords=("side", "buy/sell", "action")),
        ColumnRule(ColumnRole.QUANTITY, keywords=("qty", "quantity"), required=True),
        ColumnRule(ColumnRole.PRICE, exact=("price",), keywords=("net price", "price"), required=True),
        ColumnRule(ColumnRole.COMMISSION, keywords=("commission", "fees")),
    ],
)

# Interactive Brokers activity statement / flex query:
# Trades,Header,DataDiscriminator,Asset Category,Currency,Symbol,Date/Time,Quantity,
# T. Price,C. Price,Proceeds,Comm/Fee,Basis,Realized P/L,MTM P/L,Code
IB_SCHEMA = DialectSchema(
    name="interactivebrokers",
    description="Interactive Brokers closed trades with realized P&L",
    rules=[
        ColumnRule(
            ColumnRole.TIMESTAMP,
            keywords=("date/time", "datetime", "tradedate", "trade date", "date", "time"),
            required=True,
        ),
        ColumnRule(ColumnRole.TICKER, keywords=("symbol",), required=True),
        ColumnRule(ColumnRole.QUANTITY, keywords=("quantity",), exact=("qty",), required=True),
        ColumnRule(
            ColumnRole.PRICE,
            keywords=("t. price", "tradeprice", "trade price", "price"),
            exclude=("c. price", "close price", "closeprice"),
            required=True,
        ),
        ColumnRule(
            ColumnRole.REALIZED_PL,
            keywords=("realized p/l", "realized p&l", "realized pnl", "fifopnlrealized", "realized"),
            required=True,
        ),
        ColumnRule(ColumnRole.COMMISSION, keywords=("comm/fee", "ibcommission", "commission")),
    ],
)

# Robinhood account activity:
# Activity Date,Process Date,Settle Date,Instrument,Description,Trans Code,Quantity,Price,Amount
ROBINHOOD_SCHEMA = DialectSchema(
    name="robinhood",
    description="Robinhood account activity",
    rules=[
        ColumnRule(ColumnRole.TIMESTAMP, keywords=("activity date", "date"), required=True),
        ColumnRule(ColumnRole.TICKER, keywords=("instrument", "symbol", "ticker"), required=True),
        ColumnRule(ColumnRole.DIRECTION, keywords=("trans code", "type", "side"), required=True),
        ColumnRule(ColumnRole.QUANTITY, keywords=("quantity",), exact=("qty",), required=True),
        ColumnRule(ColumnRole.PRICE, keywords=("price",), required=True),
    ],
)

# WeBull order history:
# Name,Symbol,Side,Status,Filled,Total Qty,Price,Avg Price,Time-in-Force,Placed Time,Filled Time
WEBULL_SCHEMA = DialectSchema(
    name="webull",
    description="WeBull order history",
    rules=[
        ColumnRule(
            ColumnRole.TIMESTAMP,
            keywords=("filled time", "order time", "placed time", "time", "date"),
            required=True,
        ),
        ColumnRule(ColumnRole.TICKER, keywords=("symbol", "ticker"), required=True),
        ColumnRule(ColumnRole.DIRECTION, keywords=("side", "direction", "action"), required=True),
        ColumnRule(ColumnRole.STATUS, keywords=("status",)),
        ColumnRule(
            ColumnRole.QUANTITY,
            exact=("filled",),
            keywords=("filled qty", "quantity", "total qty", "qty"),
            required=True,
        ),
        ColumnRule(ColumnRole.PRICE, keywords=("avg price", "price"), required=True),
        ColumnRule(ColumnRole.COMMISSION, keywords=("commission", "fee")),
    ],
)

# Any journal-style export: one closed trade per row.
GENERIC_SCHEMA = DialectSchema(
    name="generic",
    description="Flexible journal CSV (one closed trade per row)",
    rules=[
        SPLIT_DATE_RULE,
        SPLIT_TIME_RULE,
        ColumnRule(
            ColumnRole.TIMESTAMP,
            exact=("timestamp",),
            keywords=("exec time", "date/time", "time", "date", "exec"),
        ),
        ColumnRule(
            ColumnRole.TICKER,
            exact=("stock",),
            keywords=("ticker", "symbol", "instrument"),
            required=True,
        ),
        ColumnRule(
            ColumnRole.DIRECTION,
            exact=("buy/sell",),
            keywords=("direction", "side", "action", "type"),
        ),
        ColumnRule(
            ColumnRole.QUANTITY,
            keywords=("quantity", "qty", "shares", "size"),
            required=True,
        ),
        ColumnRule(
            ColumnRole.EXIT_PRICE,
            keywords=("exit", "sell price", "close price"),
            exclude=("time", "date"),
        ),
        ColumnRule(
            ColumnRole.ENTRY_PRICE,
            keywords=("entry", "buy price", "open price", "price"),
            exclude=("time", "date"),
        ),
        ColumnRule(ColumnRole.REALIZED_PL, keywords=("p&l", "p/l", "pnl", "profit", "realized")),
        ColumnRule(ColumnRole.COMMISSION, keywords=("commission", "fees", "fee")),
        ColumnRule(ColumnRole.NOTES, keywords=("notes", "comment", "description")),
    ],
)

# Fill-level CSV for round-trip reconstruction.
FILLS_SCHEMA = DialectSchema(
    name="fills",
    description="One execution per row (time, symbol, side, quantity, price)",
    rules=[
        ColumnRule(
            ColumnRole.FILL_ID,
            exact=("id",),
            keywords=("fill id", "execution id", "exec id", "trade id", "order id"),
        ),
        SPLIT_DATE_RULE,
        SPLIT_TIME_RULE,
        ColumnRule(
            ColumnRole.TIMESTAMP,
            exact=("timestamp",),
            keywords=("exec time", "filled time", "date/time", "time", "date"),
        ),
        ColumnRule(ColumnRole.TICKER, keywords=("symbol", "ticker", "instrument"), required=True),
        ColumnRule(
            ColumnRole.DIRECTION,
            keywords=("side", "action", "buy/sell", "direction", "type"),
            required=True,
        ),
        ColumnRule(ColumnRole.QUANTITY, keywords=("quantity", "qty", "shares", "size"), required=True),
        ColumnRule(ColumnRole.PRICE, keywords=("price",), required=True),
        ColumnRule(ColumnRole.COMMISSION, keywords=("commission", "fees", "fee")),
    ],
)

"""
Pytest fixtures for the trade import core tests.

Provides common test data and utilities used across test modules.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from tradebook.brokers import BrokerClient
from tradebook.models import (
    Direction,
    NormalizedTrade,
    RawFill,
    SequentialIdGenerator,
    Side,
)


def make_fill(
    side: Side,
    quantity: str,
    price: str,
    when: str,
    symbol: str = "AAPL",
    commission: str = "0",
    fill_id: str = "",
) -> RawFill:
    """Build a RawFill from short string arguments ("2024-01-02 09:30")."""
    return RawFill(
        broker_fill_id=fill_id or f"{symbol}-{when}-{side.value}",
        symbol=symbol,
        side=side,
        quantity=Decimal(quantity),
        price=Decimal(price),
        timestamp=datetime.strptime(when, "%Y-%m-%d %H:%M"),
        commission=Decimal(commission),
    )


@pytest.fixture
def id_generator() -> SequentialIdGenerator:
    """Deterministic trade IDs: trade-0001, trade-0002, ..."""
    return SequentialIdGenerator()


@pytest.fixture
def round_trip_fills() -> list[RawFill]:
    """BUY 100 AAPL @150 then SELL 100 @152 (one winning long)."""
    return [
        make_fill(Side.BUY, "100", "150", "2024-01-02 09:30"),
        make_fill(Side.SELL, "100", "152", "2024-01-02 10:00"),
    ]


@pytest.fixture
def partial_close_fills() -> list[RawFill]:
    """BUY 100 @150, SELL 60 @152, SELL 40 @151 (two closes)."""
    return [
        make_fill(Side.BUY, "100", "150", "2024-01-02 09:30"),
        make_fill(Side.SELL, "60", "152", "2024-01-02 10:00"),
        make_fill(Side.SELL, "40", "151", "2024-01-02 10:30"),
    ]


@pytest.fixture
def sample_trades() -> list[NormalizedTrade]:
    """Closed trades over two days and three tickers."""
    return [
        NormalizedTrade.create(
            id="t1", ticker="AAPL", direction=Direction.LONG, quantity=Decimal("100"),
            entry_price=Decimal("150"), exit_price=Decimal("152.50"),
            timestamp=datetime(2024, 1, 2, 9, 31),
        ),
        NormalizedTrade.create(
            id="t2", ticker="TSLA", direction=Direction.SHORT, quantity=Decimal("10"),
            entry_price=Decimal("250"), exit_price=Decimal("255"),
            timestamp=datetime(2024, 1, 2, 10, 15), commission=Decimal("1"),
        ),
        NormalizedTrade.create(
            id="t3", ticker="AAPL", direction=Direction.LONG, quantity=Decimal("50"),
            entry_price=Decimal("151"), exit_price=Decimal("150"),
            timestamp=datetime(2024, 1, 2, 10, 45),
        ),
        NormalizedTrade.create(
            id="t4", ticker="MSFT", direction=Direction.LONG, quantity=Decimal("20"),
            entry_price=Decimal("370"), exit_price=Decimal("375"),
            timestamp=datetime(2024, 1, 3, 14, 0), notes="breakout",
        ),
    ]


@pytest.fixture
def generic_csv() -> str:
    """Journal-style CSV with entry, exit and explicit P&L."""
    return (
        "Time,Ticker,Direction,Quantity,Entry Price,Exit Price,Realized P&L\n"
        "2024-01-02 09:31,AAPL,long,100,150.00,152.50,250.00\n"
    )


@pytest.fixture
def td_statement_csv() -> str:
    """TD Ameritrade account statement with a buy, a sell and a dividend."""
    return (
        "DATE,TIME,TYPE,REF #,DESCRIPTION,MISC FEES,COMMISSIONS & FEES,AMOUNT,BALANCE\n"
        "01/02/2024,09:31:00,TRD,1001,BOT +100 AAPL @150.25,,0.00,-15025.00,84975.00\n"
        "01/02/2024,,DIV,1002,ORDINARY DIVIDEND (MSFT),,,12.00,84987.00\n"
        "01/02/2024,10:05:00,TRD,1003,SLD -100 AAPL @152.75,,0.00,15275.00,100262.00\n"
    )


@pytest.fixture
def thinkorswim_csv() -> str:
    """thinkorswim execution log (short round trip)."""
    return (
        "Exec Time,Spread,Side,Qty,Pos Effect,Symbol,Exp,Strike,Type,Price,Net Price,Order Type\n"
        "1/2/24 09:35:00,STOCK,SELL,-50,TO OPEN,TSLA,,,STOCK,250.00,250.00,LMT\n"
        "1/2/24 09:50:00,STOCK,BUY,+50,TO CLOSE,TSLA,,,STOCK,245.00,245.00,MKT\n"
    )


@pytest.fixture
def ib_csv() -> str:
    """Interactive Brokers trades section with a win, a loss and a total row."""
    return (
        "Trades,Header,DataDiscriminator,Asset Category,Currency,Symbol,Date/Time,"
        "Quantity,T. Price,C. Price,Proceeds,Comm/Fee,Basis,Realized P/L,MTM P/L,Code\n"
        'Trades,Data,Order,Stocks,USD,AAPL,"2024-01-02, 09:31:00",100,150,151,'
        "-15000,-1,15001,200,100,O\n"
        'Trades,Data,Order,Stocks,USD,MSFT,"2024-01-02, 11:00:00",10,370,369,'
        "-3700,-1,3701,-50,-10,C\n"
        "Trades,SubTotal,,Stocks,USD,,,,,,,-2,,150,,\n"
    )


@pytest.fixture
def robinhood_csv() -> str:
    """Robinhood account activity with a dividend row."""
    return (
        "Activity Date,Process Date,Settle Date,Instrument,Description,Trans Code,"
        "Quantity,Price,Amount\n"
        "1/2/2024,1/2/2024,1/4/2024,NVDA,NVIDIA,Buy,10,$480.00,($4800.00)\n"
        "1/2/2024,1/2/2024,1/4/2024,MSFT,Cash Div,CDIV,,,$7.50\n"
        "1/3/2024,1/3/2024,1/5/2024,NVDA,NVIDIA,Sell,10,$490.00,$4900.00\n"
    )


@pytest.fixture
def webull_csv() -> str:
    """WeBull order history with a cancelled order."""
    return (
        "Name,Symbol,Side,Status,Filled,Total Qty,Price,Avg Price,Time-in-Force,"
        "Placed Time,Filled Time\n"
        "AMD,AMD,Buy,Filled,20,20,140.00,140.00,DAY,01/02/2024 09:30:00 EST,"
        "01/02/2024 09:30:01 EST\n"
        "AMD,AMD,Sell,Cancelled,0,20,150.00,,DAY,01/02/2024 09:40:00 EST,\n"
        "AMD,AMD,Sell,Filled,20,20,142.50,142.50,DAY,01/02/2024 10:00:00 EST,"
        "01/02/2024 10:00:02 EST\n"
    )


@pytest.fixture
def fills_csv() -> str:
    """Fill-level CSV for reconstruction."""
    return (
        "Time,Symbol,Side,Quantity,Price,Commission\n"
        "2024-01-02 09:30:00,AAPL,BUY,100,10.00,1.00\n"
        "2024-01-02 09:45:00,AAPL,BUY,50,13.00,1.00\n"
        "2024-01-02 10:00:00,AAPL,SELL,150,12.00,1.00\n"
        "2024-01-02 10:05:00,MSFT,BUY,10,370.00,0\n"
    )


class FakeBroker(BrokerClient):
    """Broker client returning canned fills."""

    def __init__(self, fills: list[RawFill]):
        super().__init__()
        self._fills = fills

    @property
    def name(self) -> str:
        return "fake"

    def test_connection(self) -> tuple[bool, str]:
        return True, "ok"

    def fetch_fills(self, days: int = 7) -> list[RawFill]:
        return list(self._fills)

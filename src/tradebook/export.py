"""
Trade export for the trade import core.

Closed trades are written as a journal-style CSV whose header is
understood by the generic dialect, so an export can be re-imported (or
merged into another journal) without a custom mapping.
"""

from pathlib import Path
from typing import Optional

import pandas as pd

from tradebook.models import BrokerDialect, IdGenerator, NormalizedTrade
from tradebook.parsing.parser import CSVImportError, parse_csv_file

EXPORT_COLUMNS = [
    "Time",
    "Ticker",
    "Direction",
    "Quantity",
    "Entry Price",
    "Exit Price",
    "Realized P&L",
    "Commission",
    "Notes",
]

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class ExportError(Exception):
    """Raised when trades cannot be written or read back."""
    pass


def trades_to_dataframe(trades: list[NormalizedTrade]) -> pd.DataFrame:
    """
    Convert trades to a DataFrame for analysis.

    Money and quantity columns are floats; use save_trades for a lossless
    file.

    Args:
        trades: Closed trades

    Returns:
        DataFrame with one row per trade
    """
    records = []
    for t in trades:
        records.append({
            "id": t.id,
            "timestamp": t.timestamp,
            "ticker": t.ticker,
            "direction": t.direction.value,
            "quantity": float(t.quantity),
            "entry_price": float(t.entry_price),
            "exit_price": float(t.exit_price),
            "realized_pl": float(t.realized_pl),
            "commission": float(t.commission),
            "notes": t.notes,
        })

    columns = [
        "id", "timestamp", "ticker", "direction", "quantity",
        "entry_price", "exit_price", "realized_pl", "commission", "notes",
    ]
    return pd.DataFrame(records, columns=columns)


def save_trades(
    trades: list[NormalizedTrade],
    output_path: str | Path,
) -> Path:
    """
    Save trades to a CSV file.

    Decimal values are written as their exact string form.

    Args:
        trades: Closed trades to save
        output_path: Path for output CSV file

    Returns:
        Path to the saved file

    Raises:
        ExportError: If the file cannot be written
    """
    output_path = Path(output_path)

    records = []
    for t in trades:
        records.append({
            "Time": t.timestamp.strftime(TIMESTAMP_FORMAT),
            "Ticker": t.ticker,
            "Direction": t.direction.value,
            "Quantity": str(t.quantity),
            "Entry Price": str(t.entry_price),
            "Exit Price": str(t.exit_price),
            "Realized P&L": str(t.realized_pl),
            "Commission": str(t.commission),
            "Notes": t.notes or "",
        })

    df = pd.DataFrame(records, columns=EXPORT_COLUMNS)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(output_path, index=False)
    except OSError as e:
        raise ExportError(f"Failed to write trades to {output_path}: {e}")

    return output_path


def load_trades(
    file_path: str | Path,
    id_generator: Optional[IdGenerator] = None,
) -> list[NormalizedTrade]:
    """
    Load trades previously written by save_trades.

    Trade IDs are not stored in the file; new IDs are generated.

    Args:
        file_path: Path to an exported CSV file
        id_generator: Trade ID generator

    Returns:
        List of NormalizedTrade objects

    Raises:
        ExportError: If the file is missing or holds no valid trades
    """
    try:
        result = parse_csv_file(file_path, BrokerDialect.GENERIC, id_generator=id_generator)
    except CSVImportError as e:
        raise ExportError(str(e))

    if not result.success:
        raise ExportError(f"Could not load trades from {file_path}: {'; '.join(result.errors)}")

    return result.trades

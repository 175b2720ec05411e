"""
Append-only import logging for the trade import core.

Every import (CSV parse, fill reconstruction, broker sync, export) is
recorded with a timestamp and a summary of its outcome so a journal's
contents can always be traced back to the files and syncs that produced it.
"""

import json
from datetime import datetime, date
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from tradebook.models import (
    ZERO,
    ActionType,
    CSVParseResult,
    ImportConfig,
    ImportLogEntry,
    NormalizedTrade,
    RawFill,
)

# Warnings beyond this many are counted but not stored
MAX_LOGGED_WARNINGS = 20


class ImportLogger:
    """
    Append-only import logger.

    Writes all imports to a JSONL file for audit purposes.
    Each line is a complete JSON object representing one action.
    """

    def __init__(self, log_path: str | Path):
        """
        Initialize the import logger.

        Args:
            log_path: Path to the log file (will be created if not exists)
        """
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, entry: ImportLogEntry) -> None:
        """
        Write an import log entry.

        Args:
            entry: ImportLogEntry to write
        """
        record = {
            "timestamp": entry.timestamp.isoformat(),
            "action_type": entry.action_type.value,
            "source": entry.source,
            "details": entry.details,
        }

        with open(self.log_path, "a") as f:
            f.write(json.dumps(record, cls=DecimalEncoder) + "\n")

    def log_csv_parsed(
        self,
        source: str,
        result: CSVParseResult,
        requested_broker: str,
    ) -> None:
        """
        Log a CSV import.

        Args:
            source: Path of the parsed file
            result: Parse result envelope
            requested_broker: Dialect the caller asked for ("auto" when detected)
        """
        details = {
            "requested_broker": requested_broker,
            "detected_broker": result.detected_broker,
            "success": result.success,
            "trades_imported": result.trades_imported,
            "total_realized_pl": _total_pl(result.trades),
            "errors": result.errors,
            "warning_count": len(result.warnings),
            "warnings": result.warnings[:MAX_LOGGED_WARNINGS],
        }

        entry = ImportLogEntry.create(
            action_type=ActionType.CSV_PARSED,
            source=source,
            details=details,
        )
        self.log(entry)

    def log_fills_reconstructed(
        self,
        source: str,
        fills: list[RawFill],
        trades: list[NormalizedTrade],
        open_symbols: list[str],
    ) -> None:
        """
        Log round-trip reconstruction.

        Args:
            source: File path or broker name the fills came from
            fills: Fills that were replayed
            trades: Closed trades produced
            open_symbols: Symbols left with an open position
        """
        details = {
            "fill_count": len(fills),
            "symbols": sorted(set(f.symbol for f in fills))[:10],  # First 10
            "trade_count": len(trades),
            "total_realized_pl": _total_pl(trades),
            "total_commission": sum((f.commission for f in fills), ZERO),
            "open_symbols": open_symbols,
        }

        entry = ImportLogEntry.create(
            action_type=ActionType.FILLS_RECONSTRUCTED,
            source=source,
            details=details,
        )
        self.log(entry)

    def log_broker_synced(
        self,
        broker: str,
        days: int,
        result: CSVParseResult,
    ) -> None:
        """
        Log a broker API sync.

        Args:
            broker: Broker client name
            days: Look-back window requested
            result: Import result envelope
        """
        details = {
            "days": days,
            "success": result.success,
            "trades_imported": result.trades_imported,
            "total_realized_pl": _total_pl(result.trades),
            "errors": result.errors,
            "warning_count": len(result.warnings),
        }

        entry = ImportLogEntry.create(
            action_type=ActionType.BROKER_SYNCED,
            source=broker,
            details=details,
        )
        self.log(entry)

    def log_config_loaded(
        self,
        config: ImportConfig,
        config_path: str,
    ) -> None:
        """
        Log configuration loading.

        Args:
            config: Loaded configuration
            config_path: Path to configuration file
        """
        details = {
            "config_path": config_path,
            "default_broker": config.default_broker,
            "default_date": config.default_date,
            "output_dir": config.output_dir,
        }

        entry = ImportLogEntry.create(
            action_type=ActionType.CONFIG_LOADED,
            source=config_path,
            details=details,
        )
        self.log(entry)

    def log_trades_exported(
        self,
        output_path: str,
        trades: list[NormalizedTrade],
    ) -> None:
        """
        Log a trade export.

        Args:
            output_path: File the trades were written to
            trades: Exported trades
        """
        details = {
            "trade_count": len(trades),
            "total_realized_pl": _total_pl(trades),
        }

        entry = ImportLogEntry.create(
            action_type=ActionType.TRADES_EXPORTED,
            source=output_path,
            details=details,
        )
        self.log(entry)

    def read_log(self) -> list[ImportLogEntry]:
        """
        Read all entries from the log file.

        Returns:
            List of ImportLogEntry objects
        """
        if not self.log_path.exists():
            return []

        entries = []
        with open(self.log_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                record = json.loads(line)
                entries.append(
                    ImportLogEntry(
                        timestamp=datetime.fromisoformat(record["timestamp"]),
                        action_type=ActionType(record["action_type"]),
                        source=record.get("source"),
                        details=record.get("details", {}),
                    )
                )

        return entries

    def filter_by_source(self, source: str) -> list[ImportLogEntry]:
        """Get log entries for one file path or broker."""
        return [e for e in self.read_log() if e.source == source]

    def filter_by_action_type(
        self,
        action_type: ActionType,
    ) -> list[ImportLogEntry]:
        """
        Get log entries of a specific action type.

        Args:
            action_type: Action type to filter by

        Returns:
            Filtered list of entries
        """
        return [e for e in self.read_log() if e.action_type == action_type]


def _total_pl(trades: list[NormalizedTrade]) -> Decimal:
    return sum((t.realized_pl for t in trades), ZERO)


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal and date types."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return super().default(obj)


# Global logger instance (initialized on first use)
_global_logger: Optional[ImportLogger] = None


def get_logger(log_path: Optional[str | Path] = None) -> ImportLogger:
    """
    Get or create the global import logger.

    Args:
        log_path: Optional path to initialize logger (required on first call)

    Returns:
        ImportLogger instance
    """
    global _global_logger

    if _global_logger is None:
        if log_path is None:
            log_path = "output/import_log.jsonl"
        _global_logger = ImportLogger(log_path)
    elif log_path is not None:
        # Allow reinitializing with new path
        _global_logger = ImportLogger(log_path)

    return _global_logger


def log_action(
    action_type: ActionType,
    source: Optional[str],
    details: dict,
    log_path: Optional[str | Path] = None,
) -> None:
    """
    Convenience function to log an action.

    Args:
        action_type: Type of action
        source: File path or broker name (optional)
        details: Action details dictionary
        log_path: Optional path to log file
    """
    logger = get_logger(log_path)
    entry = ImportLogEntry.create(
        action_type=action_type,
        source=source,
        details=details,
    )
    logger.log(entry)

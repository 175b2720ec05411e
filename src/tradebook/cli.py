"""
Command-line interface for the trade import core.

Provides commands for:
- detect: Show which broker dialect a CSV file looks like
- import: Parse a broker CSV export into closed trades
- reconstruct: Build closed trades from a fill-level CSV
- sync: Pull fills from a broker API and build closed trades
- summary: Show P&L statistics for an exported trades file
"""

import json
import logging
import sys
from datetime import date as date_type
from datetime import datetime
from pathlib import Path
from typing import Optional

import click

from tradebook import __version__
from tradebook.analytics import calculate_hourly_stats, summarize_trades
from tradebook.brokers import AlpacaClient, BrokerError, WebullClient, import_from_broker
from tradebook.config import ConfigurationError, load_import_config
from tradebook.export import ExportError, load_trades, save_trades
from tradebook.logging import get_logger
from tradebook.models import AUTO, BrokerDialect, CSVParseResult, ImportConfig
from tradebook.parsing import (
    CSVImportError,
    UnknownDialectError,
    detect_dialect,
    get_dialect,
    parse_csv_file,
    parse_csv_line,
    parse_fills_file,
    split_lines,
)
from tradebook.reconstruct import open_positions, reconstruct_round_trips, validate_fills

BROKER_CHOICES = [AUTO] + [d.value for d in BrokerDialect]

# Warnings printed before "... and N more"
MAX_SHOWN_WARNINGS = 10


@click.group()
@click.version_option(version=__version__, prog_name="tradebook")
@click.option("--verbose", "-v", is_flag=True, help="Show debug diagnostics")
def main(verbose: bool):
    """
    Trade journal import tools.

    Detects broker CSV dialects, imports closed trades and reconstructs
    round trips from individual fills.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _parse_date_option(value: Optional[str]) -> Optional[date_type]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        click.echo(f"Invalid date format: {value}. Use YYYY-MM-DD.", err=True)
        sys.exit(1)


def _load_config(config_path: Optional[str]) -> ImportConfig:
    if not config_path:
        return ImportConfig()
    try:
        return load_import_config(config_path)
    except ConfigurationError as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(1)


def _print_result(result: CSVParseResult) -> None:
    if result.errors:
        for error in result.errors:
            click.echo(f"Error: {error}", err=True)

    if result.warnings:
        click.echo(f"Warnings ({len(result.warnings)}):")
        for warning in result.warnings[:MAX_SHOWN_WARNINGS]:
            click.echo(f"  - {warning}")
        if len(result.warnings) > MAX_SHOWN_WARNINGS:
            click.echo(f"  ... and {len(result.warnings) - MAX_SHOWN_WARNINGS} more")

    if result.success:
        total = sum(t.realized_pl for t in result.trades)
        click.echo()
        click.echo("Import successful:")
        click.echo(f"  Broker: {result.detected_broker}")
        click.echo(f"  Trades: {result.trades_imported}")
        click.echo(f"  Realized P&L: ${total:,.2f}")


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def detect(file: str):
    """
    Detect the broker dialect of a CSV file.
    """
    try:
        with open(file, "r", encoding="utf-8-sig") as f:
            lines = split_lines(f.read())
    except (OSError, UnicodeDecodeError) as e:
        click.echo(f"Error reading file: {e}", err=True)
        sys.exit(1)

    if not lines:
        click.echo("CSV file is empty", err=True)
        sys.exit(1)

    headers = parse_csv_line(lines[0][1])
    spec = get_dialect(detect_dialect(headers))

    click.echo(f"Detected dialect: {spec.dialect.value} ({spec.label})")
    click.echo(f"  Columns: {', '.join(headers)}")
    click.echo(f"  Data rows: {len(lines) - 1}")


@main.command(name="import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--broker", "-b",
    type=click.Choice(BROKER_CHOICES, case_sensitive=False),
    default=None,
    help="Broker dialect. Defaults to config default_broker (auto-detect).",
)
@click.option(
    "--date", "-d",
    type=str,
    default=None,
    help="Fallback date for rows without a usable date (YYYY-MM-DD). Defaults to today.",
)
@click.option(
    "--output-dir", "-o",
    type=click.Path(),
    default=None,
    help="Output directory. Defaults to config output_dir.",
)
@click.option(
    "--config", "-c",
    type=click.Path(exists=True),
    default=None,
    help="Path to import configuration YAML file",
)
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON")
def import_csv(
    file: str,
    broker: Optional[str],
    date: Optional[str],
    output_dir: Optional[str],
    config: Optional[str],
    as_json: bool,
):
    """
    Import closed trades from a broker CSV export.

    Bad rows are skipped and listed as warnings; the import fails only
    when required columns are missing or no trade could be read.
    """
    import_config = _load_config(config)
    default_date = _parse_date_option(date) or import_config.default_date or date_type.today()
    requested = (broker or import_config.default_broker).lower()

    out_dir = Path(output_dir or import_config.output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    logger = get_logger(out_dir / import_config.log_file)
    if config:
        logger.log_config_loaded(import_config, config)

    try:
        result = parse_csv_file(
            file, requested, default_date=default_date, notes_prefix=import_config.notes_prefix
        )
    except (CSVImportError, UnknownDialectError) as e:
        click.echo(f"Error importing CSV: {e}", err=True)
        sys.exit(1)

    logger.log_csv_parsed(file, result, requested)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _print_result(result)

    if not result.success:
        sys.exit(1)

    trades_path = out_dir / f"trades_{Path(file).stem}.csv"
    try:
        save_trades(result.trades, trades_path)
    except ExportError as e:
        click.echo(f"Error saving trades: {e}", err=True)
        sys.exit(1)

    logger.log_trades_exported(str(trades_path), result.trades)
    if not as_json:
        click.echo(f"  Trades saved: {trades_path}")


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--date", "-d",
    type=str,
    default=None,
    help="Fallback date for fills without a usable time (YYYY-MM-DD). Defaults to today.",
)
@click.option(
    "--output-dir", "-o",
    type=click.Path(),
    default="output",
    help="Output directory",
)
def reconstruct(file: str, date: Optional[str], output_dir: str):
    """
    Reconstruct closed round trips from a fill-level CSV.

    The file needs one execution per row: time, symbol, side, quantity,
    price and optionally commission. Positions still open at the end are
    reported but not exported.
    """
    default_date = _parse_date_option(date) or date_type.today()

    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    logger = get_logger(out_dir / "import_log.jsonl")

    try:
        parsed = parse_fills_file(file, default_date=default_date)
    except CSVImportError as e:
        click.echo(f"Error reading fills: {e}", err=True)
        sys.exit(1)

    for warning in parsed.warnings[:MAX_SHOWN_WARNINGS]:
        click.echo(f"  - {warning}")
    if not parsed.success:
        for error in parsed.errors:
            click.echo(f"Error: {error}", err=True)
        sys.exit(1)

    fills, problems = validate_fills(parsed.fills)
    for problem in problems:
        click.echo(f"  - {problem}")

    trades = reconstruct_round_trips(fills, notes=f"Reconstructed from {Path(file).name}")
    still_open = open_positions(fills)

    logger.log_fills_reconstructed(file, fills, trades, sorted(still_open))

    click.echo(f"Fills: {len(fills)}")
    click.echo(f"Closed trades: {len(trades)}")
    for symbol, state in still_open.items():
        click.echo(
            f"  Open {state.direction.value} {symbol}: "
            f"{abs(state.net_quantity)} @ {state.average_entry_price:.4f} (not exported)"
        )

    if not trades:
        click.echo("No closed trades found in fills", err=True)
        sys.exit(1)

    trades_path = out_dir / f"trades_{Path(file).stem}.csv"
    try:
        save_trades(trades, trades_path)
    except ExportError as e:
        click.echo(f"Error saving trades: {e}", err=True)
        sys.exit(1)

    logger.log_trades_exported(str(trades_path), trades)
    click.echo(f"Trades saved: {trades_path}")


@main.command()
@click.argument("broker", type=click.Choice(["alpaca", "webull"], case_sensitive=False))
@click.option("--days", type=int, default=7, help="Look-back window in days")
@click.option("--paper", is_flag=True, help="Use the paper trading endpoint (webull)")
@click.option(
    "--output-dir", "-o",
    type=click.Path(),
    default="output",
    help="Output directory",
)
def sync(broker: str, days: int, paper: bool, output_dir: str):
    """
    Pull recent fills from a broker API and import closed trades.

    Credentials are read from the environment, a .env file or
    config/api_keys.yaml.
    """
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    logger = get_logger(out_dir / "import_log.jsonl")

    try:
        if broker.lower() == "alpaca":
            client = AlpacaClient()
        else:
            client = WebullClient(paper=paper)
        click.echo(f"Fetching {days} days of fills from {client.name}...")
        result = import_from_broker(client, days=days)
    except BrokerError as e:
        click.echo(f"Error syncing {broker}: {e}", err=True)
        sys.exit(1)

    logger.log_broker_synced(client.name, days, result)
    _print_result(result)

    if not result.success:
        sys.exit(1)

    trades_path = out_dir / f"trades_{client.name}_{date_type.today().isoformat()}.csv"
    try:
        save_trades(result.trades, trades_path)
    except ExportError as e:
        click.echo(f"Error saving trades: {e}", err=True)
        sys.exit(1)

    logger.log_trades_exported(str(trades_path), result.trades)
    click.echo(f"  Trades saved: {trades_path}")


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--date", "-d",
    type=str,
    default=None,
    help="Also show the hourly breakdown for this day (YYYY-MM-DD)",
)
def summary(file: str, date: Optional[str]):
    """
    Show P&L statistics for an exported trades file.
    """
    try:
        trades = load_trades(file)
    except ExportError as e:
        click.echo(f"Error loading trades: {e}", err=True)
        sys.exit(1)

    stats = summarize_trades(trades)

    click.echo("=" * 50)
    click.echo("TRADE SUMMARY")
    click.echo("=" * 50)
    click.echo(f"  Trades: {stats['total_trades']}")
    click.echo(f"  Total P&L: ${stats['total_pl']:,.2f}")
    click.echo(f"  Commission: ${stats['total_commission']:,.2f}")
    click.echo(f"  Wins / Losses: {stats['win_count']} / {stats['loss_count']}")
    click.echo(f"  Win rate: {stats['win_rate']:.1f}%")
    click.echo(f"  Avg win: ${stats['avg_win']:,.2f}")
    click.echo(f"  Avg loss: ${stats['avg_loss']:,.2f}")
    if stats["first_trade"] is not None:
        click.echo(f"  Period: {stats['first_trade']:%Y-%m-%d} to {stats['last_trade']:%Y-%m-%d}")

    click.echo()
    click.echo("P&L by ticker:")
    for ticker, pl in stats["pl_by_ticker"].items():
        click.echo(f"  {ticker:<8} ${pl:>12,.2f}")

    day = _parse_date_option(date)
    if day:
        click.echo()
        click.echo(f"Hourly P&L for {day}:")
        for bucket in calculate_hourly_stats(trades, day):
            if bucket["trade_count"]:
                click.echo(
                    f"  {bucket['hour']:02d}:00  {bucket['trade_count']:>3} trades  "
                    f"${bucket['total_pl']:>10,.2f}"
                )


if __name__ == "__main__":
    main()

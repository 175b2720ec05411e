"""
P&L summaries for imported trades.

This module provides the statistics a journal shows after an import:
overall win/loss figures, per-ticker P&L, and daily and hourly breakdowns.
All money values stay Decimal; only pl_by_day returns a DataFrame.
"""

from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import pandas as pd

from tradebook.export import trades_to_dataframe
from tradebook.models import ZERO, NormalizedTrade

# Extended-hours session shown in hourly breakdowns (4 AM - 8 PM)
FIRST_HOUR = 4
LAST_HOUR = 20

HUNDRED = Decimal("100")


def _win_loss(trades: list[NormalizedTrade]) -> dict[str, Any]:
    wins = [t.realized_pl for t in trades if t.realized_pl > ZERO]
    losses = [t.realized_pl for t in trades if t.realized_pl < ZERO]
    count = len(trades)

    return {
        "total_trades": count,
        "total_pl": sum((t.realized_pl for t in trades), ZERO),
        "win_count": len(wins),
        "loss_count": len(losses),
        "win_rate": Decimal(len(wins)) / Decimal(count) * HUNDRED if count else ZERO,
        "avg_win": sum(wins, ZERO) / len(wins) if wins else ZERO,
        "avg_loss": sum(losses, ZERO) / len(losses) if losses else ZERO,
    }


def summarize_trades(trades: list[NormalizedTrade]) -> dict[str, Any]:
    """
    Calculate summary statistics for a set of trades.

    Args:
        trades: Closed trades

    Returns:
        Dictionary with:
        - total_trades, total_pl, total_commission
        - win_count, loss_count, win_rate (percent), avg_win, avg_loss
        - pl_by_ticker: ticker -> total realized P&L
        - first_trade, last_trade: entry time range (None when empty)
    """
    summary = _win_loss(trades)

    pl_by_ticker: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for t in trades:
        pl_by_ticker[t.ticker] += t.realized_pl

    timestamps = [t.timestamp for t in trades]
    summary.update({
        "total_commission": sum((t.commission for t in trades), ZERO),
        "pl_by_ticker": dict(sorted(pl_by_ticker.items())),
        "first_trade": min(timestamps) if timestamps else None,
        "last_trade": max(timestamps) if timestamps else None,
    })
    return summary


def _on_day(trades: list[NormalizedTrade], day: date) -> list[NormalizedTrade]:
    if isinstance(day, datetime):
        day = day.date()
    return [t for t in trades if t.timestamp.date() == day]


def calculate_daily_stats(trades: list[NormalizedTrade], day: date) -> dict[str, Any]:
    """
    Statistics for trades entered on one calendar day.

    Args:
        trades: Closed trades (any days)
        day: Day to report

    Returns:
        Dictionary with date (YYYY-MM-DD) plus the win/loss figures of
        summarize_trades
    """
    stats = _win_loss(_on_day(trades, day))
    stats["date"] = (day.date() if isinstance(day, datetime) else day).isoformat()
    return stats


def calculate_hourly_stats(trades: list[NormalizedTrade], day: date) -> list[dict[str, Any]]:
    """
    P&L per entry hour for one day.

    Every hour of the extended session is listed, including hours without
    trades. Trades entered outside the session are not counted.

    Returns:
        List of {hour, total_pl, trade_count, avg_pl} ordered by hour
    """
    buckets: dict[int, list[Decimal]] = {h: [] for h in range(FIRST_HOUR, LAST_HOUR + 1)}

    for t in _on_day(trades, day):
        if t.timestamp.hour in buckets:
            buckets[t.timestamp.hour].append(t.realized_pl)

    return [
        {
            "hour": hour,
            "total_pl": sum(pls, ZERO),
            "trade_count": len(pls),
            "avg_pl": sum(pls, ZERO) / len(pls) if pls else ZERO,
        }
        for hour, pls in buckets.items()
    ]


def pl_by_day(trades: list[NormalizedTrade]) -> pd.DataFrame:
    """
    Daily P&L table (the journal's calendar view).

    Returns:
        DataFrame with columns: date, trades, total_pl, cumulative_pl
    """
    columns = ["date", "trades", "total_pl", "cumulative_pl"]
    if not trades:
        return pd.DataFrame(columns=columns)

    df = trades_to_dataframe(trades)
    df["date"] = pd.to_datetime(df["timestamp"]).dt.date

    daily = (
        df.groupby("date")
        .agg(trades=("id", "count"), total_pl=("realized_pl", "sum"))
        .reset_index()
        .sort_values("date")
    )
    daily["cumulative_pl"] = daily["total_pl"].cumsum()

    return daily[columns].reset_index(drop=True)

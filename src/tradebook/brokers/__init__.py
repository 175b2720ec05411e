"""
Broker API clients for the trade import core.

Provides clients that pull filled executions from broker APIs and the sync
helper that turns them into closed round-trip trades.
"""

from tradebook.brokers.base import BrokerClient, BrokerError
from tradebook.brokers.alpaca import AlpacaClient
from tradebook.brokers.webull import WebullClient
from tradebook.brokers.sync import import_from_broker, trades_from_fills

__all__ = [
    "BrokerClient",
    "BrokerError",
    "AlpacaClient",
    "WebullClient",
    "import_from_broker",
    "trades_from_fills",
]

"""
Trade journal import core (tradebook).

Turns broker CSV exports and broker-API fills into normalized closed
round-trip trades for a day-trading journal. The package detects the CSV
dialect, extracts typed rows per broker, and reconstructs round trips from
individual buy/sell fills with a running position accumulator.

Nothing here places orders or persists trades; callers own storage.
"""

__version__ = "0.1.0"
__author__ = "Tradebook Team"

"""
Alpaca broker client.

Uses the Alpaca Trading API (https://docs.alpaca.markets/) to pull filled
orders. Each filled order becomes one RawFill at its average fill price.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from tradebook.brokers.base import BrokerClient, BrokerError
from tradebook.config import ConfigurationError, load_api_keys, require_api_keys
from tradebook.models import ZERO, RawFill, Side
from tradebook.parsing.values import parse_decimal, parse_timestamp


class AlpacaClient(BrokerClient):
    """
    Broker client for Alpaca.

    Features:
    - Paper and live trading endpoints (via base URL)
    - Filled orders only; cancelled/partial orders without a fill time are ignored
    - Requires ALPACA_API_KEY and ALPACA_API_SECRET
    """

    PAPER_URL = "https://paper-api.alpaca.markets"
    LIVE_URL = "https://api.alpaca.markets"

    # Maximum orders per request allowed by the API
    ORDER_LIMIT = 500

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        max_retries: int = 3,
        retry_delay: float = 2.0,
    ):
        """
        Initialize Alpaca client.

        Args:
            api_key: Alpaca key ID (defaults to loading from config sources)
            api_secret: Alpaca secret key (defaults to loading from config sources)
            base_url: API base URL (defaults to ALPACA_BASE_URL, then paper trading)
            max_retries: Maximum retries for failed requests
            retry_delay: Delay between retries (seconds)

        Raises:
            BrokerError: If the key or secret is not provided or found in config
        """
        super().__init__(max_retries=max_retries, retry_delay=retry_delay)

        if not (api_key and api_secret):
            api_keys = load_api_keys()
            api_key = api_key or api_keys.get("alpaca_api_key")
            api_secret = api_secret or api_keys.get("alpaca_api_secret")
            base_url = base_url or api_keys.get("alpaca_base_url")

        try:
            require_api_keys(
                {"alpaca_api_key": api_key, "alpaca_api_secret": api_secret},
                "alpaca_api_key",
                "alpaca_api_secret",
            )
        except ConfigurationError as e:
            raise BrokerError(str(e))

        self._api_key = api_key
        self._api_secret = api_secret
        self._base_url = (base_url or self.PAPER_URL).rstrip("/")

    @property
    def name(self) -> str:
        return "alpaca"

    def _headers(self) -> dict[str, str]:
        return {
            "APCA-API-KEY-ID": self._api_key,
            "APCA-API-SECRET-KEY": self._api_secret,
            "Content-Type": "application/json",
        }

    def test_connection(self) -> tuple[bool, str]:
        try:
            account = self._make_request(f"{self._base_url}/v2/account")
        except BrokerError as e:
            return False, f"Connection failed: {e}"

        if not isinstance(account, dict):
            return False, "Unexpected response from Alpaca account endpoint"

        return True, (
            f"Connected successfully! Account: {account.get('account_number')}, "
            f"Status: {account.get('status')}"
        )

    def get_orders(
        self,
        after: datetime,
        until: datetime,
        status: str = "closed",
    ) -> list[dict[str, Any]]:
        """
        Fetch raw order objects.

        Uses endpoint: {base}/v2/orders?status=closed&after=...&until=...

        Raises:
            BrokerError: On request failure or an unexpected response shape
        """
        params = {
            "status": status,
            "limit": self.ORDER_LIMIT,
            "after": after.isoformat(),
            "until": until.isoformat(),
            "direction": "asc",
            "nested": "false",
        }
        orders = self._make_request(f"{self._base_url}/v2/orders", params)

        if not isinstance(orders, list):
            raise BrokerError("Invalid response format from Alpaca orders endpoint")
        return orders

    def fetch_fills(self, days: int = 7) -> list[RawFill]:
        until = datetime.now(timezone.utc)
        after = until - timedelta(days=days)

        orders = self.get_orders(after, until)
        filled = [
            order for order in orders
            if order.get("status") == "filled" and order.get("filled_at")
        ]
        return self._orders_to_fills(filled, order_to_fill)


def order_to_fill(order: dict[str, Any]) -> RawFill:
    """
    Convert one filled Alpaca order into a RawFill.

    Raises:
        BrokerError: If the order lacks a usable quantity, price or side
    """
    side = Side.BUY if str(order.get("side", "")).lower() == "buy" else Side.SELL
    quantity = parse_decimal(str(order.get("filled_qty") or ""))
    price = parse_decimal(str(order.get("filled_avg_price") or ""))
    timestamp = parse_timestamp(order.get("filled_at") or order.get("created_at"))

    if quantity is None or price is None or timestamp is None:
        raise BrokerError(f"Alpaca order {order.get('id')} is missing fill details")

    commission = parse_decimal(str(order.get("commission") or ""))

    return RawFill(
        broker_fill_id=f"alpaca_{order.get('id')}",
        symbol=str(order.get("symbol", "")).upper(),
        side=side,
        quantity=quantity,
        price=price,
        timestamp=timestamp,
        commission=abs(commission) if commission is not None else ZERO,
    )

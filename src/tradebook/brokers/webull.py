"""
Webull broker client.

Webull has no official public trading API; this client talks to the same
endpoints the Webull web app uses, authenticated with an access token and
device ID copied from a logged-in browser session.
"""

import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

from tradebook.brokers.base import BrokerClient, BrokerError
from tradebook.config import ConfigurationError, load_api_keys, require_api_keys
from tradebook.models import ZERO, RawFill, Side
from tradebook.parsing.values import parse_decimal, parse_timestamp


class WebullClient(BrokerClient):
    """
    Broker client for Webull.

    Features:
    - Live and paper trading endpoints
    - Account ID discovered from the account endpoint when not configured
    - Requires WEBULL_ACCESS_TOKEN and WEBULL_DEVICE_ID
    """

    BASE_URL = "https://tradeapi.webullbroker.com/api"
    PAPER_URL = "https://act.webullbroker.com/webull-paper-center/api"

    PAGE_SIZE = 500

    def __init__(
        self,
        access_token: Optional[str] = None,
        device_id: Optional[str] = None,
        account_id: Optional[str] = None,
        paper: bool = False,
        max_retries: int = 3,
        retry_delay: float = 2.0,
    ):
        """
        Initialize Webull client.

        Args:
            access_token: Session access token (defaults to config sources)
            device_id: Device ID ("did") of the session (defaults to config sources)
            account_id: Account ID; looked up on first use when omitted
            paper: Use the paper trading endpoints
            max_retries: Maximum retries for failed requests
            retry_delay: Delay between retries (seconds)

        Raises:
            BrokerError: If the access token or device ID is missing
        """
        super().__init__(max_retries=max_retries, retry_delay=retry_delay)

        if not (access_token and device_id):
            api_keys = load_api_keys()
            access_token = access_token or api_keys.get("webull_access_token")
            device_id = device_id or api_keys.get("webull_device_id")
            account_id = account_id or api_keys.get("webull_account_id")

        try:
            require_api_keys(
                {"webull_access_token": access_token, "webull_device_id": device_id},
                "webull_access_token",
                "webull_device_id",
            )
        except ConfigurationError as e:
            raise BrokerError(str(e))

        self._access_token = access_token
        self._device_id = device_id
        self._account_id = account_id or ""
        self._base_url = self.PAPER_URL if paper else self.BASE_URL

    @property
    def name(self) -> str:
        return "webull"

    @property
    def account_id(self) -> str:
        return self._account_id

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "device-type": "Web",
            "did": self._device_id,
            "access_token": self._access_token,
            "app-group": "broker",
            "t_time": str(int(time.time() * 1000)),
            "hl": "en",
            "os": "web",
        }

    def test_connection(self) -> tuple[bool, str]:
        try:
            data = self._make_request(f"{self._base_url}/account/getAccountInfo")
        except BrokerError as e:
            return False, (
                f"Connection failed: {e}. Please verify your access token and device ID."
            )

        if isinstance(data, dict) and data.get("accountId"):
            self._account_id = str(data["accountId"])
            return True, f"Connected successfully! Account ID: {self._account_id}"

        return False, "Unable to retrieve account information"

    def get_orders(
        self,
        start_date: str,
        end_date: str,
        status: str = "Filled",
    ) -> list[dict[str, Any]]:
        """
        Fetch raw order objects.

        Args:
            start_date: First day, YYYY-MM-DD
            end_date: Last day, YYYY-MM-DD
            status: Order status filter

        Raises:
            BrokerError: If no account ID can be determined or the request fails
        """
        if not self._account_id:
            ok, message = self.test_connection()
            if not ok:
                raise BrokerError(message)

        params = {
            "accountId": self._account_id,
            "pageSize": self.PAGE_SIZE,
            "lastRecordId": 0,
            "startDate": start_date,
            "endDate": end_date,
            "status": status,
        }
        orders = self._make_request(f"{self._base_url}/orders", params)

        if not isinstance(orders, list):
            raise BrokerError("Invalid response format from Webull orders endpoint")
        return orders

    def fetch_fills(self, days: int = 30) -> list[RawFill]:
        end = datetime.now(timezone.utc)
        start = end - timedelta(days=days)

        orders = self.get_orders(start.date().isoformat(), end.date().isoformat())
        filled = []
        for order in orders:
            quantity = parse_decimal(str(order.get("filledQuantity") or ""))
            if order.get("status") == "Filled" and quantity is not None and quantity > ZERO:
                filled.append(order)
        return self._orders_to_fills(filled, order_to_fill)


def _order_time(value: Any) -> Optional[datetime]:
    """Webull reports times either as ISO strings or epoch milliseconds."""
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return datetime.fromtimestamp(float(value) / 1000, tz=timezone.utc).replace(tzinfo=None)
    if isinstance(value, str) and value.isdigit():
        return _order_time(int(value))
    return parse_timestamp(value)


def order_to_fill(order: dict[str, Any]) -> RawFill:
    """
    Convert one filled Webull order into a RawFill.

    Raises:
        BrokerError: If the order lacks a usable symbol, quantity, price or time
    """
    ticker = order.get("ticker") or {}
    symbol = str(ticker.get("symbol", "") if isinstance(ticker, dict) else ticker).upper()

    side = Side.BUY if str(order.get("action", "")).lower() == "buy" else Side.SELL
    quantity = parse_decimal(str(order.get("filledQuantity") or ""))
    price = parse_decimal(str(order.get("avgFilledPrice") or ""))
    timestamp = _order_time(order.get("updateTime") or order.get("createTime"))

    if not symbol or quantity is None or price is None or timestamp is None:
        raise BrokerError(f"Webull order {order.get('orderId')} is missing fill details")

    commission = parse_decimal(str(order.get("commission") or ""))

    return RawFill(
        broker_fill_id=f"webull_{order.get('orderId')}",
        symbol=symbol,
        side=side,
        quantity=quantity,
        price=price,
        timestamp=timestamp,
        commission=abs(commission) if commission is not None else ZERO,
    )

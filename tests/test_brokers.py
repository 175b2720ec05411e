"""
Tests for the broker API clients and broker sync.

All HTTP traffic is mocked; no credentials or network access are needed.
"""

from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests

from tradebook.brokers import (
    AlpacaClient,
    BrokerError,
    WebullClient,
    import_from_broker,
    trades_from_fills,
)
from tradebook.brokers.alpaca import order_to_fill as alpaca_order_to_fill
from tradebook.brokers.webull import order_to_fill as webull_order_to_fill
from tradebook.models import SequentialIdGenerator, Side

from conftest import FakeBroker, make_fill


def mock_response(data=None, status_code=200, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = data
    response.text = text
    return response


ALPACA_ORDERS = [
    {
        "id": "a1",
        "symbol": "aapl",
        "side": "buy",
        "status": "filled",
        "filled_qty": "100",
        "filled_avg_price": "150.25",
        "filled_at": "2024-01-02T14:30:00Z",
    },
    {
        "id": "a2",
        "symbol": "AAPL",
        "side": "sell",
        "status": "canceled",
        "filled_qty": "0",
        "filled_avg_price": None,
        "filled_at": None,
    },
    {
        "id": "a3",
        "symbol": "AAPL",
        "side": "sell",
        "status": "filled",
        "filled_qty": "100",
        "filled_avg_price": "152.75",
        "filled_at": "2024-01-02T15:00:00Z",
    },
]


class TestAlpacaClientInit:
    """Tests for AlpacaClient initialization."""

    def test_init_with_credentials(self):
        client = AlpacaClient(api_key="key", api_secret="secret")
        assert client.name == "alpaca"
        assert client._base_url == AlpacaClient.PAPER_URL

    def test_init_from_config(self):
        """Test that missing arguments are filled from config sources."""
        with patch("tradebook.brokers.alpaca.load_api_keys") as mock_load:
            mock_load.return_value = {
                "alpaca_api_key": "cfg-key",
                "alpaca_api_secret": "cfg-secret",
                "alpaca_base_url": "https://api.alpaca.markets/",
            }
            client = AlpacaClient()

        assert client._api_key == "cfg-key"
        assert client._base_url == "https://api.alpaca.markets"

    def test_missing_credentials(self):
        """Test that missing credentials raise BrokerError."""
        with patch("tradebook.brokers.alpaca.load_api_keys") as mock_load:
            mock_load.return_value = {}

            with pytest.raises(BrokerError) as exc_info:
                AlpacaClient()

        assert "ALPACA_API_KEY" in str(exc_info.value)


class TestAlpacaFetchFills:
    """Tests for Alpaca order fetching."""

    @patch("requests.get")
    def test_only_filled_orders(self, mock_get):
        """Test that cancelled orders are dropped and fills converted."""
        mock_get.return_value = mock_response(ALPACA_ORDERS)
        client = AlpacaClient(api_key="key", api_secret="secret")

        fills = client.fetch_fills(days=3)

        assert [f.broker_fill_id for f in fills] == ["alpaca_a1", "alpaca_a3"]
        first = fills[0]
        assert first.symbol == "AAPL"
        assert first.side == Side.BUY
        assert first.quantity == Decimal("100")
        assert first.price == Decimal("150.25")
        assert first.timestamp == datetime(2024, 1, 2, 14, 30)

        call = mock_get.call_args
        assert call.args[0] == f"{AlpacaClient.PAPER_URL}/v2/orders"
        assert call.kwargs["params"]["status"] == "closed"
        assert call.kwargs["headers"]["APCA-API-KEY-ID"] == "key"

    @patch("requests.get")
    def test_unexpected_response_shape(self, mock_get):
        """Test that a non-list orders response is an error."""
        mock_get.return_value = mock_response({"message": "oops"})
        client = AlpacaClient(api_key="key", api_secret="secret")

        with pytest.raises(BrokerError):
            client.fetch_fills()

    def test_order_missing_price(self):
        """Test that a filled order without a price is rejected."""
        order = dict(ALPACA_ORDERS[0], filled_avg_price=None)
        with pytest.raises(BrokerError):
            alpaca_order_to_fill(order)

    @patch("requests.get")
    def test_malformed_order_skipped(self, mock_get):
        """Test that one bad filled order does not lose the rest of the batch."""
        broken = dict(ALPACA_ORDERS[0], id="3", symbol="MSFT", filled_avg_price=None)
        mock_get.return_value = mock_response(ALPACA_ORDERS + [broken])
        client = AlpacaClient(api_key="key", api_secret="secret")

        fills = client.fetch_fills()

        assert [f.broker_fill_id for f in fills] == ["alpaca_a1", "alpaca_a3"]
        assert client.skipped_orders == ["Alpaca order 3 is missing fill details"]

    @patch("requests.get")
    def test_malformed_order_reported_by_sync(self, mock_get):
        broken = dict(ALPACA_ORDERS[0], id="3", symbol="MSFT", filled_avg_price=None)
        mock_get.return_value = mock_response(ALPACA_ORDERS + [broken])
        client = AlpacaClient(api_key="key", api_secret="secret")

        result = import_from_broker(client, id_generator=SequentialIdGenerator())

        assert result.success is True
        assert result.trades_imported == 1
        assert result.trades[0].ticker == "AAPL"
        assert result.trades[0].realized_pl == Decimal("250")
        assert result.warnings == ["Alpaca order 3 is missing fill details"]

    @patch("requests.get")
    def test_connection_success(self, mock_get):
        mock_get.return_value = mock_response({"account_number": "PA123", "status": "ACTIVE"})
        client = AlpacaClient(api_key="key", api_secret="secret")

        ok, message = client.test_connection()

        assert ok is True
        assert "PA123" in message


class TestRequestRetries:
    """Tests for the shared request retry logic."""

    @patch("tradebook.brokers.base.time.sleep")
    @patch("requests.get")
    def test_rate_limit_then_success(self, mock_get, mock_sleep):
        """Test that a 429 is retried after a delay."""
        mock_get.side_effect = [mock_response(status_code=429), mock_response([])]
        client = AlpacaClient(api_key="key", api_secret="secret")

        assert client.fetch_fills() == []
        assert mock_get.call_count == 2
        mock_sleep.assert_called_once()

    @patch("tradebook.brokers.base.time.sleep")
    @patch("requests.get")
    def test_rate_limit_exhausted(self, mock_get, mock_sleep):
        mock_get.return_value = mock_response(status_code=429)
        client = AlpacaClient(api_key="key", api_secret="secret")

        with pytest.raises(BrokerError) as exc_info:
            client.fetch_fills()

        assert "rate limit" in str(exc_info.value)

    @patch("tradebook.brokers.base.time.sleep")
    @patch("requests.get")
    def test_unauthorized_not_retried(self, mock_get, mock_sleep):
        """Test that rejected credentials fail immediately."""
        mock_get.return_value = mock_response(status_code=401, text="unauthorized")
        client = AlpacaClient(api_key="key", api_secret="bad")

        with pytest.raises(BrokerError) as exc_info:
            client.fetch_fills()

        assert "401" in str(exc_info.value)
        assert mock_get.call_count == 1
        mock_sleep.assert_not_called()

    @patch("tradebook.brokers.base.time.sleep")
    @patch("requests.get")
    def test_timeouts_exhaust_retries(self, mock_get, mock_sleep):
        mock_get.side_effect = requests.exceptions.Timeout()
        client = AlpacaClient(api_key="key", api_secret="secret", max_retries=2)

        with pytest.raises(BrokerError) as exc_info:
            client.fetch_fills()

        assert "after 2 attempts" in str(exc_info.value)
        assert mock_get.call_count == 2

    @patch("requests.get")
    def test_invalid_json(self, mock_get):
        response = mock_response()
        response.json.side_effect = ValueError("not json")
        mock_get.return_value = response
        client = AlpacaClient(api_key="key", api_secret="secret")

        with pytest.raises(BrokerError) as exc_info:
            client.fetch_fills()

        assert "Invalid JSON" in str(exc_info.value)

    @patch("requests.get")
    def test_connection_failure_reported(self, mock_get):
        """Test that test_connection reports rather than raises."""
        mock_get.return_value = mock_response(status_code=403, text="forbidden")
        client = AlpacaClient(api_key="key", api_secret="secret")

        ok, message = client.test_connection()

        assert ok is False
        assert "Connection failed" in message


WEBULL_ORDERS = [
    {
        "orderId": 11,
        "ticker": {"symbol": "amd"},
        "action": "BUY",
        "status": "Filled",
        "filledQuantity": "20",
        "avgFilledPrice": "140.00",
        "updateTime": 1704205800000,
    },
    {
        "orderId": 12,
        "ticker": {"symbol": "AMD"},
        "action": "SELL",
        "status": "Cancelled",
        "filledQuantity": "0",
        "avgFilledPrice": None,
    },
    {
        "orderId": 13,
        "ticker": {"symbol": "AMD"},
        "action": "SELL",
        "status": "Filled",
        "filledQuantity": "20",
        "avgFilledPrice": "142.50",
        "updateTime": "2024-01-02T15:00:00Z",
    },
]


class TestWebullClient:
    """Tests for WebullClient."""

    def test_missing_credentials(self):
        with patch("tradebook.brokers.webull.load_api_keys") as mock_load:
            mock_load.return_value = {"webull_access_token": "token"}

            with pytest.raises(BrokerError) as exc_info:
                WebullClient()

        assert "WEBULL_DEVICE_ID" in str(exc_info.value)
        assert "WEBULL_ACCESS_TOKEN" not in str(exc_info.value)

    def test_paper_endpoint(self):
        client = WebullClient(access_token="t", device_id="d", paper=True)
        assert client.name == "webull"
        assert client._base_url == WebullClient.PAPER_URL

    @patch("requests.get")
    def test_fetch_fills(self, mock_get):
        """Test filtering of unfilled orders and both time formats."""
        mock_get.return_value = mock_response(WEBULL_ORDERS)
        client = WebullClient(access_token="t", device_id="d", account_id="A1")

        fills = client.fetch_fills(days=5)

        assert [f.broker_fill_id for f in fills] == ["webull_11", "webull_13"]
        assert fills[0].symbol == "AMD"
        assert fills[0].side == Side.BUY
        assert fills[0].timestamp == datetime(2024, 1, 2, 14, 30)
        assert fills[1].side == Side.SELL
        assert fills[1].timestamp == datetime(2024, 1, 2, 15, 0)

        call = mock_get.call_args
        assert call.kwargs["params"]["accountId"] == "A1"
        assert call.kwargs["headers"]["did"] == "d"
        assert call.kwargs["headers"]["access_token"] == "t"

    @patch("requests.get")
    def test_account_id_discovered(self, mock_get):
        """Test that a missing account ID is looked up first."""
        mock_get.side_effect = [mock_response({"accountId": 987}), mock_response([])]
        client = WebullClient(access_token="t", device_id="d")

        assert client.fetch_fills() == []
        assert client.account_id == "987"
        assert mock_get.call_args.kwargs["params"]["accountId"] == "987"

    @patch("requests.get")
    def test_account_lookup_fails(self, mock_get):
        mock_get.return_value = mock_response({})
        client = WebullClient(access_token="t", device_id="d")

        with pytest.raises(BrokerError) as exc_info:
            client.fetch_fills()

        assert "account information" in str(exc_info.value)

    def test_order_missing_symbol(self):
        order = dict(WEBULL_ORDERS[0], ticker={})
        with pytest.raises(BrokerError):
            webull_order_to_fill(order)

    @patch("requests.get")
    def test_malformed_order_skipped(self, mock_get):
        broken = dict(WEBULL_ORDERS[0], orderId=14, avgFilledPrice=None)
        mock_get.return_value = mock_response(WEBULL_ORDERS + [broken])
        client = WebullClient(access_token="t", device_id="d", account_id="A1")

        fills = client.fetch_fills()

        assert [f.broker_fill_id for f in fills] == ["webull_11", "webull_13"]
        assert client.skipped_orders == ["Webull order 14 is missing fill details"]


class TestBrokerSync:
    """Tests for turning broker fills into trades."""

    def test_import_from_broker(self, round_trip_fills):
        """Test reconstruction and open-position warnings."""
        open_fill = make_fill(Side.SELL, "5", "370", "2024-01-02 11:00", symbol="MSFT")
        client = FakeBroker(round_trip_fills + [open_fill])

        result = import_from_broker(client, days=1, id_generator=SequentialIdGenerator())

        assert result.success is True
        assert result.detected_broker == "fake"
        assert result.trades_imported == 1
        assert result.trades[0].id == "trade-0001"
        assert result.trades[0].realized_pl == Decimal("200")
        assert result.trades[0].notes == "Imported from fake"
        assert result.warnings == ["Open short position in MSFT (5 @ 370) not imported"]

    def test_no_closed_trades(self):
        client = FakeBroker([make_fill(Side.BUY, "1", "10", "2024-01-02 09:30")])

        result = import_from_broker(client)

        assert result.success is False
        assert result.errors == ["No closed trades found in broker fills"]

    def test_invalid_fills_become_warnings(self, round_trip_fills):
        bad = make_fill(Side.BUY, "0", "10", "2024-01-02 09:00", fill_id="bad")

        result = trades_from_fills(round_trip_fills + [bad], "csv")

        assert result.trades_imported == 1
        assert result.warnings[0].startswith("Fill bad:")

"""
Abstract base class for broker API clients.

Defines the interface that all broker clients must implement, so fills can
be pulled from any supported broker and fed to the round-trip
reconstructor the same way as fills parsed from CSV.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import requests

from tradebook.models import RawFill

logger = logging.getLogger(__name__)


class BrokerError(Exception):
    """Raised when a broker client encounters an error."""
    pass


class BrokerClient(ABC):
    """
    Abstract base class for broker API clients.

    Implementations must provide methods to:
    - Verify credentials against the broker
    - Fetch filled executions for a look-back window
    """

    # Rate limit retry settings
    RATE_LIMIT_RETRIES = 3
    RATE_LIMIT_DELAY = 5.0  # seconds

    REQUEST_TIMEOUT = 30  # seconds

    def __init__(self, max_retries: int = 3, retry_delay: float = 2.0):
        """
        Args:
            max_retries: Maximum attempts for failed requests
            retry_delay: Base delay between retries (seconds)
        """
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self.skipped_orders: list[str] = []

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the name of this broker."""
        pass

    @abstractmethod
    def test_connection(self) -> tuple[bool, str]:
        """
        Check that the configured credentials work.

        Returns:
            Tuple of (success, human readable message). Never raises for
            HTTP failures; they are reported in the message.
        """
        pass

    @abstractmethod
    def fetch_fills(self, days: int = 7) -> list[RawFill]:
        """
        Fetch filled executions from the last `days` days.

        Args:
            days: Look-back window in days

        Returns:
            List of RawFill objects (unsorted)
            Orders that could not be converted are left out and described
            in skipped_orders.

        Raises:
            BrokerError: If fills cannot be fetched
        """
        pass

    def _headers(self) -> dict[str, str]:
        """Request headers (credentials) for every call."""
        return {}

    def _orders_to_fills(
        self,
        orders: list[dict[str, Any]],
        convert: Callable[[dict[str, Any]], RawFill],
    ) -> list[RawFill]:
        """Convert orders one at a time, skipping any the converter rejects."""
        self.skipped_orders = []
        fills = []

        for order in orders:
            try:
                fills.append(convert(order))
            except BrokerError as e:
                logger.warning("Skipping %s order: %s", self.name, e)
                self.skipped_orders.append(str(e))

        return fills

    def _make_request(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """
        Make an HTTP GET request with retry logic.

        Args:
            url: API endpoint URL
            params: Query parameters

        Returns:
            Parsed JSON response

        Raises:
            BrokerError: On request failure
        """
        last_error = None

        for attempt in range(self._max_retries):
            try:
                response = requests.get(
                    url,
                    params=params,
                    headers=self._headers(),
                    timeout=self.REQUEST_TIMEOUT,
                )

                # Handle rate limiting
                if response.status_code == 429:
                    if attempt < self.RATE_LIMIT_RETRIES - 1:
                        time.sleep(self.RATE_LIMIT_DELAY * (attempt + 1))
                        continue
                    raise BrokerError(
                        f"{self.name} API rate limit exceeded after {self.RATE_LIMIT_RETRIES} retries"
                    )

                # Credential problems will not improve with retries
                if response.status_code in (401, 403):
                    raise BrokerError(
                        f"{self.name} rejected the credentials: "
                        f"{response.status_code} {response.text[:200]}"
                    )

                response.raise_for_status()
                return response.json()

            except requests.exceptions.Timeout:
                last_error = "Request timeout"
            except ValueError as e:
                raise BrokerError(f"Invalid JSON response from {self.name} API: {e}")
            except requests.exceptions.RequestException as e:
                last_error = str(e)

            logger.debug("%s request failed (attempt %d): %s", self.name, attempt + 1, last_error)
            if attempt < self._max_retries - 1:
                time.sleep(self._retry_delay * (attempt + 1))

        raise BrokerError(
            f"{self.name} API request failed after {self._max_retries} attempts: {last_error}"
        )

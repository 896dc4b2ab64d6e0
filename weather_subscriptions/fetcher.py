"""
Weather provider module for the Weather Subscriptions service.

Wraps the weatherapi.com "current conditions" endpoint into a typed result:
- CurrentConditions on success
- CityNotFoundError when the provider does not recognize the location
- ProviderUnavailableError for outages, bad credentials and malformed data

Both failures derive from FetchError so callers that only need
"usable or not" can treat them alike, while health reporting can tell a bad
city name from an outage.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .errors import TransportError

logger = logging.getLogger(__name__)

# Configuration constants
DEFAULT_TIMEOUT = 10  # seconds
MAX_RETRIES = 2
RETRY_BACKOFF = 0.5
USER_AGENT = "WeatherSubscriptions/1.0"

WEATHER_API_URL = "http://api.weatherapi.com/v1/current.json"

# weatherapi.com error code for "No matching location found."
NO_MATCHING_LOCATION_CODE = 1006


@dataclass
class CurrentConditions:
    """Current weather for a city as reported by the provider."""
    city: str
    temperature_celsius: float
    humidity_percent: int
    condition_text: str
    fetched_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())


class FetchError(TransportError):
    """Weather lookup failed."""
    status_code = 404


class CityNotFoundError(FetchError):
    """The provider does not recognize the requested location."""
    pass


class ProviderUnavailableError(FetchError):
    """The provider could not be reached or returned unusable data."""
    pass


class WeatherFetcher:
    """
    Client for the weatherapi.com current conditions API.

    Dependability features:
    - Retry mechanism for transient HTTP failures (429/5xx)
    - Bounded per-request timeout
    - Outage tracking (consecutive failures, last error)
    """

    def __init__(
        self,
        api_key: Optional[str],
        api_url: str = WEATHER_API_URL,
        timeout: int = DEFAULT_TIMEOUT
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout
        self._session = self._create_session()
        self._health_lock = threading.Lock()
        self._consecutive_failures = 0
        self._last_success_at: Optional[str] = None
        self._last_error: Optional[str] = None

    def _create_session(self) -> requests.Session:
        """Create HTTP session with retry strategy for availability."""
        session = requests.Session()

        retry_strategy = Retry(
            total=MAX_RETRIES,
            backoff_factor=RETRY_BACKOFF,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
            respect_retry_after_header=False
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        session.headers.update({
            "User-Agent": USER_AGENT,
            "Accept": "application/json"
        })

        return session

    def fetch(self, city: str) -> CurrentConditions:
        """
        Fetch current conditions for a city.

        Raises:
            CityNotFoundError: the provider does not know the location
            ProviderUnavailableError: any infrastructure or data failure
        """
        if not city or not city.strip():
            raise CityNotFoundError("City is required")

        try:
            conditions = self._fetch_current(city.strip())
        except ProviderUnavailableError as e:
            self._record_failure(str(e))
            logger.error(f"Weather provider unavailable for {city!r}: {e}")
            raise
        except CityNotFoundError:
            self._record_success()
            logger.info(f"Weather provider does not recognize city {city!r}")
            raise

        self._record_success()
        return conditions

    def is_valid_city(self, city: str) -> bool:
        """A city is valid when the provider returns conditions for it."""
        try:
            self.fetch(city)
            return True
        except FetchError:
            return False

    def _fetch_current(self, city: str) -> CurrentConditions:
        if not self.api_key:
            raise ProviderUnavailableError("Weather API key is not configured")

        try:
            response = self._session.get(
                self.api_url,
                params={"key": self.api_key, "q": city},
                timeout=self.timeout
            )
        except requests.Timeout:
            raise ProviderUnavailableError(f"Request timed out after {self.timeout}s")
        except requests.ConnectionError as e:
            raise ProviderUnavailableError(f"Connection error - provider unavailable: {e}")
        except requests.RequestException as e:
            raise ProviderUnavailableError(f"Request failed: {e}")

        if response.status_code != 200:
            self._raise_for_error(city, response)

        try:
            payload = response.json()
        except ValueError:
            raise ProviderUnavailableError("Malformed response: body is not JSON")

        return self._parse_current(city, payload)

    def _raise_for_error(self, city: str, response: requests.Response) -> None:
        """Classify a non-200 provider answer."""
        code = None
        message = ""
        try:
            error = (response.json() or {}).get("error") or {}
            code = error.get("code")
            message = error.get("message", "")
        except (ValueError, AttributeError):
            pass

        if code == NO_MATCHING_LOCATION_CODE or (
            code is None and response.status_code in (400, 404)
        ):
            raise CityNotFoundError(f"City not found: {city}")

        detail = f" ({code}: {message})" if code is not None else ""
        raise ProviderUnavailableError(f"HTTP error {response.status_code}{detail}")

    def _parse_current(self, city: str, payload: Dict[str, Any]) -> CurrentConditions:
        """Extract the fields we report from a current.json body."""
        try:
            current = payload["current"]
            temperature = float(current["temp_c"])
            humidity = int(current["humidity"])
            condition_text = str(current["condition"]["text"]).strip()
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderUnavailableError(f"Malformed response: {e}")

        if not condition_text:
            raise ProviderUnavailableError("Malformed response: empty condition text")

        return CurrentConditions(
            city=city,
            temperature_celsius=temperature,
            humidity_percent=humidity,
            condition_text=condition_text
        )

    # =========================================================================
    # Health Tracking
    # =========================================================================

    def _record_success(self) -> None:
        with self._health_lock:
            self._consecutive_failures = 0
            self._last_success_at = datetime.utcnow().isoformat()

    def _record_failure(self, error_message: str) -> None:
        with self._health_lock:
            self._consecutive_failures += 1
            self._last_error = error_message

    def get_health(self) -> Dict[str, Any]:
        """Get provider availability as seen by recent lookups."""
        with self._health_lock:
            return {
                "configured": bool(self.api_key),
                "consecutive_failures": self._consecutive_failures,
                "last_success_at": self._last_success_at,
                "last_error": self._last_error,
            }

    def close(self) -> None:
        """Close HTTP session."""
        self._session.close()

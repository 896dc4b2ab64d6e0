from typing import Dict, Iterable, List, Optional

import pytest
from fastapi.testclient import TestClient

from weather_subscriptions.api import create_app
from weather_subscriptions.database import SubscriptionStore
from weather_subscriptions.fetcher import (
    CityNotFoundError,
    CurrentConditions,
    ProviderUnavailableError,
)
from weather_subscriptions.mailer import Mailer, MailError
from weather_subscriptions.settings import Settings


DEFAULT_CITIES = {
    "Kyiv": (12.5, 71, "Partly cloudy"),
    "Lviv": (9.0, 80, "Light rain"),
    "Odesa": (18.2, 64, "Sunny"),
}


class FakeFetcher:
    """Weather provider double backed by a table of known cities."""

    def __init__(self, cities: Optional[Dict[str, tuple]] = None):
        self.cities = dict(DEFAULT_CITIES if cities is None else cities)
        self.unavailable = set()
        self.calls: List[str] = []

    def fetch(self, city: str) -> CurrentConditions:
        self.calls.append(city)
        if city in self.unavailable:
            raise ProviderUnavailableError(f"Connection error for {city}")
        if city not in self.cities:
            raise CityNotFoundError(f"City not found: {city}")
        temperature, humidity, text = self.cities[city]
        return CurrentConditions(
            city=city,
            temperature_celsius=temperature,
            humidity_percent=humidity,
            condition_text=text
        )

    def is_valid_city(self, city: str) -> bool:
        try:
            self.fetch(city)
            return True
        except (CityNotFoundError, ProviderUnavailableError):
            return False

    def close(self) -> None:
        pass


class RecordingMailer(Mailer):
    """Keeps every accepted message; refuses configured recipients."""

    def __init__(self, failing: Iterable[str] = ()):
        self.sent: List[dict] = []
        self.failing = set(failing)
        self.fail_all = False

    def send(self, to, subject, text, html=None):
        if self.fail_all or to in self.failing:
            raise MailError(f"Failed to send email to {to}: 550 rejected")
        self.sent.append({"to": to, "subject": subject, "text": text, "html": html})

    def sent_to(self, address: str) -> List[dict]:
        return [m for m in self.sent if m["to"] == address]


@pytest.fixture()
def store():
    store = SubscriptionStore(":memory:")
    yield store
    store.close()


@pytest.fixture()
def fetcher():
    return FakeFetcher()


@pytest.fixture()
def mailer():
    return RecordingMailer()


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        base_url="http://testserver",
        scheduler_enabled=False,
        static_dir=str(tmp_path / "no-static"),
    )


@pytest.fixture()
def client(settings, store, fetcher, mailer):
    app = create_app(settings, store=store, fetcher=fetcher, mailer=mailer)
    with TestClient(app) as test_client:
        yield test_client

"""
Subscription lifecycle for the Weather Subscriptions service.

States: non-existent -> pending -> confirmed -> deleted (from pending or
confirmed). Mail failures after a committed state change are reported as a
softened success; the state change is never rolled back.
"""

import logging
from typing import Optional

from .database import Frequency, SubscriptionStore
from .errors import DuplicateError, InvalidInputError, NotFoundError
from .fetcher import CurrentConditions, FetchError, WeatherFetcher
from .mailer import Mailer, MailError, build_confirmation_email
from .dispatcher import send_forecast

logger = logging.getLogger(__name__)

MSG_CONFIRMATION_SENT = "Confirmation email sent."
MSG_CONFIRMATION_FAILED = "Subscription created, but failed to send confirmation email."
MSG_CONFIRMED = "Subscription confirmed successfully"
MSG_CONFIRMED_NO_FORECAST = "Confirmed, but failed to send forecast."
MSG_UNSUBSCRIBED = "Unsubscribed successfully"


def _short(token: str) -> str:
    return f"{token[:8]}..."


def parse_frequency(value: Optional[str]) -> Frequency:
    try:
        return Frequency(value or "")
    except ValueError:
        raise InvalidInputError("Invalid input")


class SubscriptionService:
    """Create, confirm and remove weather subscriptions."""

    def __init__(
        self,
        store: SubscriptionStore,
        fetcher: WeatherFetcher,
        mailer: Mailer,
        base_url: str
    ):
        self.store = store
        self.fetcher = fetcher
        self.mailer = mailer
        self.base_url = base_url.rstrip("/")

    def confirm_link(self, token: str) -> str:
        return f"{self.base_url}/api/confirm/{token}"

    def get_current_weather(self, city: Optional[str]) -> CurrentConditions:
        if not city or not city.strip():
            raise InvalidInputError("City is required")
        try:
            return self.fetcher.fetch(city)
        except FetchError as e:
            raise NotFoundError("City not found") from e

    def subscribe(self, email: Optional[str], city: Optional[str], frequency: Optional[str]) -> str:
        """
        Register a pending subscription and mail the confirmation link.

        Raises:
            InvalidInputError: bad frequency, empty email/city, unknown city
            DuplicateError: a subscription for (email, city) already exists
        """
        email = (email or "").strip()
        city = (city or "").strip()
        if not email or not city:
            raise InvalidInputError("Invalid input")
        if "\r" in email or "\n" in email:
            raise InvalidInputError("Invalid input: email")
        tier = parse_frequency(frequency)

        if not self.fetcher.is_valid_city(city):
            raise InvalidInputError("Invalid input: city not found")

        if self.store.find_by_email_and_city(email, city) is not None:
            raise DuplicateError("Email already subscribed")

        token = self.store.insert(email, city, tier)
        logger.info(f"Created pending {tier.value} subscription for {email} / {city} "
                    f"(token {_short(token)})")

        try:
            self.mailer.send_email(email, build_confirmation_email(self.confirm_link(token)))
        except MailError as e:
            logger.error(f"Failed to send confirmation email to {email}: {e}")
            return MSG_CONFIRMATION_FAILED

        return MSG_CONFIRMATION_SENT

    def confirm(self, token: str) -> str:
        """
        Confirm a subscription and send the first forecast.

        Confirming an already confirmed token succeeds again and re-sends the
        forecast.
        """
        sub = self.store.find_by_token(token)
        if sub is None:
            raise NotFoundError("Token not found")

        if not self.store.confirm(token):
            raise NotFoundError("Token not found")
        logger.info(f"Confirmed subscription {_short(token)} for {sub.email} / {sub.city}")

        try:
            send_forecast(self.fetcher, self.mailer, sub.email, sub.city)
        except (FetchError, MailError) as e:
            logger.error(f"Failed to send forecast to {sub.email} after confirmation: {e}")
            return MSG_CONFIRMED_NO_FORECAST

        return MSG_CONFIRMED

    def unsubscribe(self, token: str) -> str:
        """Delete a subscription. A repeat call raises NotFoundError."""
        sub = self.store.find_by_token(token)
        if sub is None:
            raise NotFoundError("Token not found")

        if not self.store.delete(token):
            raise NotFoundError("Token not found")
        logger.info(f"Deleted subscription {_short(token)} for {sub.email} / {sub.city}")

        return MSG_UNSUBSCRIBED

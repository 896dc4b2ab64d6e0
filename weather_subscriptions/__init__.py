"""
Weather Subscriptions Backend

A weather update service with:
- Current weather lookup (weatherapi.com)
- Double opt-in email subscriptions with one-click unsubscribe
- SQLite persistence with uniqueness enforced by the schema
- Scheduled hourly and daily weather emails
- REST API for all of the above
"""

from .database import Frequency, Subscription, SubscriptionStore
from .dispatcher import BatchResult, NotificationDispatcher
from .errors import (
    DuplicateError,
    InvalidInputError,
    NotFoundError,
    StorageError,
    TransportError,
    WeatherServiceError,
)
from .fetcher import (
    CityNotFoundError,
    CurrentConditions,
    FetchError,
    ProviderUnavailableError,
    WeatherFetcher,
)
from .mailer import ConsoleMailer, Mailer, MailError, SMTPMailer
from .scheduler import WeatherScheduler
from .settings import Settings
from .subscriptions import SubscriptionService

__version__ = "1.0.0"

__all__ = [
    "Frequency",
    "Subscription",
    "SubscriptionStore",
    "BatchResult",
    "NotificationDispatcher",
    "WeatherServiceError",
    "InvalidInputError",
    "DuplicateError",
    "NotFoundError",
    "TransportError",
    "StorageError",
    "CurrentConditions",
    "WeatherFetcher",
    "FetchError",
    "CityNotFoundError",
    "ProviderUnavailableError",
    "Mailer",
    "SMTPMailer",
    "ConsoleMailer",
    "MailError",
    "WeatherScheduler",
    "Settings",
    "SubscriptionService",
]

"""
Error taxonomy shared by the store, the service and the HTTP layer.

Each error carries the HTTP status it is reported with at the API boundary.
"""


class WeatherServiceError(Exception):
    """Base class for all errors raised by the service."""
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class InvalidInputError(WeatherServiceError):
    """Client-correctable input problem."""
    status_code = 400


class DuplicateError(WeatherServiceError):
    """A subscription for this email and city already exists."""
    status_code = 409


class NotFoundError(WeatherServiceError):
    """Unknown city or unknown token."""
    status_code = 404


class TransportError(WeatherServiceError):
    """Mail or weather provider infrastructure failure."""
    status_code = 500


class StorageError(WeatherServiceError):
    """Backing store failure."""
    status_code = 500

"""
wondekit/errors.py
------------------

Exception types raised by the Wonde client.

Every error raised by this package derives from ``WondeKitError`` so callers
can catch the whole family with one ``except`` clause:

- ``ConfigurationError``: a client could not be built (missing school ID or
  token, empty or duplicated school list).
- ``TransportError``: an HTTP round trip failed (network error, timeout,
  non-2xx status, malformed JSON body).
- ``MergeAmbiguityError``: two payloads of incompatible shape had to be merged
  (a JSON array meeting a JSON object).
"""

from typing import Any, Optional


class WondeKitError(Exception):
    """Base class for all wondekit errors."""


class ConfigurationError(WondeKitError):
    """Raised synchronously when a client is constructed with bad settings."""


class TransportError(WondeKitError):
    """
    Raised when a request to the Wonde API fails.

    Attributes:
        status_code (int | None): HTTP status of the failed response, if any.
        url (str | None): The URL that was requested.
        body (str | None): Raw response body, kept for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url
        self.body = body


class MergeAmbiguityError(WondeKitError):
    """Raised when two payloads cannot be merged without guessing a strategy."""

    def __init__(self, accumulated: Any, incoming: Any) -> None:
        super().__init__(
            f"Cannot merge {type(incoming).__name__} payload into "
            f"{type(accumulated).__name__} payload"
        )
        self.accumulated = accumulated
        self.incoming = incoming

"""
Wonde API Base Utilities
========================

Shared configuration and the HTTP transport used by every Wonde client.
This module is the only place that talks to the network; the clients in
``single.py`` and ``multiple.py`` decide which requests to send and how to
combine the results, and hand each round trip to a ``Transport``.

Features:
- Centralized API endpoint configuration
- Environment-based credential lookup (with ``.env`` support for local work)
- Async HTTP transport using aiohttp for non-blocking requests
- Retries with exponential backoff for idempotent requests
- Optional ETag / Last-Modified revalidation cache

API Information:
- Base URL: https://api.wonde.com/v1.0
- Documentation: https://docs.wonde.com/docs/api/sync
- Authentication: ``Authorization: Bearer <token>`` per school

Usage:
    from wondekit.base import AiohttpTransport, HttpOptions

    transport = AiohttpTransport(HttpOptions(timeout=10, retries=3))
    response = await transport.send(
        "GET",
        "schools/A1930499544/students",
        base_url=DEFAULT_BASE_URL,
        headers={"Authorization": "Bearer <token>"},
        search_params={"per_page": 50},
    )

Environment Variables:
- WONDEKIT_SCHOOL_ID: Wonde ID of the school used when none is passed
- WONDEKIT_TOKEN: API token used when none is passed
"""

import asyncio
import json
import logging
import os
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

import aiohttp
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, confloat, conint, field_validator

from .errors import TransportError

# Load environment variables from a .env file for local development.
# Variables already present in the process environment win.
load_dotenv()

logger = logging.getLogger(__name__)

# Versioned root of Wonde's REST API. Paths passed to the clients are
# resolved against this unless a per-call base URL is given.
DEFAULT_BASE_URL = "https://api.wonde.com/v1.0"

SCHOOL_ID_ENV = "WONDEKIT_SCHOOL_ID"
TOKEN_ENV = "WONDEKIT_TOKEN"

CREDENTIAL_ENV_VARS = {
    "school": SCHOOL_ID_ENV,
    "token": TOKEN_ENV,
}

# Retried only for methods that are safe to repeat
IDEMPOTENT_METHODS = frozenset({"GET", "PUT", "DELETE"})
RETRYABLE_STATUSES = frozenset({408, 413, 429, 500, 502, 503, 504, 521, 522, 524})
# Statuses whose Retry-After header sets the delay before the next attempt
RETRY_AFTER_STATUSES = frozenset({413, 429, 503})


# ---------------------------------------------------------------------------
# 1. Credential lookup
# ---------------------------------------------------------------------------
# A resolver receives a field name ("school" or "token") and returns its
# value, or None when it has nothing to offer.
CredentialResolver = Callable[[str], Optional[str]]


def environment_resolver(name: str) -> Optional[str]:
    """
    Returns a credential from the process environment.

    ``school`` reads WONDEKIT_SCHOOL_ID and ``token`` reads WONDEKIT_TOKEN.
    Empty strings count as unset.
    """
    return os.getenv(CREDENTIAL_ENV_VARS[name]) or None


def mapping_resolver(values: Mapping[str, Optional[str]]) -> CredentialResolver:
    """Build a resolver backed by a fixed mapping (handy in tests)."""

    def resolve(name: str) -> Optional[str]:
        return values.get(name) or None

    return resolve


# ---------------------------------------------------------------------------
# 2. Transport configuration
# ---------------------------------------------------------------------------
class HttpOptions(BaseModel):
    """
    HTTP configuration handed unchanged to the transport factory.

    Attributes:
        timeout: Seconds to wait for a response before aborting. ``None``
            (the default) means no timeout.
        retries: How many extra attempts an idempotent request gets after a
            retryable failure. Defaults to 2.
        cache: A mutable mapping (a plain ``dict`` works) used to store
            responses for ETag / Last-Modified revalidation. Disabled when
            ``None``.
        http2: Ask for HTTP/2. aiohttp speaks HTTP/1.1 only, so the default
            transport logs a warning and carries on over HTTP/1.1.
        retry_backoff: Base delay in seconds between retries; doubles on
            every attempt.
    """

    model_config = ConfigDict(frozen=True)

    timeout: Optional[confloat(gt=0)] = None
    retries: conint(ge=0) = 2
    cache: Optional[Any] = None
    http2: bool = False
    retry_backoff: confloat(ge=0) = 1.0

    @field_validator("cache")
    @classmethod
    def _validate_cache(cls, value):
        if value is not None and not isinstance(value, MutableMapping):
            raise ValueError("cache must be a mutable mapping such as a dict")
        return value


# ---------------------------------------------------------------------------
# 3. The transport interface
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class RawResponse:
    """The textual HTTP response of one round trip."""

    status_code: int
    url: str
    body: str
    headers: Dict[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        """
        Parse the body as JSON.

        Raises:
            TransportError: if the body is not valid JSON.
        """
        try:
            return json.loads(self.body)
        except ValueError as exc:
            raise TransportError(
                f"Malformed JSON in response from {self.url}",
                status_code=self.status_code,
                url=self.url,
                body=self.body,
            ) from exc

    def json_object(self) -> Dict[str, Any]:
        """Parse the body and require a JSON object at the top level."""
        payload = self.json()
        if not isinstance(payload, dict):
            raise TransportError(
                f"Expected a JSON object from {self.url}, got {type(payload).__name__}",
                status_code=self.status_code,
                url=self.url,
                body=self.body,
            )
        return payload


class Transport(Protocol):
    """Anything that can perform one HTTP round trip for a client."""

    async def send(
        self,
        method: str,
        url: str,
        *,
        base_url: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        search_params: Optional[Mapping[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> RawResponse:
        ...


TransportFactory = Callable[[HttpOptions], Transport]


def build_url(url: str, base_url: Optional[str] = None) -> str:
    """Join ``url`` onto ``base_url``; without a base URL it is used as-is."""
    if not base_url:
        return url
    return f"{base_url.rstrip('/')}/{url.lstrip('/')}"


def encode_params(search_params: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """
    Turn a mapping of scalars into query-string values.

    ``None`` values are dropped and booleans become ``"true"``/``"false"``.
    """
    params: Dict[str, str] = {}
    for key, value in (search_params or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            params[key] = "true" if value else "false"
        else:
            params[key] = str(value)
    return params


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def retry_after_seconds(value: Optional[str]) -> Optional[float]:
    """
    Parse a Retry-After header, given either as seconds or as an HTTP date.

    Returns ``None`` when the header is missing or unreadable.
    """
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)


# ---------------------------------------------------------------------------
# 4. The aiohttp transport
# ---------------------------------------------------------------------------
class AiohttpTransport:
    """
    Default ``Transport`` built on aiohttp.

    A fresh ``ClientSession`` is opened for every round trip, so the transport
    holds no connections between calls and needs no explicit close.
    """

    def __init__(self, options: Optional[HttpOptions] = None) -> None:
        self.options = options or HttpOptions()
        if self.options.http2:
            logger.warning("HTTP/2 requested but aiohttp only supports HTTP/1.1; using HTTP/1.1")

    async def send(
        self,
        method: str,
        url: str,
        *,
        base_url: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        search_params: Optional[Mapping[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> RawResponse:
        method = method.upper()
        target = build_url(url, base_url)
        params = encode_params(search_params)
        request_headers = dict(headers or {})

        cache = self.options.cache
        cache_key = None
        cached = None
        if cache is not None and method == "GET":
            cache_key = self._cache_key(method, target, params)
            cached = cache.get(cache_key)
            if cached:
                if cached.get("etag"):
                    request_headers["If-None-Match"] = cached["etag"]
                if cached.get("last_modified"):
                    request_headers["If-Modified-Since"] = cached["last_modified"]

        attempts = 1 + (self.options.retries if method in IDEMPOTENT_METHODS else 0)
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self._send_once(method, target, request_headers, params, json_body)
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                if attempt < attempts:
                    logger.warning(f"{method} {target} failed ({exc!r}); retry {attempt}/{attempts - 1}")
                    await self._backoff(attempt)
                    continue
                raise TransportError(f"{method} {target} failed: {exc!r}", url=target) from exc

            if response.status_code in RETRYABLE_STATUSES and attempt < attempts:
                delay = None
                if response.status_code in RETRY_AFTER_STATUSES:
                    delay = retry_after_seconds(_header(response.headers, "Retry-After"))
                if delay is not None and self.options.timeout is not None and delay > self.options.timeout:
                    logger.warning(f"{method} {target} asked to retry after {delay}s, longer than the timeout; giving up")
                    break
                logger.warning(
                    f"{method} {target} returned {response.status_code}; retry {attempt}/{attempts - 1}"
                )
                await self._backoff(attempt, delay)
                continue
            break

        if response.status_code == 304 and cached:
            logger.debug(f"{method} {target} not modified; serving cached body")
            return RawResponse(
                status_code=cached["status_code"],
                url=response.url,
                body=cached["body"],
                headers=response.headers,
            )

        if not 200 <= response.status_code < 300:
            raise TransportError(
                f"Wonde API error {response.status_code} for {method} {target}",
                status_code=response.status_code,
                url=target,
                body=response.body,
            )

        if cache_key is not None:
            etag = _header(response.headers, "ETag")
            last_modified = _header(response.headers, "Last-Modified")
            if etag or last_modified:
                cache[cache_key] = {
                    "status_code": response.status_code,
                    "body": response.body,
                    "etag": etag,
                    "last_modified": last_modified,
                }

        return response

    async def _send_once(
        self,
        method: str,
        target: str,
        headers: Dict[str, str],
        params: Dict[str, str],
        json_body: Optional[Dict[str, Any]],
    ) -> RawResponse:
        timeout = aiohttp.ClientTimeout(total=self.options.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.request(
                method,
                target,
                headers=headers,
                params=params or None,
                json=json_body,
            ) as response:
                raw = await response.read()
                encoding = response.charset or "utf-8"
                try:
                    text = raw.decode(encoding)
                except (UnicodeDecodeError, LookupError) as exc:
                    raise TransportError(
                        f"Undecodable {encoding} body in response from {response.url}",
                        status_code=response.status,
                        url=str(response.url),
                        body=raw.decode("utf-8", errors="replace"),
                    ) from exc
                return RawResponse(
                    status_code=response.status,
                    url=str(response.url),
                    body=text,
                    headers=dict(response.headers),
                )

    async def _backoff(self, attempt: int, delay: Optional[float] = None) -> None:
        if delay is None:
            delay = self.options.retry_backoff * 2 ** (attempt - 1)
        if delay:
            await asyncio.sleep(delay)

    @staticmethod
    def _cache_key(method: str, target: str, params: Dict[str, str]) -> str:
        query = "&".join(f"{key}={value}" for key, value in sorted(params.items()))
        return f"{method}:{target}?{query}" if query else f"{method}:{target}"

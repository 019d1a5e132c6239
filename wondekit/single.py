"""
wondekit/single.py
------------------

A client for Wonde's API scoped to one school.

Purpose:
  Sends requests on behalf of a single school (identified by its Wonde ID),
  either as one round trip or by walking every page of a paginated listing
  and merging the pages together.

Typical usage:
  client = SchoolClient("A1930499544", "<token>")

  # One request, full envelope (data, meta, extra fields, raw HTTP response)
  students = await client.invoke("get", "schools/{{school}}/students", {"per_page": 50})

  # Every page, merged into one ``data`` value
  everyone = await client.invoke(
      "get", "schools/{{school}}/students", {"include": ["classes"], "paginate": True}
  )
"""

import logging
import re
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from .base import (
    DEFAULT_BASE_URL,
    AiohttpTransport,
    CredentialResolver,
    HttpOptions,
    RawResponse,
    TransportFactory,
    environment_resolver,
)
from .errors import ConfigurationError
from .merge import merge_payloads
from .models import FunctionResponse, InvokeOptions, PaginatedResponse

logger = logging.getLogger(__name__)

# Matches {{school}}, {{ school }}, {{SCHOOL}}, ...
SCHOOL_PLACEHOLDER = re.compile(r"\{\{\s*school\s*\}\}", re.IGNORECASE)

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE")

OptionsLike = Union[InvokeOptions, Mapping[str, Any], None]
HttpOptionsLike = Union[HttpOptions, Mapping[str, Any], None]


def coerce_options(options: OptionsLike) -> InvokeOptions:
    if options is None:
        return InvokeOptions()
    if isinstance(options, InvokeOptions):
        return options
    return InvokeOptions.model_validate(dict(options))


def coerce_http_options(http_options: HttpOptionsLike) -> HttpOptions:
    if isinstance(http_options, HttpOptions):
        return http_options
    try:
        return HttpOptions.model_validate(dict(http_options or {}))
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid HTTP options: {exc}") from exc


def normalize_method(method: str) -> str:
    normalized = str(method).upper()
    if normalized not in HTTP_METHODS:
        raise ValueError(f"Unsupported HTTP method {method!r}; expected one of {HTTP_METHODS}")
    return normalized


def next_page_url(body: Dict[str, Any]) -> Optional[str]:
    """Returns ``meta.pagination.next`` from a response body, if there is one."""
    meta = body.get("meta")
    if not isinstance(meta, dict):
        return None
    pagination = meta.get("pagination")
    if not isinstance(pagination, dict):
        return None
    return pagination.get("next") or None


class SchoolClient:
    """
    Client for one school's data in Wonde's API.

    Args:
        school: Wonde ID of the school. Falls back to the credential resolver
            (by default the WONDEKIT_SCHOOL_ID environment variable).
        token: API token for the school. Falls back to the credential
            resolver (by default the WONDEKIT_TOKEN environment variable).
        http_options: ``HttpOptions`` (or a dict of them) passed unchanged to
            ``transport_factory``.
        credential_resolver: Where missing credentials are looked up.
        transport_factory: Builds the transport from ``http_options``.

    Raises:
        ConfigurationError: if the school ID or token cannot be resolved.
    """

    def __init__(
        self,
        school: Optional[str] = None,
        token: Optional[str] = None,
        http_options: HttpOptionsLike = None,
        *,
        credential_resolver: CredentialResolver = environment_resolver,
        transport_factory: TransportFactory = AiohttpTransport,
    ) -> None:
        self._school = school or credential_resolver("school")
        self._token = token or credential_resolver("token")

        if not self._school:
            raise ConfigurationError("`school` cannot be undefined!")
        if not self._token:
            raise ConfigurationError("`token` cannot be undefined!")

        self.http_options = coerce_http_options(http_options)
        self.transport = transport_factory(self.http_options)

    @property
    def school(self) -> str:
        return self._school

    @property
    def token(self) -> str:
        return self._token

    def __repr__(self) -> str:
        return f"{type(self).__name__}(school={self._school!r})"

    def resolve_path(self, path: str) -> str:
        """Replace every ``{{school}}`` placeholder in ``path`` with this school's ID."""
        return SCHOOL_PLACEHOLDER.sub(lambda _: self._school, path)

    async def invoke(
        self,
        method: str,
        path: str,
        options: OptionsLike = None,
    ) -> Union[FunctionResponse, PaginatedResponse]:
        """
        Make a request to Wonde's API.

        When ``options.paginate`` is true every page is fetched and a
        ``PaginatedResponse`` is returned; otherwise a single request is made
        and a ``FunctionResponse`` is returned.
        """
        options = coerce_options(options)
        if options.paginate:
            return await self.paginate(method, path, options)
        return await self.request(method, path, options)

    async def request(
        self,
        method: str,
        path: str,
        options: OptionsLike = None,
    ) -> FunctionResponse:
        """
        Send exactly one request and return the full response envelope.

        Raises:
            TransportError: on network failure, a non-2xx status, or a body
                that is not a JSON object.
        """
        method = normalize_method(method)
        options = coerce_options(options)
        resolved = self.resolve_path(path)

        logger.debug(f"{method} {resolved} (school {self._school})")
        response = await self._send_first(method, resolved, options)
        return FunctionResponse.from_http_response(response)

    async def paginate(
        self,
        method: str,
        path: str,
        options: OptionsLike = None,
    ) -> PaginatedResponse:
        """
        Follow ``meta.pagination.next`` until it runs out, merging each page.

        The first request goes to the resolved path with the full set of
        query parameters; later requests use the server-provided ``next`` URL
        verbatim. At least one request is always made. Pages are fetched one
        after another since each URL comes from the previous response.

        Raises:
            TransportError: if any page fails.
            MergeAmbiguityError: if pages mix JSON arrays and objects.
        """
        method = normalize_method(method)
        options = coerce_options(options)
        resolved = self.resolve_path(path)

        data: Any = None
        next_url: Optional[str] = None
        page = 0
        while True:
            page += 1
            if next_url is None:
                response = await self._send_first(method, resolved, options)
            else:
                logger.debug(f"{method} page {page} for school {self._school}: {next_url}")
                response = await self.transport.send(
                    method,
                    next_url,
                    headers=self._headers(),
                    json_body=options.body,
                )

            body = response.json_object()
            data = merge_payloads(data, body.get("data"))
            next_url = next_page_url(body)
            if next_url is None:
                break

        logger.debug(f"{method} {resolved} fetched {page} page(s) for school {self._school}")
        return PaginatedResponse(data=data)

    async def _send_first(self, method: str, resolved: str, options: InvokeOptions) -> RawResponse:
        return await self.transport.send(
            method,
            resolved,
            base_url=options.base_url or DEFAULT_BASE_URL,
            headers=self._headers(),
            search_params=options.query(),
            json_body=options.body,
        )

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

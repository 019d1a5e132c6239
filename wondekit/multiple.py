"""
wondekit/multiple.py
--------------------

A client that makes the same request against several schools at once.

Each school gets its own ``SchoolClient``; a call is sent to all of them
concurrently and the per-school results are combined in one of two ways:

- "group": ``{"data": {<school id>: <that school's data>, ...}}``
- "aggregate": ``{"data": <every school's data merged>}`` using the same
  rules as pagination (arrays concatenate, objects shallow-merge)

If any school's request fails the whole call fails with that error; no
partial results are returned. Requests still in flight for other schools are
left to finish on their own.
"""

import asyncio
import logging
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from .base import AiohttpTransport, HttpOptions, TransportFactory
from .errors import ConfigurationError
from .merge import merge_all
from .models import AggregatedResponse, GroupedResponse, InvokeMode, InvokeOptions, SchoolCredential
from .single import (
    HttpOptionsLike,
    OptionsLike,
    SchoolClient,
    coerce_http_options,
    coerce_options,
    normalize_method,
)

logger = logging.getLogger(__name__)

SchoolsLike = Sequence[Union[str, SchoolCredential, Mapping[str, str]]]


def _credentials(schools: SchoolsLike, token: Optional[str]) -> List[SchoolCredential]:
    """Normalise the constructor input into a list of ``SchoolCredential``."""
    if isinstance(schools, str):
        raise ConfigurationError(f"schools must be a list of school IDs or entries, not the string {schools!r}")
    credentials: List[SchoolCredential] = []
    for school in schools:
        try:
            if isinstance(school, SchoolCredential):
                credentials.append(school)
            elif isinstance(school, str):
                if not token:
                    raise ConfigurationError(
                        f"School {school!r} was given without a token and no shared token was provided"
                    )
                credentials.append(SchoolCredential(id=school, token=token))
            else:
                credentials.append(SchoolCredential.model_validate(dict(school)))
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid school entry {school!r}: {exc}") from exc
    return credentials


class MultiSchoolClient:
    """
    Multi-school client for Wonde's API.

    Args:
        schools: Either ``{"id": ..., "token": ...}`` entries (or
            ``SchoolCredential`` objects), one per school, or plain Wonde
            school IDs combined with ``token``.
        token: A multi-school token shared by every school given as a plain ID.
        http_options: Transport configuration shared by every school.
        transport_factory: Builds each school's transport.

    Raises:
        ConfigurationError: if ``schools`` is empty, an ID appears twice, or
            a school has no token.
    """

    def __init__(
        self,
        schools: SchoolsLike,
        token: Optional[str] = None,
        http_options: HttpOptionsLike = None,
        *,
        transport_factory: TransportFactory = AiohttpTransport,
    ) -> None:
        credentials = _credentials(schools, token)
        if not credentials:
            raise ConfigurationError("At least one school is required")

        self.http_options: HttpOptions = coerce_http_options(http_options)

        clients: Dict[str, SchoolClient] = {}
        for credential in credentials:
            if credential.id in clients:
                raise ConfigurationError(f"School {credential.id!r} was given more than once")
            clients[credential.id] = SchoolClient(
                credential.id,
                credential.token,
                self.http_options,
                transport_factory=transport_factory,
            )

        self._schools = MappingProxyType(clients)

    @property
    def schools(self) -> Mapping[str, SchoolClient]:
        """Read-only mapping of Wonde school ID to that school's client."""
        return self._schools

    def __repr__(self) -> str:
        return f"{type(self).__name__}(schools={list(self._schools)!r})"

    async def invoke(
        self,
        method: str,
        path: str,
        mode: Union[InvokeMode, str],
        options: OptionsLike = None,
    ) -> Union[GroupedResponse, AggregatedResponse]:
        """
        Make the same request against every school.

        Args:
            method: GET, POST, PUT or DELETE.
            path: Request path; ``{{school}}`` is replaced per school.
            mode: ``"group"`` to key results by school, ``"aggregate"`` to
                merge them into one value.
            options: Forwarded to each ``SchoolClient.invoke`` unchanged.

        Raises:
            TransportError: as soon as any school's request fails.
            MergeAmbiguityError: in aggregate mode, if schools return a mix of
                JSON arrays and objects.
        """
        method = normalize_method(method)
        mode = InvokeMode(mode)
        options = coerce_options(options)

        results = await self._gather(method, path, options)

        if mode is InvokeMode.GROUP:
            return GroupedResponse(data=dict(results))
        return AggregatedResponse(data=merge_all(data for _, data in results))

    async def _gather(self, method: str, path: str, options: InvokeOptions) -> List[Tuple[str, Any]]:
        """Run the request for every school concurrently, in school order."""

        async def run(school: str, client: SchoolClient) -> Tuple[str, Any]:
            response = await client.invoke(method, path, options)
            return school, response.data

        logger.info(f"{method} {path} across {len(self._schools)} school(s)")
        # gather keeps input order, so aggregate merges are deterministic
        return list(await asyncio.gather(*(run(school, client) for school, client in self._schools.items())))


"""
wondekit/models.py
------------------

Pydantic models for the request options and response envelopes used by the
Wonde clients.

Response shapes returned by Wonde's API look like:

    {
      "data": [ {...}, {...} ],
      "meta": {
        "pagination": {
          "next": "https://api.wonde.com/v1.0/schools/A123/students?page=2",
          "previous": null,
          "more": true,
          "per_page": 50,
          "current_page": 1
        }
      }
    }
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, conint, field_validator

from .base import RawResponse
from .errors import TransportError


# Values allowed in the ``search_params`` mapping of a request
SearchParamValue = Optional[Union[str, int, float, bool]]


# ---------------------------------------------------------------------------
# 1. Credentials and invocation options
# ---------------------------------------------------------------------------
class SchoolCredential(BaseModel):
    """A school's Wonde ID paired with the API token for that school."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="The Wonde ID of the school.")
    token: str = Field(..., min_length=1, description="The school's API token.")


class InvokeMode(str, Enum):
    """How a multi-school request combines the per-school results."""

    GROUP = "group"
    AGGREGATE = "aggregate"


class InvokeOptions(BaseModel):
    """
    Per-call options for ``SchoolClient.invoke``.

    Attributes:
        base_url: Overrides the default API root for this call.
        body: JSON body sent with the request.
        per_page: Maximum number of results per page. Wonde caps this at 200
            (5000 for attendance session data).
        include: Entity relationships to include in the result.
        search_params: Extra URL parameters added to the request.
        paginate: Follow ``meta.pagination.next`` and merge every page.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: Optional[str] = None
    body: Optional[Dict[str, Any]] = None
    per_page: Optional[conint(ge=1)] = None
    include: Optional[List[str]] = None
    search_params: Optional[Dict[str, SearchParamValue]] = None
    paginate: bool = False

    def query(self) -> Dict[str, SearchParamValue]:
        """
        Build the query parameters for the first request of a call.

        ``per_page`` and ``include`` are only present when they were supplied.
        """
        params: Dict[str, SearchParamValue] = dict(self.search_params or {})
        if self.per_page is not None:
            params["per_page"] = self.per_page
        if self.include:
            params["include"] = ",".join(self.include)
        return params


# ---------------------------------------------------------------------------
# 2. Response envelopes
# ---------------------------------------------------------------------------
class Pagination(BaseModel):
    """Pagination metadata returned by Wonde's API."""

    model_config = ConfigDict(extra="allow")

    next: Optional[str] = None
    previous: Optional[str] = None
    more: Optional[bool] = None
    per_page: Optional[int] = None
    current_page: Optional[int] = None


class Meta(BaseModel):
    model_config = ConfigDict(extra="allow")

    pagination: Optional[Pagination] = None

    @field_validator("pagination", mode="before")
    @classmethod
    def _drop_non_object_pagination(cls, value):
        return value if isinstance(value, (dict, Pagination)) else None


class FunctionResponse(BaseModel):
    """
    The envelope returned by a single, non-paginated request.

    Top-level fields other than ``data`` and ``meta`` are kept as extra
    attributes, so new fields added by the API remain reachable.
    """

    model_config = ConfigDict(extra="allow")

    data: Any = None
    meta: Optional[Meta] = None

    _http_response: Optional[RawResponse] = PrivateAttr(default=None)

    # Wonde sends an empty list for endpoints without metadata
    @field_validator("meta", mode="before")
    @classmethod
    def _drop_non_object_meta(cls, value):
        return value if isinstance(value, (dict, Meta)) else None

    @classmethod
    def from_http_response(cls, response: RawResponse) -> "FunctionResponse":
        try:
            envelope = cls.model_validate(response.json_object())
        except ValidationError as exc:
            raise TransportError(
                f"Unexpected response shape from {response.url}: {exc}",
                status_code=response.status_code,
                url=response.url,
                body=response.body,
            ) from exc
        envelope._http_response = response
        return envelope

    def get_http_response(self) -> Optional[RawResponse]:
        """Returns the raw HTTP response this envelope was built from."""
        return self._http_response


class PaginatedResponse(BaseModel):
    """The merged ``data`` of every page fetched by a paginated request."""

    data: Any = None


class GroupedResponse(BaseModel):
    """Multi-school results keyed by Wonde school ID."""

    data: Dict[str, Any] = Field(default_factory=dict)


class AggregatedResponse(BaseModel):
    """Multi-school results merged into a single value."""

    data: Any = None

"""
wondekit
Async client for Wonde's school data API, for one school or many at once.
"""

from .base import (
    DEFAULT_BASE_URL,
    AiohttpTransport,
    HttpOptions,
    RawResponse,
    Transport,
    environment_resolver,
    mapping_resolver,
)
from .errors import ConfigurationError, MergeAmbiguityError, TransportError, WondeKitError
from .merge import PayloadKind, classify_payload, merge_payloads
from .models import (
    AggregatedResponse,
    FunctionResponse,
    GroupedResponse,
    InvokeMode,
    InvokeOptions,
    Meta,
    PaginatedResponse,
    Pagination,
    SchoolCredential,
)
from .multiple import MultiSchoolClient
from .single import SchoolClient

__version__ = "1.0.0"

__all__ = [
    "DEFAULT_BASE_URL",
    "AggregatedResponse",
    "AiohttpTransport",
    "ConfigurationError",
    "FunctionResponse",
    "GroupedResponse",
    "HttpOptions",
    "InvokeMode",
    "InvokeOptions",
    "MergeAmbiguityError",
    "Meta",
    "MultiSchoolClient",
    "PaginatedResponse",
    "Pagination",
    "PayloadKind",
    "RawResponse",
    "SchoolClient",
    "SchoolCredential",
    "Transport",
    "TransportError",
    "WondeKitError",
    "classify_payload",
    "environment_resolver",
    "mapping_resolver",
    "merge_payloads",
]

import pytest

from conftest import FakeTransport, json_response, page
from wondekit.base import DEFAULT_BASE_URL, HttpOptions, RawResponse, mapping_resolver
from wondekit.errors import ConfigurationError, MergeAmbiguityError, TransportError
from wondekit.models import FunctionResponse, PaginatedResponse
from wondekit.single import SchoolClient


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------
def test_initialized_with_school_and_token(client):
    assert client.school == "abc123"
    assert client.token == "def456"


def test_falls_back_to_credential_resolver():
    resolver = mapping_resolver({"school": "abc123", "token": "def456"})
    client = SchoolClient(credential_resolver=resolver, transport_factory=lambda options: FakeTransport())
    assert client.school == "abc123"
    assert client.token == "def456"


def test_initialization_through_environment_variables(monkeypatch):
    monkeypatch.setenv("WONDEKIT_SCHOOL_ID", "abc123")
    monkeypatch.setenv("WONDEKIT_TOKEN", "def456")

    client = SchoolClient(transport_factory=lambda options: FakeTransport())

    assert client.school == "abc123"
    assert client.token == "def456"


def test_explicit_options_win_over_fallback(monkeypatch):
    monkeypatch.setenv("WONDEKIT_SCHOOL_ID", "abc123")
    monkeypatch.setenv("WONDEKIT_TOKEN", "def456")

    client = SchoolClient(token="ghi789", transport_factory=lambda options: FakeTransport())

    assert client.school == "abc123"
    assert client.token == "ghi789"


def test_explicit_school_wins_over_fallback(monkeypatch):
    monkeypatch.setenv("WONDEKIT_SCHOOL_ID", "abc123")
    monkeypatch.setenv("WONDEKIT_TOKEN", "def456")

    client = SchoolClient(school="xyz", transport_factory=lambda options: FakeTransport())

    assert client.school == "xyz"
    assert client.token == "def456"


def test_explicit_values_win_over_resolver():
    resolver = mapping_resolver({"school": "abc123", "token": "def456"})

    client = SchoolClient("xyz", "ghi789", credential_resolver=resolver, transport_factory=lambda options: FakeTransport())

    assert client.school == "xyz"
    assert client.token == "ghi789"


def test_missing_school_raises():
    resolver = mapping_resolver({"token": "def456"})
    with pytest.raises(ConfigurationError, match="school"):
        SchoolClient(credential_resolver=resolver)


def test_missing_token_raises():
    resolver = mapping_resolver({"school": "abc123"})
    with pytest.raises(ConfigurationError, match="token"):
        SchoolClient(credential_resolver=resolver)


def test_missing_from_environment_raises(monkeypatch):
    monkeypatch.delenv("WONDEKIT_SCHOOL_ID", raising=False)
    monkeypatch.setenv("WONDEKIT_TOKEN", "def456")
    with pytest.raises(ConfigurationError):
        SchoolClient()


def test_http_options_forwarded_to_transport_factory():
    cache = {}
    seen = []

    def factory(options):
        seen.append(options)
        return FakeTransport()

    SchoolClient(
        "abc123",
        "def456",
        {"timeout": 5, "retries": 5, "cache": cache, "http2": False},
        transport_factory=factory,
    )

    options = seen[0]
    assert options.timeout == 5
    assert options.retries == 5
    assert options.cache is cache
    assert options.http2 is False


def test_http_options_defaults():
    options = HttpOptions()
    assert options.timeout is None
    assert options.retries == 2
    assert options.cache is None
    assert options.http2 is False


def test_invalid_http_options_raise_configuration_error():
    with pytest.raises(ConfigurationError):
        SchoolClient("abc123", "def456", {"retries": -1}, transport_factory=lambda options: FakeTransport())


def test_repr_hides_token(client):
    assert "def456" not in repr(client)


# ---------------------------------------------------------------------------
# Path templating
# ---------------------------------------------------------------------------
@pytest.mark.parametrize(
    "template",
    [
        "schools/{{school}}/students",
        "schools/{{ school }}/students",
        "schools/{{SCHOOL}}/students",
        "schools/{{  School  }}/students",
    ],
)
def test_resolve_path_replaces_placeholder(client, template):
    assert client.resolve_path(template) == "schools/abc123/students"


def test_resolve_path_replaces_every_occurrence(client):
    assert client.resolve_path("{{school}}/x/{{school}}") == "abc123/x/abc123"


def test_resolve_path_without_placeholder_is_unchanged(client):
    assert client.resolve_path("schools") == "schools"


# ---------------------------------------------------------------------------
# Single requests
# ---------------------------------------------------------------------------
async def test_request_issues_exactly_one_call(client, transport):
    transport.responses.append(page([{"id": "s1"}], next_url="https://api.wonde.com/v1.0/next"))

    response = await client.invoke("get", "schools/{{school}}/students")

    assert isinstance(response, FunctionResponse)
    assert len(transport.calls) == 1
    call = transport.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "schools/abc123/students"
    assert call["base_url"] == DEFAULT_BASE_URL
    assert call["headers"] == {"Authorization": "Bearer def456"}
    assert response.data == [{"id": "s1"}]
    assert response.meta.pagination.next == "https://api.wonde.com/v1.0/next"


async def test_request_omits_per_page_and_include_when_not_given(client, transport):
    transport.responses.append(json_response({"data": []}))

    await client.invoke("get", "schools/{{school}}/students", {"search_params": {"updated_after": "2024-01-01"}})

    params = transport.calls[0]["search_params"]
    assert params == {"updated_after": "2024-01-01"}
    assert "per_page" not in params
    assert "include" not in params


async def test_request_sends_per_page_include_and_body(client, transport):
    transport.responses.append(json_response({"data": {"ok": True}}))

    await client.invoke(
        "post",
        "schools/{{school}}/things",
        {
            "base_url": "https://example.test/v2",
            "per_page": 50,
            "include": ["classes", "contacts"],
            "body": {"name": "x"},
        },
    )

    call = transport.calls[0]
    assert call["base_url"] == "https://example.test/v2"
    assert call["search_params"] == {"per_page": 50, "include": "classes,contacts"}
    assert call["json_body"] == {"name": "x"}


async def test_request_keeps_extra_fields_and_raw_response(client, transport):
    raw = json_response({"data": [], "meta": {}, "links": {"self": "x"}})
    transport.responses.append(raw)

    response = await client.request("get", "schools")

    assert response.links == {"self": "x"}
    assert response.get_http_response() is raw


async def test_request_malformed_json_raises_transport_error(client, transport):
    transport.responses.append(RawResponse(status_code=200, url="https://api.wonde.com/v1.0/x", body="<html>"))

    with pytest.raises(TransportError):
        await client.invoke("get", "schools")


async def test_request_non_object_json_raises_transport_error(client, transport):
    transport.responses.append(json_response([1, 2, 3]))

    with pytest.raises(TransportError):
        await client.invoke("get", "schools")


async def test_transport_failure_propagates_unchanged(client, transport):
    error = TransportError("boom", status_code=500)
    transport.responses.append(error)

    with pytest.raises(TransportError) as excinfo:
        await client.invoke("get", "schools")
    assert excinfo.value is error


async def test_unsupported_method_raises(client):
    with pytest.raises(ValueError):
        await client.invoke("patch", "schools")


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------
async def test_paginate_concatenates_array_pages(client, transport):
    transport.responses.extend(
        [
            page([1, 2], next_url="https://api.wonde.com/v1.0/schools/abc123/students?page=2"),
            page([3, 4], next_url="https://api.wonde.com/v1.0/schools/abc123/students?page=3"),
            page([5]),
        ]
    )

    response = await client.invoke(
        "get",
        "schools/{{school}}/students",
        {"paginate": True, "per_page": 2, "include": ["classes"], "search_params": {"a": 1}},
    )

    assert isinstance(response, PaginatedResponse)
    assert response.data == [1, 2, 3, 4, 5]
    assert len(transport.calls) == 3


async def test_paginate_uses_next_url_verbatim(client, transport):
    next_url = "https://api.wonde.com/v1.0/schools/abc123/students?page=2&per_page=2"
    transport.responses.extend([page([1], next_url=next_url), page([2])])

    await client.paginate("get", "schools/{{school}}/students", {"per_page": 2, "search_params": {"a": 1}})

    first, second = transport.calls
    assert first["url"] == "schools/abc123/students"
    assert first["base_url"] == DEFAULT_BASE_URL
    assert first["search_params"] == {"a": 1, "per_page": 2}
    assert second["url"] == next_url
    assert second["base_url"] is None
    assert second["search_params"] is None
    assert second["headers"] == {"Authorization": "Bearer def456"}


async def test_paginate_merges_object_pages(client, transport):
    transport.responses.extend(
        [
            page({"a": 1}, next_url="https://api.wonde.com/v1.0/p2"),
            page({"b": 2}, next_url="https://api.wonde.com/v1.0/p3"),
            page({"a": 3}),
        ]
    )

    response = await client.invoke("get", "x", {"paginate": True})

    assert response.data == {"a": 3, "b": 2}


async def test_paginate_makes_one_request_when_no_next(client, transport):
    transport.responses.append(page([1]))

    response = await client.invoke("get", "x", {"paginate": True})

    assert response.data == [1]
    assert len(transport.calls) == 1


async def test_paginate_without_meta_stops_after_first_page(client, transport):
    transport.responses.append(json_response({"data": [1]}))

    response = await client.paginate("get", "x")

    assert response.data == [1]
    assert len(transport.calls) == 1


async def test_paginate_exposes_only_data(client, transport):
    transport.responses.append(page([1]))

    response = await client.invoke("get", "x", {"paginate": True})

    assert response.model_dump() == {"data": [1]}


async def test_paginate_mixed_shapes_raise(client, transport):
    transport.responses.extend([page([1], next_url="https://api.wonde.com/v1.0/p2"), page({"a": 1})])

    with pytest.raises(MergeAmbiguityError):
        await client.invoke("get", "x", {"paginate": True})


async def test_paginate_failure_on_later_page_propagates(client, transport):
    transport.responses.extend([page([1], next_url="https://api.wonde.com/v1.0/p2"), TransportError("down")])

    with pytest.raises(TransportError):
        await client.invoke("get", "x", {"paginate": True})


async def test_request_tolerates_non_object_meta(client, transport):
    transport.responses.append(json_response({"data": [1], "meta": [], "links": []}))

    response = await client.invoke("get", "x")

    assert response.data == [1]
    assert response.meta is None
    assert response.links == []
    assert response.get_http_response().json()["meta"] == []


async def test_request_tolerates_non_object_pagination(client, transport):
    transport.responses.append(json_response({"data": [1], "meta": {"pagination": [], "total": 1}}))

    response = await client.invoke("get", "x")

    assert response.meta.pagination is None
    assert response.meta.total == 1


async def test_paginate_tolerates_non_object_meta(client, transport):
    transport.responses.append(json_response({"data": [1], "meta": []}))

    response = await client.invoke("get", "x", {"paginate": True})

    assert response.data == [1]

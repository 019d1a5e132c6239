"""Pytest configuration and fixtures for wondekit tests."""

import json
from typing import Any, Dict, List, Optional

import pytest

from wondekit.base import RawResponse
from wondekit.single import SchoolClient


def json_response(payload: Any, status_code: int = 200, url: str = "https://api.wonde.com/v1.0/test") -> RawResponse:
    """Build a RawResponse whose body is ``payload`` encoded as JSON."""
    return RawResponse(status_code=status_code, url=url, body=json.dumps(payload))


def page(data: Any, next_url: Optional[str] = None) -> RawResponse:
    """A paginated Wonde response carrying ``data`` and a ``next`` link."""
    return json_response(
        {
            "data": data,
            "meta": {
                "pagination": {
                    "next": next_url,
                    "previous": None,
                    "more": next_url is not None,
                    "per_page": 2,
                    "current_page": 1,
                }
            },
        }
    )


class FakeTransport:
    """Transport double that replays queued responses and records every call."""

    def __init__(self, responses: Optional[List[Any]] = None) -> None:
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []

    async def send(self, method, url, *, base_url=None, headers=None, search_params=None, json_body=None):
        self.calls.append(
            {
                "method": method,
                "url": url,
                "base_url": base_url,
                "headers": dict(headers or {}),
                "search_params": search_params,
                "json_body": json_body,
            }
        )
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def client(transport):
    """A SchoolClient for school ``abc123`` wired to the fake transport."""
    return SchoolClient("abc123", "def456", transport_factory=lambda options: transport)

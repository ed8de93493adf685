"""Shared fixtures for the assistant tests: tokens, settings, and fake collaborators."""

import base64
import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from cartify_ai.config import Settings
from cartify_ai.model_request import ModelRequest
from cartify_ai.models import SearchResult
from cartify_ai.web_search import SearchProvider

STORE_URL = "https://store.test"
LINK_BASE = "https://shop.test/product"

MODEL_REPLY = {
    "candidates": [{"content": {"role": "model", "parts": [{"text": "Here are three options."}]}}],
    "usage_metadata": {"total_token_count": 42},
}


def _b64url(data: Dict[str, Any]) -> str:
    raw = json.dumps(data).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def make_token(claims: Dict[str, Any]) -> str:
    """Build an unsigned three-segment bearer token carrying the given claims."""
    return ".".join([_b64url({"alg": "HS256", "typ": "JWT"}), _b64url(claims), "signature"])


def bearer(claims: Optional[Dict[str, Any]] = None) -> str:
    if claims is None:
        claims = {"sub": "user-123", "role": "authenticated"}
    return f"Bearer {make_token(claims)}"


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = dict(
        gemini_api_key="test-gemini-key",
        default_model="gemini-test",
        brave_search_api_key="",
        supabase_url=STORE_URL,
        supabase_service_role_key="service-key",
        product_link_base=LINK_BASE,
        category_sort="name.asc",
        http_timeout_seconds=5.0,
        web_search_max_results=5,
        evidence_max_chars=6000,
    )
    values.update(overrides)
    return Settings(**values)


class FakeModelClient:
    """Records model requests and returns a canned provider payload."""

    def __init__(self, reply: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None) -> None:
        self.reply = reply if reply is not None else MODEL_REPLY
        self.error = error
        self.requests: List[ModelRequest] = []

    def generate(self, request: ModelRequest) -> Dict[str, Any]:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return dict(self.reply)


class FakeSearchProvider(SearchProvider):
    def __init__(self, name: str, results: Optional[List[SearchResult]] = None, error: Optional[Exception] = None) -> None:
        self.name = name
        self.results = results or []
        self.error = error
        self.queries: List[str] = []

    def search(self, query: str, max_results: int) -> List[SearchResult]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.results)


Handler = Callable[[httpx.Request], httpx.Response]


class StoreStub:
    """MockTransport router for PostgREST tables; records every request."""

    def __init__(self, tables: Dict[str, Any]) -> None:
        self.tables = tables
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        table = request.url.path.rsplit("/", 1)[-1]
        route = self.tables.get(table, [])
        if callable(route):
            return route(request)
        return httpx.Response(200, json=route)

    def requests_for(self, table: str) -> List[httpx.Request]:
        return [request for request in self.requests if request.url.path.endswith(f"/{table}")]

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


def missing_column_response(column: str) -> httpx.Response:
    return httpx.Response(
        400,
        json={"code": "42703", "message": f"column {column} does not exist", "details": None, "hint": None},
    )


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def model_client() -> FakeModelClient:
    return FakeModelClient()

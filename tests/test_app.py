"""HTTP tests for the FastAPI app with pipeline collaborators faked out."""

import pytest
from fastapi.testclient import TestClient

from cartify_ai.app import app, get_pipeline_builder, get_settings
from cartify_ai.assistant_pipeline import ShoppingAssistantPipeline
from cartify_ai.models import SearchResult
from cartify_ai.web_search import FallbackSearchChain

from conftest import FakeModelClient, FakeSearchProvider, bearer, make_settings

ROUTES = ["/api/assistant", "/functions/v1/customer-profile-ai"]
BODY = {"messages": [{"role": "user", "content": "red shoes under 2000"}]}


@pytest.fixture
def model_state():
    return {"client": FakeModelClient()}


@pytest.fixture
def client(model_state):
    settings = make_settings()
    chain = FallbackSearchChain([FakeSearchProvider("primary", [SearchResult("A", "https://a")])])

    def builder(current_settings, http):
        return ShoppingAssistantPipeline(current_settings, model_state["client"], chain)

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_pipeline_builder] = lambda: builder
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.mark.parametrize("route", ROUTES)
def test_success(client, route):
    response = client.post(route, json=BODY, headers={"Authorization": bearer()})
    assert response.status_code == 200
    payload = response.json()
    assert payload["candidates"][0]["content"]["parts"][0]["text"] == "Here are three options."
    assert payload["__web_search"] == {"enabled": True, "used": True, "provider": "primary", "results_count": 1}


def test_missing_authorization(client):
    response = client.post(ROUTES[0], json=BODY)
    assert response.status_code == 401
    assert response.json() == {"error": "Missing Authorization"}


def test_anonymous_token(client):
    response = client.post(ROUTES[0], json=BODY, headers={"Authorization": bearer({"sub": "u", "role": "anon"})})
    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated"}


def test_non_json_body(client):
    response = client.post(
        ROUTES[0],
        content=b"not json",
        headers={"Authorization": bearer(), "Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid messages"}


def test_empty_messages(client):
    response = client.post(ROUTES[1], json={"messages": []}, headers={"Authorization": bearer()})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid messages"}


def test_missing_model_key(client, model_state):
    model_state["client"] = None
    response = client.post(ROUTES[0], json=BODY, headers={"Authorization": bearer()})
    assert response.status_code == 500
    assert response.json() == {"error": "Missing GEMINI_API_KEY"}


def test_cors_preflight(client):
    response = client.options(
        ROUTES[0],
        headers={
            "Origin": "https://storefront.test",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "authorization, content-type",
        },
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "collaborators": {"gemini": True, "web_search_primary": False, "catalog": True},
        "default_model": "gemini-test",
    }

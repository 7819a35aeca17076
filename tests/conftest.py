"""Shared fixtures: an OAuth-only app wired to in-memory stores and a fake upstream."""

import base64
import json
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from config import Config
from oauth.endpoints import init_oauth_routes, router
from oauth.errors import register_error_handlers
from oauth.stores import MemoryStore

SERVER_URL = "https://mcp.example.com"
UPSTREAM_OAUTH_URL = "https://suzuri.example/oauth"
UPSTREAM_API_URL = "https://suzuri.example/api/v1"
AGENT_REDIRECT = "https://agent.example/cb"


class FakeUpstream:
    """Records outbound requests and answers them with `handler`."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.handler = lambda request: httpx.Response(200, json={
            "access_token": "upstream-access-token",
            "token_type": "Bearer",
            "expires_in": 7200,
            "refresh_token": "upstream-refresh-token",
            "scope": "read write",
        })

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def make_config(**overrides) -> Config:
    data = {
        "upstream_client_id": "upstream-client-id",
        "upstream_client_secret": "upstream-client-secret",
        "server_url": SERVER_URL,
        "upstream_oauth_url": UPSTREAM_OAUTH_URL,
        "upstream_api_url": UPSTREAM_API_URL,
    }
    data.update(overrides)
    return Config(data)


def query_of(url: str) -> dict:
    """Single-valued query parameters of a URL."""
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


def decode_state_payload(token: str) -> dict:
    """Decode a relay state token without going through oauth.state."""
    return json.loads(base64.urlsafe_b64decode(token + "=" * (-len(token) % 4)))


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def client_store():
    return MemoryStore()


@pytest.fixture
def code_store():
    return MemoryStore()


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def app(config, client_store, code_store, upstream):
    app = FastAPI()
    register_error_handlers(app)
    init_oauth_routes(config, client_store, code_store, upstream_transport=upstream.transport)
    app.include_router(router)
    return app


@pytest.fixture
def client(app):
    return TestClient(app, follow_redirects=False)


@pytest.fixture
def issue_code(client):
    """Run /authorize and /callback; return the local code handed to the agent."""

    def _issue(upstream_code="upstream-code", **authorize_params):
        params = {
            "client_id": "abc",
            "redirect_uri": AGENT_REDIRECT,
            "response_type": "code",
        }
        params.update(authorize_params)
        response = client.get("/authorize", params=params)
        assert response.status_code == 302, response.text
        state = query_of(response.headers["location"])["state"]

        response = client.get("/callback", params={"code": upstream_code, "state": state})
        assert response.status_code == 302, response.text
        return query_of(response.headers["location"])["code"]

    return _issue

"""Tests for discovery metadata and CORS preflight handling."""

import pytest

from conftest import SERVER_URL


class TestDiscovery:
    def test_authorization_server_metadata(self, client):
        response = client.get("/.well-known/oauth-authorization-server")

        assert response.status_code == 200
        data = response.json()
        assert data["issuer"] == SERVER_URL
        assert data["authorization_endpoint"] == f"{SERVER_URL}/authorize"
        assert data["token_endpoint"] == f"{SERVER_URL}/token"
        assert data["registration_endpoint"] == f"{SERVER_URL}/register"
        assert data["response_types_supported"] == ["code"]
        assert data["grant_types_supported"] == ["authorization_code", "refresh_token"]
        assert data["code_challenge_methods_supported"] == ["S256"]
        assert data["scopes_supported"] == ["read", "write"]
        assert response.headers["access-control-allow-origin"] == "*"

    def test_protected_resource_metadata(self, client):
        response = client.get("/.well-known/oauth-protected-resource")

        assert response.status_code == 200
        assert response.json() == {
            "resource": f"{SERVER_URL}/mcp",
            "authorization_servers": [SERVER_URL],
            "scopes_supported": ["read", "write"],
            "bearer_methods_supported": ["header"],
        }
        assert response.headers["access-control-allow-origin"] == "*"


class TestPreflight:
    @pytest.mark.parametrize("path,methods", [
        ("/authorize", "GET, OPTIONS"),
        ("/callback", "GET, OPTIONS"),
        ("/register", "POST, OPTIONS"),
        ("/token", "POST, OPTIONS"),
        ("/.well-known/oauth-authorization-server", "GET, OPTIONS"),
        ("/.well-known/oauth-protected-resource", "GET, OPTIONS"),
    ])
    def test_options_returns_204_with_cors_headers(self, client, path, methods):
        response = client.options(path)

        assert response.status_code == 204
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-methods"] == methods
        assert "Content-Type" in response.headers["access-control-allow-headers"]
        assert response.content == b""

"""Tests for dynamic client registration (/register)."""

import time

import pytest

from oauth.models import RegisteredClient


class TestRegister:
    def test_registers_client(self, client, client_store):
        response = client.post("/register", json={
            "redirect_uris": ["https://agent.example/cb"],
            "client_name": "Test",
        })

        assert response.status_code == 201
        body = response.json()
        assert body["client_id"]
        assert body["client_secret"]
        assert body["client_secret_expires_at"] == 0
        assert body["redirect_uris"] == ["https://agent.example/cb"]
        assert body["client_name"] == "Test"
        assert body["grant_types"] == ["authorization_code", "refresh_token"]
        assert body["response_types"] == ["code"]
        assert body["token_endpoint_auth_method"] == "client_secret_post"
        assert abs(body["client_id_issued_at"] - time.time()) < 60
        assert response.headers["access-control-allow-origin"] == "*"

        stored = RegisteredClient.from_dict(client_store.get(body["client_id"]))
        assert stored.client_secret == body["client_secret"]
        assert stored.redirect_uris == ["https://agent.example/cb"]

    def test_empty_object_uses_defaults(self, client):
        response = client.post("/register", json={})

        assert response.status_code == 201
        assert response.json()["redirect_uris"] == []
        assert response.json()["client_name"] is None

    def test_credentials_are_unique_and_long(self, client):
        first = client.post("/register", json={}).json()
        second = client.post("/register", json={}).json()

        assert first["client_id"] != second["client_id"]
        assert first["client_secret"] != second["client_secret"]
        assert len(first["client_secret"]) >= 43

    @pytest.mark.parametrize("body", [
        b"not json",
        b"",
        b"[]",
        b'"text"',
        b'{"redirect_uris": "https://agent.example/cb"}',
        b'{"redirect_uris": [1, 2]}',
        b'{"redirect_uris": "", "client_name": "x"}',
        b'{"redirect_uris": 0}',
        b'{"redirect_uris": false}',
        b'{"redirect_uris": {}}',
        b'{"client_name": 5}',
    ])
    def test_malformed_metadata(self, client, client_store, body):
        response = client.post("/register", content=body, headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_client_metadata"
        assert response.headers["access-control-allow-origin"] == "*"
        assert len(client_store) == 0

"""
Data models for the OAuth relay.

Store values are kept as plain dicts (to_dict/from_dict) so any
KeyValueStore backend can hold them, including JSON-backed ones.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass
class PendingAuthorization:
    """Agent request context carried through the upstream round trip.

    Attributes:
        client_id: client_id the agent sent to /authorize
        redirect_uri: where the agent wants the code delivered
        original_state: the agent's own opaque state, if any
        code_challenge: PKCE challenge, if any
        code_challenge_method: PKCE method ('S256' or 'plain'), if any
    """

    client_id: str
    redirect_uri: str
    original_state: Optional[str] = None
    code_challenge: Optional[str] = None
    code_challenge_method: Optional[str] = None


@dataclass
class AuthorizationCodeRecord:
    """Local authorization code bound to an upstream code (single use)."""

    upstream_code: str
    client_id: str
    redirect_uri: str
    code_challenge: Optional[str] = None
    code_challenge_method: Optional[str] = None
    created_at: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthorizationCodeRecord:
        return cls(
            upstream_code=data["upstream_code"],
            client_id=data["client_id"],
            redirect_uri=data["redirect_uri"],
            code_challenge=data.get("code_challenge"),
            code_challenge_method=data.get("code_challenge_method"),
            created_at=int(data.get("created_at", 0)),
        )


@dataclass
class RegisteredClient:
    """Dynamically registered MCP client. Never expires."""

    client_id: str
    client_secret: str
    redirect_uris: list[str] = field(default_factory=list)
    client_name: Optional[str] = None
    created_at: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RegisteredClient:
        return cls(
            client_id=data["client_id"],
            client_secret=data["client_secret"],
            redirect_uris=list(data.get("redirect_uris") or []),
            client_name=data.get("client_name"),
            created_at=int(data.get("created_at", 0)),
        )


@dataclass
class VerifiedIdentity:
    """Caller identity from a bearer token checked against the upstream API.

    Lives for one request only.

    Attributes:
        token: the bearer token as presented
        scopes: granted scopes (fixed to read)
        client_id: upstream user id, used as the effective client identifier
        extra: identity fields from the upstream user resource
    """

    token: str
    client_id: str
    scopes: list[str] = field(default_factory=lambda: ["read"])
    extra: dict[str, Any] = field(default_factory=dict)

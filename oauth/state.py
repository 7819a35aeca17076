"""Relay state token.

The upstream authorization server only echoes back a single opaque `state`
value, so the agent's pending request (client_id, redirect_uri, its own
state and PKCE challenge) is serialized into that slot: compact JSON with
camelCase keys, base64url-encoded without padding. No server-side session
is needed for the relay hop.
"""

import base64
import binascii
import json

from oauth.errors import InvalidStateError
from oauth.models import PendingAuthorization

# Wire key -> PendingAuthorization attribute
_FIELDS = {
    "originalState": "original_state",
    "clientId": "client_id",
    "redirectUri": "redirect_uri",
    "codeChallenge": "code_challenge",
    "codeChallengeMethod": "code_challenge_method",
}
_REQUIRED = ("clientId", "redirectUri")


def encode_state(pending: PendingAuthorization) -> str:
    """Serialize pending authorization context into a URL-safe token."""
    payload = {}
    for wire_key, attr in _FIELDS.items():
        value = getattr(pending, attr)
        if value is not None:
            payload[wire_key] = value
    raw = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def decode_state(token: str) -> PendingAuthorization:
    """Decode a relay state token.

    Raises:
        InvalidStateError: on any decode, parse or shape failure
    """
    if not token:
        raise InvalidStateError("Failed to decode state")

    try:
        padded = token + "=" * (-len(token) % 4)
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
        payload = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError) as e:
        # ValueError covers UnicodeDecodeError, JSONDecodeError and non-ASCII input
        raise InvalidStateError("Failed to decode state") from e

    if not isinstance(payload, dict):
        raise InvalidStateError("Failed to decode state")

    for wire_key in _REQUIRED:
        value = payload.get(wire_key)
        if not isinstance(value, str) or not value:
            raise InvalidStateError("Failed to decode state")

    values = {}
    for wire_key, attr in _FIELDS.items():
        value = payload.get(wire_key)
        if value is not None and not isinstance(value, str):
            raise InvalidStateError("Failed to decode state")
        values[attr] = value

    return PendingAuthorization(**values)

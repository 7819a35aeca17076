"""Bearer token verification for MCP endpoints.

Tokens are SUZURI access tokens issued through the OAuth relay; they are
verified by calling the SUZURI "current user" endpoint. Verification never
raises: any failure means the request is treated as unauthenticated.
"""

import logging
from typing import Optional

import httpx
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from config import Config
from oauth.models import VerifiedIdentity

logger = logging.getLogger(__name__)


async def verify_bearer_token(
    token: Optional[str],
    api_url: str,
    timeout: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[VerifiedIdentity]:
    """Verify a bearer token against the upstream whoami endpoint.

    Returns:
        VerifiedIdentity if the upstream accepts the token, None otherwise
    """
    if not token:
        return None

    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(
                f"{api_url.rstrip('/')}/user",
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            )
        if not response.is_success:
            logger.info(f"[AUTH] Token rejected by upstream ({response.status_code})")
            return None
        user = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"[AUTH] Token verification failed: {e.__class__.__name__}: {e}")
        return None

    # The whoami endpoint may wrap the user object
    if isinstance(user, dict) and isinstance(user.get("user"), dict):
        user = user["user"]
    if not isinstance(user, dict):
        logger.warning("[AUTH] Unexpected whoami response shape")
        return None

    user_id = user.get("id")
    return VerifiedIdentity(
        token=token,
        client_id=str(user_id) if user_id is not None else "unknown",
        scopes=["read"],
        extra={"user_id": user_id, "user_name": user.get("name")},
    )


def extract_bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.lower().startswith("bearer "):
        return None
    return auth_header[7:].strip() or None


class BearerIdentityMiddleware(BaseHTTPMiddleware):
    """Attach the verified caller identity to request.state.identity.

    With require_auth off, unverified requests pass through with
    identity=None and tools decide. With it on, they get a 401 that points
    clients at the protected resource metadata.
    """

    def __init__(self, app, config: Config, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(app)
        self.config = config
        self.transport = transport

    async def dispatch(self, request: Request, call_next):
        identity = await verify_bearer_token(
            extract_bearer_token(request),
            self.config.upstream_api_url,
            timeout=self.config.upstream_timeout,
            transport=self.transport,
        )
        request.state.identity = identity

        if identity is None and self.config.require_auth:
            logger.info("[AUTH] Request rejected: missing or invalid bearer token")
            server_url = self.config.server_url
            return JSONResponse(
                {"error": "unauthorized", "error_description": "Missing or invalid Authorization header"},
                status_code=401,
                headers={
                    "WWW-Authenticate": f'Bearer resource_metadata="{server_url}/.well-known/oauth-protected-resource"',
                    "Access-Control-Allow-Origin": "*",
                },
            )

        if identity:
            logger.info(f"[AUTH] Request authorized: user {identity.client_id}")
        return await call_next(request)

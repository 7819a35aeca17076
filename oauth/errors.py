"""OAuth error taxonomy and JSON error responses.

Every failure surfaced by the OAuth endpoints is an OAuthError subclass,
rendered as {"error": ..., "error_description": ...} with the CORS header
so browser-based MCP clients can read it.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

CORS_ALLOW_ORIGIN = {"Access-Control-Allow-Origin": "*"}


class OAuthError(Exception):
    """Base class for OAuth protocol errors."""

    error = "server_error"
    status_code = 500

    def __init__(self, description: Optional[str] = None):
        super().__init__(description or self.error)
        self.description = description

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.description:
            body["error_description"] = self.description
        return body


class InvalidRequestError(OAuthError):
    error = "invalid_request"
    status_code = 400


class InvalidStateError(OAuthError):
    error = "invalid_state"
    status_code = 400


class InvalidGrantError(OAuthError):
    error = "invalid_grant"
    status_code = 400


class UnsupportedGrantTypeError(OAuthError):
    error = "unsupported_grant_type"
    status_code = 400


class InvalidClientMetadataError(OAuthError):
    error = "invalid_client_metadata"
    status_code = 400


class ServerError(OAuthError):
    error = "server_error"
    status_code = 500


class UpstreamError(Exception):
    """Raised by the upstream OAuth client.

    status_code is None for network/timeout/parse failures, otherwise the
    upstream HTTP status. detail is for server-side logs only.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, detail: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail

    @property
    def rejected(self) -> bool:
        """True when the upstream server answered with a non-success status."""
        return self.status_code is not None


def error_response(error: OAuthError) -> JSONResponse:
    """Render an OAuthError as a JSON response carrying the CORS header."""
    return JSONResponse(error.to_dict(), status_code=error.status_code, headers=dict(CORS_ALLOW_ORIGIN))


def register_error_handlers(app: FastAPI) -> None:
    """Install handlers that turn OAuthError into JSON error responses."""

    @app.exception_handler(OAuthError)
    async def handle_oauth_error(request: Request, exc: OAuthError):
        logger.info(f"[OAUTH] {request.url.path} -> {exc.error}: {exc.description or ''}")
        return error_response(exc)

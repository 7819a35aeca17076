"""OAuth 2.1 relay endpoints for the SUZURI MCP gateway.

This server is an authorization server facade for MCP clients; the actual
user authentication happens at SUZURI. Endpoints:
- Discovery metadata (/.well-known/*)
- Dynamic client registration (/register)
- Authorization relay (/authorize -> SUZURI -> /callback)
- Token endpoint (/token), exchanging the local code for a SUZURI token
"""

import base64
import hashlib
import logging
import secrets
import time
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Config
from oauth.errors import (
    CORS_ALLOW_ORIGIN,
    InvalidClientMetadataError,
    InvalidGrantError,
    InvalidRequestError,
    InvalidStateError,
    ServerError,
    UnsupportedGrantTypeError,
    UpstreamError,
)
from oauth.models import AuthorizationCodeRecord, PendingAuthorization, RegisteredClient
from oauth.state import decode_state, encode_state
from oauth.stores import KeyValueStore, MemoryStore
from oauth.upstream import UpstreamOAuthClient

logger = logging.getLogger(__name__)

# Router for OAuth endpoints
router = APIRouter(tags=["oauth"])

# These will be set by init_oauth_routes()
_config: Config = Config()
_client_store: KeyValueStore = MemoryStore()
_code_store: KeyValueStore = MemoryStore()
_upstream_transport: Optional[httpx.AsyncBaseTransport] = None

_BLOCKED_REDIRECT_SCHEMES = {"javascript", "data", "vbscript", "file", "about"}


def init_oauth_routes(
    config: Config,
    client_store: KeyValueStore,
    code_store: KeyValueStore,
    upstream_transport: Optional[httpx.AsyncBaseTransport] = None,
):
    """Initialize OAuth routes with config and stores.

    Must be called before including the router in the app.
    """
    global _config, _client_store, _code_store, _upstream_transport
    _config = config
    _client_store = client_store
    _code_store = code_store
    _upstream_transport = upstream_transport


def _upstream_client() -> UpstreamOAuthClient:
    return UpstreamOAuthClient(
        base_url=_config.upstream_oauth_url,
        client_id=_config.upstream_client_id or "",
        client_secret=_config.upstream_client_secret,
        redirect_uri=_config.callback_url,
        timeout=_config.upstream_timeout,
        transport=_upstream_transport,
    )


def _preflight(methods: str) -> Response:
    return Response(status_code=204, headers={
        **CORS_ALLOW_ORIGIN,
        "Access-Control-Allow-Methods": methods,
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    })


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=302, headers=dict(CORS_ALLOW_ORIGIN))


def _is_safe_redirect_uri(redirect_uri: str) -> bool:
    """Absolute URI with a non-script scheme; http(s) must name a host."""
    try:
        parsed = urlsplit(redirect_uri)
    except ValueError:
        return False
    scheme = parsed.scheme.lower()
    if not scheme or scheme in _BLOCKED_REDIRECT_SCHEMES:
        return False
    if scheme in ("http", "https") and not parsed.netloc:
        return False
    return True


def _with_query(url: str, params: dict) -> str:
    """Append params to url, keeping any query it already has."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend(params.items())
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


# ============== OAuth 2.1 Discovery Endpoints ==============

@router.get("/.well-known/oauth-protected-resource")
async def oauth_protected_resource():
    """OAuth 2.0 Protected Resource Metadata (RFC 9728)."""
    server_url = _config.server_url
    return JSONResponse({
        "resource": f"{server_url}/mcp",
        "authorization_servers": [server_url],
        "scopes_supported": _config.scopes_supported,
        "bearer_methods_supported": ["header"],
    }, headers=dict(CORS_ALLOW_ORIGIN))


@router.get("/.well-known/oauth-authorization-server")
async def oauth_authorization_server():
    """OAuth 2.0 Authorization Server Metadata (RFC 8414)."""
    server_url = _config.server_url
    return JSONResponse({
        "issuer": server_url,
        "authorization_endpoint": f"{server_url}/authorize",
        "token_endpoint": f"{server_url}/token",
        "registration_endpoint": f"{server_url}/register",
        "scopes_supported": _config.scopes_supported,
        "response_types_supported": ["code"],
        "response_modes_supported": ["query"],
        "grant_types_supported": ["authorization_code", "refresh_token"],
        "token_endpoint_auth_methods_supported": ["client_secret_post", "none"],
        "code_challenge_methods_supported": ["S256"],
    }, headers=dict(CORS_ALLOW_ORIGIN))


@router.options("/.well-known/oauth-protected-resource")
@router.options("/.well-known/oauth-authorization-server")
async def metadata_preflight():
    return _preflight("GET, OPTIONS")


# ============== Client Registration ==============

@router.post("/register")
async def register_client(request: Request):
    """OAuth 2.0 Dynamic Client Registration (RFC 7591)."""
    try:
        data = await request.json()
    except ValueError:
        raise InvalidClientMetadataError("Request body must be a JSON object")

    if not isinstance(data, dict):
        raise InvalidClientMetadataError("Request body must be a JSON object")

    redirect_uris = data.get("redirect_uris")
    if redirect_uris is None:
        redirect_uris = []
    if not isinstance(redirect_uris, list) or not all(isinstance(u, str) for u in redirect_uris):
        raise InvalidClientMetadataError("redirect_uris must be a list of strings")

    client_name = data.get("client_name")
    if client_name is not None and not isinstance(client_name, str):
        raise InvalidClientMetadataError("client_name must be a string")

    client = RegisteredClient(
        client_id=secrets.token_urlsafe(24),
        client_secret=secrets.token_urlsafe(32),
        redirect_uris=redirect_uris,
        client_name=client_name,
    )
    _client_store.put(client.client_id, client.to_dict())
    logger.info(f"[REGISTER] Client registered: {client.client_name or 'unnamed'} ({client.client_id[:8]}...)")

    return JSONResponse({
        "client_id": client.client_id,
        "client_secret": client.client_secret,
        "client_id_issued_at": client.created_at,
        "client_secret_expires_at": 0,
        "redirect_uris": client.redirect_uris,
        "client_name": client.client_name,
        "grant_types": ["authorization_code", "refresh_token"],
        "response_types": ["code"],
        "token_endpoint_auth_method": "client_secret_post",
    }, status_code=201, headers=dict(CORS_ALLOW_ORIGIN))


@router.options("/register")
async def register_preflight():
    return _preflight("POST, OPTIONS")


# ============== Authorization Relay ==============

@router.get("/authorize")
async def authorize(request: Request):
    """OAuth 2.0 Authorization Endpoint - relays to the upstream server."""
    params = request.query_params
    client_id = params.get("client_id")
    redirect_uri = params.get("redirect_uri")
    response_type = params.get("response_type")

    if not client_id or not redirect_uri or response_type != "code":
        raise InvalidRequestError("Missing required parameters")

    if not _is_safe_redirect_uri(redirect_uri):
        raise InvalidRequestError("Invalid redirect_uri")

    registered = _client_store.get(client_id)
    if registered:
        allowed = RegisteredClient.from_dict(registered).redirect_uris
        if allowed and redirect_uri not in allowed:
            raise InvalidRequestError("redirect_uri is not registered for this client")

    if not _config.has_upstream_client():
        logger.error("[AUTHORIZE] Upstream OAuth client id is not configured")
        raise ServerError("Server is not configured for authorization")

    pending = PendingAuthorization(
        client_id=client_id,
        redirect_uri=redirect_uri,
        original_state=params.get("state") or None,
        code_challenge=params.get("code_challenge") or None,
        code_challenge_method=params.get("code_challenge_method") or None,
    )
    scope = params.get("scope") or _config.default_scope

    logger.info(f"[AUTHORIZE] Relaying client {client_id} to upstream (scope: {scope})")
    return _redirect(_upstream_client().authorization_url(scope, encode_state(pending)))


@router.options("/authorize")
async def authorize_preflight():
    return _preflight("GET, OPTIONS")


# ============== Callback / Code Bridge ==============

@router.get("/callback")
async def callback(request: Request):
    """Upstream redirect target - issues a local code to the MCP client."""
    params = request.query_params

    error = params.get("error")
    if error:
        # Echo upstream error as-is; state is not trusted or decoded here
        logger.info(f"[CALLBACK] Upstream returned error: {error}")
        body = {"error": error}
        if params.get("error_description"):
            body["error_description"] = params["error_description"]
        return JSONResponse(body, status_code=400, headers=dict(CORS_ALLOW_ORIGIN))

    upstream_code = params.get("code")
    encoded_state = params.get("state")
    if not upstream_code or not encoded_state:
        raise InvalidRequestError("Missing code or state")

    pending = decode_state(encoded_state)
    if not _is_safe_redirect_uri(pending.redirect_uri):
        raise InvalidStateError("Failed to decode state")

    local_code = secrets.token_urlsafe(32)
    record = AuthorizationCodeRecord(
        upstream_code=upstream_code,
        client_id=pending.client_id,
        redirect_uri=pending.redirect_uri,
        code_challenge=pending.code_challenge,
        code_challenge_method=pending.code_challenge_method,
    )
    _code_store.put(local_code, record.to_dict(), ttl=_config.auth_code_ttl)
    logger.info(f"[CALLBACK] Issued local code for client {pending.client_id}")

    redirect_params = {"code": local_code}
    if pending.original_state:
        redirect_params["state"] = pending.original_state
    return _redirect(_with_query(pending.redirect_uri, redirect_params))


@router.options("/callback")
async def callback_preflight():
    return _preflight("GET, OPTIONS")


# ============== Token Endpoint ==============

async def _read_token_request(request: Request) -> dict:
    """Parse form-urlencoded, multipart, JSON, or best-effort urlencoded body."""
    content_type = request.headers.get("content-type", "").lower()

    try:
        if "application/json" in content_type:
            data = await request.json()
            if not isinstance(data, dict):
                raise InvalidRequestError("Request body must be an object")
            return {k: v for k, v in data.items() if isinstance(v, str)}

        if "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
            form = await request.form()
            return {k: v for k, v in form.items() if isinstance(v, str)}

        body = (await request.body()).decode("utf-8")
        return dict(parse_qsl(body, keep_blank_values=True))
    except (ValueError, AssertionError, StarletteHTTPException) as e:
        logger.debug(f"[TOKEN] Unparseable request body: {e}")
        raise InvalidRequestError("Unsupported or malformed request body")


def _verify_pkce(record: AuthorizationCodeRecord, code_verifier: Optional[str]) -> bool:
    if not record.code_challenge:
        return True
    if not code_verifier:
        return False

    method = (record.code_challenge_method or "S256").upper()
    if method == "PLAIN":
        expected = code_verifier
    else:
        expected = base64.urlsafe_b64encode(
            hashlib.sha256(code_verifier.encode()).digest()
        ).rstrip(b"=").decode()
    return secrets.compare_digest(expected.encode(), record.code_challenge.encode())


def _consume_code(code: str) -> AuthorizationCodeRecord:
    """Look up and delete a local code; only one caller can consume it."""
    data = _code_store.get(code)
    if data is None or not _code_store.delete(code):
        raise InvalidGrantError("Authorization code is invalid or expired")
    return AuthorizationCodeRecord.from_dict(data)


@router.post("/token")
async def token(request: Request):
    """OAuth 2.0 Token Endpoint."""
    data = await _read_token_request(request)
    grant_type = data.get("grant_type")
    code = data.get("code")
    redirect_uri = data.get("redirect_uri")
    client_id = data.get("client_id")

    logger.debug(f"[TOKEN] grant_type: {grant_type}, client_id: {client_id}")

    if grant_type != "authorization_code":
        raise UnsupportedGrantTypeError()

    if not code or not redirect_uri or not client_id:
        raise InvalidRequestError("Missing required parameters")

    if not _config.has_upstream_credentials():
        logger.error("[TOKEN] Upstream OAuth credentials are not configured")
        raise ServerError("Server is not configured for token exchange")

    record = _consume_code(code)

    if record.client_id != client_id or record.redirect_uri != redirect_uri:
        logger.warning(f"[TOKEN] Code presented by mismatched client/redirect_uri: {client_id}")
        raise InvalidGrantError("Authorization code was not issued to this client")

    if not _verify_pkce(record, data.get("code_verifier")):
        raise InvalidGrantError("PKCE verification failed")

    try:
        token_data = await _upstream_client().exchange_code(record.upstream_code)
    except UpstreamError as e:
        if e.rejected:
            logger.error(f"[TOKEN] Upstream rejected code ({e.status_code}): {e.detail}")
            raise InvalidGrantError("Failed to exchange code with upstream")
        logger.error(f"[TOKEN] Upstream token exchange failed: {e} {e.detail}")
        raise ServerError("Failed to exchange token")

    body = {
        "access_token": token_data["access_token"],
        "token_type": token_data.get("token_type") or "Bearer",
        "expires_in": token_data.get("expires_in") or 3600,
        "scope": token_data.get("scope") or "read",
    }
    if token_data.get("refresh_token"):
        body["refresh_token"] = token_data["refresh_token"]

    logger.info(f"[TOKEN] Access token issued for client {client_id} (age of code: {int(time.time()) - record.created_at}s)")
    return JSONResponse(body, headers={
        **CORS_ALLOW_ORIGIN,
        "Cache-Control": "no-store",
        "Pragma": "no-cache",
    })


@router.options("/token")
async def token_preflight():
    return _preflight("POST, OPTIONS")

"""SUZURI MCP gateway.

It handles:
- MCP tools (SUZURI read API) via tools.py, over Streamable HTTP (/mcp)
- OAuth relay so MCP clients can obtain SUZURI access tokens (oauth/)
- Discovery metadata for MCP clients (/.well-known/*)

MCP clients authenticate at SUZURI through this server; the resulting
SUZURI access token is used as the bearer token for /mcp.
"""
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware import Middleware
from supabase import Client, create_client

from config import Config, load_config, load_env
from logging_config import setup_logging
from oauth.endpoints import init_oauth_routes, router as oauth_router
from oauth.errors import register_error_handlers
from oauth.middleware import BearerIdentityMiddleware
from oauth.stores import KeyValueStore, build_stores
from tools import init_tools, mcp

VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def create_supabase_client(config: Config) -> Optional[Client]:
    """Create a Supabase client if the project is configured."""
    if not (config.supabase_url and config.supabase_key):
        return None
    return create_client(config.supabase_url, config.supabase_key)


def create_app(
    config: Config,
    client_store: KeyValueStore,
    code_store: KeyValueStore,
) -> FastAPI:
    """Assemble the FastAPI app: MCP transport, OAuth relay, info endpoints."""
    init_tools(config)

    # Streamable HTTP MCP app; its lifespan must drive the FastAPI app
    mcp_http_app = mcp.http_app(
        path="/",
        transport="streamable-http",
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["*"],
                allow_headers=["*"],
                expose_headers=["WWW-Authenticate", "Mcp-Session-Id"],
            ),
            Middleware(BearerIdentityMiddleware, config=config),
        ],
    )

    app = FastAPI(
        title="SUZURI MCP Server",
        description="MCP tools for the SUZURI API with an OAuth 2.1 relay",
        version=VERSION,
        lifespan=mcp_http_app.lifespan,
    )
    register_error_handlers(app)

    app.mount("/mcp", mcp_http_app)

    init_oauth_routes(config, client_store, code_store)
    app.include_router(oauth_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "suzuri-mcp", "transport": "streamable-http"}

    @app.get("/")
    async def root():
        """Root endpoint with server info."""
        server_url = config.server_url
        return {
            "name": "SUZURI MCP Server",
            "version": VERSION,
            "endpoints": {"streamable_http": "/mcp"},
            "oauth": {
                "protected_resource": f"{server_url}/.well-known/oauth-protected-resource",
                "authorization_server": f"{server_url}/.well-known/oauth-authorization-server",
            },
            "upstream_configured": config.has_upstream_credentials(),
        }

    return app


# ============== Module-level app (uvicorn main:app) ==============

load_env()
settings = load_config()
supabase = create_supabase_client(settings)

setup_logging(
    level=settings.log_level,
    supabase_client=supabase if settings.supabase_logging else None,
)
logger.info(f"[STARTUP] SERVER_URL: {settings.server_url}")
logger.info(f"[STARTUP] Upstream OAuth: {settings.upstream_oauth_url}")

_client_store, _code_store = build_stores(settings, supabase)
app = create_app(settings, _client_store, _code_store)


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting MCP server on {settings.host}:{settings.port}")
    logger.info("Streamable HTTP endpoint: /mcp")
    uvicorn.run(app, host=settings.host, port=settings.port)

"""MCP Tools for suzuri-mcp.

Read-only SUZURI tools. Every tool runs as the caller: the bearer token
verified by BearerIdentityMiddleware is forwarded to the SUZURI API.
"""

import json
import logging
from typing import Awaitable, Callable, Optional

import httpx
from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_http_request

from config import Config
from oauth.models import VerifiedIdentity
from suzuri_client import SuzuriAPIError, SuzuriClient

logger = logging.getLogger(__name__)

# Create the FastMCP server instance
mcp = FastMCP("suzuri-mcp")

# Set by init_tools()
_config: Config = Config()
_transport: Optional[httpx.AsyncBaseTransport] = None


def init_tools(config: Config, transport: Optional[httpx.AsyncBaseTransport] = None):
    """Point the tools at the configured SUZURI API."""
    global _config, _transport
    _config = config
    _transport = transport


def current_identity() -> Optional[VerifiedIdentity]:
    """Identity attached to the active HTTP request, if any."""
    try:
        request = get_http_request()
    except RuntimeError:
        return None
    return getattr(request.state, "identity", None)


async def run_as_caller(name: str, call: Callable[[SuzuriClient], Awaitable[dict]]) -> str:
    """Run a SUZURI call with the caller's token and render it as JSON text."""
    identity = current_identity()
    if identity is None:
        raise ToolError("Authentication required")

    logger.info(f"[TOOL] {name} invoked by user {identity.client_id}")
    client = SuzuriClient(
        identity.token,
        base_url=_config.upstream_api_url,
        timeout=_config.upstream_timeout,
        transport=_transport,
    )
    try:
        result = await call(client)
    except ValueError as e:
        raise ToolError(str(e))
    except SuzuriAPIError as e:
        logger.warning(f"[TOOL] {name} failed: {e}")
        raise ToolError(str(e))
    except httpx.HTTPError as e:
        logger.warning(f"[TOOL] {name} request failed: {e.__class__.__name__}")
        raise ToolError("SUZURI API request failed")

    return json.dumps(result, ensure_ascii=False, indent=2)


@mcp.tool()
async def get_me() -> str:
    """Get the authenticated SUZURI user's profile."""
    return await run_as_caller("get_me", lambda c: c.get_me())


@mcp.tool()
async def get_items(limit: Optional[int] = None, offset: Optional[int] = None) -> str:
    """List SUZURI items (product categories such as t-shirts or stickers).

    Args:
        limit: Number of results (1-100)
        offset: Result offset
    """
    return await run_as_caller("get_items", lambda c: c.get_items(limit=limit, offset=offset))


@mcp.tool()
async def get_products(
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    user_id: Optional[int] = None,
    user_name: Optional[str] = None,
    item_id: Optional[int] = None,
) -> str:
    """List SUZURI products, optionally filtered by user or item.

    Args:
        limit: Number of results (1-100)
        offset: Result offset
        user_id: Only products of this user id
        user_name: Only products of this user name
        item_id: Only products of this item id
    """
    return await run_as_caller("get_products", lambda c: c.get_products(
        limit=limit, offset=offset, user_id=user_id, user_name=user_name, item_id=item_id,
    ))


@mcp.tool()
async def get_product(product_id: int) -> str:
    """Get a SUZURI product by id.

    Args:
        product_id: Product id
    """
    return await run_as_caller("get_product", lambda c: c.get_product(product_id))


@mcp.tool()
async def search_products(
    q: str,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    item_id: Optional[int] = None,
) -> str:
    """Search SUZURI products by keyword.

    Args:
        q: Search keyword
        limit: Number of results (1-100)
        offset: Result offset
        item_id: Only products of this item id
    """
    return await run_as_caller("search_products", lambda c: c.search_products(
        q, limit=limit, offset=offset, item_id=item_id,
    ))

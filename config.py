"""Config management for suzuri-mcp.

All settings come from the environment (optionally seeded from a .env file,
see load_env()). Missing upstream credentials are not fatal at startup: the
OAuth endpoints report them per request as server_error.
"""
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_UPSTREAM_OAUTH_URL = "https://suzuri.jp/oauth"
DEFAULT_UPSTREAM_API_URL = "https://suzuri.jp/api/v1"
DEFAULT_PORT = 8766


def load_env() -> None:
    """Load .env (local override) or the bundled .env.public defaults."""
    env_file = Path(".env")
    if env_file.exists():
        load_dotenv(env_file)
        return
    public_env = Path(__file__).parent / ".env.public"
    if public_env.exists():
        load_dotenv(public_env)


def _as_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Configuration container."""

    def __init__(self, data: dict = None):
        self.data = data or {}

    @property
    def upstream_client_id(self) -> Optional[str]:
        return self.data.get("upstream_client_id") or None

    @property
    def upstream_client_secret(self) -> Optional[str]:
        return self.data.get("upstream_client_secret") or None

    @property
    def server_url(self) -> str:
        url = self.data.get("server_url") or f"http://localhost:{self.port}"
        return url.rstrip("/")

    @property
    def callback_url(self) -> str:
        """Fixed redirect URI registered with the upstream OAuth app."""
        return f"{self.server_url}/callback"

    @property
    def upstream_oauth_url(self) -> str:
        return (self.data.get("upstream_oauth_url") or DEFAULT_UPSTREAM_OAUTH_URL).rstrip("/")

    @property
    def upstream_api_url(self) -> str:
        return (self.data.get("upstream_api_url") or DEFAULT_UPSTREAM_API_URL).rstrip("/")

    @property
    def upstream_timeout(self) -> float:
        return float(self.data.get("upstream_timeout", 10.0))

    @property
    def auth_code_ttl(self) -> int:
        return int(self.data.get("auth_code_ttl", 600))

    @property
    def default_scope(self) -> str:
        return self.data.get("default_scope") or "read"

    @property
    def scopes_supported(self) -> list[str]:
        return list(self.data.get("scopes_supported") or ["read", "write"])

    @property
    def require_auth(self) -> bool:
        return bool(self.data.get("require_auth", False))

    @property
    def store_backend(self) -> str:
        return (self.data.get("store_backend") or "memory").lower()

    @property
    def supabase_url(self) -> Optional[str]:
        return self.data.get("supabase_url") or None

    @property
    def supabase_key(self) -> Optional[str]:
        return self.data.get("supabase_key") or None

    @property
    def supabase_store_table(self) -> str:
        return self.data.get("supabase_store_table") or "oauth_store"

    @property
    def supabase_logging(self) -> bool:
        return bool(self.data.get("supabase_logging", False))

    @property
    def log_level(self) -> str:
        return (self.data.get("log_level") or "INFO").upper()

    @property
    def host(self) -> str:
        return self.data.get("host") or "0.0.0.0"

    @property
    def port(self) -> int:
        return int(self.data.get("port", DEFAULT_PORT))

    def has_upstream_client(self) -> bool:
        """Check if the upstream OAuth client id is configured."""
        return bool(self.upstream_client_id)

    def has_upstream_credentials(self) -> bool:
        """Check if both upstream client id and secret are configured."""
        return bool(self.upstream_client_id and self.upstream_client_secret)


def _resolve_server_url(port: int) -> str:
    url = os.getenv("SERVER_URL") or os.getenv("APP_URL")
    if url:
        return url
    vercel_url = os.getenv("VERCEL_URL")
    if vercel_url:
        return f"https://{vercel_url}"
    return f"http://localhost:{port}"


def load_config() -> Config:
    """Build config from environment variables."""
    port = int(os.getenv("MCP_PORT", str(DEFAULT_PORT)))
    scopes = os.getenv("SCOPES_SUPPORTED", "read write").split()

    config = Config({
        "upstream_client_id": os.getenv("SUZURI_CLIENT_ID", ""),
        "upstream_client_secret": os.getenv("SUZURI_CLIENT_SECRET", ""),
        "server_url": _resolve_server_url(port),
        "upstream_oauth_url": os.getenv("UPSTREAM_OAUTH_URL", DEFAULT_UPSTREAM_OAUTH_URL),
        "upstream_api_url": os.getenv("UPSTREAM_API_URL", DEFAULT_UPSTREAM_API_URL),
        "upstream_timeout": float(os.getenv("UPSTREAM_TIMEOUT", "10")),
        "auth_code_ttl": int(os.getenv("AUTH_CODE_TTL", "600")),
        "default_scope": os.getenv("DEFAULT_SCOPE", "read"),
        "scopes_supported": scopes,
        "require_auth": _as_bool(os.getenv("REQUIRE_AUTH"), False),
        "store_backend": os.getenv("STORE_BACKEND", "memory"),
        "supabase_url": os.getenv("SUPABASE_URL", ""),
        "supabase_key": os.getenv("SUPABASE_KEY", ""),
        "supabase_store_table": os.getenv("SUPABASE_STORE_TABLE", "oauth_store"),
        "supabase_logging": _as_bool(os.getenv("SUPABASE_LOGGING"), False),
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
        "host": os.getenv("MCP_HOST", "0.0.0.0"),
        "port": port,
    })

    if not config.has_upstream_credentials():
        logger.warning("[STARTUP] SUZURI_CLIENT_ID / SUZURI_CLIENT_SECRET not set; OAuth relay will return server_error")

    return config

"""Client for the upstream (SUZURI) OAuth authorization server.

Builds the upstream authorize URL and performs the authorization-code
exchange with this server's own upstream credentials.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

import httpx

from oauth.errors import UpstreamError

logger = logging.getLogger(__name__)


class UpstreamOAuthClient:
    """Stateless client for the upstream authorize and token endpoints."""

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: Optional[str],
        redirect_uri: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._transport = transport

    @property
    def authorize_endpoint(self) -> str:
        return f"{self.base_url}/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.base_url}/token"

    def authorization_url(self, scope: str, state: Optional[str] = None) -> str:
        """Build the upstream authorize URL for this server's client."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": scope,
        }
        if state:
            params["state"] = state
        return f"{self.authorize_endpoint}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict:
        """Exchange an upstream authorization code for an upstream token.

        Returns:
            Parsed token response (at least access_token)

        Raises:
            UpstreamError: status_code set if upstream rejected the code,
                None on network/timeout/parse failure
        """
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
            "client_id": self.client_id,
            "client_secret": self.client_secret or "",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.token_endpoint,
                    data=form,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Token request failed: {e.__class__.__name__}", detail=str(e)) from e

        if not response.is_success:
            raise UpstreamError(
                f"Upstream token endpoint returned {response.status_code}",
                status_code=response.status_code,
                detail=response.text,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError("Upstream token response is not JSON", detail=response.text) from e

        if not isinstance(data, dict) or not data.get("access_token"):
            raise UpstreamError("Upstream token response has no access_token", detail=response.text)

        return data

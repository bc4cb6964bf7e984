"""Async transport for the monday.com GraphQL API.

Every tool wrapper and the metadata cache reach the API through
``MondayClient.execute``. The client never retries: a non-2xx status becomes
``TransportError`` and a non-empty ``errors`` list becomes ``GraphQLError``,
both raised to the immediate caller.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
import structlog

from stephie.config import settings
from stephie.errors import ConfigurationError, GraphQLError, TransportError

log = structlog.get_logger()


@dataclass
class GraphQLResponse:
    """Decoded GraphQL response body."""

    data: dict[str, Any] = field(default_factory=dict)
    errors: list[dict[str, Any]] = field(default_factory=list)
    account_id: int | None = None


class GraphQLTransport(Protocol):
    """Anything that can run a GraphQL document against monday.com."""

    async def execute(
        self, query: str, variables: dict[str, Any] | None = None
    ) -> GraphQLResponse: ...


class MondayClient:
    """HTTP client for the monday.com GraphQL endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        api_url: str | None = None,
        api_version: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: API token. Defaults to settings (``MONDAY_API_KEY``).
            api_url: GraphQL endpoint.
            api_version: Value for the ``API-Version`` header.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (tests use ``httpx.MockTransport``).
        """
        self._api_key = api_key
        self.api_url = api_url or settings.monday_api_url
        self.api_version = api_version or settings.monday_api_version
        self.timeout = timeout or settings.http_timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _resolve_api_key(self) -> str:
        api_key = self._api_key or settings.monday_api_key.get_secret_value()
        if not api_key:
            raise ConfigurationError(
                "MONDAY_API_KEY is not set",
                details={"setting": "STEPHIE_MONDAY_API_KEY"},
            )
        return api_key

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the pooled async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def execute(
        self, query: str, variables: dict[str, Any] | None = None
    ) -> GraphQLResponse:
        """Run a query or mutation.

        Raises:
            ConfigurationError: If no API key is configured.
            TransportError: On connection failures or a non-success HTTP status.
            GraphQLError: If the response carries a non-empty ``errors`` list.
        """
        headers = {
            "Content-Type": "application/json",
            "Authorization": self._resolve_api_key(),
            "API-Version": self.api_version,
        }
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        try:
            response = await self._get_client().post(self.api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            log.warning("monday_request_failed", error=str(e))
            raise TransportError(f"monday.com request failed: {e}") from e

        if not response.is_success:
            body = response.text
            log.warning("monday_http_error", status_code=response.status_code, body=body[:500])
            raise TransportError(
                f"monday.com API responded with status: {response.status_code}",
                status_code=response.status_code,
                body=body,
            )

        try:
            decoded = response.json()
        except ValueError as e:
            raise TransportError(
                "monday.com API returned a non-JSON body",
                status_code=response.status_code,
                body=response.text,
            ) from e

        result = GraphQLResponse(
            data=decoded.get("data") or {},
            errors=decoded.get("errors") or [],
            account_id=decoded.get("account_id"),
        )
        if result.errors:
            log.warning("monday_graphql_errors", errors=result.errors)
            raise GraphQLError(result.errors)

        return result


# Global client instance
_client: MondayClient | None = None


def get_monday_client() -> MondayClient:
    """Get the global monday.com client."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = MondayClient()
    return _client


async def reset_monday_client() -> None:
    """Close and drop the global client."""
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.close()
    _client = None

"""Custom exceptions for the STEPhie MCP server."""

from typing import Any


class StephieError(Exception):
    """Base exception for all STEPhie errors."""

    code = "STEPHIE_ERROR"

    def __init__(self, message: str, *, details: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> dict[str, Any]:
        """Error payload returned to tool callers."""
        return {"success": False, "code": self.code, "error": self.message, "details": self.details}


class ConfigurationError(StephieError):
    """Raised when a required secret or setting is missing."""

    code = "CONFIGURATION_ERROR"


class AuthorizationError(StephieError):
    """Raised when the service account handshake fails."""

    code = "AUTHORIZATION_ERROR"


class TokenFetchError(StephieError):
    """Raised when the credential provider returns no token."""

    code = "TOKEN_FETCH_ERROR"


class TransportError(StephieError):
    """Raised when a remote API call fails below the GraphQL layer."""

    code = "TRANSPORT_ERROR"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
        service: str = "monday",
    ) -> None:
        super().__init__(
            message,
            details={"service": service, "status_code": status_code},
        )
        self.status_code = status_code
        self.body = body
        self.service = service


class GraphQLError(StephieError):
    """Raised when the API accepted a request but reported errors."""

    code = "GRAPHQL_ERROR"

    def __init__(self, errors: list[dict[str, Any]]) -> None:
        first = errors[0].get("message") if errors else None
        super().__init__(
            f"monday.com GraphQL error: {first or 'Unknown error'}",
            details={"errors": errors},
        )
        self.errors = errors


class ResourceNotFoundError(StephieError):
    """Raised when metadata is requested for a resource the API does not know."""

    code = "RESOURCE_NOT_FOUND"

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(
            f"{resource_type} not found: {identifier}",
            details={"resource_type": resource_type, "identifier": identifier},
        )
        self.resource_type = resource_type
        self.identifier = identifier


class SchemaResolutionError(StephieError):
    """Raised when no usable column ids could be resolved for a board."""

    code = "SCHEMA_RESOLUTION_ERROR"

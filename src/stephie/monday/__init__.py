"""monday.com GraphQL API access."""

from stephie.monday.client import GraphQLResponse, MondayClient, get_monday_client

__all__ = ["GraphQLResponse", "MondayClient", "get_monday_client"]

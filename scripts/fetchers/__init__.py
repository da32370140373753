"""GitHub Fresh Issues — transport plugins (REST and GraphQL)."""

from fetchers.base import BaseFetcher
from fetchers.rest import RestIssueFetcher
from fetchers.graphql import GraphQLIssueFetcher

__all__ = [
    "BaseFetcher", "RestIssueFetcher", "GraphQLIssueFetcher",
]

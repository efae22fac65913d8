"""
Connectors for external productivity sources.

Currently provides the GetDX throughput datafeed client with retry and
error mapping.
"""

from .exceptions import (APIException, AuthenticationException,
                         ConnectorException, NotFoundException,
                         RateLimitException)
from .getdx import (GetDXClient, ProductivityFetchResult,
                    aggregate_org_productivity, fetch_productivity_metrics)

__all__ = [
    # Client
    "GetDXClient",
    "ProductivityFetchResult",
    "fetch_productivity_metrics",
    "aggregate_org_productivity",
    # Exceptions
    "ConnectorException",
    "RateLimitException",
    "AuthenticationException",
    "NotFoundException",
    "APIException",
]

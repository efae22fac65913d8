"""
Utility modules for connectors.
"""

from .rest import RESTClient
from .retry import retry_with_backoff

__all__ = [
    "RESTClient",
    "retry_with_backoff",
]

"""
Exception types for connector operations.
"""


class ConnectorException(Exception):
    """Base exception for all connector errors."""

    pass


class RateLimitException(ConnectorException):
    """Raised when API rate limit is exceeded."""

    pass


class AuthenticationException(ConnectorException):
    """Raised when the API key is missing, invalid, or lacks access."""

    pass


class NotFoundException(ConnectorException):
    """Raised when an endpoint or feed does not exist."""

    pass


class APIException(ConnectorException):
    """Raised when the API returns an error or an unusable payload."""

    pass

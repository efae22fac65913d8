"""
REST API helper utilities.

Provides a small JSON-over-HTTP client with status-code to exception
mapping, shared by the productivity datafeed connector.
"""

import logging
from typing import Any, Dict, Optional

import requests

from connectors.exceptions import (APIException, AuthenticationException,
                                   NotFoundException, RateLimitException)
from connectors.utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)


class RESTClient:
    """
    Generic REST API client with retry and rate limit handling.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: int = 30,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize REST client.

        :param base_url: Base URL for the API.
        :param token: Optional bearer token.
        :param timeout: Request timeout in seconds.
        :param headers: Optional additional headers.
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json", **(headers or {})}

        if token:
            self.headers["Authorization"] = f"Bearer {token}"

    def _check_response(self, response: requests.Response, endpoint: str) -> None:
        if response.status_code == 401:
            raise AuthenticationException("Authentication failed")
        elif response.status_code == 403:
            raise AuthenticationException(f"Forbidden: {response.text}")
        elif response.status_code == 429:
            raise RateLimitException("API rate limit exceeded")
        elif response.status_code == 404:
            raise NotFoundException(f"Not found: {endpoint}")
        elif response.status_code != 200:
            raise APIException(f"API error: {response.status_code} - {response.text}")

    @retry_with_backoff(
        max_retries=3,
        initial_delay=1.0,
        max_delay=30.0,
        exceptions=(RateLimitException, APIException),
    )
    def get(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Make a GET request to the API.

        :param endpoint: API endpoint (relative to base_url).
        :param params: Optional query parameters.
        :param headers: Optional additional headers.
        :return: Decoded JSON body.
        :raises AuthenticationException: If authentication fails.
        :raises NotFoundException: If the endpoint does not exist.
        :raises RateLimitException: If rate limit is exceeded.
        :raises APIException: If API returns an error.
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        request_headers = {**self.headers, **(headers or {})}

        try:
            response = requests.get(
                url,
                params=params,
                headers=request_headers,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise APIException("Request timeout") from e
        except requests.exceptions.RequestException as e:
            raise APIException(f"Request failed: {e}") from e

        self._check_response(response, endpoint)
        try:
            return response.json()
        except ValueError as e:
            raise APIException(f"Invalid JSON from {endpoint}: {e}") from e

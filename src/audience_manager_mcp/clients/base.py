"""Base REST access to Google APIs.

This module wraps a ``requests`` session with the request-option defaults,
error mapping, retry and paging behaviour shared by the Google API clients.

Key Features:
- Fully-qualified API URL construction from relative request URIs
- Default JSON/OAuth2 request options extended per request
- Retries with exponential backoff and token refresh between attempts
- Paged GET requests driven by ``nextPageToken``
"""

import logging
from collections.abc import Callable
from typing import Any, Protocol

import requests
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from audience_manager_mcp.core.exceptions import (
    APIError,
    AuthenticationError,
    RateLimitError,
)
from audience_manager_mcp.utils.uri import extend, modify_url_query_string

logger = logging.getLogger(__name__)

GOOGLE_APIS_BASE_URL = "https://www.googleapis.com/"


class AccessTokenProvider(Protocol):
    """Anything able to hand out OAuth2 access tokens."""

    def get_access_token(self, force_refresh: bool = False) -> str: ...


class BaseApi:
    """Abstraction over REST access to a single Google API."""

    def __init__(
        self,
        api_scope: str,
        api_version: str,
        token_provider: AccessTokenProvider,
        session: requests.Session | None = None,
        base_url: str = GOOGLE_APIS_BASE_URL,
        max_retries: int = 3,
        backoff_multiplier: float = 2.0,
        max_backoff_seconds: float = 30.0,
        timeout: float = 60.0,
    ):
        """Initialize the API wrapper.

        Args:
            api_scope: The API scope, e.g. ``dfareporting``
            api_version: The API version, e.g. ``v4``
            token_provider: Source of OAuth2 access tokens
            session: Optional requests session to reuse
            base_url: Protocol and domain all request URIs are relative to
            max_retries: Retry attempts for requests sent with retry enabled
            backoff_multiplier: Exponential backoff multiplier between retries
            max_backoff_seconds: Upper bound for a single backoff wait
            timeout: Request timeout in seconds
        """
        self._api_scope = api_scope
        self._api_version = api_version
        self._token_provider = token_provider
        self.session = session or requests.Session()
        self.base_url = base_url
        self.max_retries = max_retries
        self.timeout = timeout
        self.retry_wait = wait_exponential(
            multiplier=backoff_multiplier, max=max_backoff_seconds
        )

    @property
    def api_scope(self) -> str:
        """The API scope, e.g. ``dfareporting``."""
        return self._api_scope

    @property
    def api_version(self) -> str:
        """The API version, e.g. ``v4``."""
        return self._api_version

    def execute_paged_api_request(
        self,
        request_uri: str,
        request_params: dict[str, Any] | None,
        callback: Callable[[dict[str, Any]], Any],
        max_pages: int = -1,
    ) -> None:
        """Execute a paged GET request, calling ``callback`` for every page.

        The ``pageToken`` query parameter is upserted into the request URL for
        as long as responses carry a ``nextPageToken`` and fewer than
        ``max_pages`` pages were fetched (``-1`` fetches all pages).

        Args:
            request_uri: The URI of the GET request
            request_params: The options to use for every page request
            callback: Called with each parsed response page
            max_pages: Maximum number of pages to fetch
        """
        url = self.build_api_url(request_uri)
        page_count = 1

        while True:
            result = self.execute_api_request(url, request_params, True)
            self.handle_response(result, callback)

            page_token = result.get("nextPageToken")
            if not page_token:
                break

            page_count += 1
            if 0 <= max_pages < page_count:
                logger.debug(f"Stopping after {max_pages} page(s) for {request_uri}")
                break

            url = modify_url_query_string(url, "pageToken", page_token)

    def execute_api_request(
        self,
        request_uri: str,
        request_params: dict[str, Any] | None = None,
        retry_on_failure: bool = False,
    ) -> dict[str, Any]:
        """Execute a request, parsing the JSON response.

        With ``retry_on_failure`` the request is re-attempted up to
        ``max_retries`` times, refreshing the OAuth2 token before every retry.

        Args:
            request_uri: The URI of the request
            request_params: The options to use for the request
            retry_on_failure: Whether failed requests should be retried

        Returns:
            The parsed JSON response, or an empty dict for empty responses

        Raises:
            AuthenticationError: If the API rejects the credentials
            RateLimitError: If the API quota is exhausted
            APIError: For any other failed request
        """
        url = self.build_api_url(request_uri)
        params = self.build_api_params(request_params)

        if not retry_on_failure:
            return self._send(url, params)

        def before_sleep(retry_state: RetryCallState) -> None:
            logger.info(
                f"Retrying operation for a max of {self.max_retries} times "
                f"(attempt {retry_state.attempt_number}): "
                f"{retry_state.outcome.exception()}"
            )
            self.refresh_auth_token(params)

        retryer = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self.retry_wait,
            retry=retry_if_exception_type(APIError),
            before_sleep=before_sleep,
            reraise=True,
        )

        try:
            for attempt in retryer:
                with attempt:
                    result = self._send(url, params)
        except APIError:
            logger.warning("All retries have been exhausted... Failing!")
            raise

        return result

    def build_api_url(self, request_uri: str) -> str:
        """Construct the fully-qualified API URL for ``request_uri``.

        Args:
            request_uri: A relative request URI or an already qualified URL

        Returns:
            The fully-qualified API URL
        """
        if request_uri.startswith(self.base_url):
            return request_uri
        return f"{self.base_url}{self.api_scope}/{self.api_version}/{request_uri}"

    def build_api_params(
        self, request_params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Build request options, extending the defaults with ``request_params``.

        Args:
            request_params: The options to use for the request

        Returns:
            The extended request options
        """
        token = self._token_provider.get_access_token()
        base_params: dict[str, Any] = {
            "method": "get",
            "content_type": "application/json",
            "headers": {
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            },
        }
        return extend(base_params, request_params or {})

    def object_to_url_query(self, url: str, obj: dict[str, Any] | None) -> str:
        """Build a query string from ``obj``, to be appended to ``url``.

        List values are expanded into repeated parameters and dropped when
        empty.

        Args:
            url: The URL the query string will be appended to
            obj: The query parameters

        Returns:
            The query string including its ``?`` or ``&`` prefix, or ``''``
        """
        if not obj:
            return ""

        prefix = "&" if "?" in url else "?"
        parts = []
        for key, value in obj.items():
            if isinstance(value, list):
                if value:
                    parts.append("&".join(f"{key}={item}" for item in value))
            else:
                parts.append(f"{key}={value}")

        return prefix + "&".join(parts)

    def refresh_auth_token(self, params: dict[str, Any]) -> None:
        """Refresh the OAuth2 token and update ``params`` in place.

        The headers mapping is replaced by a copy, so a headers dict passed in
        by the caller is never modified.
        """
        token = self._token_provider.get_access_token(force_refresh=True)

        params["headers"] = dict(params.get("headers") or {})
        params["headers"]["Authorization"] = f"Bearer {token}"

    def handle_response(
        self, response: dict[str, Any], callback: Callable[[dict[str, Any]], Any]
    ) -> None:
        """Hand a parsed response page to ``callback``."""
        callback(response)

    def _send(self, url: str, params: dict[str, Any]) -> dict[str, Any]:
        """Send a single HTTP request and map failures to API errors."""
        method = str(params.get("method", "get")).upper()
        headers = dict(params.get("headers") or {})
        headers["Content-Type"] = params.get("content_type", "application/json")

        logger.debug(f"{method} {url}")

        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                data=params.get("payload"),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Operation failed with exception: {e}")
            raise APIError(f"Request to {url} failed: {e}") from e

        if response.status_code >= 400:
            message = self._error_message(response)
            logger.error(
                f"Operation failed with status {response.status_code}: {message}"
            )
            if response.status_code in (401, 403):
                raise AuthenticationError(message, status_code=response.status_code)
            if response.status_code == 429:
                raise RateLimitError(message, status_code=response.status_code)
            raise APIError(message, status_code=response.status_code)

        if not response.text:
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise APIError(f"Invalid JSON response from {url}: {e}") from e

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        """Extract the error message from a Google API error response."""
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"

        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        return response.text or f"HTTP {response.status_code}"

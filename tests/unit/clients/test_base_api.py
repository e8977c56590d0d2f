"""Tests for the base Google API REST client."""

import json
from unittest.mock import Mock

import pytest
import requests
from tenacity import wait_none

from audience_manager_mcp.clients.base import BaseApi
from audience_manager_mcp.core.exceptions import (
    APIError,
    AuthenticationError,
    RateLimitError,
)

BASE = "https://www.googleapis.com/dfareporting/v4/"


@pytest.fixture
def api(token_provider, mock_session):
    """A BaseApi without backoff waits."""
    api = BaseApi("dfareporting", "v4", token_provider, session=mock_session, max_retries=2)
    api.retry_wait = wait_none()
    return api


class TestBuildApiUrl:
    """Test API URL construction."""

    def test_relative_uri(self, api):
        """Test relative URIs are prefixed with base, scope and version."""
        assert api.build_api_url("userprofiles") == f"{BASE}userprofiles"

    def test_qualified_url_is_kept(self, api):
        """Test already qualified URLs are returned unchanged."""
        url = f"{BASE}userprofiles?pageToken=abc"
        assert api.build_api_url(url) == url

    def test_properties(self, api):
        """Test scope and version are exposed."""
        assert api.api_scope == "dfareporting"
        assert api.api_version == "v4"


class TestBuildApiParams:
    """Test request option defaults."""

    def test_defaults(self, api):
        """Test default method, content type and headers."""
        params = api.build_api_params()

        assert params == {
            "method": "get",
            "content_type": "application/json",
            "headers": {
                "Authorization": "Bearer test-token",
                "Accept": "application/json",
            },
        }

    def test_request_params_override_defaults(self, api):
        """Test request options extend the defaults."""
        params = api.build_api_params({"method": "post", "payload": "{}"})

        assert params["method"] == "post"
        assert params["payload"] == "{}"
        assert params["content_type"] == "application/json"


class TestObjectToUrlQuery:
    """Test query string building."""

    def test_empty(self, api):
        """Test empty objects produce no query string."""
        assert api.object_to_url_query("https://e.co/", {}) == ""
        assert api.object_to_url_query("https://e.co/", None) == ""

    def test_prefix(self, api):
        """Test the prefix depends on whether the URL has a query."""
        assert api.object_to_url_query("https://e.co/", {"a": 1}) == "?a=1"
        assert api.object_to_url_query("https://e.co/?x=1", {"a": 1}) == "&a=1"

    def test_lists_are_expanded(self, api):
        """Test list values become repeated parameters and empty lists vanish."""
        query = api.object_to_url_query("", {"ids": ["1", "2"], "skip": [], "sortField": "NAME"})
        assert query == "?ids=1&ids=2&sortField=NAME"


class TestExecuteApiRequest:
    """Test request execution and error mapping."""

    def test_success(self, api, mock_session, make_response):
        """Test the JSON body is returned."""
        mock_session.request.return_value = make_response(200, {"items": [1]})

        result = api.execute_api_request("userprofiles")

        assert result == {"items": [1]}
        mock_session.request.assert_called_once_with(
            "GET",
            f"{BASE}userprofiles",
            headers={
                "Authorization": "Bearer test-token",
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            data=None,
            timeout=60.0,
        )

    def test_payload_and_method(self, api, mock_session):
        """Test the method is upper-cased and the payload sent as body."""
        api.execute_api_request("remarketingLists", {"method": "put", "payload": '{"a":1}'})

        args, kwargs = mock_session.request.call_args
        assert args[0] == "PUT"
        assert kwargs["data"] == '{"a":1}'

    def test_empty_body(self, api, mock_session, make_response):
        """Test empty responses parse to an empty dict."""
        mock_session.request.return_value = make_response(204)
        assert api.execute_api_request("userprofiles") == {}

    def test_invalid_json(self, api, mock_session, make_response):
        """Test invalid JSON bodies raise an API error."""
        mock_session.request.return_value = make_response(200, "<html>")

        with pytest.raises(APIError, match="Invalid JSON response"):
            api.execute_api_request("userprofiles")

    @pytest.mark.parametrize(
        "status,exc_class",
        [(401, AuthenticationError), (403, AuthenticationError), (429, RateLimitError), (500, APIError)],
    )
    def test_error_statuses(self, api, mock_session, make_response, status, exc_class):
        """Test HTTP errors map to the matching exception."""
        mock_session.request.return_value = make_response(
            status, {"error": {"code": status, "message": "Request failed"}}
        )

        with pytest.raises(exc_class, match="Request failed") as exc_info:
            api.execute_api_request("userprofiles")

        assert exc_info.value.status_code == status

    def test_connection_error(self, api, mock_session):
        """Test transport errors are wrapped."""
        mock_session.request.side_effect = requests.ConnectionError("refused")

        with pytest.raises(APIError, match="refused"):
            api.execute_api_request("userprofiles")

    def test_no_retry_by_default(self, api, mock_session, make_response):
        """Test failures are raised immediately without retry."""
        mock_session.request.return_value = make_response(500, {})

        with pytest.raises(APIError):
            api.execute_api_request("userprofiles")

        assert mock_session.request.call_count == 1


class TestRetries:
    """Test retries with token refresh."""

    def test_retry_returns_successful_result(self, api, mock_session, make_response):
        """Test a retried request returns the result of the successful attempt."""
        mock_session.request.side_effect = [
            make_response(500, {"error": {"message": "Backend error"}}),
            make_response(200, {"items": ["ok"]}),
        ]

        result = api.execute_api_request("userprofiles", {"method": "get"}, True)

        assert result == {"items": ["ok"]}
        assert mock_session.request.call_count == 2

    def test_token_is_refreshed_between_attempts(
        self, api, mock_session, make_response, token_provider
    ):
        """Test the retry uses a freshly refreshed token."""
        mock_session.request.side_effect = [
            make_response(401, {"error": {"message": "Invalid Credentials"}}),
            make_response(200, {}),
        ]

        api.execute_api_request("userprofiles", None, True)

        token_provider.get_access_token.assert_any_call(force_refresh=True)
        retry_headers = mock_session.request.call_args_list[1].kwargs["headers"]
        assert retry_headers["Authorization"] == "Bearer refreshed-token"

    def test_retries_exhausted(self, api, mock_session, make_response):
        """Test the last error is raised once all retries are used."""
        mock_session.request.return_value = make_response(503, {"error": {"message": "Unavailable"}})

        with pytest.raises(APIError, match="Unavailable"):
            api.execute_api_request("userprofiles", None, True)

        assert mock_session.request.call_count == 3

    def test_retry_leaves_caller_headers_untouched(self, api, mock_session, make_response):
        """Test refreshing the token on retry does not modify the caller's headers."""
        mock_session.request.side_effect = [
            make_response(500, {"error": {"message": "Backend error"}}),
            make_response(200, {}),
        ]
        headers = {"X-Trace": "abc"}

        api.execute_api_request("userprofiles", {"method": "get", "headers": headers}, True)

        assert headers == {"X-Trace": "abc"}
        retry_headers = mock_session.request.call_args_list[1].kwargs["headers"]
        assert retry_headers["X-Trace"] == "abc"
        assert retry_headers["Authorization"] == "Bearer refreshed-token"


class TestPagedRequests:
    """Test paged request execution."""

    def test_follows_page_tokens(self, api, mock_session, make_response):
        """Test pages are fetched until no nextPageToken is returned."""
        mock_session.request.side_effect = [
            make_response(200, {"advertisers": [1], "nextPageToken": "p2"}),
            make_response(200, {"advertisers": [2], "nextPageToken": "p3"}),
            make_response(200, {"advertisers": [3]}),
        ]
        pages = []

        api.execute_paged_api_request("advertisers?sortField=NAME", {"method": "get"}, pages.append)

        assert [page["advertisers"] for page in pages] == [[1], [2], [3]]
        urls = [call.args[1] for call in mock_session.request.call_args_list]
        assert urls == [
            f"{BASE}advertisers?sortField=NAME",
            f"{BASE}advertisers?sortField=NAME&pageToken=p2",
            f"{BASE}advertisers?sortField=NAME&pageToken=p3",
        ]

    def test_max_pages(self, api, mock_session, make_response):
        """Test paging stops after max_pages pages."""
        mock_session.request.return_value = make_response(200, {"nextPageToken": "more"})
        callback = Mock()

        api.execute_paged_api_request("advertisers", None, callback, max_pages=2)

        assert callback.call_count == 2
        assert mock_session.request.call_count == 2

    def test_handle_response_passes_page(self, api):
        """Test handle_response hands the page to the callback."""
        callback = Mock()
        api.handle_response({"a": 1}, callback)
        callback.assert_called_once_with({"a": 1})


def test_refresh_auth_token_creates_headers(api):
    """Test refreshing adds the authorization header when missing."""
    params = {"method": "get"}

    api.refresh_auth_token(params)

    assert params["headers"] == {"Authorization": "Bearer refreshed-token"}


def test_payload_is_json_string(api, mock_session):
    """Test JSON payloads are passed through untouched."""
    payload = json.dumps({"name": "Buyers"})
    api.execute_api_request("x", {"method": "post", "payload": payload})
    assert mock_session.request.call_args.kwargs["data"] == payload


def test_refresh_auth_token_copies_headers(api):
    """Test refreshing replaces the headers with an updated copy."""
    headers = {"Accept": "application/json"}
    params = {"headers": headers}

    api.refresh_auth_token(params)

    assert headers == {"Accept": "application/json"}
    assert params["headers"] == {
        "Accept": "application/json",
        "Authorization": "Bearer refreshed-token",
    }

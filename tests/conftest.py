"""Pytest configuration and shared fixtures for Audience Manager tests."""

import json
from unittest.mock import Mock

import pytest
import requests

from audience_manager_mcp.core.config import (
    AudienceSheetConfig,
    CampaignManagerConfig,
    Settings,
)

NETWORK_ID = "1111"
ADVERTISER_ID = "2222"
PROFILE_ID = "9999"


def _make_response(status_code: int = 200, body=None) -> Mock:
    """Create a mock ``requests.Response`` carrying a JSON body."""
    response = Mock(spec=requests.Response)
    response.status_code = status_code
    if body is None:
        response.text = ""
        response.json.side_effect = ValueError("No JSON")
    elif isinstance(body, str):
        response.text = body
        response.json.side_effect = ValueError("Not JSON")
    else:
        response.text = json.dumps(body)
        response.json.return_value = body
    return response


@pytest.fixture
def make_response():
    """Factory for mock responses: ``make_response(status_code, body)``."""
    return _make_response


@pytest.fixture
def cm360_config():
    """CM360 configuration for the test network and advertiser."""
    return CampaignManagerConfig(network_id=NETWORK_ID, advertiser_id=ADVERTISER_ID)


@pytest.fixture
def settings(tmp_path, cm360_config):
    """Settings pointing the audience sheets to a temporary directory."""
    return Settings(
        cm360=cm360_config,
        sheets=AudienceSheetConfig(
            audiences_path=tmp_path / "Audiences.csv",
            rules_path=tmp_path / "Rules.csv",
        ),
    )


@pytest.fixture
def token_provider():
    """Token provider handing out a fixed token, and a new one on refresh."""
    provider = Mock()
    provider.get_access_token.side_effect = (
        lambda force_refresh=False: "refreshed-token" if force_refresh else "test-token"
    )
    return provider


@pytest.fixture
def mock_session():
    """A mock requests session answering every request with ``{}``."""
    session = Mock(spec=requests.Session)
    session.request.return_value = _make_response(200, {})
    return session


@pytest.fixture
def mock_facade():
    """A mock CM360 facade for the test advertiser."""
    facade = Mock()
    facade.advertiser_id = ADVERTISER_ID
    facade.network_id = NETWORK_ID
    facade.get_user_defined_variable_configurations.return_value = []
    facade.get_floodlight_activities.return_value = []
    facade.get_remarketing_lists.return_value = []
    facade.get_remarketing_list_shares.return_value = []
    return facade

"""Tests for the CM360 facade."""

from unittest.mock import Mock

import pytest

from audience_manager_mcp.clients.cm360.facade import CampaignManagerFacade
from audience_manager_mcp.core.exceptions import ResourceNotFoundError


@pytest.fixture
def api():
    """A mock CM360 API with one profile per network."""
    api = Mock()
    api.get_user_profiles.return_value = [
        {"profileId": "8", "accountId": "3333"},
        {"profileId": "9", "accountId": "1111"},
    ]
    return api


@pytest.fixture
def facade(api):
    return CampaignManagerFacade("1111", "2222", api, advertisers_filter=["5"])


class TestUserProfile:
    """Test user profile resolution."""

    def test_profile_matching_network(self, facade):
        """Test the profile of the configured network is used."""
        assert facade.get_user_profile_id() == "9"

    def test_numeric_account_ids(self, api, facade):
        """Test numeric account IDs in the response still match."""
        api.get_user_profiles.return_value = [{"profileId": 9, "accountId": 1111}]
        assert facade.get_user_profile_id() == "9"

    def test_profile_is_cached(self, api, facade):
        """Test the profile lookup happens once."""
        facade.get_user_profile_id()
        facade.get_remarketing_lists()
        facade.get_floodlight_activities()

        api.get_user_profiles.assert_called_once()

    def test_no_profile_for_network(self, api, facade):
        """Test a helpful error is raised without a matching profile."""
        api.get_user_profiles.return_value = [{"profileId": "8", "accountId": "3333"}]

        with pytest.raises(ResourceNotFoundError, match="CM360 Network: 1111"):
            facade.get_user_profile_id()

    def test_no_profiles(self, api, facade):
        """Test users without any profile get the same error."""
        api.get_user_profiles.return_value = []

        with pytest.raises(ResourceNotFoundError):
            facade.get_remarketing_lists()


class TestDelegation:
    """Test operations are delegated with the resolved profile."""

    def test_reads(self, api, facade):
        """Test read operations pass the profile ID."""
        facade.get_user_defined_variable_configurations()
        facade.get_floodlight_activities()
        facade.get_remarketing_lists()
        facade.get_remarketing_list_shares("77")
        facade.get_remarketing_list_shares_resource("77")

        api.get_user_defined_variable_configurations.assert_called_once_with("9")
        api.get_floodlight_activities.assert_called_once_with("9")
        api.get_remarketing_lists.assert_called_once_with("9")
        api.get_remarketing_list_shares.assert_called_once_with("9", "77")
        api.get_remarketing_list_shares_resource.assert_called_once_with("9", "77")

    def test_get_advertisers_uses_filter(self, api, facade):
        """Test the configured advertisers filter is applied."""
        callback = Mock()

        facade.get_advertisers(100, callback)

        api.get_advertisers.assert_called_once_with("9", ["5"], 100, callback)

    def test_create_sets_advertiser(self, api, facade):
        """Test created lists are owned by the configured advertiser."""
        remarketing_list = {"name": "Buyers"}

        facade.create_remarketing_list(remarketing_list)

        api.create_remarketing_list.assert_called_once_with(
            "9", {"name": "Buyers", "advertiserId": "2222"}
        )
        assert remarketing_list["advertiserId"] == "2222"

    def test_updates(self, api, facade):
        """Test update operations pass the profile ID."""
        facade.update_remarketing_list({"id": "77"})
        facade.update_remarketing_list_shares("77", {"sharedAdvertiserIds": []})

        api.update_remarketing_list.assert_called_once_with("9", {"id": "77"})
        api.update_remarketing_list_shares.assert_called_once_with(
            "9", "77", {"sharedAdvertiserIds": []}
        )

"""CM360 facade resolving the user profile for every API operation."""

import logging
from collections.abc import Callable
from typing import Any

from audience_manager_mcp.clients.cm360.client import CampaignManagerApi
from audience_manager_mcp.core.exceptions import ResourceNotFoundError
from audience_manager_mcp.utils.uri import extend

logger = logging.getLogger(__name__)


class CampaignManagerFacade:
    """Entry point for CM360 operations of one network and advertiser.

    Every operation needs the ID of the user profile that belongs to the
    configured CM360 network. It is looked up once and cached.
    """

    def __init__(
        self,
        network_id: str,
        advertiser_id: str,
        api: CampaignManagerApi,
        advertisers_filter: list[str] | None = None,
    ):
        self.network_id = str(network_id)
        self.advertiser_id = str(advertiser_id)
        self.api = api
        self.advertisers_filter = advertisers_filter or []
        self._user_profile_id: str | None = None

    def get_user_profile_id(self) -> str:
        """Return the ID of the user profile associated with the network.

        Raises:
            ResourceNotFoundError: If the user has no profile for the network
        """
        if self._user_profile_id:
            return self._user_profile_id

        user_profiles = self.api.get_user_profiles() or []
        matching = [
            profile
            for profile in user_profiles
            if str(profile.get("accountId")) == self.network_id
        ]

        if not matching or not matching[0].get("profileId"):
            raise ResourceNotFoundError(
                "Could not find a User Profile associated with the given CM360 "
                f"Network: {self.network_id}! Please create a User Profile using "
                "the CM360 UI before retrying this operation."
            )

        self._user_profile_id = str(matching[0]["profileId"])
        logger.debug(
            f"Using user profile {self._user_profile_id} for network {self.network_id}"
        )
        return self._user_profile_id

    def get_user_defined_variable_configurations(self) -> list[dict[str, Any]]:
        return self.api.get_user_defined_variable_configurations(
            self.get_user_profile_id()
        )

    def get_floodlight_activities(self) -> list[dict[str, Any]]:
        return self.api.get_floodlight_activities(self.get_user_profile_id())

    def get_advertisers(
        self,
        max_results_per_page: int,
        callback: Callable[[list[dict[str, Any]]], Any],
    ) -> None:
        self.api.get_advertisers(
            self.get_user_profile_id(),
            self.advertisers_filter,
            max_results_per_page,
            callback,
        )

    def get_remarketing_lists(self) -> list[dict[str, Any]]:
        return self.api.get_remarketing_lists(self.get_user_profile_id())

    def update_remarketing_list(
        self, remarketing_list: dict[str, Any]
    ) -> dict[str, Any]:
        return self.api.update_remarketing_list(
            self.get_user_profile_id(), remarketing_list
        )

    def create_remarketing_list(
        self, remarketing_list: dict[str, Any]
    ) -> dict[str, Any]:
        """Create a remarketing list owned by the configured advertiser.

        The advertiser ID is set on ``remarketing_list`` in place.
        """
        profile_id = self.get_user_profile_id()
        resource = extend(remarketing_list, {"advertiserId": self.advertiser_id})
        return self.api.create_remarketing_list(profile_id, resource)

    def get_remarketing_list_shares_resource(
        self, remarketing_list_id: str
    ) -> dict[str, Any]:
        return self.api.get_remarketing_list_shares_resource(
            self.get_user_profile_id(), remarketing_list_id
        )

    def get_remarketing_list_shares(self, remarketing_list_id: str) -> list[str]:
        return self.api.get_remarketing_list_shares(
            self.get_user_profile_id(), remarketing_list_id
        )

    def update_remarketing_list_shares(
        self, remarketing_list_id: str, shares_resource: dict[str, Any]
    ) -> dict[str, Any]:
        return self.api.update_remarketing_list_shares(
            self.get_user_profile_id(), remarketing_list_id, shares_resource
        )

"""REST wrapper for the Campaign Manager 360 API.

Only the resources needed to manage remarketing lists are covered: user
profiles, Floodlight configurations and activities, advertisers, remarketing
lists and remarketing list shares.
"""

import json
import logging
from collections.abc import Callable
from typing import Any

import requests

from audience_manager_mcp.clients.base import AccessTokenProvider, BaseApi
from audience_manager_mcp.core.config import CampaignManagerConfig

logger = logging.getLogger(__name__)

API_SCOPE = "dfareporting"
API_VERSION = "v4"


class CampaignManagerApi(BaseApi):
    """REST client for the CM360 API bound to a single advertiser."""

    def __init__(
        self,
        advertiser_id: str,
        token_provider: AccessTokenProvider,
        session: requests.Session | None = None,
        **kwargs: Any,
    ):
        """Initialize the CM360 API client.

        Args:
            advertiser_id: The CM360 Advertiser ID
            token_provider: Source of OAuth2 access tokens
            session: Optional requests session to reuse
            **kwargs: Further ``BaseApi`` options (retries, timeout, ...)
        """
        kwargs.setdefault("api_scope", API_SCOPE)
        kwargs.setdefault("api_version", API_VERSION)
        super().__init__(token_provider=token_provider, session=session, **kwargs)
        self._advertiser_id = advertiser_id

    @classmethod
    def from_config(
        cls,
        config: CampaignManagerConfig,
        token_provider: AccessTokenProvider,
        session: requests.Session | None = None,
    ) -> "CampaignManagerApi":
        """Create a client from CM360 configuration."""
        return cls(
            config.advertiser_id,
            token_provider,
            session=session,
            api_scope=config.api_scope,
            api_version=config.api_version,
            base_url=config.base_url,
            max_retries=config.max_retries,
            backoff_multiplier=config.backoff_multiplier,
            max_backoff_seconds=config.max_backoff_seconds,
            timeout=config.request_timeout_seconds,
        )

    @property
    def advertiser_id(self) -> str:
        return self._advertiser_id

    def get_user_profiles(self) -> list[dict[str, Any]]:
        """Retrieve all CM360 user profiles of the authenticated user."""
        result = self.execute_api_request("userprofiles", {"method": "get"}, True)
        return result.get("items", [])

    def get_user_defined_variable_configurations(
        self, profile_id: str
    ) -> list[dict[str, Any]]:
        """Retrieve the custom Floodlight variables of the advertiser.

        Args:
            profile_id: The user profile ID

        Returns:
            The user defined variable configurations
        """
        path = f"userprofiles/{profile_id}/floodlightConfigurations/{self.advertiser_id}"
        result = self.execute_api_request(path, {"method": "get"}, True)
        return result.get("userDefinedVariableConfigurations", [])

    def get_floodlight_activities(self, profile_id: str) -> list[dict[str, Any]]:
        """Retrieve the Floodlight activities of the advertiser.

        Args:
            profile_id: The user profile ID

        Returns:
            The Floodlight activities
        """
        path = (
            f"userprofiles/{profile_id}/floodlightActivities"
            f"?advertiserId={self.advertiser_id}"
        )
        result = self.execute_api_request(path, {"method": "get"}, True)
        return result.get("floodlightActivities", [])

    def get_advertisers(
        self,
        profile_id: str,
        advertisers_filter: list[str],
        max_results_per_page: int,
        callback: Callable[[list[dict[str, Any]]], Any],
        max_pages: int = -1,
    ) -> None:
        """Retrieve advertisers page by page, calling ``callback`` per page.

        Args:
            profile_id: The user profile ID
            advertisers_filter: Advertiser IDs to restrict the listing to
            max_results_per_page: Maximum number of results per page
            callback: Called with the advertisers of every fetched page
            max_pages: Maximum number of pages to fetch (-1 for all)
        """
        params: dict[str, Any] = {
            "sortField": "NAME",
            "maxResults": max_results_per_page,
        }
        if advertisers_filter:
            params["ids"] = list(advertisers_filter)

        query_string = self.object_to_url_query("", params)
        path = f"userprofiles/{profile_id}/advertisers{query_string}"

        self.execute_paged_api_request(
            path,
            {"method": "get"},
            lambda page: callback(page.get("advertisers", [])),
            max_pages,
        )

    def get_remarketing_lists(self, profile_id: str) -> list[dict[str, Any]]:
        """Retrieve the remarketing lists owned by the advertiser.

        Args:
            profile_id: The user profile ID

        Returns:
            The remarketing lists
        """
        path = (
            f"userprofiles/{profile_id}/remarketingLists"
            f"?advertiserId={self.advertiser_id}"
        )
        result = self.execute_api_request(path, {"method": "get"}, True)
        return result.get("remarketingLists", [])

    def update_remarketing_list(
        self, profile_id: str, remarketing_list: dict[str, Any]
    ) -> dict[str, Any]:
        """Update a remarketing list.

        Args:
            profile_id: The user profile ID
            remarketing_list: The remarketing list resource, including its id

        Returns:
            The updated remarketing list resource
        """
        path = f"userprofiles/{profile_id}/remarketingLists"
        return self.execute_api_request(
            path,
            {"method": "put", "payload": json.dumps(remarketing_list)},
            True,
        )

    def create_remarketing_list(
        self, profile_id: str, remarketing_list: dict[str, Any]
    ) -> dict[str, Any]:
        """Create a remarketing list.

        The request is sent without retries.

        Args:
            profile_id: The user profile ID
            remarketing_list: The remarketing list resource to create

        Returns:
            The created remarketing list resource
        """
        path = f"userprofiles/{profile_id}/remarketingLists"
        return self.execute_api_request(
            path,
            {"method": "post", "payload": json.dumps(remarketing_list)},
            False,
        )

    def get_remarketing_list_shares_resource(
        self, profile_id: str, remarketing_list_id: str
    ) -> dict[str, Any]:
        """Retrieve the shares resource of a remarketing list."""
        path = f"userprofiles/{profile_id}/remarketingListShares/{remarketing_list_id}"
        return self.execute_api_request(path, {"method": "get"}, True)

    def get_remarketing_list_shares(
        self, profile_id: str, remarketing_list_id: str
    ) -> list[str]:
        """Retrieve the advertiser IDs a remarketing list is shared with."""
        resource = self.get_remarketing_list_shares_resource(
            profile_id, remarketing_list_id
        )
        return resource.get("sharedAdvertiserIds", [])

    def update_remarketing_list_shares(
        self,
        profile_id: str,
        remarketing_list_id: str,
        shares_resource: dict[str, Any],
    ) -> dict[str, Any]:
        """Update the advertisers a remarketing list is shared with.

        Args:
            profile_id: The user profile ID
            remarketing_list_id: The ID of the remarketing list
            shares_resource: The remarketing list shares resource

        Returns:
            The updated shares resource
        """
        path = (
            f"userprofiles/{profile_id}/remarketingListShares"
            f"?id={remarketing_list_id}"
        )
        return self.execute_api_request(
            path,
            {"method": "patch", "payload": json.dumps(shares_resource)},
            True,
        )

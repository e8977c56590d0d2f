"""Campaign Manager 360 API authentication.

This module handles OAuth2 credentials for the CM360 REST API, supporting
both service account and application default credentials.
"""

import logging
from pathlib import Path
from typing import Any

from google.auth import default
from google.auth.exceptions import DefaultCredentialsError, RefreshError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from audience_manager_mcp.core.config import CampaignManagerConfig
from audience_manager_mcp.core.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

# OAuth2 scopes required for reading and managing remarketing lists
CM360_SCOPES = [
    "https://www.googleapis.com/auth/dfareporting",
    "https://www.googleapis.com/auth/dfatrafficking",
]


class CampaignManagerAuthenticator:
    """Handles CM360 credentials and hands out access tokens."""

    def __init__(self, config: CampaignManagerConfig, credentials: Any = None):
        """Initialize the CM360 authenticator.

        Args:
            config: CM360 configuration containing authentication settings
            credentials: Optional pre-built google-auth credentials
        """
        self.config = config
        self._credentials = credentials

    @property
    def credentials(self) -> Any:
        """Get (and lazily create) the google-auth credentials."""
        if self._credentials is None:
            self._credentials = self._get_credentials()
        return self._credentials

    def get_access_token(self, force_refresh: bool = False) -> str:
        """Return a valid OAuth2 access token, refreshing it when needed.

        Args:
            force_refresh: Refresh even if the current token is still valid

        Returns:
            The access token

        Raises:
            AuthenticationError: If the token cannot be refreshed
        """
        credentials = self.credentials

        if force_refresh or not credentials.valid:
            try:
                credentials.refresh(Request())
            except RefreshError as e:
                logger.error(f"CM360 token refresh failed: {e}")
                raise AuthenticationError(f"Failed to refresh CM360 token: {e}") from e

        return credentials.token

    def _get_credentials(self) -> Any:
        """Get Google credentials for CM360 API access.

        Raises:
            AuthenticationError: If credentials cannot be obtained
        """
        if self.config.service_account_key_path:
            key_path = Path(self.config.service_account_key_path)
            if not key_path.exists():
                raise AuthenticationError(
                    f"Service account key file not found: {key_path}"
                )

            logger.info(f"Using service account credentials from {key_path}")
            return service_account.Credentials.from_service_account_file(
                str(key_path), scopes=CM360_SCOPES
            )

        if self.config.use_application_default_credentials:
            logger.info("Using application default credentials for CM360")
            try:
                credentials, _ = default(scopes=CM360_SCOPES)
            except DefaultCredentialsError as e:
                raise AuthenticationError(
                    "Application default credentials not available. "
                    "Run 'gcloud auth application-default login' or provide "
                    "a service account key file."
                ) from e
            return credentials

        raise AuthenticationError("No authentication method configured for CM360 API")

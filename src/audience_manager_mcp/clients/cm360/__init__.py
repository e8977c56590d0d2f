"""Campaign Manager 360 platform integration."""

from .auth import CampaignManagerAuthenticator
from .client import CampaignManagerApi
from .facade import CampaignManagerFacade

__all__ = [
    "CampaignManagerApi",
    "CampaignManagerAuthenticator",
    "CampaignManagerFacade",
]

"""Audience load and process workflows."""

from audience_manager_mcp.services.audience_loader import AudienceLoader
from audience_manager_mcp.services.audience_processor import AudienceProcessor

__all__ = ["AudienceLoader", "AudienceProcessor"]

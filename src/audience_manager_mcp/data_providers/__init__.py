"""Data providers for audience sheets."""

from audience_manager_mcp.data_providers.audience_sheet import (
    AUDIENCE_COLUMNS,
    RULE_COLUMNS,
    AudienceSheet,
)

__all__ = ["AUDIENCE_COLUMNS", "RULE_COLUMNS", "AudienceSheet"]

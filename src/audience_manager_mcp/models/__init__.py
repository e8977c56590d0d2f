"""Data models for Audience Manager."""

from audience_manager_mcp.models.audience import (
    Audience,
    AudienceAction,
    AudiencePlan,
    AudienceProcessResult,
    AudienceRule,
)

__all__ = [
    "Audience",
    "AudienceAction",
    "AudiencePlan",
    "AudienceProcessResult",
    "AudienceRule",
]

"""Base model with common configuration."""

from datetime import datetime, timezone

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def current_date_string() -> str:
    """Current UTC date and time as ``YYYY-MM-DD HH:MM:SS``."""
    return utc_now().strftime("%Y-%m-%d %H:%M:%S")


class BaseAMModel(BaseModel):
    """Base model for all Audience Manager models.

    Fields are exposed under camelCase aliases, the naming used by the
    CM360 API and by the JSON stored in the Audiences sheet.
    """

    model_config = {
        "alias_generator": to_camel,
        # Allow population by field name
        "populate_by_name": True,
        # Validate on assignment
        "validate_assignment": True,
        # Use enum values instead of names
        "use_enum_values": True,
    }

"""Audience (remarketing list) data models."""

import hashlib
import json
from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from audience_manager_mcp.models.base import BaseAMModel, utc_now


class AudienceAction(str, Enum):
    """Changes that processing an audience row can push to CM360."""

    CREATE = "CREATE_AUDIENCE"
    UPDATE = "UPDATE_AUDIENCE"
    UPDATE_SHARES = "UPDATE_SHARES"


class AudienceRule(BaseAMModel):
    """A single custom variable condition of an audience.

    Rules sharing a ``group`` are OR-ed together into one list population
    clause; clauses are AND-ed.
    """

    group: int = Field(default=0, ge=0, description="Clause index")
    variable_name: str = Field(..., description="Custom variable type, e.g. U1")
    variable_friendly_name: str = Field(
        default="", description="Report name of the custom variable"
    )
    operator: str = Field(..., description="Comparison operator, e.g. STRING_EQUALS")
    value: str = Field(..., description="Value(s) to compare, comma-separated")
    negation: bool = Field(default=False, description="Negate the condition")


class Audience(BaseAMModel):
    """An audience definition as kept in the Audiences sheet."""

    id: str | None = Field(None, description="CM360 remarketing list ID")
    name: str = Field(..., description="Audience name")
    description: str = Field(default="", description="Audience description")
    life_span: int = Field(..., description="Membership duration in days")
    floodlight_id: str | None = Field(None, description="Floodlight activity ID")
    floodlight_name: str | None = Field(None, description="Floodlight activity name")
    rules: list[AudienceRule] = Field(default_factory=list)
    shares: list[str] = Field(
        default_factory=list, description="Advertiser IDs the list is shared with"
    )

    @field_validator("description", mode="before")
    @classmethod
    def default_description(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("rules", "shares", mode="before")
    @classmethod
    def default_empty_list(cls, v: Any) -> Any:
        return [] if v is None else v

    def get_checksum(self) -> str:
        """MD5 checksum over the fields that define the remarketing list."""
        payload: dict[str, Any] = {
            "name": self.name,
            "lifespan": self.life_span,
            "description": self.description,
        }
        if self.floodlight_id is not None:
            payload["floodlightId"] = self.floodlight_id
        payload["rules"] = [rule.model_dump(by_alias=True) for rule in self.rules]

        return _md5(payload)

    def get_shares_checksum(self) -> str:
        """MD5 checksum over the advertiser shares."""
        return _md5(self.shares)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, data: str | dict[str, Any]) -> "Audience":
        if isinstance(data, str):
            return cls.model_validate_json(data)
        return cls.model_validate(data)


class AudiencePlan(BaseAMModel):
    """An audience row that needs to be pushed to CM360."""

    index: int = Field(..., ge=0, description="Row index in the Audiences sheet")
    audience: Audience
    actions: list[AudienceAction] = Field(default_factory=list)

    def has_action(self, action: AudienceAction) -> bool:
        return AudienceAction(action).value in self.actions


class AudienceProcessResult(BaseAMModel):
    """Outcome of pushing a single audience to CM360."""

    index: int
    audience_id: str | None = None
    audience_name: str
    actions: list[AudienceAction] = Field(default_factory=list)
    success: bool
    status: str
    messages: list[str] = Field(default_factory=list)
    processed_at: str = Field(default_factory=lambda: utc_now().isoformat())


def _md5(value: Any) -> str:
    serialized = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return hashlib.md5(serialized.encode("utf-8")).hexdigest()

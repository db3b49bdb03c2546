"""Request payloads for channel management."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChannelUpdatePayload(BaseModel):
    """Operator edit of a channel's display name."""

    model_config = ConfigDict(populate_by_name=True)

    display_name: str = Field(..., alias="displayName", min_length=1, max_length=64)

    @field_validator("display_name")
    @classmethod
    def strip_display_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Display name must not be blank")
        return cleaned

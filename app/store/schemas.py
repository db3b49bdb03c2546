"""Pydantic models for channels, counters and the persisted snapshot."""

from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def new_entity_id() -> str:
    return str(uuid.uuid4())


class _CamelModel(BaseModel):
    """Base model serialising to the camelCase field names of the data file."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def json_payload(self) -> dict[str, Any]:
        """Return JSON-serializable payload using persisted field names."""

        return self.model_dump(mode="json", by_alias=True)


class Channel(_CamelModel):
    """An isolated tenant: one streamer's chat channel."""

    id: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1)
    is_default: bool = False


class UninstallRequest(_CamelModel):
    """Aggregate uninstall requests for one program within one channel."""

    id: str = Field(default_factory=new_entity_id)
    program_name: str = Field(..., min_length=1)
    count: int = Field(default=1, ge=1)


class Boss(_CamelModel):
    """A tracked adversary and the deaths it has caused."""

    id: str = Field(default_factory=new_entity_id)
    name: str = Field(..., min_length=1)
    is_beaten: bool = False
    death_count: int = Field(default=0, ge=0)
    final_death_count: int | None = None


class Snapshot(_CamelModel):
    """Complete persisted state of all channels.

    ``uninstall_requests`` and ``bosses`` are keyed by channel id, then by the
    normalized entity name. Dict order is insertion order and doubles as the
    stable iteration order for listings and active-boss lookup.
    """

    channels: dict[str, Channel] = Field(default_factory=dict)
    uninstall_requests: dict[str, dict[str, UninstallRequest]] = Field(default_factory=dict)
    bosses: dict[str, dict[str, Boss]] = Field(default_factory=dict)

    def default_channel(self) -> Channel | None:
        return next((channel for channel in self.channels.values() if channel.is_default), None)

    def requests_for(self, channel_id: str) -> dict[str, UninstallRequest]:
        return self.uninstall_requests.get(channel_id, {})

    def bosses_for(self, channel_id: str) -> dict[str, Boss]:
        return self.bosses.get(channel_id, {})

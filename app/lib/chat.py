"""Helpers for plain-text replies consumed by Nightbot's urlfetch."""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import PlainTextResponse

from app.config import get_settings
from app.store import CounterStore


def get_counter_store(request: Request) -> CounterStore:
    store: CounterStore | None = getattr(request.app.state, "counter_store", None)  # type: ignore[attr-defined]
    if store is None:
        raise RuntimeError("Counter store not configured on application state")
    return store


def times(count: int) -> str:
    return "time" if count == 1 else "times"


def chat_reply(message: str, status_code: int = 200) -> PlainTextResponse:
    return PlainTextResponse(message, status_code=status_code)


def blank_to_none(value: str | None) -> str | None:
    """Nightbot sends empty query values when a command has no argument."""

    if value is None or not value.strip():
        return None
    return value


async def streamer_name(store: CounterStore, channel_id: str | None) -> str:
    """Return the name chat replies use for the channel's streamer."""

    channel = await store.get_channel(channel_id)
    if channel is not None:
        return channel.display_name
    resolved = await store.resolve_channel_id(channel_id)
    return get_settings().streamer_name if resolved == store.default_channel else resolved

"""Channel listing and per-channel settings for the dashboard."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.channels.schemas import ChannelUpdatePayload
from app.lib.chat import get_counter_store
from app.lib.logger import get_logger
from app.store import CounterStore, NotFoundError

logger = get_logger(__name__)
router = APIRouter()


@router.get("")
async def list_channels(store: CounterStore = Depends(get_counter_store)) -> JSONResponse:
    channels = await store.get_channels()
    return JSONResponse({"ok": True, "data": [channel.json_payload() for channel in channels]})


@router.get("/{channel_id}")
async def read_channel(channel_id: str, store: CounterStore = Depends(get_counter_store)) -> JSONResponse:
    channel = await store.get_channel(channel_id)
    if channel is None:
        raise NotFoundError(f"Channel {channel_id} not found")
    return JSONResponse({"ok": True, "data": channel.json_payload()})


@router.patch("/{channel_id}")
async def rename_channel(
    channel_id: str,
    payload: ChannelUpdatePayload,
    store: CounterStore = Depends(get_counter_store),
) -> JSONResponse:
    """Change the name chat replies use for the channel's streamer."""

    channel = await store.update_channel_name(channel_id, payload.display_name)
    logger.info("channel_renamed", extra={"channel_id": channel.id, "display_name": channel.display_name})
    return JSONResponse({"ok": True, "data": channel.json_payload()})


@router.delete("/{channel_id}/deaths")
async def reset_channel_deaths(channel_id: str, store: CounterStore = Depends(get_counter_store)) -> JSONResponse:
    resolved = await store.resolve_channel_id(channel_id)
    await store.reset_channel_deaths(resolved)
    logger.info("channel_deaths_reset", extra={"channel_id": resolved})
    return JSONResponse({"ok": True, "data": {"channelId": resolved}})


@router.delete("/{channel_id}/requests")
async def reset_channel_requests(channel_id: str, store: CounterStore = Depends(get_counter_store)) -> JSONResponse:
    resolved = await store.resolve_channel_id(channel_id)
    await store.reset_all_requests(resolved)
    logger.info("channel_requests_reset", extra={"channel_id": resolved})
    return JSONResponse({"ok": True, "data": {"channelId": resolved}})

"""Uninstall request chat command and dashboard endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from app.lib.chat import blank_to_none, chat_reply, get_counter_store, times
from app.lib.logger import get_logger
from app.lib.rate_limiter import enforce_rate_limit
from app.store import CounterStore, NotFoundError, PersistenceError

logger = get_logger(__name__)
router = APIRouter()


@router.get("", response_class=PlainTextResponse)
async def request_uninstall(
    request: Request,
    program: str | None = Query(default=None),
    channel: str | None = Query(default=None),
    store: CounterStore = Depends(get_counter_store),
) -> PlainTextResponse:
    """Count one more chat request to uninstall ``program``."""

    enforce_rate_limit(request, "chat.uninstall", channel)
    program = blank_to_none(program)
    if program is None:
        return chat_reply("Program name is required", status_code=400)

    try:
        entry = await store.increment_uninstall_count(channel, program)
    except PersistenceError:
        return chat_reply("Failed to process request", status_code=500)

    return chat_reply(
        f"Chat has requested to uninstall {entry.program_name} {entry.count} {times(entry.count)}. "
        "Go ahead and do it already!"
    )


@router.get("/all")
async def list_uninstall_requests(
    channel: str | None = Query(default=None),
    store: CounterStore = Depends(get_counter_store),
) -> JSONResponse:
    requests = await store.get_all_uninstall_requests(channel)
    return JSONResponse({"ok": True, "data": [entry.json_payload() for entry in requests]})


@router.get("/lookup")
async def lookup_uninstall_request(
    program: str = Query(..., min_length=1),
    channel: str | None = Query(default=None),
    store: CounterStore = Depends(get_counter_store),
) -> JSONResponse:
    entry = await store.get_uninstall_request(channel, program)
    if entry is None:
        raise NotFoundError(f"No uninstall requests recorded for {program.strip()}")
    return JSONResponse({"ok": True, "data": entry.json_payload()})


@router.delete("")
async def delete_uninstall_request(
    program: str = Query(..., min_length=1),
    channel: str | None = Query(default=None),
    store: CounterStore = Depends(get_counter_store),
) -> JSONResponse:
    deleted = await store.delete_request(channel, program)
    logger.info("uninstall_deleted", extra={"program": program, "deleted": deleted})
    return JSONResponse({"ok": True, "data": {"programName": program.strip(), "deleted": deleted}})


@router.delete("/reset")
async def reset_uninstall_requests(
    channel: str | None = Query(default=None),
    store: CounterStore = Depends(get_counter_store),
) -> JSONResponse:
    """Clear every uninstall request for the channel."""

    resolved = await store.resolve_channel_id(channel)
    await store.reset_all_requests(resolved)
    logger.info("uninstall_reset", extra={"channel_id": resolved})
    return JSONResponse({"ok": True, "data": {"channelId": resolved}})

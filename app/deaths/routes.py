"""Boss death counter chat commands and dashboard listing."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from app.lib.chat import blank_to_none, chat_reply, get_counter_store, streamer_name, times
from app.lib.rate_limiter import enforce_rate_limit
from app.store import (
    Boss,
    CounterStore,
    InvalidInputError,
    NoActiveBossError,
    NotFoundError,
    PersistenceError,
)

router = APIRouter()

_NO_ACTIVE_BOSS_DEATH = "No active boss found. Use !death <boss name> to start tracking."
_NO_ACTIVE_BOSS_BEATEN = "No active boss found to mark as beaten."
_SETDEATHS_USAGE = "Usage: !setdeaths <boss name> <count>"


def _died_to(streamer: str, boss: Boss) -> str:
    return f"{streamer} has died to {boss.name} {boss.death_count} {times(boss.death_count)}"


def _beaten_after(streamer: str, boss: Boss) -> str:
    return f"It took {boss.final_death_count} attempts for {streamer} to beat {boss.name}"


@router.get("/death", response_class=PlainTextResponse)
async def record_death(
    request: Request,
    boss: str | None = Query(default=None),
    channel: str | None = Query(default=None),
    store: CounterStore = Depends(get_counter_store),
) -> PlainTextResponse:
    """Count a death against the named boss, or the active one when omitted."""

    enforce_rate_limit(request, "chat.death", channel)
    try:
        tracked = await store.increment_deaths(channel, blank_to_none(boss))
    except NoActiveBossError:
        return chat_reply(_NO_ACTIVE_BOSS_DEATH, status_code=400)
    except PersistenceError:
        return chat_reply("Failed to update death counter", status_code=500)
    return chat_reply(_died_to(await streamer_name(store, channel), tracked))


@router.get("/deaths", response_class=PlainTextResponse)
async def read_deaths(
    boss: str | None = Query(default=None),
    channel: str | None = Query(default=None),
    store: CounterStore = Depends(get_counter_store),
) -> PlainTextResponse:
    try:
        return await _describe_deaths(store, channel, blank_to_none(boss))
    except PersistenceError:
        return chat_reply("Failed to fetch death records", status_code=500)


async def _describe_deaths(store: CounterStore, channel: str | None, boss: str | None) -> PlainTextResponse:
    streamer = await streamer_name(store, channel)
    if boss is not None:
        tracked = await store.get_boss(channel, boss)
        if tracked is None:
            return chat_reply(f"No death records found for {boss.strip()}")
        if tracked.is_beaten:
            return chat_reply(_beaten_after(streamer, tracked))
        return chat_reply(_died_to(streamer, tracked))

    active = await store.get_active_boss(channel)
    if active is None:
        return chat_reply("No active boss is currently being tracked.")
    return chat_reply(_died_to(streamer, active))


@router.get("/beaten", response_class=PlainTextResponse)
async def mark_beaten(
    request: Request,
    boss: str | None = Query(default=None),
    channel: str | None = Query(default=None),
    store: CounterStore = Depends(get_counter_store),
) -> PlainTextResponse:
    enforce_rate_limit(request, "chat.beaten", channel)
    try:
        tracked = await store.mark_beaten(channel, blank_to_none(boss))
    except NotFoundError as exc:
        return chat_reply(exc.message, status_code=404)
    except NoActiveBossError:
        return chat_reply(_NO_ACTIVE_BOSS_BEATEN, status_code=400)
    except PersistenceError:
        return chat_reply("Failed to update death counter", status_code=500)
    return chat_reply(_beaten_after(await streamer_name(store, channel), tracked))


@router.get("/total-deaths", response_class=PlainTextResponse)
async def total_deaths(
    channel: str | None = Query(default=None),
    store: CounterStore = Depends(get_counter_store),
) -> PlainTextResponse:
    try:
        total = await store.get_total_deaths(channel)
        streamer = await streamer_name(store, channel)
    except PersistenceError:
        return chat_reply("Failed to calculate total deaths", status_code=500)
    return chat_reply(f"{streamer} has died a total of {total} {times(total)} across all bosses")


@router.get("/setdeaths", response_class=PlainTextResponse)
async def set_deaths(
    request: Request,
    boss: str | None = Query(default=None),
    count: str | None = Query(default=None),
    channel: str | None = Query(default=None),
    store: CounterStore = Depends(get_counter_store),
) -> PlainTextResponse:
    enforce_rate_limit(request, "chat.setdeaths", channel)
    boss = blank_to_none(boss)
    if boss is None or blank_to_none(count) is None:
        return chat_reply(_SETDEATHS_USAGE, status_code=400)
    try:
        tracked = await store.set_deaths(channel, boss, count)
    except InvalidInputError:
        return chat_reply(_SETDEATHS_USAGE, status_code=400)
    except PersistenceError:
        return chat_reply("Failed to update death counter", status_code=500)
    return chat_reply(f"Death counter for {tracked.name} set to {tracked.death_count}")


@router.get("/bosses")
async def list_bosses(
    channel: str | None = Query(default=None),
    store: CounterStore = Depends(get_counter_store),
) -> JSONResponse:
    bosses = await store.get_all_bosses(channel)
    return JSONResponse({"ok": True, "data": [boss.json_payload() for boss in bosses]})

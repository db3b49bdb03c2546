"""Channel-scoped uninstall and boss death counters.

The store keeps one committed :class:`Snapshot` in memory, loaded lazily from
the persistence backend on first access. Every mutation runs under a single
``asyncio.Lock``: it applies its change to a deep copy of the committed
snapshot, saves that copy, and only then publishes it as the new committed
state. Readers never take the lock once the snapshot is loaded; they always see
the last state that reached disk, and a failed save leaves memory and disk in
agreement.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import Callable, TypeVar

from app.lib.logger import get_logger
from app.lib.metrics import METRICS
from app.store.errors import NoActiveBossError, NotFoundError, PersistenceError
from app.store.names import clean_display_name, normalize_channel_id, normalize_name, parse_count
from app.store.persistence import JsonSnapshotFile
from app.store.schemas import Boss, Channel, Snapshot, UninstallRequest

logger = get_logger(__name__)

T = TypeVar("T")


class CounterStore:
    """Single source of truth for uninstall requests and boss death counts."""

    def __init__(
        self,
        backend: JsonSnapshotFile,
        *,
        default_channel: str = "default",
        default_display_name: str | None = None,
    ) -> None:
        self._backend = backend
        self._default_channel = normalize_channel_id(default_channel) or "default"
        self._default_display_name = (default_display_name or "").strip() or self._default_channel
        self._snapshot: Snapshot | None = None
        self._lock = asyncio.Lock()

    @property
    def default_channel(self) -> str:
        return self._default_channel

    # ------------------------------------------------------------------ internals

    async def _load_locked(self) -> Snapshot:
        if self._snapshot is None:
            self._snapshot = await asyncio.to_thread(self._backend.load)
            logger.info("store_loaded", extra={"channels": len(self._snapshot.channels)})
        return self._snapshot

    async def _current(self) -> Snapshot:
        if self._snapshot is None:
            async with self._lock:
                return await self._load_locked()
        return self._snapshot

    async def _mutate(self, action: str, apply: Callable[[Snapshot], tuple[T, bool]]) -> T:
        """Run ``apply`` against a working copy and commit it once it is durable.

        ``apply`` returns its result plus whether the working copy changed;
        unchanged copies are discarded without touching the backend. Once the
        save has started it runs to completion and is committed even if the
        caller is cancelled; the lock is held until then.
        """

        async with self._lock:
            committed = await self._load_locked()
            working = committed.model_copy(deep=True)
            result, changed = apply(working)
            if not changed:
                return result
            commit = asyncio.ensure_future(self._persist(action, working))
            try:
                await asyncio.shield(commit)
            except asyncio.CancelledError:
                while not commit.done():
                    with suppress(asyncio.CancelledError):
                        await asyncio.wait([commit])
                if not commit.cancelled() and commit.exception() is not None:
                    logger.warning("store_commit_failed_after_cancel", extra={"action": action})
                raise
            return result

    async def _persist(self, action: str, working: Snapshot) -> None:
        try:
            await asyncio.to_thread(self._backend.save, working)
        except PersistenceError:
            METRICS.increment("store.persist.error")
            logger.error("store_commit_failed", extra={"action": action})
            raise
        self._snapshot = working
        METRICS.increment(f"store.{action}")
        logger.debug("store_commit", extra={"action": action})

    def _resolve(self, snapshot: Snapshot, channel_id: str | None) -> str:
        normalized = normalize_channel_id(channel_id)
        if normalized is not None:
            return normalized
        default = snapshot.default_channel()
        return default.id if default else self._default_channel

    def _ensure_channel(self, snapshot: Snapshot, channel_id: str | None) -> tuple[Channel, bool]:
        resolved = self._resolve(snapshot, channel_id)
        existing = snapshot.channels.get(resolved)
        if existing is not None:
            return existing, False
        channel = Channel(
            id=resolved,
            display_name=self._default_display_name if resolved == self._default_channel else resolved,
            is_default=not snapshot.channels,
        )
        snapshot.channels[resolved] = channel
        logger.info("channel_created", extra={"channel_id": resolved, "is_default": channel.is_default})
        return channel, True

    @staticmethod
    def _first_unbeaten(bosses: dict[str, Boss]) -> Boss | None:
        return next((boss for boss in bosses.values() if not boss.is_beaten), None)

    def _upsert_boss_locked(self, snapshot: Snapshot, channel_id: str | None, display: str) -> tuple[Boss, bool]:
        channel, created = self._ensure_channel(snapshot, channel_id)
        bosses = snapshot.bosses.setdefault(channel.id, {})
        key = display.casefold()
        boss = bosses.get(key)
        if boss is None:
            boss = Boss(name=display)
            bosses[key] = boss
            return boss, True
        return boss, created

    # ------------------------------------------------------------------ channels

    async def resolve_channel_id(self, channel_id: str | None = None) -> str:
        """Return the concrete channel id a request for ``channel_id`` acts on."""

        return self._resolve(await self._current(), channel_id)

    async def get_channels(self) -> list[Channel]:
        snapshot = await self._current()
        return [channel.model_copy() for channel in snapshot.channels.values()]

    async def get_channel(self, channel_id: str | None = None) -> Channel | None:
        snapshot = await self._current()
        channel = snapshot.channels.get(self._resolve(snapshot, channel_id))
        return channel.model_copy() if channel else None

    async def update_channel_name(self, channel_id: str | None, display_name: str) -> Channel:
        display = clean_display_name(display_name, field="display name")

        def apply(snapshot: Snapshot) -> tuple[Channel, bool]:
            channel, created = self._ensure_channel(snapshot, channel_id)
            if channel.display_name == display:
                return channel.model_copy(), created
            channel.display_name = display
            return channel.model_copy(), True

        return await self._mutate("channel.rename", apply)

    async def reset_channel_deaths(self, channel_id: str | None = None) -> None:
        """Forget every boss tracked for the channel; channel metadata survives."""

        def apply(snapshot: Snapshot) -> tuple[None, bool]:
            resolved = self._resolve(snapshot, channel_id)
            removed = snapshot.bosses.pop(resolved, None)
            return None, bool(removed)

        await self._mutate("channel.reset_deaths", apply)

    # ------------------------------------------------------------------ uninstall requests

    async def increment_uninstall_count(self, channel_id: str | None, program_name: str) -> UninstallRequest:
        """Add one uninstall request for ``program_name``, creating it on first sight."""

        display = clean_display_name(program_name, field="program name")
        key = display.casefold()

        def apply(snapshot: Snapshot) -> tuple[UninstallRequest, bool]:
            channel, _ = self._ensure_channel(snapshot, channel_id)
            requests = snapshot.uninstall_requests.setdefault(channel.id, {})
            entry = requests.get(key)
            if entry is None:
                entry = UninstallRequest(program_name=display)
                requests[key] = entry
            else:
                entry.count += 1
            return entry.model_copy(), True

        result = await self._mutate("uninstall.increment", apply)
        logger.info("uninstall_incremented", extra={"program": result.program_name, "count": result.count})
        return result

    async def get_uninstall_request(self, channel_id: str | None, program_name: str) -> UninstallRequest | None:
        key = normalize_name(program_name, field="program name")
        snapshot = await self._current()
        entry = snapshot.requests_for(self._resolve(snapshot, channel_id)).get(key)
        return entry.model_copy() if entry else None

    async def get_all_uninstall_requests(self, channel_id: str | None = None) -> list[UninstallRequest]:
        """Return the channel's requests, most requested first."""

        snapshot = await self._current()
        requests = snapshot.requests_for(self._resolve(snapshot, channel_id)).values()
        # sorted() is stable, so equal counts keep insertion order.
        return [entry.model_copy() for entry in sorted(requests, key=lambda entry: entry.count, reverse=True)]

    async def reset_all_requests(self, channel_id: str | None = None) -> None:
        def apply(snapshot: Snapshot) -> tuple[None, bool]:
            removed = snapshot.uninstall_requests.pop(self._resolve(snapshot, channel_id), None)
            return None, bool(removed)

        await self._mutate("uninstall.reset", apply)

    async def delete_request(self, channel_id: str | None, program_name: str) -> bool:
        key = normalize_name(program_name, field="program name")

        def apply(snapshot: Snapshot) -> tuple[bool, bool]:
            requests = snapshot.uninstall_requests.get(self._resolve(snapshot, channel_id))
            if not requests or key not in requests:
                return False, False
            del requests[key]
            return True, True

        return await self._mutate("uninstall.delete", apply)

    # ------------------------------------------------------------------ bosses

    async def get_boss(self, channel_id: str | None, name: str) -> Boss | None:
        key = normalize_name(name, field="boss name")
        snapshot = await self._current()
        boss = snapshot.bosses_for(self._resolve(snapshot, channel_id)).get(key)
        return boss.model_copy() if boss else None

    async def get_active_boss(self, channel_id: str | None = None) -> Boss | None:
        """Return the first unbeaten boss in insertion order, if any."""

        snapshot = await self._current()
        boss = self._first_unbeaten(snapshot.bosses_for(self._resolve(snapshot, channel_id)))
        return boss.model_copy() if boss else None

    async def get_all_bosses(self, channel_id: str | None = None) -> list[Boss]:
        snapshot = await self._current()
        return [boss.model_copy() for boss in snapshot.bosses_for(self._resolve(snapshot, channel_id)).values()]

    async def get_total_deaths(self, channel_id: str | None = None) -> int:
        snapshot = await self._current()
        return sum(boss.death_count for boss in snapshot.bosses_for(self._resolve(snapshot, channel_id)).values())

    async def upsert_boss(self, channel_id: str | None, name: str) -> Boss:
        display = clean_display_name(name, field="boss name")

        def apply(snapshot: Snapshot) -> tuple[Boss, bool]:
            boss, changed = self._upsert_boss_locked(snapshot, channel_id, display)
            return boss.model_copy(), changed

        return await self._mutate("boss.upsert", apply)

    async def increment_deaths(self, channel_id: str | None, boss_name: str | None = None) -> Boss:
        """Count one death against ``boss_name``, or against the active boss when omitted.

        A named boss is created if needed. Naming a beaten boss keeps counting
        its deaths while ``is_beaten`` and ``final_death_count`` stay frozen.
        """

        display = clean_display_name(boss_name, field="boss name") if boss_name is not None else None

        def apply(snapshot: Snapshot) -> tuple[Boss, bool]:
            if display is not None:
                boss, _ = self._upsert_boss_locked(snapshot, channel_id, display)
            else:
                boss = self._first_unbeaten(snapshot.bosses_for(self._resolve(snapshot, channel_id)))
                if boss is None:
                    raise NoActiveBossError("No active boss and no boss name provided")
            boss.death_count += 1
            return boss.model_copy(), True

        return await self._mutate("boss.death", apply)

    async def set_deaths(self, channel_id: str | None, boss_name: str, count: int | str) -> Boss:
        display = clean_display_name(boss_name, field="boss name")
        value = parse_count(count)

        def apply(snapshot: Snapshot) -> tuple[Boss, bool]:
            boss, changed = self._upsert_boss_locked(snapshot, channel_id, display)
            if boss.death_count == value:
                return boss.model_copy(), changed
            boss.death_count = value
            return boss.model_copy(), True

        result = await self._mutate("boss.set_deaths", apply)
        logger.info("boss_deaths_set", extra={"boss": result.name, "death_count": result.death_count})
        return result

    async def mark_beaten(self, channel_id: str | None, boss_name: str | None = None) -> Boss:
        """Mark a boss beaten and freeze its final death count.

        A named boss must already exist. Marking an already beaten boss again
        returns it unchanged; the first frozen count is kept.
        """

        key = normalize_name(boss_name, field="boss name") if boss_name is not None else None

        def apply(snapshot: Snapshot) -> tuple[Boss, bool]:
            bosses = snapshot.bosses_for(self._resolve(snapshot, channel_id))
            if key is not None:
                boss = bosses.get(key)
                if boss is None:
                    raise NotFoundError(f"No death records found for {boss_name.strip()}")
            else:
                boss = self._first_unbeaten(bosses)
                if boss is None:
                    raise NoActiveBossError("No active boss found to mark as beaten")
            if boss.is_beaten:
                return boss.model_copy(), False
            boss.is_beaten = True
            boss.final_death_count = boss.death_count
            return boss.model_copy(), True

        result = await self._mutate("boss.beaten", apply)
        logger.info("boss_beaten", extra={"boss": result.name, "final_death_count": result.final_death_count})
        return result

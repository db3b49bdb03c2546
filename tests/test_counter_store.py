"""Behavioural tests for the multi-channel counter store."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from app.lib.metrics import METRICS
from app.store import (
    CounterStore,
    InvalidInputError,
    JsonSnapshotFile,
    NoActiveBossError,
    NotFoundError,
    PersistenceError,
)


def _reopen(data_path: Path) -> CounterStore:
    return CounterStore(JsonSnapshotFile(data_path), default_channel="default", default_display_name="Mango")


@pytest.mark.asyncio
async def test_repeated_uninstall_requests_accumulate(store: CounterStore) -> None:
    for _ in range(5):
        entry = await store.increment_uninstall_count(None, "Windows Vista")

    assert entry.program_name == "Windows Vista"
    assert entry.count == 5
    requests = await store.get_all_uninstall_requests()
    assert [(r.program_name, r.count) for r in requests] == [("Windows Vista", 5)]


@pytest.mark.asyncio
async def test_uninstall_names_match_case_and_whitespace_insensitively(store: CounterStore) -> None:
    first = await store.increment_uninstall_count(None, "  Internet Explorer ")
    second = await store.increment_uninstall_count(None, "internet EXPLORER")

    assert second.id == first.id
    assert second.count == 2
    assert second.program_name == "Internet Explorer"
    assert len(await store.get_all_uninstall_requests()) == 1


@pytest.mark.asyncio
async def test_blank_program_name_is_rejected_without_mutation(store: CounterStore, data_path: Path) -> None:
    with pytest.raises(InvalidInputError):
        await store.increment_uninstall_count(None, "   ")

    assert await store.get_channels() == []
    assert not data_path.exists()


@pytest.mark.asyncio
async def test_requests_sorted_by_count_with_stable_ties(store: CounterStore) -> None:
    for name, hits in [("Edge", 1), ("Teams", 3), ("Skype", 1), ("Zune", 2)]:
        for _ in range(hits):
            await store.increment_uninstall_count(None, name)

    first = [r.program_name for r in await store.get_all_uninstall_requests()]
    second = [r.program_name for r in await store.get_all_uninstall_requests()]
    assert first == ["Teams", "Zune", "Edge", "Skype"]
    assert second == first


@pytest.mark.asyncio
async def test_get_uninstall_request_by_normalized_name(store: CounterStore) -> None:
    await store.increment_uninstall_count(None, "McAfee")

    found = await store.get_uninstall_request(None, " mcafee ")
    assert found is not None
    assert found.count == 1
    assert await store.get_uninstall_request(None, "norton") is None


@pytest.mark.asyncio
async def test_delete_request(store: CounterStore, data_path: Path) -> None:
    await store.increment_uninstall_count(None, "Flash")
    before = data_path.read_text(encoding="utf-8")

    assert await store.delete_request(None, "nonexistent") is False
    assert data_path.read_text(encoding="utf-8") == before

    assert await store.delete_request(None, "FLASH") is True
    assert await store.get_all_uninstall_requests() == []


@pytest.mark.asyncio
async def test_delete_on_fresh_store_leaves_nothing_behind(store: CounterStore, data_path: Path) -> None:
    assert await store.delete_request(None, "nonexistent") is False
    assert await store.get_channels() == []
    assert not data_path.exists()


@pytest.mark.asyncio
async def test_reset_all_requests_is_channel_scoped(store: CounterStore) -> None:
    await store.increment_uninstall_count("alpha", "Edge")
    await store.increment_uninstall_count("beta", "Edge")

    await store.reset_all_requests("alpha")

    assert await store.get_all_uninstall_requests("alpha") == []
    assert [r.count for r in await store.get_all_uninstall_requests("beta")] == [1]


@pytest.mark.asyncio
async def test_channels_are_isolated(store: CounterStore) -> None:
    await store.increment_uninstall_count("alpha", "Vista")
    await store.increment_uninstall_count("alpha", "Vista")
    await store.increment_deaths("alpha", "Ornstein")
    await store.mark_beaten("alpha", "Ornstein")

    assert await store.get_all_uninstall_requests("beta") == []
    assert await store.get_all_bosses("beta") == []
    assert await store.get_active_boss("beta") is None

    await store.increment_uninstall_count("beta", "vista")
    await store.increment_deaths("beta", "ornstein")
    alpha_request = await store.get_uninstall_request("alpha", "Vista")
    alpha_boss = await store.get_boss("alpha", "Ornstein")
    assert alpha_request is not None and alpha_request.count == 2
    assert alpha_boss is not None and alpha_boss.death_count == 1 and alpha_boss.is_beaten


@pytest.mark.asyncio
async def test_death_then_implicit_death_counts_against_active_boss(store: CounterStore) -> None:
    await store.increment_deaths(None, "Glass Joe")
    boss = await store.increment_deaths(None)

    assert boss.name == "Glass Joe"
    assert boss.death_count == 2
    assert boss.is_beaten is False


@pytest.mark.asyncio
async def test_implicit_death_without_bosses_fails_without_mutation(store: CounterStore, data_path: Path) -> None:
    with pytest.raises(NoActiveBossError):
        await store.increment_deaths(None)

    assert await store.get_all_bosses() == []
    assert await store.get_channels() == []
    assert not data_path.exists()


@pytest.mark.asyncio
async def test_mark_beaten_freezes_final_count(store: CounterStore) -> None:
    await store.increment_deaths(None, "Glass Joe")
    await store.increment_deaths(None)

    boss = await store.mark_beaten(None, "Glass Joe")

    assert boss.is_beaten is True
    assert boss.final_death_count == 2
    assert await store.get_active_boss() is None


@pytest.mark.asyncio
async def test_named_death_on_beaten_boss_keeps_final_count(store: CounterStore) -> None:
    await store.set_deaths(None, "Von Kaiser", 4)
    await store.mark_beaten(None, "Von Kaiser")

    boss = await store.increment_deaths(None, "von kaiser")

    assert boss.death_count == 5
    assert boss.is_beaten is True
    assert boss.final_death_count == 4
    assert await store.get_active_boss() is None


@pytest.mark.asyncio
async def test_mark_beaten_twice_keeps_first_final_count(store: CounterStore) -> None:
    await store.set_deaths(None, "King Hippo", 3)
    await store.mark_beaten(None)
    await store.increment_deaths(None, "King Hippo")

    again = await store.mark_beaten(None, "King Hippo")

    assert again.final_death_count == 3
    assert again.death_count == 4


@pytest.mark.asyncio
async def test_mark_beaten_with_unknown_name_does_not_create(store: CounterStore) -> None:
    with pytest.raises(NotFoundError):
        await store.mark_beaten(None, "Piston Honda")

    assert await store.get_boss(None, "Piston Honda") is None


@pytest.mark.asyncio
async def test_mark_beaten_without_active_boss(store: CounterStore) -> None:
    with pytest.raises(NoActiveBossError):
        await store.mark_beaten(None)


@pytest.mark.asyncio
async def test_set_deaths_creates_unknown_boss(store: CounterStore) -> None:
    boss = await store.set_deaths(None, "Tyson", 37)

    assert boss.name == "Tyson"
    assert boss.death_count == 37
    assert boss.is_beaten is False
    assert boss.final_death_count is None


@pytest.mark.asyncio
@pytest.mark.parametrize("count", [-1, "-3", "twelve", "", None, True])
async def test_set_deaths_rejects_invalid_counts(store: CounterStore, count) -> None:
    with pytest.raises(InvalidInputError):
        await store.set_deaths(None, "Tyson", count)

    assert await store.get_boss(None, "Tyson") is None


@pytest.mark.asyncio
async def test_active_boss_is_first_unbeaten_in_insertion_order(store: CounterStore) -> None:
    await store.upsert_boss(None, "Bald Bull")
    await store.upsert_boss(None, "Soda Popinski")
    await store.upsert_boss(None, "Mr. Sandman")

    assert (await store.get_active_boss()).name == "Bald Bull"
    await store.mark_beaten(None, "bald bull")
    assert (await store.get_active_boss()).name == "Soda Popinski"
    assert [b.name for b in await store.get_all_bosses()] == ["Bald Bull", "Soda Popinski", "Mr. Sandman"]


@pytest.mark.asyncio
async def test_upsert_boss_returns_existing(store: CounterStore) -> None:
    created = await store.upsert_boss(None, "Great Tiger")
    await store.increment_deaths(None)

    existing = await store.upsert_boss(None, "GREAT TIGER ")

    assert existing.id == created.id
    assert existing.death_count == 1
    assert existing.name == "Great Tiger"


@pytest.mark.asyncio
async def test_total_deaths_and_reset_channel_deaths(store: CounterStore) -> None:
    await store.set_deaths("alpha", "Gwyn", 10)
    await store.set_deaths("alpha", "Manus", 5)
    await store.set_deaths("beta", "Gwyn", 2)

    assert await store.get_total_deaths("alpha") == 15

    await store.reset_channel_deaths("alpha")

    assert await store.get_total_deaths("alpha") == 0
    assert await store.get_all_bosses("alpha") == []
    assert await store.get_total_deaths("beta") == 2
    assert await store.get_channel("alpha") is not None


@pytest.mark.asyncio
async def test_first_channel_becomes_default(store: CounterStore) -> None:
    await store.increment_uninstall_count("Alpha", "Vista")
    await store.increment_uninstall_count("beta", "Vista")

    channels = await store.get_channels()
    assert [(c.id, c.is_default) for c in channels] == [("alpha", True), ("beta", False)]

    await store.increment_uninstall_count(None, "Vista")
    assert await store.resolve_channel_id(None) == "alpha"
    assert (await store.get_uninstall_request("alpha", "vista")).count == 2


@pytest.mark.asyncio
async def test_default_channel_uses_streamer_display_name(store: CounterStore) -> None:
    await store.increment_deaths(None, "Glass Joe")
    await store.increment_deaths("somebody", "Glass Joe")

    default = await store.get_channel(None)
    assert default is not None
    assert default.id == "default"
    assert default.display_name == "Mango"
    assert default.is_default is True
    assert (await store.get_channel("somebody")).display_name == "somebody"


@pytest.mark.asyncio
async def test_update_channel_name(store: CounterStore) -> None:
    renamed = await store.update_channel_name("Alpha", "  Alpha Streams ")

    assert renamed.id == "alpha"
    assert renamed.display_name == "Alpha Streams"
    assert renamed.is_default is True

    with pytest.raises(InvalidInputError):
        await store.update_channel_name("alpha", "  ")


@pytest.mark.asyncio
async def test_reads_never_create_channels(store: CounterStore, data_path: Path) -> None:
    assert await store.get_all_uninstall_requests("ghost") == []
    assert await store.get_active_boss("ghost") is None
    assert await store.get_channel("ghost") is None
    assert await store.get_total_deaths("ghost") == 0
    assert not data_path.exists()


@pytest.mark.asyncio
async def test_returned_entities_are_detached_copies(store: CounterStore) -> None:
    entry = await store.increment_uninstall_count(None, "Vista")
    entry.count = 999

    stored = await store.get_uninstall_request(None, "Vista")
    assert stored.count == 1


@pytest.mark.asyncio
async def test_concurrent_increments_are_not_lost(store: CounterStore, data_path: Path) -> None:
    await asyncio.gather(*(store.increment_uninstall_count(None, "Vista") for _ in range(50)))
    await asyncio.gather(*(store.increment_deaths("alpha", "Gwyn") for _ in range(25)))

    assert (await store.get_uninstall_request(None, "vista")).count == 50
    assert (await store.get_boss("alpha", "gwyn")).death_count == 25

    reopened = _reopen(data_path)
    assert (await reopened.get_uninstall_request(None, "vista")).count == 50
    assert (await reopened.get_boss("alpha", "gwyn")).death_count == 25


@pytest.mark.asyncio
async def test_mutations_are_durable_across_instances(store: CounterStore, data_path: Path) -> None:
    await store.increment_uninstall_count(None, "Vista")
    await store.set_deaths(None, "Tyson", 37)
    await store.mark_beaten(None, "Tyson")

    reopened = _reopen(data_path)
    boss = await reopened.get_boss(None, "tyson")
    assert boss is not None
    assert boss.final_death_count == 37
    assert (await reopened.get_channel(None)).is_default is True

    document = json.loads(data_path.read_text(encoding="utf-8"))
    assert set(document) == {"channels", "uninstallRequests", "bosses"}
    assert document["bosses"]["default"]["tyson"]["finalDeathCount"] == 37


@pytest.mark.asyncio
async def test_failed_save_leaves_state_unchanged(store: CounterStore, data_path: Path, monkeypatch) -> None:
    await store.increment_uninstall_count(None, "Vista")
    durable = data_path.read_text(encoding="utf-8")

    def failing_save(self, snapshot) -> None:
        raise PersistenceError("disk full")

    monkeypatch.setattr(JsonSnapshotFile, "save", failing_save)
    with pytest.raises(PersistenceError):
        await store.increment_uninstall_count(None, "Vista")
    with pytest.raises(PersistenceError):
        await store.increment_deaths(None, "Glass Joe")

    assert (await store.get_uninstall_request(None, "Vista")).count == 1
    assert await store.get_boss(None, "Glass Joe") is None
    assert data_path.read_text(encoding="utf-8") == durable
    assert METRICS.get("store.persist.error") == 2

    monkeypatch.undo()
    recovered = await store.increment_uninstall_count(None, "Vista")
    assert recovered.count == 2


@pytest.mark.asyncio
async def test_readers_do_not_observe_uncommitted_writes(store: CounterStore, monkeypatch) -> None:
    await store.increment_uninstall_count(None, "Vista")

    release = asyncio.Event()
    entered = asyncio.Event()
    original_save = JsonSnapshotFile.save

    def slow_save(self, snapshot) -> None:
        loop.call_soon_threadsafe(entered.set)
        asyncio.run_coroutine_threadsafe(release.wait(), loop).result()
        original_save(self, snapshot)

    loop = asyncio.get_running_loop()
    monkeypatch.setattr(JsonSnapshotFile, "save", slow_save)

    pending = asyncio.create_task(store.increment_uninstall_count(None, "Vista"))
    await entered.wait()

    assert (await store.get_uninstall_request(None, "Vista")).count == 1

    release.set()
    assert (await pending).count == 2
    assert (await store.get_uninstall_request(None, "Vista")).count == 2


@pytest.mark.asyncio
async def test_cancelled_mutation_still_commits_started_save(
    store: CounterStore, data_path: Path, monkeypatch
) -> None:
    await store.increment_uninstall_count(None, "Vista")

    release = asyncio.Event()
    entered = asyncio.Event()
    original_save = JsonSnapshotFile.save

    def slow_save(self, snapshot) -> None:
        loop.call_soon_threadsafe(entered.set)
        asyncio.run_coroutine_threadsafe(release.wait(), loop).result()
        original_save(self, snapshot)

    loop = asyncio.get_running_loop()
    monkeypatch.setattr(JsonSnapshotFile, "save", slow_save)

    cancelled = asyncio.create_task(store.increment_uninstall_count(None, "Vista"))
    await entered.wait()
    cancelled.cancel()
    follow_up = asyncio.create_task(store.increment_uninstall_count(None, "Vista"))
    await asyncio.sleep(0)
    release.set()

    with pytest.raises(asyncio.CancelledError):
        await cancelled
    assert (await follow_up).count == 3

    assert (await store.get_uninstall_request(None, "Vista")).count == 3
    assert (await _reopen(data_path).get_uninstall_request(None, "Vista")).count == 3

"""Pytest fixtures for the Nightbot counter service tests."""

from collections.abc import AsyncIterator, Iterator
import os
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

_STORAGE_PATH = Path(__file__).resolve().parent / "__storage"
os.environ.setdefault("STORAGE_DIR", str(_STORAGE_PATH))
os.environ.setdefault("DEFAULT_CHANNEL", "default")
os.environ.setdefault("STREAMER_NAME", "Mango")
_STORAGE_PATH.mkdir(parents=True, exist_ok=True)

from app.config import get_settings
from app.main import app as fastapi_app
from app.store import CounterStore, JsonSnapshotFile, build_counter_store


@pytest.fixture(scope="session")
def app() -> FastAPI:
    """Return the FastAPI application instance."""
    return fastapi_app


@pytest_asyncio.fixture()
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Provide an `httpx.AsyncClient` wired to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        yield client


@pytest.fixture(autouse=True)
def clean_storage() -> Iterator[None]:
    """Ensure the storage directory is empty before and after each test."""

    for child in _STORAGE_PATH.glob("*"):
        if child.is_file():
            child.unlink()
    yield
    for child in _STORAGE_PATH.glob("*"):
        if child.is_file():
            child.unlink()


@pytest.fixture(autouse=True)
def reset_runtime(app: FastAPI, clean_storage: None) -> Iterator[None]:
    """Give every test a cold counter store and fresh metrics and rate limits."""

    metrics = getattr(app.state, "metrics", None)
    limiter = getattr(app.state, "rate_limiter", None)
    original_limit = getattr(app.state, "rate_limit_per_minute", None)
    app.state.counter_store = build_counter_store(get_settings())
    if metrics is not None:
        metrics.reset()
    if limiter is not None:
        limiter.reset()
    yield
    if metrics is not None:
        metrics.reset()
    if limiter is not None:
        limiter.reset()
    if original_limit is not None:
        app.state.rate_limit_per_minute = original_limit


@pytest.fixture()
def storage_dir() -> Path:
    """Return the configured storage directory path for assertions."""

    return _STORAGE_PATH


@pytest.fixture()
def data_path(tmp_path: Path) -> Path:
    return tmp_path / "data.json"


@pytest.fixture()
def store(data_path: Path) -> CounterStore:
    """Standalone store over a scratch data file."""

    return CounterStore(JsonSnapshotFile(data_path), default_channel="default", default_display_name="Mango")

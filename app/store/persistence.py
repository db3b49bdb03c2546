"""Whole-snapshot JSON persistence with atomic file replacement."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from app.lib.logger import get_logger
from app.store.errors import PersistenceError
from app.store.names import normalize_name
from app.store.schemas import Boss, Channel, Snapshot, UninstallRequest

logger = get_logger(__name__)


class JsonSnapshotFile:
    """Read and rewrite the full counter snapshot as a single JSON document."""

    def __init__(self, path: Path, *, legacy_channel: Channel | None = None) -> None:
        self.path = Path(path)
        self._legacy_channel = legacy_channel

    def load(self) -> Snapshot:
        """Return the last saved snapshot, or an empty one on first run."""

        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("snapshot_cold_start", extra={"path": str(self.path)})
            return Snapshot()
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("snapshot_read_failed", extra={"path": str(self.path)}, exc_info=True)
            raise PersistenceError(f"Unable to read {self.path.name}") from exc

        try:
            document = json.loads(raw)
            if not isinstance(document, dict):
                raise ValueError("snapshot document must be a JSON object")
            if _is_legacy(document) and self._legacy_channel is not None:
                document = _migrate_legacy(document, self._legacy_channel)
            return Snapshot.model_validate(document)
        except (ValueError, ValidationError) as exc:
            logger.error("snapshot_malformed", extra={"path": str(self.path)}, exc_info=True)
            raise PersistenceError(f"Malformed snapshot in {self.path.name}") from exc

    def save(self, snapshot: Snapshot) -> None:
        """Persist ``snapshot`` without ever truncating the previous copy."""

        payload = json.dumps(snapshot.json_payload(), indent=2, ensure_ascii=False)
        temp_path: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
                encoding="utf-8",
            ) as tmp:
                temp_path = tmp.name
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(temp_path, self.path)
        except OSError as exc:
            if temp_path and os.path.exists(temp_path):
                try:
                    os.unlink(temp_path)
                except OSError:
                    logger.warning("snapshot_temp_cleanup_failed", extra={"temp_path": temp_path})
            logger.error("snapshot_write_failed", extra={"path": str(self.path)}, exc_info=True)
            raise PersistenceError(f"Unable to write {self.path.name}") from exc


def _is_legacy(document: dict[str, Any]) -> bool:
    return "channels" not in document and bool({"uninstallRequests", "bosses"} & document.keys())


def _legacy_section(document: dict[str, Any], key: str) -> list[Any]:
    section = document.get(key) or {}
    if not isinstance(section, dict):
        raise ValueError(f"{key} must be a JSON object")
    return list(section.values())


def _migrate_legacy(document: dict[str, Any], channel: Channel) -> dict[str, Any]:
    """Lift a flat single-channel document into the multi-channel layout."""

    requests: dict[str, dict[str, Any]] = {}
    for entry in _legacy_section(document, "uninstallRequests"):
        request = UninstallRequest.model_validate(entry)
        requests[normalize_name(request.program_name)] = request.json_payload()

    bosses: dict[str, dict[str, Any]] = {}
    for entry in _legacy_section(document, "bosses"):
        boss = Boss.model_validate(entry)
        bosses[normalize_name(boss.name)] = boss.json_payload()

    logger.info(
        "snapshot_legacy_migrated",
        extra={"channel_id": channel.id, "requests": len(requests), "bosses": len(bosses)},
    )
    default = channel.model_copy(update={"is_default": True})
    return {
        "channels": {default.id: default.json_payload()},
        "uninstallRequests": {default.id: requests},
        "bosses": {default.id: bosses},
    }

"""Persisted per-tab stale data.

A bounded window of the last rows read, together with schema, sort and
row counts, survives restarts so a reopened tab can display something
before its first batch arrives.
"""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from gridstream.core.exceptions import InputError
from gridstream.core.logging import get_logger
from gridstream.core.models import TabDataCache


class StaleDataStore(Protocol):
    def load(self, tab_id: str) -> TabDataCache | None: ...

    def save(self, tab_id: str, data: TabDataCache) -> None: ...

    def delete(self, tab_id: str) -> bool: ...


class MemoryStaleDataStore:
    """In-process store, used by tests and one-shot CLI runs without --tab."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def load(self, tab_id: str) -> TabDataCache | None:
        raw = self._items.get(tab_id)
        return None if raw is None else TabDataCache.model_validate_json(raw)

    def save(self, tab_id: str, data: TabDataCache) -> None:
        self._items[tab_id] = data.model_dump_json(by_alias=True)

    def delete(self, tab_id: str) -> bool:
        return self._items.pop(tab_id, None) is not None


class JsonStaleDataStore:
    """One JSON file per tab under ``directory``."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory).expanduser()

    def path_for(self, tab_id: str) -> Path:
        if not tab_id:
            raise InputError("Tab id must not be empty")
        digest = hashlib.sha1(tab_id.encode()).hexdigest()[:16]
        safe = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in tab_id)[:48]
        return self.directory / f"{safe}-{digest}.json"

    def load(self, tab_id: str) -> TabDataCache | None:
        log = get_logger("cache", tab_id=tab_id)
        path = self.path_for(tab_id)
        if not path.exists():
            return None
        try:
            return TabDataCache.model_validate_json(path.read_text())
        except (ValidationError, json.JSONDecodeError, OSError) as e:
            log.warning("discarding unreadable tab cache", path=str(path), error=str(e))
            return None

    def save(self, tab_id: str, data: TabDataCache) -> None:
        path = self.path_for(tab_id)
        self.directory.mkdir(parents=True, exist_ok=True)
        payload = data.model_dump_json(by_alias=True)
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".tab-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(payload)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def delete(self, tab_id: str) -> bool:
        path = self.path_for(tab_id)
        if not path.exists():
            return False
        path.unlink()
        return True

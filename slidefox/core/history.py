"""Local history of presentation sessions.

The history is one ordered list of ``LocalPresentation`` entries, serialized as
a single JSON blob under one namespaced key of a key-value store.
"""

import json
import logging
import os
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from slidefox.core.models import LocalPresentation, now_ms

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

STORAGE_KEY = "slidefox_presentations"

_entries_adapter = TypeAdapter(list[LocalPresentation])


class JsonFileStorage:
    """String key-value store kept in one JSON file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"⚠️ Could not read storage file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get_item(self, key: str) -> str | None:
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        os.makedirs(self.path.parent, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)
        os.replace(tmp_path, self.path)


class SessionHistory:
    """Ordered list of sessions the user has started."""

    def __init__(self, storage: JsonFileStorage, key: str = STORAGE_KEY):
        self.storage = storage
        self.key = key

    def get_sessions(self) -> list[LocalPresentation]:
        stored = self.storage.get_item(self.key)
        if not stored:
            return []
        try:
            return _entries_adapter.validate_json(stored)
        except ValidationError:
            logger.warning(f"⚠️ Ignoring unreadable session history under {self.key!r}")
            return []

    def _write(self, entries: list[LocalPresentation]) -> None:
        self.storage.set_item(self.key, _entries_adapter.dump_json(entries, by_alias=True).decode("utf-8"))

    def save(self, entry: LocalPresentation) -> None:
        """Insert an entry, or replace the entry with the same session id in place."""
        entries = self.get_sessions()
        for index, existing in enumerate(entries):
            if existing.session_id == entry.session_id:
                entries[index] = entry
                break
        else:
            entries.append(entry)
        self._write(entries)

    def save_session(self, session_id: str, title: str) -> LocalPresentation:
        entry = LocalPresentation(session_id=session_id, title=title, created_at=now_ms())
        self.save(entry)
        return entry

    def get_session(self, session_id: str) -> LocalPresentation | None:
        for entry in self.get_sessions():
            if entry.session_id == session_id:
                return entry
        return None

    def delete_session(self, session_id: str) -> None:
        self._write([entry for entry in self.get_sessions() if entry.session_id != session_id])

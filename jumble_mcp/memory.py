"""Persistent per-project key-value memory for agents.

Each project owns one JSON file at `<project>/.jumble/memory.json`:

    {
      "version": 1,
      "entries": {
        "<key>": {"value": "...", "timestamp": "<ISO 8601 UTC>", "source": null}
      }
    }

The map is loaded once and kept in memory. Every mutation builds the new
map, saves it (tmp file + atomic rename), and only then swaps it in, so a
failed save leaves both disk and memory untouched.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path

from jumble_mcp import JUMBLE_DIR
from jumble_mcp.errors import NotFoundError, PersistenceError, ValidationError

log = logging.getLogger("jumble_mcp.memory")

MEMORY_FILE = "memory.json"
MEMORY_FORMAT_VERSION = 1


def current_timestamp() -> str:
    """ISO 8601 timestamp for the current time (UTC)."""
    return datetime.now(timezone.utc).isoformat()


def _parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class MemoryEntry:
    """A single stored value with metadata."""

    value: str
    timestamp: str
    source: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "MemoryEntry":
        value = data.get("value")
        timestamp = data.get("timestamp")
        source = data.get("source")
        if not isinstance(value, str) or not isinstance(timestamp, str):
            raise ValueError("entry requires string 'value' and 'timestamp'")
        if source is not None and not isinstance(source, str):
            raise ValueError("entry 'source' must be a string or null")
        return cls(value=value, timestamp=timestamp, source=source)


def _next_timestamp(previous: MemoryEntry | None) -> str:
    """Now, but never earlier than the entry being overwritten."""
    now = current_timestamp()
    if previous is None:
        return now
    prev_dt = _parse_timestamp(previous.timestamp)
    now_dt = _parse_timestamp(now)
    if prev_dt is not None and now_dt is not None and prev_dt > now_dt:
        return previous.timestamp
    return now


class MemoryStore:
    """File-backed key→MemoryEntry map for one project.

    A store without a path is an in-memory fallback: mutations succeed but
    nothing is written to disk.
    """

    def __init__(self, path: Path | None = None, entries: dict[str, MemoryEntry] | None = None):
        self.path = path
        self._entries: dict[str, MemoryEntry] = dict(entries or {})

    # =========================================================================
    # OPEN / SAVE
    # =========================================================================

    @classmethod
    def open(cls, path: Path) -> "MemoryStore":
        """Load an existing store file or create an empty one.

        Raises:
            PersistenceError: If the file exists but cannot be read or
                decoded, or the directory cannot be created
        """
        path = Path(path)
        if not path.exists():
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise PersistenceError(f"Failed to create {path.parent}: {e}") from e
            store = cls(path)
            store._write(store._entries)
            log.debug(f"Created memory store at {path}")
            return store

        try:
            raw_text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Failed to read memory store {path}: {e}") from e

        if not raw_text.strip():
            return cls(path)

        try:
            raw = json.loads(raw_text)
            entries = {
                str(key): MemoryEntry.from_dict(value)
                for key, value in raw.get("entries", {}).items()
            }
        except (json.JSONDecodeError, AttributeError, ValueError) as e:
            raise PersistenceError(f"Corrupted memory store {path}: {e}") from e

        log.debug(f"Loaded {len(entries)} memories from {path}")
        return cls(path, entries)

    @classmethod
    def open_for_project(cls, project_root: Path) -> "MemoryStore":
        """Open `<project_root>/.jumble/memory.json`."""
        return cls.open(Path(project_root) / JUMBLE_DIR / MEMORY_FILE)

    @property
    def persistent(self) -> bool:
        return self.path is not None

    def _write(self, entries: dict[str, MemoryEntry]) -> None:
        """Save `entries` atomically (tmp file + rename)."""
        if self.path is None:
            return

        payload = {
            "version": MEMORY_FORMAT_VERSION,
            "entries": {key: asdict(entry) for key, entry in sorted(entries.items())},
        }
        tmp_file = self.path.with_suffix(".json.tmp")
        try:
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_file, self.path)
        except OSError as e:
            try:
                tmp_file.unlink()
            except OSError:
                pass
            raise PersistenceError(f"Failed to save memory store {self.path}: {e}") from e

    def _commit(self, entries: dict[str, MemoryEntry]) -> None:
        self._write(entries)
        self._entries = entries

    # =========================================================================
    # QUERIES
    # =========================================================================

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        return sorted(self._entries)

    def get(self, key: str) -> MemoryEntry:
        """Exact lookup.

        Raises:
            NotFoundError: If the key is absent
        """
        try:
            return self._entries[key]
        except KeyError:
            raise NotFoundError("Memory", key) from None

    def list(self, pattern: str | None = None) -> list[tuple[str, MemoryEntry]]:
        """All entries sorted by key, optionally filtered by key substring (case-insensitive)."""
        needle = pattern.lower() if pattern else None
        return [
            (key, entry)
            for key, entry in sorted(self._entries.items())
            if needle is None or needle in key.lower()
        ]

    def search(self, query: str) -> list[tuple[str, MemoryEntry]]:
        """Entries whose key or value contains `query` (case-insensitive), sorted by key."""
        needle = query.lower()
        return [
            (key, entry)
            for key, entry in sorted(self._entries.items())
            if needle in key.lower() or needle in entry.value.lower()
        ]

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def store(self, key: str, value: str, source: str | None = None) -> tuple[MemoryEntry, bool]:
        """Insert or overwrite `key`.

        Returns:
            (the stored entry, True if an existing entry was replaced)

        Raises:
            PersistenceError: If the store cannot be saved
        """
        previous = self._entries.get(key)
        entry = MemoryEntry(value=value, timestamp=_next_timestamp(previous), source=source)
        entries = dict(self._entries)
        entries[key] = entry
        self._commit(entries)
        return entry, previous is not None

    def delete(self, key: str) -> MemoryEntry:
        """Remove one entry and return it.

        Raises:
            NotFoundError: If the key is absent
            PersistenceError: If the store cannot be saved
        """
        if key not in self._entries:
            raise NotFoundError("Memory", key)
        entries = dict(self._entries)
        removed = entries.pop(key)
        self._commit(entries)
        return removed

    def clear(self, pattern: str | None = None, confirm: bool = False) -> int:
        """Remove all entries, or those whose key contains `pattern`.

        Returns:
            Number of entries removed

        Raises:
            ValidationError: If `confirm` is not True (nothing is removed)
            PersistenceError: If the store cannot be saved
        """
        if confirm is not True:
            raise ValidationError("clear_memories requires confirm=true; no memories were removed")

        doomed = {key for key, _ in self.list(pattern)}
        if not doomed:
            return 0
        entries = {key: entry for key, entry in self._entries.items() if key not in doomed}
        self._commit(entries)
        return len(doomed)

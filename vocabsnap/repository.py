from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterable

from .exceptions import DuplicateEntryError, EntryNotFoundError
from .srs import MASTERED_INTERVAL
from .types import StudyLog, VocabularyEntry
from .utils import DAY_MS, load_json, now_ms, write_json

logger = logging.getLogger(__name__)

STORE_VERSION = 1
MASTERED_MIN_REPETITIONS = 5


class JsonRepository:
    """Vocabulary store kept in one local JSON file.

    Layout::

        {"version": 1, "words": [...], "study_logs": [...], "settings": {...}}

    The whole file is rewritten on every change. Entries are immutable;
    callers read an entry, build a new one and hand it to :meth:`update`.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._words: dict[str, VocabularyEntry] = {}
        self._logs: list[StudyLog] = []
        self._settings: dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        data = load_json(self.path)
        for raw in data.get("words", []):
            if isinstance(raw, dict) and raw.get("id"):
                entry = VocabularyEntry.from_dict(raw)
                self._words[entry.id] = entry
        self._logs = [StudyLog.from_dict(x) for x in data.get("study_logs", []) if isinstance(x, dict)]
        settings = data.get("settings", {})
        self._settings = dict(settings) if isinstance(settings, dict) else {}
        logger.debug("Loaded %d entries from %s", len(self._words), self.path)

    def _save(self) -> None:
        write_json(
            self.path,
            {
                "version": STORE_VERSION,
                "words": [e.to_dict() for e in self._words.values()],
                "study_logs": [x.to_dict() for x in self._logs],
                "settings": self._settings,
            },
        )

    # --- entries ---

    def add(self, entry: VocabularyEntry) -> VocabularyEntry:
        if entry.id in self._words:
            raise DuplicateEntryError(f"entry already exists: {entry.id}")
        self._words[entry.id] = entry
        self._save()
        return entry

    def add_many(self, entries: Iterable[VocabularyEntry]) -> list[VocabularyEntry]:
        """Add all entries or none of them."""
        entries = list(entries)
        ids = [e.id for e in entries]
        dupes = [i for i in ids if i in self._words] or [i for i in ids if ids.count(i) > 1]
        if dupes:
            raise DuplicateEntryError(f"entry already exists: {dupes[0]}")
        for e in entries:
            self._words[e.id] = e
        self._save()
        return entries

    def get(self, entry_id: str) -> VocabularyEntry:
        try:
            return self._words[entry_id]
        except KeyError:
            raise EntryNotFoundError(entry_id) from None

    def get_all(self) -> list[VocabularyEntry]:
        return list(self._words.values())

    def update(self, entry: VocabularyEntry, now: int | None = None) -> VocabularyEntry:
        if entry.id not in self._words:
            raise EntryNotFoundError(entry.id)
        stored = replace(entry, updated_at=now_ms() if now is None else now)
        self._words[entry.id] = stored
        self._save()
        return stored

    def delete(self, entry_id: str) -> None:
        if entry_id not in self._words:
            raise EntryNotFoundError(entry_id)
        del self._words[entry_id]
        self._save()

    def count(self) -> int:
        return len(self._words)

    def clear(self) -> None:
        self._words.clear()
        self._save()

    def search(self, query: str) -> list[VocabularyEntry]:
        q = (query or "").strip().lower()
        if not q:
            return self.get_all()
        return [
            e
            for e in self._words.values()
            if q in e.word
            or q in e.meaning
            or any(q in s.lower() for s in e.synonyms)
            or any(q in t.lower() for t in e.tags)
        ]

    def bookmarked(self) -> list[VocabularyEntry]:
        return [e for e in self._words.values() if e.bookmarked]

    def mastered(self) -> list[VocabularyEntry]:
        return [
            e
            for e in self._words.values()
            if e.srs.repetitions >= MASTERED_MIN_REPETITIONS and e.srs.interval >= MASTERED_INTERVAL
        ]

    def headwords(self) -> set[str]:
        return {e.word.lower() for e in self._words.values()}

    # --- study logs ---

    def add_study_log(self, log: StudyLog) -> None:
        self._logs.append(log)
        self._save()

    def study_logs(self, days: int | None = 30, now: int | None = None) -> list[StudyLog]:
        """Logs of the last ``days`` days; every log when ``days`` is None."""
        if days is None:
            return list(self._logs)
        cutoff = (now_ms() if now is None else now) - days * DAY_MS
        return [x for x in self._logs if x.timestamp >= cutoff]

    def replace_study_logs(self, logs: Iterable[StudyLog]) -> None:
        self._logs = list(logs)
        self._save()

    # --- settings ---

    def get_setting(self, key: str, default: Any = None) -> Any:
        return self._settings.get(key, default)

    def set_setting(self, key: str, value: Any) -> None:
        self._settings[key] = value
        self._save()

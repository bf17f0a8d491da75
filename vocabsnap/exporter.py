from __future__ import annotations

import csv
import json
import logging
import re
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterable

from .exceptions import BackupFormatError
from .repository import JsonRepository
from .types import StudyLog, VocabularyEntry, create_entry, new_entry_id
from .utils import now_ms, split_list_field, utc_now_iso

logger = logging.getLogger(__name__)

BACKUP_VERSION = 1

# word [phonetic] (pos) : meaning ≒ syn1, syn2
_TEXT_LINE_RE = re.compile(
    r"^([a-zA-Z][\w\s-]+?)\s*(?:\[([^\]]+)\])?\s*(?:\(([^)]+)\))?\s*[:：]\s*(.+?)(?:\s*≒\s*(.+))?$"
)
_SIMPLE_LINE_RE = re.compile(r"^([a-zA-Z][\w-]+)\s+(.+)$")

CSV_FIELDS = ["word", "meaning", "phonetic", "pos", "examples", "synonyms", "antonyms", "tags", "interval_days"]


def export_backup(repo: JsonRepository) -> str:
    """Full backup of words and study logs as a JSON string."""
    return json.dumps(
        {
            "version": BACKUP_VERSION,
            "exported_at": utc_now_iso(),
            "words": [e.to_dict() for e in repo.get_all()],
            "study_logs": [x.to_dict() for x in repo.study_logs(days=None)],
        },
        ensure_ascii=False,
        indent=2,
    )


def _parse_backup(text: str) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise BackupFormatError(f"backup is not valid JSON: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("words"), list):
        raise BackupFormatError("backup must be an object with a words list")
    return data


def _import_words(repo: JsonRepository, words: list[Any], merge: bool) -> int:
    now = now_ms()
    existing = repo.headwords() if merge else set()
    to_add: dict[str, VocabularyEntry] = {}
    for raw in words:
        if not isinstance(raw, dict):
            continue
        entry = create_entry(raw, now=now)
        if not entry.word:
            continue
        if merge:
            if entry.word in existing:
                continue
            existing.add(entry.word)
            entry = replace(entry, id=new_entry_id())
        to_add[entry.id] = entry
    if not merge:
        repo.clear()
    repo.add_many(to_add.values())
    return len(to_add)


def import_backup(repo: JsonRepository, text: str, merge: bool = False) -> int:
    """Restore a backup; returns the number of words added.

    Replace mode drops every stored word and restores the study logs.
    Merge mode keeps the store, skips headwords it already holds and
    gives the imported words fresh ids.
    """
    data = _parse_backup(text)
    added = _import_words(repo, data["words"], merge)
    logs = data.get("study_logs", data.get("studyLogs"))
    if not merge and isinstance(logs, list):
        repo.replace_study_logs(StudyLog.from_dict(x) for x in logs if isinstance(x, dict))
    logger.info("Imported %d words (%s)", added, "merge" if merge else "replace")
    return added


def _text_line(e: VocabularyEntry) -> str:
    line = e.word_display or e.word
    if e.phonetic:
        line += f" [{e.phonetic.strip('/[] ')}]"
    if e.pos:
        line += f" ({e.pos})"
    line += f" : {e.meaning}"
    if e.synonyms:
        line += f" ≒ {', '.join(e.synonyms)}"
    return line


def export_text(entries: Iterable[VocabularyEntry]) -> str:
    return "\n".join(_text_line(e) for e in entries)


def parse_text(text: str) -> list[dict[str, Any]]:
    words = []
    for line in (text or "").splitlines():
        line = line.strip()
        if not line:
            continue
        m = _TEXT_LINE_RE.match(line)
        if m:
            words.append(
                {
                    "word": m.group(1).strip(),
                    "phonetic": m.group(2) or "",
                    "pos": m.group(3) or "",
                    "meaning": m.group(4).strip(),
                    "synonyms": split_list_field(m.group(5) or ""),
                }
            )
            continue
        m = _SIMPLE_LINE_RE.match(line)
        if m:
            words.append({"word": m.group(1), "meaning": m.group(2).strip()})
    return words


def import_text(repo: JsonRepository, text: str, merge: bool = True) -> int:
    words = parse_text(text)
    if not words:
        raise BackupFormatError("no recognizable word lines")
    added = _import_words(repo, words, merge)
    logger.info("Imported %d words from text", added)
    return added


def export_csv(entries: Iterable[VocabularyEntry], out_path: str | Path) -> int:
    """Write one row per entry; returns the number of rows."""
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with out_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for e in entries:
            writer.writerow(
                {
                    "word": e.word_display or e.word,
                    "meaning": e.meaning,
                    "phonetic": e.phonetic,
                    "pos": e.pos,
                    "examples": " | ".join(f"{x.en} / {x.ja}" if x.ja else x.en for x in e.examples),
                    "synonyms": ", ".join(e.synonyms),
                    "antonyms": ", ".join(e.antonyms),
                    "tags": ", ".join(e.tags),
                    "interval_days": e.srs.interval,
                }
            )
            count += 1
    return count

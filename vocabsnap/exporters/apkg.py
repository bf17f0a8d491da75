from __future__ import annotations

import hashlib
import html
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from ..types import VocabularyEntry


@dataclass
class ApkgExportStats:
    entries_seen: int = 0
    notes_exported: int = 0
    entries_skipped_no_meaning: int = 0
    deck_name: str | None = None


def _stable_int_id(s: str) -> int:
    # genanki ids must be int; keep stable across runs.
    digest = hashlib.sha1(s.encode("utf-8")).digest()
    n = int.from_bytes(digest[:8], "big", signed=False)
    return n % (2**31 - 1)


def _anki_tags(tags: Iterable[str]) -> list[str]:
    # Anki tags should not contain spaces.
    return [t.strip().replace(" ", "_") for t in tags if t.strip()]


def _back_html(e: VocabularyEntry) -> str:
    parts = [f"<div class=meaning>{html.escape(e.meaning)}</div>"]
    head = " ".join(x for x in (e.phonetic, f"({e.pos})" if e.pos else "") if x)
    if head:
        parts.append(f"<div class=phonetic>{html.escape(head)}</div>")
    for ex in e.examples:
        line = html.escape(ex.en)
        if ex.ja:
            line += f"<br><small>{html.escape(ex.ja)}</small>"
        parts.append(f"<div class=example>{line}</div>")
    if e.synonyms:
        parts.append(f"<div class=synonyms>≒ {html.escape(', '.join(e.synonyms))}</div>")
    if e.antonyms:
        parts.append(f"<div class=antonyms>⇔ {html.escape(', '.join(e.antonyms))}</div>")
    return "".join(parts)


def export_apkg(
    entries: Iterable[VocabularyEntry],
    out_path: str | Path,
    deck_name: str = "vocabsnap",
) -> ApkgExportStats:
    """Export entries as an Anki .apkg deck.

    Model:
    - Fields: Front (headword), Back (meaning, phonetic, pos, examples, synonyms)
    - Entries without a meaning are skipped
    - If 0 notes are exported => error (exit non-zero at CLI)
    """
    try:
        import genanki  # type: ignore
    except ImportError as e:  # pragma: no cover
        raise RuntimeError("genanki is required for apkg export. Install with: pip install genanki") from e

    out_path = Path(out_path)
    stats = ApkgExportStats(deck_name=deck_name)

    model = genanki.Model(
        _stable_int_id(f"vocabsnap:model:{deck_name}"),
        "vocabsnap_word",
        fields=[
            {"name": "Front"},
            {"name": "Back"},
        ],
        templates=[
            {
                "name": "Card 1",
                "qfmt": "{{Front}}",
                "afmt": "{{FrontSide}}<hr id=answer>{{Back}}",
            }
        ],
    )
    deck = genanki.Deck(_stable_int_id(f"vocabsnap:deck:{deck_name}"), deck_name)

    for e in entries:
        stats.entries_seen += 1
        if not e.meaning.strip():
            stats.entries_skipped_no_meaning += 1
            continue
        note = genanki.Note(
            model=model,
            fields=[html.escape(e.word_display or e.word), _back_html(e)],
            guid=genanki.guid_for(e.id),
        )
        tags = _anki_tags(e.tags)
        if tags:
            note.tags = tags
        deck.add_note(note)
        stats.notes_exported += 1

    if stats.notes_exported <= 0:
        raise RuntimeError("No entries exported (every entry lacks a meaning or the store is empty)")

    out_path.parent.mkdir(parents=True, exist_ok=True)
    genanki.Package(deck).write_to_file(str(out_path))
    return stats

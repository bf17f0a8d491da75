"""Field extraction for a single entry line-group.

Expected workbook layout (any part may be missing or garbled by OCR)::

    56 abundant [əˈbʌndənt] 形 豊富な
    The abundant harvest fed the village.
    村は豊富な収穫で満たされた。
    ≒ plentiful, copious
    ⇔ scarce
"""
from __future__ import annotations

import re

from .segmenter import BOUNDARY_POS_TAGS, PHONETIC_RE, POS_TAGS
from .textclass import JAPANESE_RANGES, is_japanese_majority, is_latin_majority
from .types import ExamplePair, ParsedCandidate

SYNONYM_MARKERS = "≒≈~～類同"
ANTONYM_MARKERS = "⇔↔反"

_HEADWORD_RE = re.compile(
    rf"^(?:\d{{1,4}}\s+)?([A-Za-z][A-Za-z0-9_\s-]*?)(?:\s*[\[（(]|$|\s+[{BOUNDARY_POS_TAGS}])"
)
_HEADWORD_LOOSE_RE = re.compile(r"^(?:\d{1,4}\s+)?([A-Za-z][A-Za-z0-9_-]+)")
_POS_RE = re.compile(f"[{POS_TAGS}]")
_MEANING_AFTER_POS_RE = re.compile(rf"[{POS_TAGS}]\s*([{JAPANESE_RANGES}].+)")
_MEANING_AFTER_BRACKET_RE = re.compile(rf"[\]）)]\s*([{JAPANESE_RANGES}].+)")
_SYNONYM_LINE_RE = re.compile(f"^[{SYNONYM_MARKERS}]")
_ANTONYM_LINE_RE = re.compile(f"^[{ANTONYM_MARKERS}]")
_RELATED_PREFIX_RE = re.compile(rf"^[{SYNONYM_MARKERS}{ANTONYM_MARKERS}\s]+")
_RELATED_SPLIT_RE = re.compile(r"[,、，\s]+")


def extract_headword(first_line: str) -> str:
    m = _HEADWORD_RE.match(first_line)
    if m and m.group(1).strip():
        return m.group(1).strip()
    m = _HEADWORD_LOOSE_RE.match(first_line)
    return m.group(1).strip() if m else ""


def extract_phonetic(first_line: str) -> str:
    m = PHONETIC_RE.search(first_line)
    return m.group(1) if m else ""


def extract_pos(first_line: str) -> str:
    m = _POS_RE.search(first_line)
    return m.group(0) if m else ""


def extract_inline_meaning(first_line: str) -> str:
    """Japanese text following the POS tag or the closing bracket."""
    for pattern in (_MEANING_AFTER_POS_RE, _MEANING_AFTER_BRACKET_RE):
        m = pattern.search(first_line)
        if m:
            return m.group(1).strip()
    return ""


def extract_related(line: str) -> list[str]:
    """Headwords listed after a synonym/antonym marker."""
    cleaned = _RELATED_PREFIX_RE.sub("", line)
    tokens = [t.strip() for t in _RELATED_SPLIT_RE.split(cleaned)]
    return [t for t in tokens if len(t) > 1 and t[0].isascii() and t[0].isalpha()]


def parse_entry(lines: list[str]) -> ParsedCandidate | None:
    """Build a candidate from one line-group; None when no headword is found."""
    if not lines:
        return None

    first = lines[0]
    word = extract_headword(first)
    if not word:
        return None

    entry = ParsedCandidate(
        word=word,
        phonetic=extract_phonetic(first),
        pos=extract_pos(first),
        meaning=extract_inline_meaning(first),
    )

    pending_en = ""
    for line in lines[1:]:
        if _SYNONYM_LINE_RE.match(line):
            entry.synonyms.extend(extract_related(line))
            continue
        if _ANTONYM_LINE_RE.match(line):
            entry.antonyms.extend(extract_related(line))
            continue

        if is_japanese_majority(line):
            if not entry.meaning:
                entry.meaning = line
            elif pending_en:
                entry.examples.append(ExamplePair(en=pending_en, ja=line))
                pending_en = ""
            continue

        if is_latin_majority(line):
            if pending_en:
                entry.examples.append(ExamplePair(en=pending_en))
            pending_en = line

    if pending_en:
        entry.examples.append(ExamplePair(en=pending_en))

    return entry

"""Split recognized workbook text into one line-group per vocabulary entry.

Boundary strategies run in order and the first one that finds any
boundary wins:

1. ``numbered``: an entry number followed by a Latin headword
   (``1738 inflict``).
2. ``marker``: a Latin word directly followed by a bracketed phonetic or
   a part-of-speech tag (``inflict [ɪnflíkt]``, ``decide 動``).

When neither finds a boundary the text is treated as unsegmented and
:func:`extract_direct` scans it line by line instead.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Iterable

from .textclass import is_japanese_majority, is_long_latin_sentence
from .types import ParsedCandidate

# adjective, noun, verb, adverb, conjunction, preposition, particle,
# interjection, pronoun
POS_TAGS = "形名動副接前助間代"
# Tags that are reliable enough to start an entry or end a headword.
BOUNDARY_POS_TAGS = "形名動副接前"

PHONETIC_RE = re.compile(r"[\[（(]([^\]）)]+)[\]）)]")
PASS_MARKER_RE = re.compile(r"^={3}\s.*\s={3}$")

_NUMBERED_RE = re.compile(r"^\d{1,4}\s+[A-Za-z]")
_BRACKET_MARKER_RE = re.compile(r"^[A-Za-z]{2,}\s*[\[（(]")
_POS_MARKER_RE = re.compile(rf"^[A-Za-z]{{2,}}\s+[{BOUNDARY_POS_TAGS}]")
_DIRECT_WORD_RE = re.compile(r"^(\d+\s+)?([A-Za-z]{2,}(?:\s+[A-Za-z]+)?)\s*")

DIRECT_MIN_WORD_LENGTH = 3
DIRECT_MEANING_LOOKAHEAD = 3

# Section titles and function words that start lines in workbooks without
# being headwords.
STOPWORDS = frozenset(
    [
        "the", "and", "for", "that", "this", "with", "from", "are", "was",
        "minimal", "phrases", "stage", "final", "basic", "verbs",
        "his", "her", "its", "our", "you", "him", "she",
    ]
)

BoundaryStrategy = Callable[[list[str]], "list[int] | None"]


def pass_marker(name: str) -> str:
    """Separator line placed between concatenated OCR passes."""
    return f"=== {name} ==="


def split_lines(text: str | None) -> list[str]:
    """Non-empty, stripped lines with OCR pass separators removed."""
    if not text:
        return []
    out: list[str] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or PASS_MARKER_RE.match(line):
            continue
        out.append(line)
    return out


def find_numbered_boundaries(lines: list[str]) -> list[int] | None:
    idx = [i for i, line in enumerate(lines) if _NUMBERED_RE.match(line)]
    return idx or None


def find_marker_boundaries(lines: list[str]) -> list[int] | None:
    idx = [
        i
        for i, line in enumerate(lines)
        if _BRACKET_MARKER_RE.match(line) or _POS_MARKER_RE.match(line)
    ]
    return idx or None


BOUNDARY_STRATEGIES: tuple[tuple[str, BoundaryStrategy], ...] = (
    ("numbered", find_numbered_boundaries),
    ("marker", find_marker_boundaries),
)


def group_lines(lines: list[str], boundaries: Iterable[int]) -> list[list[str]]:
    """Each group runs from one boundary up to the line before the next.

    Lines before the first boundary belong to no entry and are dropped.
    """
    starts = sorted(set(boundaries))
    groups: list[list[str]] = []
    for n, start in enumerate(starts):
        end = starts[n + 1] if n + 1 < len(starts) else len(lines)
        groups.append(lines[start:end])
    return groups


@dataclass
class Segmentation:
    strategy: str  # numbered | marker | direct
    lines: list[str]
    groups: list[list[str]] = field(default_factory=list)


def segment(text: str | None) -> Segmentation:
    lines = split_lines(text)
    for name, strategy in BOUNDARY_STRATEGIES:
        boundaries = strategy(lines)
        if boundaries:
            return Segmentation(strategy=name, lines=lines, groups=group_lines(lines, boundaries))
    return Segmentation(strategy="direct", lines=lines)


def extract_direct(lines: list[str], stopwords: Iterable[str] | None = None) -> list[ParsedCandidate]:
    """Best-effort headword scan for text with no detectable entry layout.

    Each line may contribute one headword (optionally after an entry
    number). The meaning is the first Japanese-majority line within the
    next three lines and the phonetic is a bracket group on the same line.
    Examples, synonyms and antonyms are never captured here.

    Lines that read as long Latin sentences are skipped before the
    headword scan so example sentences never become headwords. Stopwords
    match case-insensitively.
    """
    stop = set(STOPWORDS)
    if stopwords:
        stop.update(w.lower() for w in stopwords)

    seen: set[str] = set()
    out: list[ParsedCandidate] = []
    for i, line in enumerate(lines):
        if is_long_latin_sentence(line):
            continue
        m = _DIRECT_WORD_RE.match(line)
        if not m:
            continue
        word = m.group(2).strip()
        if word.lower() in stop or len(word) < DIRECT_MIN_WORD_LENGTH:
            continue
        key = word.lower()
        if key in seen:
            continue

        meaning = ""
        for follow in lines[i + 1 : i + 1 + DIRECT_MEANING_LOOKAHEAD]:
            if is_japanese_majority(follow):
                meaning = follow
                break

        pm = PHONETIC_RE.search(line)
        seen.add(key)
        out.append(
            ParsedCandidate(
                word=word,
                meaning=meaning,
                phonetic=pm.group(1) if pm else "",
            )
        )
    return out

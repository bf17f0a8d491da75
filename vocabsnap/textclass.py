"""Script-majority predicates for single lines of OCR text.

OCR output interleaves Latin and Japanese on the same line, so lines are
classified by the share of their non-whitespace characters that fall in a
script, not by clean separation.
"""
from __future__ import annotations

import re

# Hiragana, katakana, CJK unified ideographs and extension A.
JAPANESE_RANGES = "\u3040-\u309f\u30a0-\u30ff\u4e00-\u9fff\u3400-\u4dbf"
LATIN_RANGES = "A-Za-z"

JAPANESE_THRESHOLD = 0.3
LATIN_THRESHOLD = 0.5
SENTENCE_MIN_TOKENS = 4

_WS_RE = re.compile(r"\s")


def script_ratio(line: str, script_ranges: str) -> float:
    """Fraction of non-whitespace characters inside ``script_ranges``.

    ``script_ranges`` uses regex character-class syntax, e.g. ``"A-Za-z"``.
    Returns 0.0 for empty or whitespace-only lines.
    """
    total = len(_WS_RE.sub("", line or ""))
    if total == 0:
        return 0.0
    hits = len(re.findall(f"[{script_ranges}]", line))
    return hits / total


def is_script_majority(line: str, script_ranges: str, threshold: float) -> bool:
    return script_ratio(line, script_ranges) > threshold


def is_japanese_majority(line: str) -> bool:
    return is_script_majority(line, JAPANESE_RANGES, JAPANESE_THRESHOLD)


def is_latin_majority(line: str) -> bool:
    return is_script_majority(line, LATIN_RANGES, LATIN_THRESHOLD)


def is_long_latin_sentence(line: str) -> bool:
    """A Latin-majority line with more than three whitespace tokens."""
    return len((line or "").split()) >= SENTENCE_MIN_TOKENS and is_latin_majority(line)

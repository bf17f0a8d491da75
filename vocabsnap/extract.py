"""Raw OCR text to parsed word candidates.

Pure text processing: no image or OCR dependencies are imported here.
"""
from __future__ import annotations

import logging
from typing import Iterable

from .fields import parse_entry
from .segmenter import extract_direct, segment
from .types import ParsedCandidate

logger = logging.getLogger(__name__)


def extract_with_strategy(
    raw_text: str | None, stopwords: Iterable[str] | None = None
) -> tuple[str, list[ParsedCandidate]]:
    """Like :func:`extract`, also naming the segmentation strategy used."""
    if not isinstance(raw_text, str) or not raw_text.strip():
        return "empty", []

    seg = segment(raw_text)
    if seg.strategy == "direct":
        return seg.strategy, extract_direct(seg.lines, stopwords=stopwords)

    out: list[ParsedCandidate] = []
    for group in seg.groups:
        try:
            entry = parse_entry(group)
        except Exception as e:
            # Fail-soft: one unreadable group must not cost the whole page.
            logger.warning("Skipping unparsable entry group %r: %s", group[:1], e)
            continue
        if entry is not None and entry.word:
            out.append(entry)
    logger.debug("Extracted %d candidates with %s strategy", len(out), seg.strategy)
    return seg.strategy, out


def extract(raw_text: str | None, stopwords: Iterable[str] | None = None) -> list[ParsedCandidate]:
    """Raw OCR text in, candidates in source order out.

    Never raises on noisy input: text with no recognizable entries yields
    an empty list. No deduplication is applied across entries.
    """
    return extract_with_strategy(raw_text, stopwords=stopwords)[1]

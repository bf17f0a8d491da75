"""SM-2 spaced-repetition scheduling.

Quality judgments run 0-5: 0-2 is a failed recall (spacing resets), 3 is
a pass with difficulty, 4 a pass, 5 a perfect pass. Every function here is
pure: a review returns a complete new :class:`SchedulingState` that the
caller stores in place of the old one.
"""
from __future__ import annotations

import math
from dataclasses import replace
from numbers import Integral
from typing import Iterable

from .exceptions import SchedulingError
from .types import (
    DEFAULT_EASE_FACTOR,
    LEVEL_LEARNING,
    LEVEL_MASTERED,
    LEVEL_NEW,
    LEVEL_REVIEWING,
    LEVELS,
    SchedulingState,
    VocabularyEntry,
)
from .utils import DAY_MS, now_ms

MIN_EASE_FACTOR = 1.3
PASS_QUALITY = 3
MAX_QUALITY = 5
FIRST_INTERVAL = 1
SECOND_INTERVAL = 6
MASTERED_INTERVAL = 21


def _round_half_up(x: float, ndigits: int = 0) -> float:
    scale = 10**ndigits
    return math.floor(x * scale + 0.5) / scale


def _is_int(value: object) -> bool:
    return isinstance(value, Integral) and not isinstance(value, bool)


def initial_state() -> SchedulingState:
    return SchedulingState(
        repetitions=0,
        ease_factor=DEFAULT_EASE_FACTOR,
        interval=0,
        next_review=None,
        last_review=None,
    )


def validate_quality(quality: object) -> int:
    if not _is_int(quality) or not 0 <= int(quality) <= MAX_QUALITY:
        raise SchedulingError(f"quality must be an integer 0-{MAX_QUALITY}, got {quality!r}")
    return int(quality)


def validate_state(state: object) -> SchedulingState:
    if not isinstance(state, SchedulingState):
        raise SchedulingError(f"expected SchedulingState, got {type(state).__name__}")
    if not _is_int(state.repetitions) or state.repetitions < 0:
        raise SchedulingError(f"repetitions must be a non-negative integer, got {state.repetitions!r}")
    if not _is_int(state.interval) or state.interval < 0:
        raise SchedulingError(f"interval must be a non-negative integer, got {state.interval!r}")
    ease = state.ease_factor
    if isinstance(ease, bool) or not isinstance(ease, (int, float)) or not math.isfinite(ease):
        raise SchedulingError(f"ease_factor must be a finite number, got {ease!r}")
    if ease < MIN_EASE_FACTOR:
        raise SchedulingError(f"ease_factor must be >= {MIN_EASE_FACTOR}, got {ease!r}")
    for name in ("next_review", "last_review"):
        value = getattr(state, name)
        if value is not None and not _is_int(value):
            raise SchedulingError(f"{name} must be an epoch-ms integer or None, got {value!r}")
    return state


def next_ease_factor(ease_factor: float, quality: int) -> float:
    """Standard SM-2 ease adjustment, floored at 1.3, two decimals."""
    miss = MAX_QUALITY - quality
    ease = ease_factor + (0.1 - miss * (0.08 + miss * 0.02))
    return _round_half_up(max(MIN_EASE_FACTOR, ease), 2)


def schedule(quality: int, state: SchedulingState, now: int | None = None) -> SchedulingState:
    """Apply one review with the given quality and return the new state.

    Raises SchedulingError for a quality outside 0-5 or a malformed state.
    """
    quality = validate_quality(quality)
    state = validate_state(state)
    ts = now_ms() if now is None else now

    if quality >= PASS_QUALITY:
        if state.repetitions == 0:
            interval = FIRST_INTERVAL
        elif state.repetitions == 1:
            interval = SECOND_INTERVAL
        else:
            interval = int(_round_half_up(state.interval * state.ease_factor))
        repetitions = state.repetitions + 1
    else:
        repetitions = 0
        interval = FIRST_INTERVAL

    return SchedulingState(
        repetitions=repetitions,
        ease_factor=next_ease_factor(state.ease_factor, quality),
        interval=interval,
        next_review=ts + interval * DAY_MS,
        last_review=ts,
    )


def review_entry(entry: VocabularyEntry, quality: int, now: int | None = None) -> VocabularyEntry:
    """Copy of ``entry`` with its scheduling state wholly replaced."""
    return replace(entry, srs=schedule(quality, entry.srs, now=now))


def classify_level(state: SchedulingState) -> str:
    if state.repetitions == 0 and state.last_review is None:
        return LEVEL_NEW
    if state.interval >= MASTERED_INTERVAL:
        return LEVEL_MASTERED
    if state.repetitions < 2:
        return LEVEL_LEARNING
    return LEVEL_REVIEWING


def is_due(state: SchedulingState, now: int) -> bool:
    return state.next_review is None or state.next_review <= now


def select_due(entries: Iterable[VocabularyEntry], now: int | None = None) -> list[VocabularyEntry]:
    """Due entries, earliest ``next_review`` first.

    Never-reviewed entries sort as timestamp 0, so new words come before
    overdue ones. The sort is stable for equal timestamps.
    """
    ts = now_ms() if now is None else now
    due = [e for e in entries if is_due(e.srs, ts)]
    return sorted(due, key=lambda e: e.srs.next_review or 0)


def level_counts(entries: Iterable[VocabularyEntry]) -> dict[str, int]:
    counts = {level: 0 for level in LEVELS}
    for e in entries:
        counts[classify_level(e.srs)] += 1
    return counts

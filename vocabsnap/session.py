"""Study sessions: turn user answers into counter and schedule updates.

Quality scores fed to the scheduler per study mode:

=========  =======  =========
mode       correct  incorrect
=========  =======  =========
flashcard  4        1
spelling   5        1
matching   (counters only, never scheduled)
=========  =======  =========

Each answer is a read-entry, compute-new-entry, write-entry step against
the repository. Nothing holds on to an entry between answers, so two
sessions never share a mutable copy.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Callable, Iterable

from .repository import JsonRepository
from .srs import classify_level, schedule, select_due
from .types import (
    LEVEL_NEW,
    MODE_FLASHCARD,
    MODE_MATCHING,
    MODE_SPELLING,
    STUDY_MODES,
    StudyLog,
    VocabularyEntry,
)
from .utils import ms_to_date, now_ms

logger = logging.getLogger(__name__)

MODE_REVIEW = "review"  # flashcards over the due set

QUALITY_BY_OUTCOME: dict[tuple[str, bool], int] = {
    (MODE_FLASHCARD, True): 4,
    (MODE_FLASHCARD, False): 1,
    (MODE_SPELLING, True): 5,
    (MODE_SPELLING, False): 1,
}

MATCHING_ROUND_SIZE = 6
WEAK_MIN_ATTEMPTS = 2

FILTER_ALL = "all"
FILTER_NEW = "new"
FILTER_BOOKMARKED = "bookmarked"
FILTER_WEAK = "weak"
STUDY_FILTERS = (FILTER_ALL, FILTER_NEW, FILTER_BOOKMARKED, FILTER_WEAK)


def quality_for(mode: str, correct: bool) -> int | None:
    """Scheduler quality for an answer; None for modes that do not schedule."""
    if mode not in STUDY_MODES:
        raise ValueError(f"unknown study mode: {mode!r}")
    return QUALITY_BY_OUTCOME.get((mode, bool(correct)))


def record_outcome(
    entry: VocabularyEntry, mode: str, correct: bool, now: int | None = None
) -> VocabularyEntry:
    """New entry with the mode counter bumped and, if scored, a new schedule."""
    stats = entry.stats.bump(mode, correct)
    quality = quality_for(mode, correct)
    if quality is None:
        return replace(entry, stats=stats)
    return replace(entry, stats=stats, srs=schedule(quality, entry.srs, now=now))


def check_spelling(entry: VocabularyEntry, answer: str) -> bool:
    typed = (answer or "").strip().lower()
    if not typed:
        raise ValueError("empty spelling answer")
    return typed == entry.word.lower()


def spelling_hint(entry: VocabularyEntry, level: int) -> str:
    """Progressively revealing mask of the headword.

    0 shows only the length, 1 the first letter, 2 the first two letters,
    3 and above every other letter.
    """
    word = entry.word
    if level <= 0:
        shown = [False] * len(word)
    elif level == 1:
        shown = [i == 0 for i in range(len(word))]
    elif level == 2:
        shown = [i < 2 for i in range(len(word))]
    else:
        shown = [i % 2 == 0 for i in range(len(word))]
    return " ".join(c if s or c == " " else "_" for c, s in zip(word, shown))


def weak_entries(entries: Iterable[VocabularyEntry], limit: int = 10) -> list[VocabularyEntry]:
    """Entries with the highest flashcard+spelling error rate."""
    scored = []
    for e in entries:
        attempts = e.stats.attempts
        if attempts < WEAK_MIN_ATTEMPTS:
            continue
        scored.append((e.stats.incorrect / attempts, e))
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [e for _rate, e in scored[:limit]]


def select_study_words(
    entries: Iterable[VocabularyEntry],
    mode: str,
    study_filter: str = FILTER_ALL,
    now: int | None = None,
) -> list[VocabularyEntry]:
    if study_filter not in STUDY_FILTERS:
        raise ValueError(f"unknown study filter: {study_filter!r}")
    entries = list(entries)
    if mode == MODE_REVIEW:
        return select_due(entries, now=now)
    if study_filter == FILTER_NEW:
        return [e for e in entries if classify_level(e.srs) == LEVEL_NEW]
    if study_filter == FILTER_BOOKMARKED:
        return [e for e in entries if e.bookmarked]
    if study_filter == FILTER_WEAK:
        return weak_entries(entries, limit=20)
    return entries


@dataclass(frozen=True)
class MatchTile:
    id: str
    kind: str  # word | meaning
    text: str
    pair_id: str


def build_matching_round(
    entries: list[VocabularyEntry],
    size: int = MATCHING_ROUND_SIZE,
    rng: random.Random | None = None,
) -> list[MatchTile]:
    """Shuffled word and meaning tiles for the first ``size`` entries."""
    chosen = entries[: min(len(entries), size)]
    if len(chosen) < 2:
        raise ValueError("matching needs at least 2 entries")
    tiles: list[MatchTile] = []
    for e in chosen:
        tiles.append(MatchTile(id=e.id, kind="word", text=e.word_display or e.word, pair_id=e.id))
        tiles.append(MatchTile(id=f"{e.id}-m", kind="meaning", text=e.meaning, pair_id=e.id))
    (rng or random.Random()).shuffle(tiles)
    return tiles


def study_streak(logs: Iterable[StudyLog], today: date) -> int:
    """Consecutive study days ending today (or yesterday, if not yet today)."""
    days = sorted({date.fromisoformat(x.date) for x in logs if x.date}, reverse=True)
    if not days or days[0] not in (today, today - timedelta(days=1)):
        return 0
    streak = 1
    for prev, cur in zip(days, days[1:]):
        if prev - cur != timedelta(days=1):
            break
        streak += 1
    return streak


def result_grade(correct: int, incorrect: int) -> tuple[int, str]:
    """Percentage correct and its band for the end-of-session summary."""
    total = correct + incorrect
    rate = round(correct * 100 / total) if total else 0
    if rate >= 90:
        grade = "excellent"
    elif rate >= 70:
        grade = "good"
    elif rate >= 50:
        grade = "fair"
    else:
        grade = "practice"
    return rate, grade


class ReviewSession:
    """One study session against a repository, one entry at a time."""

    def __init__(self, repo: JsonRepository, mode: str, clock: Callable[[], int] = now_ms):
        if mode not in STUDY_MODES and mode != MODE_REVIEW:
            raise ValueError(f"unknown study mode: {mode!r}")
        self.repo = repo
        self.mode = mode
        self.clock = clock
        self.started_at = clock()
        self.correct = 0
        self.incorrect = 0

    @property
    def scoring_mode(self) -> str:
        return MODE_FLASHCARD if self.mode == MODE_REVIEW else self.mode

    def _apply(self, entry_id: str, mode: str, correct: bool) -> VocabularyEntry:
        entry = self.repo.get(entry_id)
        now = self.clock()
        updated = self.repo.update(record_outcome(entry, mode, correct, now=now), now=now)
        if correct:
            self.correct += 1
        else:
            self.incorrect += 1
        logger.debug("%s %s -> %s", mode, entry.word, "correct" if correct else "incorrect")
        return updated

    def answer(self, entry_id: str, correct: bool) -> VocabularyEntry:
        """Score one card in the session mode (review scores as flashcard)."""
        return self._apply(entry_id, self.scoring_mode, correct)

    def answer_spelling(self, entry_id: str, typed: str) -> tuple[bool, VocabularyEntry]:
        correct = check_spelling(self.repo.get(entry_id), typed)
        return correct, self._apply(entry_id, MODE_SPELLING, correct)

    def answer_match(self, first: MatchTile, second: MatchTile) -> bool | None:
        """Score a pair of selected tiles; only matching counters change.

        Picking the same tile twice deselects it: nothing is scored and
        None is returned.
        """
        if first.id == second.id:
            return None
        correct = first.pair_id == second.pair_id and first.kind != second.kind
        self._apply(second.pair_id, MODE_MATCHING, correct)
        return correct

    def finish(self) -> StudyLog:
        now = self.clock()
        log = StudyLog(
            date=ms_to_date(now),
            timestamp=now,
            type=self.scoring_mode,
            word_count=self.correct + self.incorrect,
            correct_count=self.correct,
            duration_ms=max(0, now - self.started_at),
        )
        self.repo.add_study_log(log)
        return log

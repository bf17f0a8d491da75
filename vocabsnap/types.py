from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Any

from .utils import now_ms

LEVEL_NEW = "new"
LEVEL_LEARNING = "learning"
LEVEL_REVIEWING = "reviewing"
LEVEL_MASTERED = "mastered"
LEVELS = (LEVEL_NEW, LEVEL_LEARNING, LEVEL_REVIEWING, LEVEL_MASTERED)

MODE_FLASHCARD = "flashcard"
MODE_SPELLING = "spelling"
MODE_MATCHING = "matching"
STUDY_MODES = (MODE_FLASHCARD, MODE_SPELLING, MODE_MATCHING)

DEFAULT_EASE_FACTOR = 2.5


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    # Backups written by the browser app use camelCase keys.
    for k in keys:
        if k in data:
            return data[k]
    return default


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(v) for v in value]


@dataclass(frozen=True)
class ExamplePair:
    en: str  # source-language sentence
    ja: str = ""  # translation, empty when untranslated

    def to_dict(self) -> dict[str, str]:
        return {"en": self.en, "ja": self.ja}

    @classmethod
    def from_dict(cls, data: Any) -> "ExamplePair":
        if not isinstance(data, dict):
            return cls(en=str(data or ""))
        return cls(en=str(data.get("en") or ""), ja=str(data.get("ja") or ""))


def _examples(value: Any) -> list[ExamplePair]:
    if not isinstance(value, (list, tuple)):
        return []
    return [v if isinstance(v, ExamplePair) else ExamplePair.from_dict(v) for v in value]


@dataclass
class ParsedCandidate:
    """One entry extracted from OCR text, waiting for human correction."""

    word: str
    meaning: str = ""
    phonetic: str = ""
    pos: str = ""
    examples: list[ExamplePair] = field(default_factory=list)
    synonyms: list[str] = field(default_factory=list)
    antonyms: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "word": self.word,
            "meaning": self.meaning,
            "phonetic": self.phonetic,
            "pos": self.pos,
            "examples": [e.to_dict() for e in self.examples],
            "synonyms": list(self.synonyms),
            "antonyms": list(self.antonyms),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ParsedCandidate":
        return cls(
            word=str(data.get("word") or ""),
            meaning=str(data.get("meaning") or ""),
            phonetic=str(data.get("phonetic") or ""),
            pos=str(data.get("pos") or ""),
            examples=_examples(data.get("examples")),
            synonyms=_str_list(data.get("synonyms")),
            antonyms=_str_list(data.get("antonyms")),
        )


@dataclass(frozen=True)
class SchedulingState:
    """SM-2 scheduling fields. Timestamps are epoch ms; None means unset."""

    repetitions: int = 0
    ease_factor: float = DEFAULT_EASE_FACTOR
    interval: int = 0  # days
    next_review: int | None = None
    last_review: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "repetitions": self.repetitions,
            "ease_factor": self.ease_factor,
            "interval": self.interval,
            "next_review": self.next_review,
            "last_review": self.last_review,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "SchedulingState":
        if not isinstance(data, dict):
            return cls()
        next_review = _pick(data, "next_review", "nextReview")
        last_review = _pick(data, "last_review", "lastReview")
        return cls(
            repetitions=int(_pick(data, "repetitions", default=0) or 0),
            ease_factor=float(_pick(data, "ease_factor", "easeFactor") or DEFAULT_EASE_FACTOR),
            interval=int(_pick(data, "interval", default=0) or 0),
            next_review=int(next_review) if next_review is not None else None,
            last_review=int(last_review) if last_review is not None else None,
        )


@dataclass(frozen=True)
class StudyStats:
    flashcard_correct: int = 0
    flashcard_incorrect: int = 0
    spelling_correct: int = 0
    spelling_incorrect: int = 0
    matching_correct: int = 0
    matching_incorrect: int = 0

    def bump(self, mode: str, correct: bool) -> "StudyStats":
        if mode not in STUDY_MODES:
            raise ValueError(f"unknown study mode: {mode!r}")
        name = f"{mode}_{'correct' if correct else 'incorrect'}"
        return replace(self, **{name: getattr(self, name) + 1})

    @property
    def attempts(self) -> int:
        # Matching is a recognition game and is left out of error rates.
        return (
            self.flashcard_correct
            + self.flashcard_incorrect
            + self.spelling_correct
            + self.spelling_incorrect
        )

    @property
    def incorrect(self) -> int:
        return self.flashcard_incorrect + self.spelling_incorrect

    def to_dict(self) -> dict[str, int]:
        return {
            "flashcard_correct": self.flashcard_correct,
            "flashcard_incorrect": self.flashcard_incorrect,
            "spelling_correct": self.spelling_correct,
            "spelling_incorrect": self.spelling_incorrect,
            "matching_correct": self.matching_correct,
            "matching_incorrect": self.matching_incorrect,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "StudyStats":
        if not isinstance(data, dict):
            return cls()
        values = {}
        for mode in STUDY_MODES:
            for outcome in ("correct", "incorrect"):
                snake = f"{mode}_{outcome}"
                camel = f"{mode}{outcome.capitalize()}"
                values[snake] = int(_pick(data, snake, camel, default=0) or 0)
        return cls(**values)


@dataclass(frozen=True)
class VocabularyEntry:
    id: str
    word: str  # lowercase headword
    word_display: str
    meaning: str = ""
    phonetic: str = ""
    pos: str = ""
    examples: list[ExamplePair] = field(default_factory=list)
    synonyms: list[str] = field(default_factory=list)
    antonyms: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    memo: str = ""
    bookmarked: bool = False
    srs: SchedulingState = field(default_factory=SchedulingState)
    stats: StudyStats = field(default_factory=StudyStats)
    created_at: int = 0
    updated_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "word": self.word,
            "word_display": self.word_display,
            "meaning": self.meaning,
            "phonetic": self.phonetic,
            "pos": self.pos,
            "examples": [e.to_dict() for e in self.examples],
            "synonyms": list(self.synonyms),
            "antonyms": list(self.antonyms),
            "tags": list(self.tags),
            "memo": self.memo,
            "bookmarked": self.bookmarked,
            "srs": self.srs.to_dict(),
            "stats": self.stats.to_dict(),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VocabularyEntry":
        """Load a stored entry as-is (no normalization beyond types)."""
        return cls(
            id=str(data.get("id") or ""),
            word=str(data.get("word") or ""),
            word_display=str(_pick(data, "word_display", "wordDisplay", default=data.get("word")) or ""),
            meaning=str(data.get("meaning") or ""),
            phonetic=str(data.get("phonetic") or ""),
            pos=str(data.get("pos") or ""),
            examples=_examples(data.get("examples")),
            synonyms=_str_list(data.get("synonyms")),
            antonyms=_str_list(data.get("antonyms")),
            tags=_str_list(data.get("tags")),
            memo=str(data.get("memo") or ""),
            bookmarked=bool(data.get("bookmarked")),
            srs=SchedulingState.from_dict(data.get("srs")),
            stats=StudyStats.from_dict(data.get("stats")),
            created_at=int(_pick(data, "created_at", "createdAt", default=0) or 0),
            updated_at=int(_pick(data, "updated_at", "updatedAt", default=0) or 0),
        )


def new_entry_id() -> str:
    return uuid.uuid4().hex


def create_entry(data: dict[str, Any] | ParsedCandidate, *, now: int | None = None) -> VocabularyEntry:
    """Build a normalized entry from user or extractor input.

    The headword is stored lowercase in ``word`` and as typed in
    ``word_display``. Missing scheduling state and counters start fresh.
    """
    if isinstance(data, ParsedCandidate):
        data = data.to_dict()
    ts = now_ms() if now is None else now

    display = str(_pick(data, "word_display", "wordDisplay", default=None) or data.get("word") or "").strip()
    srs = data.get("srs")
    stats = data.get("stats")
    return VocabularyEntry(
        id=str(data.get("id") or new_entry_id()),
        word=display.lower(),
        word_display=display,
        meaning=str(data.get("meaning") or "").strip(),
        phonetic=str(data.get("phonetic") or "").strip(),
        pos=str(data.get("pos") or "").strip(),
        examples=_examples(data.get("examples")),
        synonyms=_str_list(data.get("synonyms")),
        antonyms=_str_list(data.get("antonyms")),
        tags=_str_list(data.get("tags")),
        memo=str(data.get("memo") or "").strip(),
        bookmarked=bool(data.get("bookmarked")),
        srs=srs if isinstance(srs, SchedulingState) else SchedulingState.from_dict(srs),
        stats=stats if isinstance(stats, StudyStats) else StudyStats.from_dict(stats),
        created_at=int(_pick(data, "created_at", "createdAt", default=0) or ts),
        updated_at=ts,
    )


@dataclass(frozen=True)
class StudyLog:
    date: str  # YYYY-MM-DD (UTC)
    timestamp: int
    type: str
    word_count: int = 0
    correct_count: int = 0
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "timestamp": self.timestamp,
            "type": self.type,
            "word_count": self.word_count,
            "correct_count": self.correct_count,
            "duration_ms": self.duration_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StudyLog":
        return cls(
            date=str(data.get("date") or ""),
            timestamp=int(data.get("timestamp") or 0),
            type=str(data.get("type") or ""),
            word_count=int(_pick(data, "word_count", "wordCount", default=0) or 0),
            correct_count=int(_pick(data, "correct_count", "correctCount", default=0) or 0),
            duration_ms=int(_pick(data, "duration_ms", "duration", default=0) or 0),
        )


@dataclass(frozen=True)
class Page:
    page_index: int  # 0-based
    page_id: str  # e.g. page_003
    source_ref: str  # e.g. book.pdf#page=3
    image_path: str  # relative path under job dir (pages/page_003.png)

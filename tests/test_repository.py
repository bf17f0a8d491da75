from __future__ import annotations

import json
from dataclasses import replace

import pytest

from vocabsnap.exceptions import DuplicateEntryError, EntryNotFoundError
from vocabsnap.repository import JsonRepository
from vocabsnap.srs import schedule
from vocabsnap.types import ExamplePair, SchedulingState, StudyLog, VocabularyEntry, create_entry
from vocabsnap.utils import DAY_MS

from .conftest import NOW


class TestCreateEntry:
    def test_normalizes(self):
        e = create_entry({"word": "  Abundant ", "meaning": " 豊富な ", "synonyms": "plentiful"}, now=NOW)
        assert e.word == "abundant"
        assert e.word_display == "Abundant"
        assert e.meaning == "豊富な"
        assert e.synonyms == []
        assert e.srs == SchedulingState()
        assert e.created_at == e.updated_at == NOW
        assert len(e.id) == 32

    def test_accepts_camel_case_backups(self):
        e = create_entry(
            {
                "id": "abc",
                "word": "decide",
                "wordDisplay": "Decide",
                "createdAt": 5,
                "srs": {"repetitions": 2, "easeFactor": 2.2, "interval": 6, "nextReview": 10, "lastReview": None},
                "stats": {"flashcardCorrect": 3},
            },
            now=NOW,
        )
        assert e.id == "abc"
        assert e.word_display == "Decide"
        assert e.created_at == 5
        assert e.srs == SchedulingState(repetitions=2, ease_factor=2.2, interval=6, next_review=10, last_review=None)
        assert e.stats.flashcard_correct == 3


class TestJsonRepository:
    def test_round_trip_through_file(self, workspace_dir, sample_entries):
        path = workspace_dir / "store.json"
        repo = JsonRepository(path)
        first = replace(
            sample_entries[0],
            srs=schedule(4, sample_entries[0].srs, now=NOW),
            examples=[ExamplePair(en="The harvest was abundant.", ja="豊作だった。")],
        )
        repo.add(first)
        repo.add(sample_entries[1])

        reloaded = JsonRepository(path)
        assert reloaded.get(first.id) == first
        assert reloaded.get(sample_entries[1].id).srs.next_review is None

        raw = json.loads(path.read_text(encoding="utf-8"))
        assert raw["version"] == 1
        assert raw["words"][1]["srs"]["next_review"] is None

    def test_duplicate_id(self, repo, sample_entries):
        repo.add(sample_entries[0])
        with pytest.raises(DuplicateEntryError):
            repo.add(sample_entries[0])

    def test_add_many_is_all_or_nothing(self, repo, sample_entries):
        repo.add(sample_entries[2])
        with pytest.raises(DuplicateEntryError):
            repo.add_many(sample_entries)
        assert repo.count() == 1

    def test_missing_ids(self, repo, sample_entries):
        with pytest.raises(EntryNotFoundError):
            repo.get("nope")
        with pytest.raises(EntryNotFoundError):
            repo.update(sample_entries[0])
        with pytest.raises(EntryNotFoundError):
            repo.delete("nope")

    def test_update_bumps_updated_at(self, repo, sample_entries):
        repo.add(sample_entries[0])
        stored = repo.update(replace(sample_entries[0], memo="red ink"), now=NOW + 10)
        assert stored.updated_at == NOW + 10
        assert repo.get(stored.id).memo == "red ink"

    def test_search(self, repo, sample_entries):
        repo.add_many(sample_entries)
        assert [e.word for e in repo.search("COPIOUS")] == ["abundant"]
        assert [e.word for e in repo.search("課")] == ["inflict"]
        assert [e.word for e in repo.search("unit")] == ["scarce"]
        assert len(repo.search("")) == 3

    def test_bookmarked_and_mastered(self, repo, sample_entries):
        a, b, c = sample_entries
        repo.add_many(
            [
                replace(a, bookmarked=True),
                replace(b, srs=SchedulingState(repetitions=5, interval=21, last_review=NOW)),
                replace(c, srs=SchedulingState(repetitions=4, interval=40, last_review=NOW)),
            ]
        )
        assert [e.word for e in repo.bookmarked()] == ["abundant"]
        assert [e.word for e in repo.mastered()] == ["inflict"]

    def test_delete_and_clear(self, repo, sample_entries):
        repo.add_many(sample_entries)
        repo.delete(sample_entries[0].id)
        assert repo.count() == 2
        repo.clear()
        assert repo.get_all() == []

    def test_study_logs_window(self, repo):
        old = StudyLog(date="2025-12-01", timestamp=NOW - 45 * DAY_MS, type="spelling")
        new = StudyLog(date="2026-01-14", timestamp=NOW - DAY_MS, type="flashcard", word_count=4, correct_count=3)
        repo.add_study_log(old)
        repo.add_study_log(new)
        assert repo.study_logs(days=30, now=NOW) == [new]
        assert JsonRepository(repo.path).study_logs(days=None) == [old, new]

    def test_settings(self, repo):
        assert repo.get_setting("daily_goal", 20) == 20
        repo.set_setting("daily_goal", 30)
        assert JsonRepository(repo.path).get_setting("daily_goal") == 30

    def test_entry_from_dict_tolerates_missing_fields(self):
        e = VocabularyEntry.from_dict({"id": "x", "word": "go"})
        assert e.word_display == "go"
        assert e.srs == SchedulingState()

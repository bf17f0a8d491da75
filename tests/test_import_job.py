"""Test the page import job, the OCR wrapper and candidate acceptance.

Tests cover:
1. OCR line reconstruction and reader lifecycle (fake reader, no models)
2. Import job outputs with mocked OCR text and with a fake OCR engine
3. Page rotation, preprocessing and PDF/image page storage
4. Applying approve/reject/edit feedback into the store
"""
from __future__ import annotations

import json
from pathlib import Path

import pytest
from PIL import Image

from vocabsnap.config import EngineConfig, load_config
from vocabsnap.exceptions import OCRError
from vocabsnap.job import create_job_dirs, init_job_outputs
from vocabsnap.ocr import OCREngine, tokens_to_lines
from vocabsnap.page_provider import PageProvider
from vocabsnap.pipeline import ImportPipeline, RunOptions
from vocabsnap.preprocess import preprocess_image, rotate_image
from vocabsnap.review import apply_candidate_feedback
from vocabsnap.types import create_entry
from vocabsnap.utils import load_json, write_json

from .conftest import FakeReader, box

PAGE_TEXT = "56 abundant [əˈbʌndənt] 形 豊富な\n57 scarce 形\n乏しい\n58 inflict"


@pytest.fixture
def images_dir(workspace_dir: Path) -> Path:
    folder = workspace_dir / "photos"
    folder.mkdir()
    for name in ("p1.png", "p2.jpg"):
        Image.new("RGB", (120, 80), color=(255, 255, 255)).save(folder / name)
    (folder / "notes.txt").write_text("not an image", encoding="utf-8")
    return folder


@pytest.fixture
def job(workspace_dir: Path):
    paths = create_job_dirs(workspace_dir, "2026-01-15/00-00-00__test")
    init_job_outputs(paths)
    return paths


def _run(paths, images_dir, ocr=None, mocked=None, cfg=None):
    opts = RunOptions(input_path=str(images_dir), input_type="images", source="Workbook", mocked_ocr_dir=mocked)
    ImportPipeline(paths=paths, cfg=cfg or EngineConfig(), opts=opts, ocr=ocr).run(job_id="job-1")
    return load_json(paths.candidates_json), load_json(paths.metrics_json)


# ═══════════════════════════════════════════════════════════════════════════════
# OCR TESTS
# ═══════════════════════════════════════════════════════════════════════════════

class TestTokensToLines:
    def test_rows_read_left_to_right(self):
        results = [
            (box(120, 10, 200, 30), "[əˈbʌndənt]", 0.9),
            (box(10, 12, 100, 32), "56 abundant", 0.9),
            (box(10, 50, 80, 70), "豊富な", 0.8),
            (box(90, 52, 95, 68), " ", 0.1),
        ]
        assert tokens_to_lines(results) == ["56 abundant [əˈbʌndənt]", "豊富な"]

    def test_empty(self):
        assert tokens_to_lines([]) == []


class TestOCREngine:
    def test_lazy_acquire_and_release(self):
        made = []

        def factory(langs, gpu):
            made.append((tuple(langs), gpu))
            return FakeReader([(box(0, 0, 50, 20), "abundant", 0.9)])

        engine = OCREngine(langs=["en", "ja"], reader_factory=factory)
        assert not engine.acquired
        progress = []
        text = engine.recognize(Image.new("RGB", (60, 30)), on_progress=lambda s, p: progress.append((s, p)))
        assert text == "abundant"
        assert made == [(("en", "ja"), False)]
        assert progress[-1] == ("done", 100)
        assert all(0 <= p <= 100 for _s, p in progress)

        engine.recognize(Image.new("RGB", (60, 30)))
        assert len(made) == 1
        engine.release()
        assert not engine.acquired

    def test_multi_pass_markers(self):
        engine = OCREngine(passes=["en", "en+ja"], reader_factory=lambda langs, gpu: FakeReader([(box(0, 0, 9, 9), "+".join(langs), 1.0)]))
        with engine:
            text = engine.recognize(Image.new("RGB", (10, 10)))
        assert text.splitlines() == ["=== en ===", "en", "=== en+ja ===", "en+ja"]

    def test_factory_failure_wrapped(self):
        def broken(langs, gpu):
            raise RuntimeError("model download failed")

        engine = OCREngine(reader_factory=broken)
        with pytest.raises(OCRError):
            engine.acquire()
        assert not engine.acquired


# ═══════════════════════════════════════════════════════════════════════════════
# IMPORT JOB TESTS
# ═══════════════════════════════════════════════════════════════════════════════

class TestImportPipeline:
    def test_mocked_ocr_outputs(self, job, images_dir, workspace_dir):
        mocked = workspace_dir / "mocked"
        mocked.mkdir()
        (mocked / "page_001.txt").write_text(PAGE_TEXT, encoding="utf-8")
        (mocked / "page_002.txt").write_text("", encoding="utf-8")

        doc, metrics = _run(job, images_dir, mocked=str(mocked))

        words = [c["word"] for c in doc["candidates"]]
        assert words == ["abundant", "scarce", "inflict"]
        first = doc["candidates"][0]
        assert first["status"] == "pending"
        assert first["page_id"] == "page_001"
        assert first["source_ref"] == "photos/p1.png"
        assert first["strategy"] == "numbered"
        assert len(first["candidate_id"]) == 40
        assert doc["candidates"][1]["meaning"] == "乏しい"

        assert metrics["finished"] is True
        assert metrics["pages_total"] == 2
        assert metrics["pages_processed"] == 2
        assert metrics["ocr_empty_count"] == 1
        assert metrics["pages_without_candidates"] == 1
        assert metrics["candidates_total"] == 3
        assert doc["job"]["source"] == "Workbook"

        assert (job.stage_ocr_dir / "page_001.txt").read_text(encoding="utf-8") == PAGE_TEXT
        assert load_json(job.stage_extract_dir / "page_001.json")["strategy"] == "numbered"
        assert (job.pages_dir / "page_002.png").exists()

    def test_candidate_ids_are_stable(self, workspace_dir, images_dir):
        mocked = workspace_dir / "mocked"
        mocked.mkdir()
        for page in ("page_001", "page_002"):
            (mocked / f"{page}.txt").write_text(PAGE_TEXT, encoding="utf-8")
        ids = []
        for job_id in ("a", "b"):
            paths = create_job_dirs(workspace_dir, job_id)
            init_job_outputs(paths)
            doc, _ = _run(paths, images_dir, mocked=str(mocked))
            ids.append([c["candidate_id"] for c in doc["candidates"]])
        assert ids[0] == ids[1]
        assert len(set(ids[0])) == 6

    def test_fake_ocr_engine(self, job, images_dir):
        reader = FakeReader([(box(0, 0, 80, 20), "1738 inflict [ɪnflíkt] 動 課す", 0.9)])
        engine = OCREngine(reader_factory=lambda langs, gpu: reader)
        doc, metrics = _run(job, images_dir, ocr=engine)
        assert [c["word"] for c in doc["candidates"]] == ["inflict", "inflict"]
        assert doc["candidates"][0]["meaning"] == "課す"
        assert not engine.acquired
        assert reader.calls == 2

    def test_missing_mocked_text_falls_back_to_ocr(self, job, images_dir, workspace_dir):
        mocked = workspace_dir / "mocked"
        mocked.mkdir()
        engine = OCREngine(reader_factory=lambda langs, gpu: FakeReader([(box(0, 0, 80, 20), "1 decide 動 決める", 0.9)]))
        doc, _ = _run(job, images_dir, ocr=engine, mocked=str(mocked))
        assert len(doc["candidates"]) == 2
        errors = job.errors_jsonl.read_text(encoding="utf-8").splitlines()
        assert json.loads(errors[0])["message"] == "mocked_text_missing"

    def test_ocr_failure_is_per_page(self, job, images_dir):
        def broken(langs, gpu):
            raise RuntimeError("no model")

        doc, metrics = _run(job, images_dir, ocr=OCREngine(reader_factory=broken))
        assert doc["candidates"] == []
        assert metrics["ocr_failed_count"] == 2
        assert metrics["pages_processed"] == 0
        assert metrics["finished"] is True
        errors = [json.loads(x) for x in job.errors_jsonl.read_text(encoding="utf-8").splitlines()]
        assert [e["stage"] for e in errors] == ["ocr", "ocr"]
        assert errors[0]["page_id"] == "page_001"

    def test_empty_read_is_retried(self, job, images_dir):
        reader = FakeReader([])
        doc, metrics = _run(job, images_dir, ocr=OCREngine(reader_factory=lambda langs, gpu: reader))
        assert reader.calls == 4
        assert metrics["ocr_empty_count"] == 2


# ═══════════════════════════════════════════════════════════════════════════════
# PAGE IMAGE TESTS
# ═══════════════════════════════════════════════════════════════════════════════

def _marked_image(size=(40, 10)) -> Image.Image:
    img = Image.new("RGB", size, color=(255, 255, 255))
    img.putpixel((0, 0), (0, 0, 0))
    return img


class TestRotateImage:
    def test_quarter_turn_is_clockwise(self):
        rotated = rotate_image(_marked_image(), 90)
        assert rotated.size == (10, 40)
        assert rotated.getpixel((9, 0)) == (0, 0, 0)
        assert rotated.getpixel((0, 0)) == (255, 255, 255)

    def test_full_turn_keeps_image(self):
        img = _marked_image()
        rotated = rotate_image(img, 360)
        assert rotated.size == (40, 10)
        assert rotated.getpixel((0, 0)) == (0, 0, 0)
        assert rotated is not img

    def test_rejects_partial_turns(self):
        with pytest.raises(ValueError):
            rotate_image(_marked_image(), 45)


class TestPreprocessImage:
    def test_downscales_and_blackens_red_ink(self):
        img = Image.new("RGB", (3000, 100), color=(255, 255, 255))
        img.paste((230, 20, 20), (0, 0, 1500, 100))
        out = preprocess_image(img, max_width=2400)
        assert out.size == (2400, 80)
        assert out.getpixel((300, 40)) == (0, 0, 0)
        assert out.getpixel((2000, 40)) == (255, 255, 255)

    def test_small_image_keeps_size(self):
        out = preprocess_image(Image.new("RGB", (120, 80), color=(255, 255, 255)))
        assert out.size == (120, 80)


class TestPageProvider:
    def test_rotated_pages_are_stored(self, job, workspace_dir):
        folder = workspace_dir / "sideways"
        folder.mkdir()
        _marked_image().save(folder / "p1.png")
        provider = PageProvider(input_path=str(folder), input_type="images", dpi=200, paths=job, rotate=90)
        pages = list(provider.iter_pages())
        assert len(pages) == 1
        page, img = pages[0]
        assert page.image_path == "pages/page_001.png"
        assert img.size == (10, 40)
        with Image.open(job.pages_dir / "page_001.png") as stored:
            assert stored.size == (10, 40)

    def test_pdf_pages_are_rendered(self, job, workspace_dir):
        fitz = pytest.importorskip("fitz")
        pdf_path = workspace_dir / "book.pdf"
        doc = fitz.open()
        doc.new_page(width=200, height=100)
        doc.new_page(width=200, height=100)
        doc.save(pdf_path)
        doc.close()

        provider = PageProvider(input_path=str(pdf_path), input_type="pdf", dpi=72, paths=job)
        pages = list(provider.iter_pages())
        assert [p.page_id for p, _img in pages] == ["page_001", "page_002"]
        assert pages[1][0].source_ref == "book.pdf#page=2"
        assert pages[0][1].size == (200, 100)
        assert (job.pages_dir / "page_002.png").exists()

    def test_unknown_input_type(self, job):
        provider = PageProvider(input_path="x", input_type="scan", dpi=72, paths=job)
        with pytest.raises(ValueError):
            list(provider.iter_pages())


class TestConfig:
    def test_defaults_without_file(self, workspace_dir):
        cfg = load_config(workspace_dir / "missing.json")
        assert cfg.ocr["langs"] == ["en", "ja"]
        assert cfg.require_meaning is True
        assert cfg.stopwords == []

    def test_file_overrides(self, workspace_dir):
        path = workspace_dir / "cfg.json"
        write_json(path, {"ocr": {"passes": ["en"]}, "extract": {"extra_stopwords": ["Unit"]}, "accept": {"require_meaning": False}})
        cfg = load_config(path)
        assert cfg.ocr["passes"] == ["en"]
        assert cfg.ocr["max_width"] == 2400
        assert cfg.stopwords == ["Unit"]
        assert cfg.require_meaning is False

    def test_invalid_langs(self):
        with pytest.raises(ValueError):
            EngineConfig(ocr={"langs": "en"})


# ═══════════════════════════════════════════════════════════════════════════════
# CANDIDATE ACCEPTANCE TESTS
# ═══════════════════════════════════════════════════════════════════════════════

class TestCandidateFeedback:
    @pytest.fixture
    def scanned(self, job, images_dir, workspace_dir):
        mocked = workspace_dir / "mocked"
        mocked.mkdir()
        (mocked / "page_001.txt").write_text(PAGE_TEXT, encoding="utf-8")
        (mocked / "page_002.txt").write_text("", encoding="utf-8")
        doc, _ = _run(job, images_dir, mocked=str(mocked))
        return job, {c["word"]: c["candidate_id"] for c in doc["candidates"]}

    def _feedback(self, workspace_dir, items):
        path = workspace_dir / "feedback.json"
        write_json(path, items)
        return path

    def test_approve_reject_edit(self, scanned, repo, workspace_dir):
        paths, ids = scanned
        fb = self._feedback(
            workspace_dir,
            [
                {"candidate_id": ids["abundant"], "action": "approve"},
                {"candidate_id": ids["scarce"], "action": "reject"},
                {"candidate_id": ids["inflict"], "action": "edit", "edited": {"meaning": "課す", "pos": "動"}},
                {"candidate_id": "unknown", "action": "approve"},
            ],
        )
        stats = apply_candidate_feedback(job_dir=paths.job_dir, feedback_path=fb, repo=repo)
        assert (stats.accepted, stats.rejected, stats.skipped_unknown_candidate) == (2, 1, 1)
        assert sorted(e.word for e in repo.get_all()) == ["abundant", "inflict"]
        inflict = next(e for e in repo.get_all() if e.word == "inflict")
        assert inflict.meaning == "課す"
        assert inflict.srs.next_review is None

        doc = load_json(paths.candidates_json)
        status = {c["word"]: c["status"] for c in doc["candidates"]}
        assert status == {"abundant": "accepted", "scarce": "rejected", "inflict": "accepted"}

    def test_idempotent(self, scanned, repo, workspace_dir):
        paths, ids = scanned
        fb = self._feedback(workspace_dir, {"items": [{"candidate_id": ids["abundant"], "action": "approve"}]})
        apply_candidate_feedback(job_dir=paths.job_dir, feedback_path=fb, repo=repo)
        stats = apply_candidate_feedback(job_dir=paths.job_dir, feedback_path=fb, repo=repo)
        assert stats.skipped_already_applied == 1
        assert repo.count() == 1

    def test_rejected_cannot_be_approved(self, scanned, repo, workspace_dir):
        paths, ids = scanned
        reject = self._feedback(workspace_dir, [{"candidate_id": ids["scarce"], "action": "reject"}])
        apply_candidate_feedback(job_dir=paths.job_dir, feedback_path=reject, repo=repo)
        approve = self._feedback(workspace_dir, [{"candidate_id": ids["scarce"], "action": "approve"}])
        stats = apply_candidate_feedback(job_dir=paths.job_dir, feedback_path=approve, repo=repo)
        assert stats.skipped_already_applied == 1
        assert repo.count() == 0

    def test_missing_meaning_stays_pending(self, scanned, repo, workspace_dir):
        paths, ids = scanned
        fb = self._feedback(workspace_dir, [{"candidate_id": ids["inflict"], "action": "approve"}])
        stats = apply_candidate_feedback(job_dir=paths.job_dir, feedback_path=fb, repo=repo)
        assert stats.skipped_incomplete == 1
        assert repo.count() == 0
        doc = load_json(paths.candidates_json)
        assert next(c for c in doc["candidates"] if c["word"] == "inflict")["status"] == "pending"

        stats = apply_candidate_feedback(job_dir=paths.job_dir, feedback_path=fb, repo=repo, require_meaning=False)
        assert stats.accepted == 1

    def test_skip_existing_words(self, scanned, repo, workspace_dir):
        paths, ids = scanned
        fb = self._feedback(workspace_dir, [{"candidate_id": ids["abundant"], "action": "approve"}])
        repo.add(create_entry({"word": "Abundant", "meaning": "豊富な"}))
        stats = apply_candidate_feedback(job_dir=paths.job_dir, feedback_path=fb, repo=repo, skip_existing_words=True)
        assert stats.skipped_duplicate_word == 1
        assert repo.count() == 1

    def test_bad_feedback_shape(self, scanned, repo, workspace_dir):
        paths, _ids = scanned
        fb = self._feedback(workspace_dir, {"things": []})
        with pytest.raises(ValueError):
            apply_candidate_feedback(job_dir=paths.job_dir, feedback_path=fb, repo=repo)

    def test_edit_without_fields_changes_nothing(self, scanned, repo, workspace_dir):
        paths, ids = scanned
        fb = self._feedback(workspace_dir, [{"candidate_id": ids["abundant"], "action": "edit", "edited": {}}])
        stats = apply_candidate_feedback(job_dir=paths.job_dir, feedback_path=fb, repo=repo)
        assert stats.skipped_empty_edit == 1
        assert stats.skipped_already_applied == 0
        assert repo.count() == 0
        doc = load_json(paths.candidates_json)
        assert next(c for c in doc["candidates"] if c["word"] == "abundant")["status"] == "pending"

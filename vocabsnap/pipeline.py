from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from PIL import Image

from .config import EngineConfig
from .extract import extract_with_strategy
from .job import JobPaths, record_error
from .ocr import OCREngine, ProgressCallback
from .page_provider import PageProvider
from .preprocess import enhance_for_retry, preprocess_image
from .review import STATUS_PENDING
from .utils import stable_candidate_id, utc_now_iso
from .writer import JobWriter

logger = logging.getLogger(__name__)


def _try_load_mocked_text(
    mocked_dir: str | None,
    *,
    paths: JobPaths,
    page_id: str,
) -> str | None:
    """Read ``<page_id>.txt`` from a mocked-OCR directory, if present."""
    if not mocked_dir:
        return None
    p = Path(mocked_dir) / f"{page_id}.txt"
    if not p.is_file():
        record_error(paths, page_id=page_id, stage="mocked_ocr", message="mocked_text_missing")
        return None
    return p.read_text(encoding="utf-8")


@dataclass
class RunOptions:
    input_path: str
    input_type: str
    source: str
    dpi: int = 200
    rotate: int = 0
    mocked_ocr_dir: str | None = None


class ImportPipeline:
    """Workbook photos in, reviewable candidates (``candidates.json``) out."""

    def __init__(
        self,
        paths: JobPaths,
        cfg: EngineConfig,
        opts: RunOptions,
        ocr: OCREngine | None = None,
        on_progress: ProgressCallback | None = None,
    ):
        self.paths = paths
        self.cfg = cfg
        self.opts = opts
        self.on_progress = on_progress

        self.page_provider = PageProvider(
            input_path=opts.input_path,
            input_type=opts.input_type,
            dpi=opts.dpi,
            paths=paths,
            rotate=opts.rotate,
        )
        self.ocr = ocr or OCREngine(
            langs=list(cfg.ocr.get("langs", ["en", "ja"])),
            gpu=bool(cfg.ocr.get("gpu", False)),
            passes=list(cfg.ocr.get("passes", [])),
        )
        self.writer = JobWriter(paths=paths)

    def _recognize(self, image: Image.Image) -> str:
        if self.cfg.ocr.get("preprocess", True):
            image = preprocess_image(image, max_width=int(self.cfg.ocr.get("max_width", 2400)))
        text = self.ocr.recognize(image, self.on_progress)
        if not text.strip():
            # Second attempt with heavier clean-up.
            text = self.ocr.recognize(enhance_for_retry(image), self.on_progress)
        return text

    def run(self, job_id: str) -> None:
        candidates: list[dict[str, Any]] = []
        metrics: dict[str, Any] = {
            "created_at": utc_now_iso(),
            "pages_total": 0,
            "pages_processed": 0,
            "ocr_empty_count": 0,
            "ocr_failed_count": 0,
            "candidates_total": 0,
            "pages_without_candidates": 0,
            "strategies": {},
        }
        job_meta = {
            "job_id": job_id,
            "source": self.opts.source,
            "input": {"type": self.opts.input_type, "path": self.opts.input_path},
            "created_at": metrics["created_at"],
        }

        try:
            for page, image in self.page_provider.iter_pages():
                metrics["pages_total"] += 1

                text = _try_load_mocked_text(self.opts.mocked_ocr_dir, paths=self.paths, page_id=page.page_id)
                if text is None:
                    try:
                        text = self._recognize(image)
                    except Exception as e:
                        # OCR failures stay per-page; the job carries on.
                        logger.warning("OCR failed on %s: %s", page.page_id, e)
                        record_error(self.paths, page_id=page.page_id, stage="ocr", message=str(e))
                        metrics["ocr_failed_count"] += 1
                        continue

                (self.paths.stage_ocr_dir / f"{page.page_id}.txt").write_text(text, encoding="utf-8")
                if not text.strip():
                    metrics["ocr_empty_count"] += 1

                strategy, parsed = extract_with_strategy(text, stopwords=self.cfg.stopwords)
                metrics["strategies"][strategy] = metrics["strategies"].get(strategy, 0) + 1

                page_candidates = []
                for index, cand in enumerate(parsed):
                    record = {
                        "candidate_id": stable_candidate_id(page.source_ref, page.page_id, cand.word, index),
                        "page_id": page.page_id,
                        "source_ref": page.source_ref,
                        "index": index,
                        "strategy": strategy,
                        "status": STATUS_PENDING,
                    }
                    record.update(cand.to_dict())
                    page_candidates.append(record)

                self.writer.write_page(page.page_id, strategy, page_candidates)
                if not page_candidates:
                    metrics["pages_without_candidates"] += 1
                candidates.extend(page_candidates)
                metrics["pages_processed"] += 1
        finally:
            self.ocr.release()

        metrics["candidates_total"] = len(candidates)
        self.writer.write_final(job_meta=job_meta, candidates=candidates, metrics=metrics)

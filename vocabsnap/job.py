from __future__ import annotations

import shutil
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from .utils import append_jsonl, ensure_dir, utc_now_iso, write_json


@dataclass
class JobPaths:
    job_dir: Path
    input_dir: Path
    pages_dir: Path
    stage_ocr_dir: Path  # raw OCR text per page
    stage_extract_dir: Path  # candidates per page, before review
    candidates_json: Path
    metrics_json: Path
    errors_jsonl: Path


def job_paths(job_dir: str | Path) -> JobPaths:
    """Paths of an existing (or about to be created) job directory."""
    job_dir = Path(job_dir)
    return JobPaths(
        job_dir=job_dir,
        input_dir=job_dir / "input",
        pages_dir=job_dir / "pages",
        stage_ocr_dir=job_dir / "stage" / "ocr",
        stage_extract_dir=job_dir / "stage" / "extract",
        candidates_json=job_dir / "candidates.json",
        metrics_json=job_dir / "metrics.json",
        errors_jsonl=job_dir / "errors.jsonl",
    )


def create_job_dirs(workspace: str | Path, job_id: str) -> JobPaths:
    paths = job_paths(Path(workspace) / "jobs" / job_id)
    for p in [paths.input_dir, paths.pages_dir, paths.stage_ocr_dir, paths.stage_extract_dir]:
        ensure_dir(p)
    return paths


def new_job_id(use_timeline: bool = True) -> str:
    """Generate a new job ID.

    Timeline format is ``YYYY-MM-DD/HH-MM-SS__<shortid>`` so jobs sort by
    capture time; otherwise a plain UUID.
    """
    if not use_timeline:
        return str(uuid.uuid4())

    now = datetime.now(timezone.utc)
    return f"{now.strftime('%Y-%m-%d')}/{now.strftime('%H-%M-%S')}__{uuid.uuid4().hex[:8]}"


def record_error(paths: JobPaths, page_id: str, stage: str, message: str) -> None:
    append_jsonl(paths.errors_jsonl, {"page_id": page_id, "stage": stage, "message": message})


def init_job_outputs(paths: JobPaths) -> None:
    # Always create output files, even if empty.
    write_json(paths.candidates_json, {"job": {}, "candidates": []})
    write_json(
        paths.metrics_json,
        {
            "created_at": utc_now_iso(),
            "finished": False,
            "completed_at": None,
            "pages_total": 0,
            "pages_processed": 0,
            "ocr_empty_count": 0,
            "ocr_failed_count": 0,
            "candidates_total": 0,
            "pages_without_candidates": 0,
            "strategies": {},
        },
    )
    paths.errors_jsonl.parent.mkdir(parents=True, exist_ok=True)
    paths.errors_jsonl.touch(exist_ok=True)


def snapshot_input(paths: JobPaths, input_path: str | Path, input_type: str) -> None:
    src = Path(input_path)
    if input_type == "pdf" and src.is_file():
        shutil.copy2(src, paths.input_dir / src.name)
    else:
        write_json(paths.input_dir / "manifest.json", {"type": input_type, "path": str(src.resolve())})

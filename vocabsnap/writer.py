from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .job import JobPaths
from .utils import utc_now_iso, write_json


@dataclass
class JobWriter:
    paths: JobPaths

    def write_page(self, page_id: str, strategy: str, candidates: list[dict[str, Any]]) -> None:
        write_json(
            self.paths.stage_extract_dir / f"{page_id}.json",
            {"page_id": page_id, "strategy": strategy, "candidates": candidates},
        )

    def write_final(
        self,
        job_meta: dict[str, Any],
        candidates: list[dict[str, Any]],
        metrics: dict[str, Any],
    ) -> None:
        now = utc_now_iso()

        # Mark completion only when final outputs are successfully written.
        metrics_out = dict(metrics)
        metrics_out["finished"] = True
        metrics_out["completed_at"] = now

        job_out = dict(job_meta)
        job_out["finished"] = True
        job_out["completed_at"] = now

        write_json(self.paths.candidates_json, {"job": job_out, "candidates": candidates})
        write_json(self.paths.metrics_json, metrics_out)

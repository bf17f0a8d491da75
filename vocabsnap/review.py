from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .repository import JsonRepository
from .types import ParsedCandidate, create_entry
from .utils import load_json, now_ms, utc_now_iso, write_json

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_ACCEPTED = "accepted"
STATUS_REJECTED = "rejected"

EDITABLE_FIELDS = ("word", "meaning", "phonetic", "pos", "examples", "synonyms", "antonyms")


@dataclass
class ApplyFeedbackStats:
    feedback_items: int = 0
    accepted: int = 0
    rejected: int = 0
    skipped_unknown_candidate: int = 0
    skipped_already_applied: int = 0
    skipped_incomplete: int = 0
    skipped_duplicate_word: int = 0
    skipped_empty_edit: int = 0


def _load_feedback_items(feedback_path: str | Path) -> list[Any]:
    feedback_obj = load_json(feedback_path)
    if isinstance(feedback_obj, list):
        return feedback_obj
    if isinstance(feedback_obj, dict):
        items = feedback_obj.get("items")
        if not isinstance(items, list):
            raise ValueError("feedback object must contain list field: items")
        return items
    raise ValueError("feedback must be a list or an object with items")


def _apply_edit(candidate: dict[str, Any], edited: Any) -> bool:
    if not isinstance(edited, dict):
        return False
    changed = False
    for key in EDITABLE_FIELDS:
        if key in edited:
            candidate[key] = edited[key]
            changed = True
    return changed


def apply_candidate_feedback(
    *,
    job_dir: str | Path,
    feedback_path: str | Path,
    repo: JsonRepository,
    require_meaning: bool = True,
    skip_existing_words: bool = False,
) -> ApplyFeedbackStats:
    """Apply human corrections to a job's candidates and store the keepers.

    Feedback JSON format::

        [
          {"candidate_id": "...", "action": "approve|reject|edit",
           "edited": {"word": "...", "meaning": "..."}}
        ]

    - approve: persist the candidate as a new vocabulary entry
    - reject: mark it rejected; it is never stored
    - edit: replace the given fields, then approve

    Candidates need a headword and, with ``require_meaning``, a meaning
    before they are stored; incomplete ones stay pending. Re-running the
    same feedback does not duplicate entries, and a rejected candidate is
    not brought back by a later approve or edit.
    """
    job_dir = Path(job_dir)
    candidates_path = job_dir / "candidates.json"
    doc = load_json(candidates_path)
    candidates = doc.get("candidates", []) if isinstance(doc, dict) else []

    by_id: dict[str, dict[str, Any]] = {}
    for c in candidates:
        if isinstance(c, dict) and c.get("candidate_id"):
            by_id[str(c["candidate_id"])] = c

    feedback_items = _load_feedback_items(feedback_path)
    stats = ApplyFeedbackStats(feedback_items=len(feedback_items))
    known_words = repo.headwords() if skip_existing_words else set()

    to_store = []
    for item in feedback_items:
        if not isinstance(item, dict):
            continue
        candidate_id = str(item.get("candidate_id") or "")
        action = str(item.get("action") or "").lower()
        if not candidate_id:
            continue

        cand = by_id.get(candidate_id)
        if cand is None:
            stats.skipped_unknown_candidate += 1
            continue

        status = cand.get("status", STATUS_PENDING)
        if status == STATUS_ACCEPTED or (status == STATUS_REJECTED and action in ("approve", "edit", "reject")):
            stats.skipped_already_applied += 1
            continue

        if action == "reject":
            cand["status"] = STATUS_REJECTED
            cand["reviewed_at"] = utc_now_iso()
            stats.rejected += 1
            continue

        if action == "edit":
            if not _apply_edit(cand, item.get("edited")):
                stats.skipped_empty_edit += 1
                continue
            action = "approve"

        if action != "approve":
            logger.warning("Ignoring unknown feedback action %r for %s", action, candidate_id)
            continue

        parsed = ParsedCandidate.from_dict(cand)
        if not parsed.word.strip() or (require_meaning and not parsed.meaning.strip()):
            stats.skipped_incomplete += 1
            continue
        if parsed.word.strip().lower() in known_words:
            stats.skipped_duplicate_word += 1
            continue

        entry = create_entry(parsed, now=now_ms())
        to_store.append(entry)
        if skip_existing_words:
            known_words.add(entry.word)
        cand["status"] = STATUS_ACCEPTED
        cand["entry_id"] = entry.id
        cand["reviewed_at"] = utc_now_iso()
        stats.accepted += 1

    # Store first: a failed write leaves every candidate still pending on disk.
    if to_store:
        repo.add_many(to_store)

    doc_out = dict(doc) if isinstance(doc, dict) else {"job": {}}
    doc_out["candidates"] = list(candidates)
    write_json(candidates_path, doc_out)
    logger.info(
        "Feedback applied: %d accepted, %d rejected, %d incomplete",
        stats.accepted,
        stats.rejected,
        stats.skipped_incomplete,
    )
    return stats

from __future__ import annotations

import hashlib
import json
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

DAY_MS = 24 * 60 * 60 * 1000


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def now_ms() -> int:
    return int(time.time() * 1000)


def ms_to_date(ms: int) -> str:
    """UTC calendar date (YYYY-MM-DD) of an epoch-millisecond timestamp."""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


def ensure_dir(path: str | Path) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def stable_candidate_id(source_ref: str, page_id: str, word: str, index: int) -> str:
    """Stable id: sha1(source_ref + page_id + word + index)."""
    payload = f"{source_ref}|{page_id}|{word}|{int(index)}".encode("utf-8")
    return hashlib.sha1(payload, usedforsecurity=False).hexdigest()


def split_list_field(text: str) -> list[str]:
    """Split a user-typed list on ASCII or ideographic commas."""
    return [s.strip() for s in re.split(r"[,、]", text or "") if s.strip()]


def write_json(path: str | Path, data: Any) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)


def append_jsonl(path: str | Path, obj: dict[str, Any]) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(obj, ensure_ascii=False) + "\n")


def load_json(path: str | Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)

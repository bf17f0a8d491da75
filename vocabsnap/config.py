from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .utils import load_json

DEFAULT_OCR = {
    "langs": ["en", "ja"],
    "passes": [],  # e.g. ["en", "en+ja"]; empty means one pass with langs
    "gpu": False,
    "preprocess": True,
    "max_width": 2400,
}
DEFAULT_STORE = {"path": "vocabsnap.json"}


@dataclass(frozen=True)
class EngineConfig:
    ocr: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_OCR))
    extract: dict[str, Any] = field(default_factory=dict)
    accept: dict[str, Any] = field(default_factory=dict)
    store: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_STORE))

    def __post_init__(self):
        langs = self.ocr.get("langs", [])
        if not isinstance(langs, list) or not all(isinstance(x, str) for x in langs):
            raise ValueError(f"ocr.langs must be a list of language codes, got {langs!r}")
        if int(self.ocr.get("max_width", 1)) <= 0:
            raise ValueError(f"ocr.max_width must be > 0, got {self.ocr.get('max_width')!r}")

    @property
    def stopwords(self) -> list[str]:
        return [str(w) for w in self.extract.get("extra_stopwords", [])]

    @property
    def require_meaning(self) -> bool:
        return bool(self.accept.get("require_meaning", True))


def load_config(config_path: str | Path | None) -> EngineConfig:
    """Load config JSON; a missing path yields the built-in defaults."""
    if config_path is None or not Path(config_path).exists():
        return EngineConfig()
    data = load_json(config_path)
    return EngineConfig(
        ocr={**DEFAULT_OCR, **data.get("ocr", {})},
        extract=data.get("extract", {}),
        accept=data.get("accept", {}),
        store={**DEFAULT_STORE, **data.get("store", {})},
    )

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path

import pytest

from vocabsnap.repository import JsonRepository
from vocabsnap.types import create_entry

# 2026-01-15T00:00:00Z
NOW = 1768435200000


class FakeReader:
    """Stands in for easyocr.Reader: returns canned (poly, text, conf) rows."""

    def __init__(self, results):
        self.results = results
        self.calls = 0

    def readtext(self, arr):
        self.calls += 1
        return self.results


def box(x0, y0, x1, y1):
    return [[x0, y0], [x1, y0], [x1, y1], [x0, y1]]


@pytest.fixture
def workspace_dir() -> Path:
    """Create temporary workspace."""
    tmp = tempfile.mkdtemp()
    yield Path(tmp)
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def repo(workspace_dir: Path) -> JsonRepository:
    return JsonRepository(workspace_dir / "store.json")


@pytest.fixture
def sample_entries():
    return [
        create_entry({"word": "Abundant", "meaning": "豊富な", "phonetic": "əˈbʌndənt", "pos": "形",
                      "synonyms": ["plentiful", "copious"]}, now=NOW),
        create_entry({"word": "inflict", "meaning": "課す", "pos": "動"}, now=NOW),
        create_entry({"word": "scarce", "meaning": "乏しい", "tags": ["unit 3"]}, now=NOW),
    ]

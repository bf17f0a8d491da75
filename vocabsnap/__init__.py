"""Vocabulary workbook scanner and spaced-repetition study engine.

This package focuses on:
- turning OCR text of workbook pages into reviewable word candidates
- storing accepted words in a local JSON store
- scheduling reviews with SM-2 and driving study sessions
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"

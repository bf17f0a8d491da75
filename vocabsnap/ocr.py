from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

import numpy as np
from PIL import Image

from .exceptions import OCRError
from .segmenter import pass_marker

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]
ReaderFactory = Callable[[list[str], bool], Any]


def _easyocr_reader(langs: list[str], gpu: bool) -> Any:
    import easyocr

    return easyocr.Reader(langs, gpu=gpu, verbose=False)


def _poly_to_xyxy(poly: list[list[float]] | list[tuple[float, float]]) -> tuple[int, int, int, int]:
    xs = [p[0] for p in poly]
    ys = [p[1] for p in poly]
    return int(min(xs)), int(min(ys)), int(max(xs)), int(max(ys))


def tokens_to_lines(results: list[tuple[Any, str, float]]) -> list[str]:
    """Rebuild text lines from (polygon, text, confidence) detections.

    Detections are clustered into rows by vertical center, then read
    left to right.
    """
    boxes = []
    for poly, text, _conf in results:
        text = str(text).strip()
        if not text:
            continue
        x0, y0, x1, y1 = _poly_to_xyxy(poly)
        boxes.append((x0, y0, x1, y1, text))
    if not boxes:
        return []

    heights = sorted(max(1, b[3] - b[1]) for b in boxes)
    tolerance = heights[len(heights) // 2] / 2.0

    rows: list[list[tuple[int, int, int, int, str]]] = []
    for box in sorted(boxes, key=lambda b: (b[1] + b[3]) / 2.0):
        cy = (box[1] + box[3]) / 2.0
        if rows:
            row = rows[-1]
            row_cy = sum((b[1] + b[3]) / 2.0 for b in row) / len(row)
            if abs(cy - row_cy) <= tolerance:
                row.append(box)
                continue
        rows.append([box])

    return [" ".join(b[4] for b in sorted(row, key=lambda b: b[0])) for row in rows]


@dataclass
class OCREngine:
    """EasyOCR wrapper with an explicit acquire/release lifecycle.

    Readers are expensive to build (model download and load), so they are
    created once by :meth:`acquire` and kept until :meth:`release`. With
    ``passes`` set (e.g. ``["en", "en+ja"]``) every pass reads the page
    with its own language set and the texts are concatenated under
    separator lines.
    """

    langs: list[str] = field(default_factory=lambda: ["en", "ja"])
    gpu: bool = False
    passes: list[str] = field(default_factory=list)
    reader_factory: ReaderFactory = _easyocr_reader
    _readers: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def pass_names(self) -> list[str]:
        return list(self.passes) or ["+".join(self.langs)]

    @property
    def acquired(self) -> bool:
        return bool(self._readers)

    def acquire(self, on_progress: ProgressCallback | None = None) -> None:
        if self._readers:
            return
        names = self.pass_names
        for n, name in enumerate(names):
            if on_progress:
                on_progress(f"loading {name}", int(100 * n / (len(names) + 1)))
            langs = [x for x in name.split("+") if x]
            try:
                self._readers[name] = self.reader_factory(langs, self.gpu)
            except Exception as e:
                self._readers.clear()
                raise OCRError(f"failed to start OCR reader for {name}: {e}") from e
            logger.debug("OCR reader ready: %s", name)

    def release(self) -> None:
        self._readers.clear()

    def __enter__(self) -> "OCREngine":
        self.acquire()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.release()

    def recognize(self, image: Image.Image, on_progress: ProgressCallback | None = None) -> str:
        """Return the page text, one recognized line per text line."""
        self.acquire(on_progress)
        arr = np.array(image.convert("RGB"))
        names = self.pass_names
        multi = len(names) > 1

        chunks: list[str] = []
        for n, name in enumerate(names):
            if on_progress:
                on_progress(f"recognizing {name}", int(100 * n / len(names)))
            results = self._readers[name].readtext(arr)
            lines = tokens_to_lines(results)
            if multi:
                chunks.append(pass_marker(name))
            chunks.extend(lines)

        if on_progress:
            on_progress("done", 100)
        return "\n".join(chunks)

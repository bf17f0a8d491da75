from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Iterator

from PIL import Image

from .job import JobPaths
from .preprocess import rotate_image
from .types import Page
from .utils import ensure_dir

IMAGE_EXTS = {".png", ".jpg", ".jpeg", ".webp", ".bmp", ".tif", ".tiff"}


@dataclass(frozen=True)
class PageProvider:
    input_path: str
    input_type: str  # pdf|images
    dpi: int
    paths: JobPaths
    rotate: int = 0  # clockwise degrees applied to every page

    def iter_pages(self) -> Iterator[tuple[Page, Image.Image]]:
        if self.input_type == "pdf":
            yield from self._iter_pdf_pages()
        elif self.input_type == "images":
            yield from self._iter_image_folder()
        else:
            raise ValueError(f"Unknown input_type: {self.input_type}")

    def _store(self, page_id: str, load) -> tuple[str, Image.Image]:
        rel_path = f"pages/{page_id}.png"
        abs_path = self.paths.job_dir / rel_path
        abs_path.parent.mkdir(parents=True, exist_ok=True)
        if abs_path.exists():
            return rel_path, Image.open(abs_path).convert("RGB")
        img = load().convert("RGB")
        if self.rotate:
            img = rotate_image(img, self.rotate)
        img.save(abs_path, format="PNG")
        return rel_path, img

    def _iter_pdf_pages(self) -> Iterator[tuple[Page, Image.Image]]:
        try:
            import fitz  # PyMuPDF
        except Exception as e:  # pragma: no cover
            raise RuntimeError("PyMuPDF is required for --type pdf. Install pymupdf.") from e

        pdf_path = Path(self.input_path)
        doc = fitz.open(pdf_path)
        zoom = self.dpi / 72.0
        matrix = fitz.Matrix(zoom, zoom)

        ensure_dir(self.paths.pages_dir)
        for i in range(doc.page_count):
            page_id = f"page_{i + 1:03d}"

            def _render(i: int = i) -> Image.Image:
                pix = doc.load_page(i).get_pixmap(matrix=matrix, alpha=False)
                return Image.open(BytesIO(pix.tobytes("png")))

            rel_path, img = self._store(page_id, _render)
            source_ref = f"{pdf_path.name}#page={i + 1}"
            yield Page(page_index=i, page_id=page_id, source_ref=source_ref, image_path=rel_path), img

    def _iter_image_folder(self) -> Iterator[tuple[Page, Image.Image]]:
        folder = Path(self.input_path)
        if not folder.exists() or not folder.is_dir():
            raise ValueError(f"--type images expects a folder: {folder}")

        files = sorted([p for p in folder.iterdir() if p.suffix.lower() in IMAGE_EXTS])

        ensure_dir(self.paths.pages_dir)
        for i, img_path in enumerate(files):
            page_id = f"page_{i + 1:03d}"
            rel_path, img = self._store(page_id, lambda p=img_path: Image.open(p))
            source_ref = f"{folder.name}/{img_path.name}"
            yield Page(page_index=i, page_id=page_id, source_ref=source_ref, image_path=rel_path), img

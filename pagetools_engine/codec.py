"""PyMuPDF-backed document codec and page renderer."""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from typing import Sequence

import fitz  # PyMuPDF
from PIL import Image

from .errors import CollaboratorFailure, UnsupportedMediaType
from .overlay import OverlayPlacement
from .units import RASTER_SCALE, raster_size


@dataclass(frozen=True)
class EncodeOptions:
    garbage: int = 0
    deflate: bool = False
    clean: bool = False


PLAIN = EncodeOptions()
COMPRESSED = EncodeOptions(garbage=4, deflate=True, clean=True)


class PdfCodec:
    fontname = "hebo"  # Helvetica-Bold, one of the base-14 fonts

    def decode(self, data: bytes, name: str = "document.pdf") -> fitz.Document:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise CollaboratorFailure(f"Could not read {name}: {e}", context={"file": name}) from e
        if doc.needs_pass:
            doc.close()
            raise UnsupportedMediaType("PDF is encrypted", context={"file": name})
        return doc

    def encode(self, document: fitz.Document, options: EncodeOptions = PLAIN) -> bytes:
        try:
            return document.tobytes(garbage=options.garbage, deflate=options.deflate, clean=options.clean)
        except Exception as e:
            raise CollaboratorFailure(
                f"Could not save document: {e}",
                context={"pages": document.page_count},
            ) from e

    def new_document(self) -> fitz.Document:
        return fitz.open()

    def page_count(self, document: fitz.Document) -> int:
        return document.page_count

    def copy_pages(self, target: fitz.Document, source: fitz.Document, indices: Sequence[int]) -> None:
        try:
            for i in indices:
                target.insert_pdf(source, from_page=i, to_page=i)
        except Exception as e:
            raise CollaboratorFailure(f"Could not copy pages: {e}", context={"indices": list(indices)}) from e

    def page_size(self, document: fitz.Document, index: int) -> tuple[float, float]:
        rect = document[index].rect
        return rect.width, rect.height

    def page_rotation(self, document: fitz.Document, index: int) -> int:
        return document[index].rotation

    def set_rotation(self, document: fitz.Document, index: int, degrees: int) -> None:
        document[index].set_rotation(degrees)

    def draw_text(self, document: fitz.Document, index: int, placement: OverlayPlacement) -> None:
        page = document[index]
        point = fitz.Point(placement.x, placement.y_down(page.rect.height))
        page.insert_text(
            point,
            placement.text,
            fontsize=placement.font_size,
            fontname=self.fontname,
            color=placement.color,
            fill_opacity=placement.opacity,
            morph=(point, fitz.Matrix(placement.rotation)),
        )

    def insert_image_page(self, document: fitz.Document, image_bytes: bytes, width_pt: float, height_pt: float) -> None:
        try:
            page = document.new_page(width=width_pt, height=height_pt)
            page.insert_image(page.rect, stream=image_bytes)
        except Exception as e:
            raise CollaboratorFailure(f"Could not place image: {e}") from e

    def extract_text(self, document: fitz.Document) -> str:
        return "".join(page.get_text() + "\n\n" for page in document)

    def render(self, document: fitz.Document, index: int, scale: float = RASTER_SCALE) -> Image.Image:
        try:
            page = document[index]
            width, height = raster_size(page.rect.width, page.rect.height, scale)
            matrix = fitz.Matrix(width / page.rect.width, height / page.rect.height)
            pix = page.get_pixmap(matrix=matrix, alpha=False)
            return Image.open(BytesIO(pix.tobytes("png"))).convert("RGB")
        except Exception as e:
            raise CollaboratorFailure(f"Could not render page {index + 1}: {e}", context={"page": index + 1}) from e

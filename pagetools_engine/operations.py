"""User-triggered operations.

Each public coroutine is a job body: it receives the JobContext from the
controller, reads its inputs, runs the page/geometry logic, and saves outputs
through the sink. Collaborator calls run in worker threads so the event loop
stays free between them.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence

from . import reassembly
from .codec import COMPRESSED, PLAIN, EncodeOptions, PdfCodec
from .config import EngineConfig
from .controller import JobContext, JobController
from .errors import CollaboratorFailure, InsufficientInput, InvalidSpec
from .imaging import draw_watermark, encode_image, open_image, upright_page
from .job import Job
from .media import validate_document_or_image, validate_image, validate_pdf
from .ocr import create_session
from .overlay import OverlaySpec, Placement, parse_opacity, place_overlay
from .page_ranges import parse_page_number, parse_page_order, parse_page_ranges
from .units import mm_to_points, raster_filename
from .utils import file_stem, timestamp_ms
from .writer import DirectorySink, ZipPacker

LABELS = {
    "merge": "Merge",
    "split": "Split",
    "delete": "Deletion",
    "reorder": "Reorder",
    "rotate": "Rotation",
    "compress": "Compression",
    "img2pdf": "Conversion",
    "pdf2img": "Conversion",
    "watermark": "Watermark",
    "extract-text": "Extraction",
}


@dataclass(frozen=True)
class ExtractedText:
    text: str
    path: Path | None


class PageTools:
    def __init__(
        self,
        cfg: EngineConfig,
        sink: DirectorySink,
        codec: PdfCodec | None = None,
        ocr_factory: Callable[..., Any] = create_session,
    ):
        self.cfg = cfg
        self.sink = sink
        self.codec = codec or PdfCodec()
        self.ocr_factory = ocr_factory
        self._bodies: dict[str, Callable[..., Any]] = {
            "merge": self.merge,
            "split": self.split,
            "delete": self.delete_pages,
            "reorder": self.reorder_pages,
            "rotate": self.rotate_pages,
            "compress": self.compress,
            "img2pdf": self.image_to_pdf,
            "pdf2img": self.pdf_to_images,
            "watermark": self.watermark,
            "extract-text": self.extract_text,
        }

    async def run(self, controller: JobController, operation: str, *args: Any, **kwargs: Any) -> Job | None:
        body = self._bodies[operation]
        return await controller.trigger(operation, lambda ctx: body(ctx, *args, **kwargs), label=LABELS[operation])

    # ---- collaborator calls -------------------------------------------------

    async def _read(self, path: str | Path) -> bytes:
        p = Path(path)
        try:
            return await asyncio.to_thread(p.read_bytes)
        except OSError as e:
            raise CollaboratorFailure(f"Could not read {p.name}: {e}", context={"file": str(p)}) from e

    async def _open_pdf(self, ctx: JobContext, path: str | Path) -> Any:
        name = Path(path).name
        data = await self._read(path)
        validate_pdf(name, data, self.cfg)
        doc = await asyncio.to_thread(self.codec.decode, data, name)
        return ctx.track(doc)

    async def _save_pdf(self, doc: Any, filename: str, options: EncodeOptions = PLAIN) -> Path:
        data = await asyncio.to_thread(self.codec.encode, doc, options)
        return await asyncio.to_thread(self.sink.save, data, filename)

    def _stamp_pages(self, doc: Any, spec: OverlaySpec) -> None:
        for i in range(self.codec.page_count(doc)):
            width, height = self.codec.page_size(doc, i)
            self.codec.draw_text(doc, i, place_overlay(width, height, spec))

    # ---- page operations ----------------------------------------------------

    async def merge(self, ctx: JobContext, inputs: Sequence[str | Path]) -> list[Path]:
        if len(inputs) < 2:
            raise InsufficientInput("Please select at least 2 PDF files", context={"files": len(inputs)})
        docs = [await self._open_pdf(ctx, p) for p in inputs]
        merged = ctx.track(await asyncio.to_thread(reassembly.merge, self.codec, docs))
        path = await self._save_pdf(merged, f"merged_{timestamp_ms()}.pdf")
        ctx.notifier.success("PDFs merged successfully!")
        return [path]

    async def split(self, ctx: JobContext, input_path: str | Path, at: str | int) -> list[Path]:
        boundary = at if isinstance(at, int) else parse_page_number(at)
        doc = await self._open_pdf(ctx, input_path)
        first, second = await asyncio.to_thread(reassembly.split, self.codec, doc, boundary)
        ctx.track(first)
        ctx.track(second)
        stem = file_stem(str(input_path))
        paths = [
            await self._save_pdf(first, f"{stem}_part1.pdf"),
            await self._save_pdf(second, f"{stem}_part2.pdf"),
        ]
        ctx.notifier.success("PDF split successfully!")
        return paths

    async def delete_pages(self, ctx: JobContext, input_path: str | Path, pages: str) -> list[Path] | None:
        if not pages or not pages.strip():
            raise InvalidSpec("Please enter pages to delete", context={"spec": pages})
        doc = await self._open_pdf(ctx, input_path)
        indices = parse_page_ranges(
            pages, self.codec.page_count(doc), clamp=self.cfg.clamp_ranges, notifier=ctx.notifier
        )
        if not indices:
            ctx.notifier.info("No pages to delete")
            return None
        result = ctx.track(await asyncio.to_thread(reassembly.delete_pages, self.codec, doc, indices))
        path = await self._save_pdf(result, f"modified_{Path(input_path).name}")
        ctx.notifier.success("Pages deleted successfully!")
        return [path]

    async def reorder_pages(self, ctx: JobContext, input_path: str | Path, order: str) -> list[Path] | None:
        if not order or not order.strip():
            raise InvalidSpec("Please enter new page order", context={"spec": order})
        doc = await self._open_pdf(ctx, input_path)
        indices = parse_page_order(
            order, self.codec.page_count(doc), clamp=self.cfg.clamp_ranges, notifier=ctx.notifier
        )
        if not indices:
            ctx.notifier.info("No page order to apply")
            return None
        result = ctx.track(await asyncio.to_thread(reassembly.reorder_pages, self.codec, doc, indices))
        path = await self._save_pdf(result, f"reordered_{Path(input_path).name}")
        ctx.notifier.success("Pages reordered successfully!")
        return [path]

    async def rotate_pages(
        self, ctx: JobContext, input_path: str | Path, degrees: int, pages: str | None = None
    ) -> list[Path] | None:
        doc = await self._open_pdf(ctx, input_path)
        total = self.codec.page_count(doc)
        if pages is None or not pages.strip():
            indices = list(range(total))
        else:
            indices = parse_page_ranges(pages, total, clamp=self.cfg.clamp_ranges, notifier=ctx.notifier)
        if not indices:
            ctx.notifier.info("No pages to rotate")
            return None
        result = ctx.track(await asyncio.to_thread(reassembly.rotate_pages, self.codec, doc, indices, degrees))
        path = await self._save_pdf(result, f"rotated_{Path(input_path).name}")
        ctx.notifier.success("Pages rotated successfully!")
        return [path]

    async def compress(self, ctx: JobContext, input_path: str | Path) -> list[Path]:
        doc = await self._open_pdf(ctx, input_path)
        path = await self._save_pdf(doc, f"{file_stem(str(input_path))}_compressed.pdf", COMPRESSED)
        ctx.notifier.success(f"PDF compressed: {Path(input_path).stat().st_size} -> {path.stat().st_size} bytes")
        return [path]

    # ---- conversions --------------------------------------------------------

    async def image_to_pdf(self, ctx: JobContext, inputs: Sequence[str | Path]) -> list[Path]:
        if not inputs:
            raise InsufficientInput("Please select an image", context={"files": 0})
        doc = ctx.track(self.codec.new_document())
        for p in inputs:
            data = await self._read(p)
            validate_image(Path(p).name, data, self.cfg)
            img = ctx.track(open_image(data))
            upright, layout = upright_page(img)
            page_bytes = await asyncio.to_thread(encode_image, upright, "jpeg")
            await asyncio.to_thread(
                self.codec.insert_image_page,
                doc,
                page_bytes,
                mm_to_points(layout.width_mm),
                mm_to_points(layout.height_mm),
            )
        path = await self._save_pdf(doc, f"converted_{timestamp_ms()}.pdf")
        ctx.notifier.success("Image converted to PDF!")
        return [path]

    async def pdf_to_images(self, ctx: JobContext, input_path: str | Path, fmt: str | None = None) -> list[Path]:
        fmt = (fmt or self.cfg.raster.get("format", "png")).lower()
        doc = await self._open_pdf(ctx, input_path)
        total = self.codec.page_count(doc)
        ts = timestamp_ms()

        rendered: list[tuple[str, bytes]] = []
        for i in range(total):
            img = await asyncio.to_thread(self.codec.render, doc, i)
            data = await asyncio.to_thread(encode_image, img, fmt)
            img.close()
            rendered.append((raster_filename(i + 1, fmt, ts), data))
            ctx.progress((i + 1) / total)

        if len(rendered) == 1:
            name, data = rendered[0]
            paths = [await asyncio.to_thread(self.sink.save, data, name)]
        else:
            packer = ctx.track(ZipPacker())
            for name, data in rendered:
                packer.add_entry(name, data)
            archive = await asyncio.to_thread(packer.finalize)
            paths = [await asyncio.to_thread(self.sink.save, archive, f"pages_{ts}.zip")]
        ctx.notifier.success(f"Converted {total} page(s) to {fmt.upper()}!")
        return paths

    async def watermark(
        self,
        ctx: JobContext,
        input_path: str | Path,
        text: str,
        opacity: Any = None,
        placement: str | Placement | None = None,
    ) -> list[Path]:
        text = (text or "").strip()
        if not text:
            raise InvalidSpec("Please enter watermark text", context={"text": text})
        overlay_cfg = self.cfg.overlay
        spec = OverlaySpec(
            text=text,
            opacity=parse_opacity(opacity, default=float(overlay_cfg.get("default_opacity", 0.5))),
            font_size=float(overlay_cfg.get("font_size", 48)),
            placement=Placement.parse(placement or overlay_cfg.get("placement", "center")),
        )

        name = Path(input_path).name
        data = await self._read(input_path)
        kind = validate_document_or_image(name, data, self.cfg)
        if kind == "pdf":
            doc = ctx.track(await asyncio.to_thread(self.codec.decode, data, name))
            await asyncio.to_thread(self._stamp_pages, doc, spec)
            path = await self._save_pdf(doc, f"watermarked_{name}")
        else:
            img = ctx.track(open_image(data))
            fmt = img.format or "png"
            marked = await asyncio.to_thread(draw_watermark, img, place_overlay(img.width, img.height, spec))
            out = await asyncio.to_thread(encode_image, marked, fmt)
            path = await asyncio.to_thread(self.sink.save, out, f"watermarked_{name}")
        ctx.notifier.success("Watermark applied successfully!")
        return [path]

    async def extract_text(
        self, ctx: JobContext, input_path: str | Path, lang: str | None = None, save: bool = True
    ) -> ExtractedText:
        name = Path(input_path).name
        data = await self._read(input_path)
        kind = validate_document_or_image(name, data, self.cfg)
        ctx.notifier.info("Processing...")

        if kind == "pdf":
            doc = ctx.track(await asyncio.to_thread(self.codec.decode, data, name))
            text = await asyncio.to_thread(self.codec.extract_text, doc)
        else:
            loop = asyncio.get_running_loop()
            ocr_cfg = self.cfg.ocr
            session = ctx.open_ocr_session(
                lambda: self.ocr_factory(
                    lang or ocr_cfg.get("lang", "en"),
                    ocr_cfg.get("engine", "auto"),
                    preprocess=bool(ocr_cfg.get("preprocess", True)),
                    on_progress=lambda f: loop.call_soon_threadsafe(ctx.progress, f),
                )
            )
            text = await asyncio.to_thread(session.recognize, data)

        path = None
        if save:
            path = await asyncio.to_thread(self.sink.save, text.encode("utf-8"), f"{file_stem(name)}_text.txt")
        ctx.notifier.success("Text extraction complete!")
        return ExtractedText(text=text, path=path)

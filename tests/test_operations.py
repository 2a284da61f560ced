"""End-to-end operations on real files.

Tests cover:
1. merge / split / delete / reorder / rotate / compress writing PDFs
2. image -> PDF page sizing, including EXIF rotation
3. PDF -> images (single file vs zip)
4. Watermarks on PDFs and images
5. Text extraction from PDFs and through an OCR session
6. Input validation errors surfacing as failed jobs
"""
from __future__ import annotations

import asyncio
import json
import re
import zipfile
from pathlib import Path

import fitz
import numpy as np
import pytest
from PIL import Image

from pagetools_engine.codec import PdfCodec
from pagetools_engine.config import default_config, load_config
from pagetools_engine.controller import JobController
from pagetools_engine.errors import (
    FileTooLarge,
    InsufficientInput,
    InvalidSpec,
    OutOfRange,
    UnsupportedMediaType,
)
from pagetools_engine.job import JobStatus
from pagetools_engine.notifier import Notifier
from pagetools_engine.ocr import create_session
from pagetools_engine.operations import ExtractedText, PageTools
from pagetools_engine.units import mm_to_points, px_to_mm
from pagetools_engine.writer import DirectorySink


class FakeReader:
    def readtext(self, arr):
        return [
            ([[60, 0], [110, 0], [110, 10], [60, 10]], "world", 0.8),
            ([[0, 0], [50, 0], [50, 10], [0, 10]], "Hello", 0.9),
            ([[0, 30], [40, 30], [40, 40], [0, 40]], "again", 0.7),
        ]


def write_pdf(path: Path, widths: list[int], text: str | None = None) -> Path:
    doc = fitz.open()
    for w in widths:
        page = doc.new_page(width=w, height=500)
        if text:
            page.insert_text((20, 50), text)
    doc.save(str(path))
    doc.close()
    return path


def write_image(path: Path, size: tuple[int, int], fmt: str = "PNG", orientation: int | None = None) -> Path:
    img = Image.new("RGB", size, (255, 255, 255))
    if orientation is not None:
        exif = Image.Exif()
        exif[0x0112] = orientation
        img.save(path, format=fmt, exif=exif)
    else:
        img.save(path, format=fmt)
    return path


def widths(path: Path) -> list[int]:
    with fitz.open(str(path)) as doc:
        return [int(round(page.rect.width)) for page in doc]


def ink_halves(img: Image.Image) -> tuple[float, float]:
    """Mean row of the ink left and right of its horizontal midpoint."""
    gray = np.asarray(img.convert("L"))
    ys, xs = np.nonzero(gray < 250)
    mid = (xs.min() + xs.max()) / 2
    return float(ys[xs < mid].mean()), float(ys[xs >= mid].mean())


def fill_opacities(path: Path) -> list[float]:
    with fitz.open(str(path)) as doc:
        objects = [doc.xref_object(x) for x in range(1, doc.xref_length())]
    return [float(v) for obj in objects for v in re.findall(r"/ca\s*([0-9.]+)", obj)]


@pytest.fixture
def out_dir(tmp_path) -> Path:
    return tmp_path / "out"


@pytest.fixture
def sessions() -> list:
    return []


@pytest.fixture
def tools(out_dir, sessions) -> PageTools:
    def factory(lang, engine, **kwargs):
        session = create_session(lang, engine, reader=FakeReader(), **kwargs)
        sessions.append(session)
        return session

    return PageTools(default_config(), DirectorySink(out_dir), ocr_factory=factory)


@pytest.fixture
def controller() -> JobController:
    return JobController(notifier=Notifier(echo=False))


def run(tools: PageTools, controller: JobController, operation: str, *args, **kwargs):
    return asyncio.run(tools.run(controller, operation, *args, **kwargs))


# ═══════════════════════════════════════════════════════════════════════════════
# PAGE OPERATIONS
# ═══════════════════════════════════════════════════════════════════════════════

class TestPageOperations:
    def test_merge(self, tmp_path, tools, controller):
        a = write_pdf(tmp_path / "a.pdf", [100, 110])
        b = write_pdf(tmp_path / "b.pdf", [200])
        job = run(tools, controller, "merge", [a, b])
        assert job.status is JobStatus.SUCCEEDED
        (path,) = job.result
        assert path.name.startswith("merged_") and path.suffix == ".pdf"
        assert widths(path) == [100, 110, 200]
        assert controller.notifier.last("success").message == "PDFs merged successfully!"

    def test_merge_needs_two(self, tmp_path, tools, controller):
        a = write_pdf(tmp_path / "a.pdf", [100])
        job = run(tools, controller, "merge", [a])
        assert job.status is JobStatus.FAILED
        assert isinstance(job.error, InsufficientInput)
        assert controller.notifier.last("error").message == "Merge Error: Please select at least 2 PDF files"

    def test_split(self, tmp_path, tools, controller):
        src = write_pdf(tmp_path / "report.pdf", [100, 110, 120, 130, 140])
        job = run(tools, controller, "split", src, "2")
        first, second = job.result
        assert (first.name, second.name) == ("report_part1.pdf", "report_part2.pdf")
        assert widths(first) == [100, 110]
        assert widths(second) == [120, 130, 140]

    @pytest.mark.parametrize("at,error", [("0", OutOfRange), ("5", OutOfRange), ("x", InvalidSpec)])
    def test_split_invalid(self, tmp_path, tools, controller, at, error):
        src = write_pdf(tmp_path / "report.pdf", [100, 110, 120, 130, 140])
        job = run(tools, controller, "split", src, at)
        assert isinstance(job.error, error)

    def test_delete(self, tmp_path, tools, controller):
        src = write_pdf(tmp_path / "doc.pdf", [100, 110, 120, 130, 140])
        job = run(tools, controller, "delete", src, "2,4")
        (path,) = job.result
        assert path.name == "modified_doc.pdf"
        assert widths(path) == [100, 120, 140]

    def test_delete_blank(self, tmp_path, tools, controller):
        src = write_pdf(tmp_path / "doc.pdf", [100, 110])
        job = run(tools, controller, "delete", src, "  ")
        assert isinstance(job.error, InvalidSpec)
        assert controller.notifier.last("error").message == "Deletion Error: Please enter pages to delete"

    def test_delete_unparsable_is_soft(self, tmp_path, tools, controller, out_dir):
        src = write_pdf(tmp_path / "doc.pdf", [100, 110])
        job = run(tools, controller, "delete", src, "abc")
        assert job.status is JobStatus.SUCCEEDED
        assert job.result is None
        assert controller.notifier.last("error").message.startswith("Invalid page range:")
        assert controller.notifier.last("info").message == "No pages to delete"
        assert not list(out_dir.glob("*.pdf"))

    def test_reorder(self, tmp_path, tools, controller):
        src = write_pdf(tmp_path / "doc.pdf", [100, 110, 120])
        job = run(tools, controller, "reorder", src, "3,1")
        (path,) = job.result
        assert path.name == "reordered_doc.pdf"
        assert widths(path) == [120, 100]

    def test_rotate(self, tmp_path, tools, controller):
        src = write_pdf(tmp_path / "doc.pdf", [100, 110, 120])
        job = run(tools, controller, "rotate", src, 90, pages="2")
        (path,) = job.result
        with fitz.open(str(path)) as doc:
            assert [page.rotation for page in doc] == [0, 90, 0]

    def test_rotate_all_pages(self, tmp_path, tools, controller):
        src = write_pdf(tmp_path / "doc.pdf", [100, 110])
        job = run(tools, controller, "rotate", src, 180)
        with fitz.open(str(job.result[0])) as doc:
            assert [page.rotation for page in doc] == [180, 180]

    def test_compress(self, tmp_path, tools, controller):
        src = write_pdf(tmp_path / "doc.pdf", [100, 110], text="compress me")
        job = run(tools, controller, "compress", src)
        (path,) = job.result
        assert path.name == "doc_compressed.pdf"
        assert widths(path) == [100, 110]

    def test_rejects_non_pdf(self, tmp_path, tools, controller):
        img = write_image(tmp_path / "a.png", (10, 10))
        pdf = write_pdf(tmp_path / "b.pdf", [100])
        job = run(tools, controller, "merge", [img, pdf])
        assert isinstance(job.error, UnsupportedMediaType)

    def test_file_too_large(self, tmp_path, out_dir, controller):
        cfg_path = tmp_path / "cfg.json"
        cfg_path.write_text(json.dumps({"limits": {"max_file_size_mb": 0.0001}}), encoding="utf-8")
        tools = PageTools(load_config(cfg_path), DirectorySink(out_dir))
        src = write_pdf(tmp_path / "doc.pdf", [100, 110], text="x" * 50)
        job = run(tools, controller, "compress", src)
        assert isinstance(job.error, FileTooLarge)


# ═══════════════════════════════════════════════════════════════════════════════
# CONVERSIONS
# ═══════════════════════════════════════════════════════════════════════════════

class TestImageToPdf:
    def test_page_matches_image_size(self, tmp_path, tools, controller):
        img = write_image(tmp_path / "a.png", (100, 200))
        job = run(tools, controller, "img2pdf", [img])
        (path,) = job.result
        assert path.name.startswith("converted_")
        with fitz.open(str(path)) as doc:
            rect = doc[0].rect
        assert rect.width == pytest.approx(mm_to_points(px_to_mm(100)), abs=0.01)
        assert rect.height == pytest.approx(mm_to_points(px_to_mm(200)), abs=0.01)

    def test_exif_rotation_swaps_page(self, tmp_path, tools, controller):
        img = write_image(tmp_path / "photo.jpg", (100, 200), fmt="JPEG", orientation=6)
        job = run(tools, controller, "img2pdf", [img])
        with fitz.open(str(job.result[0])) as doc:
            rect = doc[0].rect
        assert rect.width > rect.height
        assert rect.width == pytest.approx(mm_to_points(200 * 0.264583), abs=0.01)

    def test_one_page_per_image(self, tmp_path, tools, controller):
        imgs = [write_image(tmp_path / f"{i}.png", (50 + i, 60)) for i in range(3)]
        job = run(tools, controller, "img2pdf", imgs)
        with fitz.open(str(job.result[0])) as doc:
            assert doc.page_count == 3

    def test_rejects_pdf(self, tmp_path, tools, controller):
        pdf = write_pdf(tmp_path / "b.pdf", [100])
        job = run(tools, controller, "img2pdf", [pdf])
        assert isinstance(job.error, UnsupportedMediaType)
        assert controller.notifier.last("error").message.startswith("Conversion Error:")


class TestPdfToImages:
    def test_single_page_saved_directly(self, tmp_path, tools, controller):
        src = write_pdf(tmp_path / "doc.pdf", [100])
        job = run(tools, controller, "pdf2img", src)
        (path,) = job.result
        assert path.name.startswith("page_1_") and path.suffix == ".png"
        with Image.open(path) as img:
            assert img.size == (200, 1000)

    def test_multi_page_zip(self, tmp_path, tools, controller):
        src = write_pdf(tmp_path / "doc.pdf", [100, 110, 120])
        job = run(tools, controller, "pdf2img", src, fmt="jpeg")
        (path,) = job.result
        assert path.suffix == ".zip"
        with zipfile.ZipFile(path) as zf:
            names = zf.namelist()
        assert len(names) == 3
        assert [n.split("_")[1] for n in names] == ["1", "2", "3"]
        assert all(n.endswith(".jpg") for n in names)
        progress = [n.message for n in controller.notifier.messages if n.level == "progress"]
        assert progress[-1] == "Processing: 100%"


# ═══════════════════════════════════════════════════════════════════════════════
# WATERMARK
# ═══════════════════════════════════════════════════════════════════════════════

class TestWatermark:
    def test_pdf(self, tmp_path, tools, controller):
        src = write_pdf(tmp_path / "doc.pdf", [600, 600])
        job = run(tools, controller, "watermark", src, "DRAFT", opacity="0.3")
        (path,) = job.result
        assert path.name == "watermarked_doc.pdf"
        with fitz.open(str(path)) as doc:
            assert doc.page_count == 2
            assert all("DRAFT" in page.get_text() for page in doc)
        assert controller.notifier.last("success").message == "Watermark applied successfully!"

    def test_pdf_text_falls_to_the_right(self, tmp_path, tools, controller):
        src = write_pdf(tmp_path / "doc.pdf", [600])
        job = run(tools, controller, "watermark", src, "WWWWW", opacity="1")
        with fitz.open(str(job.result[0])) as doc:
            rendered = PdfCodec().render(doc, 0, scale=1.0)
        left, right = ink_halves(rendered)
        assert right > left + 20

    def test_image_text_falls_to_the_right(self, tmp_path, tools, controller):
        src = write_image(tmp_path / "pic.png", (600, 600))
        job = run(tools, controller, "watermark", src, "WWWWW", opacity="1")
        with Image.open(job.result[0]) as marked:
            left, right = ink_halves(marked)
        assert right > left

    def test_pdf_opacity_reaches_page(self, tmp_path, tools, controller):
        src = write_pdf(tmp_path / "doc.pdf", [600])
        job = run(tools, controller, "watermark", src, "DRAFT", opacity="0.3")
        assert fill_opacities(job.result[0]) == [pytest.approx(0.3)]

    @pytest.mark.parametrize("placement", ["center", "top-left-margin"])
    def test_image(self, tmp_path, tools, controller, placement):
        src = write_image(tmp_path / "pic.png", (400, 400))
        job = run(tools, controller, "watermark", src, "DRAFT", placement=placement)
        (path,) = job.result
        assert path.name == "watermarked_pic.png"
        with Image.open(path) as marked, Image.open(src) as original:
            assert marked.size == original.size
            assert marked.format == "PNG"
            assert marked.convert("RGB").tobytes() != original.convert("RGB").tobytes()

    def test_jpeg_stays_jpeg(self, tmp_path, tools, controller):
        src = write_image(tmp_path / "pic.jpg", (300, 200), fmt="JPEG")
        job = run(tools, controller, "watermark", src, "DRAFT")
        with Image.open(job.result[0]) as marked:
            assert marked.format == "JPEG"

    def test_blank_text(self, tmp_path, tools, controller):
        src = write_pdf(tmp_path / "doc.pdf", [600])
        job = run(tools, controller, "watermark", src, "   ")
        assert isinstance(job.error, InvalidSpec)

    def test_unknown_type(self, tmp_path, tools, controller):
        src = tmp_path / "notes.txt"
        src.write_text("plain text", encoding="utf-8")
        job = run(tools, controller, "watermark", src, "DRAFT")
        assert isinstance(job.error, UnsupportedMediaType)


# ═══════════════════════════════════════════════════════════════════════════════
# TEXT EXTRACTION
# ═══════════════════════════════════════════════════════════════════════════════

class TestExtractText:
    def test_pdf_text(self, tmp_path, tools, controller):
        src = write_pdf(tmp_path / "doc.pdf", [300, 300], text="Hello world")
        job = run(tools, controller, "extract-text", src)
        result = job.result
        assert isinstance(result, ExtractedText)
        assert result.text.count("Hello world") == 2
        assert result.path.name == "doc_text.txt"
        assert result.path.read_text(encoding="utf-8") == result.text

    def test_image_ocr(self, tmp_path, tools, controller, sessions):
        src = write_image(tmp_path / "scan.png", (120, 50))
        job = run(tools, controller, "extract-text", src, save=False)
        assert job.result.text == "Hello world\nagain"
        assert job.result.path is None
        (session,) = sessions
        assert session.terminated
        assert controller.ocr_session is None
        progress = [n.message for n in controller.notifier.messages if n.level == "progress"]
        assert progress == ["Processing: 0%", "Processing: 50%", "Processing: 100%"]
        assert controller.notifier.last("success").message == "Text extraction complete!"

    def test_session_terminated_on_failure(self, tmp_path, out_dir, controller):
        class BrokenReader:
            def readtext(self, arr):
                raise RuntimeError("model crashed")

        sessions = []

        def factory(lang, engine, **kwargs):
            session = create_session(lang, engine, reader=BrokenReader(), **kwargs)
            sessions.append(session)
            return session

        tools = PageTools(default_config(), DirectorySink(out_dir), ocr_factory=factory)
        src = write_image(tmp_path / "scan.png", (120, 50))
        job = run(tools, controller, "extract-text", src)
        assert job.status is JobStatus.FAILED
        assert controller.notifier.last("error").message.startswith("Extraction Error: Text recognition failed")
        assert sessions[0].terminated

from __future__ import annotations

import argparse
import asyncio
import atexit
from pathlib import Path
from typing import Any

from .config import default_config, load_config
from .controller import JobController
from .job import Job, JobStatus, create_job_paths
from .notifier import Notifier
from .operations import ExtractedText, PageTools
from .overlay import Placement
from .writer import DirectorySink


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="pagetools_engine")
    p.add_argument("--config", default=None, help="Config JSON (default: built-in defaults)")
    p.add_argument("--out-dir", default=None, help="Output directory (default: output.dir from config)")
    sub = p.add_subparsers(dest="command", required=True)

    merge = sub.add_parser("merge", help="Merge PDFs in the given order")
    merge.add_argument("inputs", nargs="+", help="PDF files (at least 2)")

    split = sub.add_parser("split", help="Split a PDF into two parts")
    split.add_argument("input")
    split.add_argument("--at", required=True, help="Last page of the first part (1-based)")

    delete = sub.add_parser("delete", help="Delete pages, e.g. --pages 1,3-5")
    delete.add_argument("input")
    delete.add_argument("--pages", required=True)

    reorder = sub.add_parser("reorder", help="Reorder pages, e.g. --order 3,1,2 (unlisted pages are dropped)")
    reorder.add_argument("input")
    reorder.add_argument("--order", required=True)

    rotate = sub.add_parser("rotate", help="Rotate pages by a multiple of 90 degrees")
    rotate.add_argument("input")
    rotate.add_argument("--degrees", type=int, required=True)
    rotate.add_argument("--pages", default=None, help="Pages to rotate (default: all)")

    compress = sub.add_parser("compress", help="Re-encode a PDF with compression")
    compress.add_argument("input")

    img2pdf = sub.add_parser("img2pdf", help="Convert images to a PDF (one page per image)")
    img2pdf.add_argument("inputs", nargs="+")

    pdf2img = sub.add_parser("pdf2img", help="Render PDF pages to images")
    pdf2img.add_argument("input")
    pdf2img.add_argument("--format", default=None, choices=["png", "jpeg", "webp"])

    wm = sub.add_parser("watermark", help="Add a text watermark to a PDF or image")
    wm.add_argument("input")
    wm.add_argument("--text", required=True)
    wm.add_argument("--opacity", default=None, help="0..1 (default from config)")
    wm.add_argument("--placement", default=None, choices=[pl.value for pl in Placement])

    ext = sub.add_parser("extract-text", help="Extract text from a PDF or run OCR on an image")
    ext.add_argument("input")
    ext.add_argument("--lang", default=None, help="OCR language code(s), comma separated")
    ext.add_argument("--no-save", action="store_true", help="Print only, do not write <name>_text.txt")

    return p


def _job_arguments(args: argparse.Namespace) -> tuple[str, tuple[Any, ...], dict[str, Any]]:
    cmd = args.command
    if cmd == "merge":
        return "merge", (args.inputs,), {}
    if cmd == "split":
        return "split", (args.input, args.at), {}
    if cmd == "delete":
        return "delete", (args.input, args.pages), {}
    if cmd == "reorder":
        return "reorder", (args.input, args.order), {}
    if cmd == "rotate":
        return "rotate", (args.input, args.degrees), {"pages": args.pages}
    if cmd == "compress":
        return "compress", (args.input,), {}
    if cmd == "img2pdf":
        return "img2pdf", (args.inputs,), {}
    if cmd == "pdf2img":
        return "pdf2img", (args.input,), {"fmt": args.format}
    if cmd == "watermark":
        return "watermark", (args.input, args.text), {"opacity": args.opacity, "placement": args.placement}
    if cmd == "extract-text":
        return "extract-text", (args.input,), {"lang": args.lang, "save": not args.no_save}
    raise SystemExit(2)


async def _run_job(controller: JobController, tools: PageTools, operation: str, *args: Any, **kwargs: Any) -> Job | None:
    controller.start_maintenance()
    try:
        return await tools.run(controller, operation, *args, **kwargs)
    finally:
        controller.stop_maintenance()


def _report(job: Job | None) -> int:
    if job is None or job.status is not JobStatus.SUCCEEDED:
        return 1
    result = job.result
    if isinstance(result, ExtractedText):
        print(result.text)
        if result.path is not None:
            print(str(result.path))
    elif result:
        for path in result:
            print(str(path))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    cfg = load_config(args.config) if args.config else default_config()
    out_dir = Path(args.out_dir or cfg.output.get("dir", "./output"))
    paths = create_job_paths(out_dir)

    controller = JobController(notifier=Notifier(paths=paths))
    atexit.register(controller.teardown)
    tools = PageTools(cfg, DirectorySink(out_dir))

    operation, job_args, job_kwargs = _job_arguments(args)
    try:
        job = asyncio.run(_run_job(controller, tools, operation, *job_args, **job_kwargs))
    finally:
        controller.teardown()
        atexit.unregister(controller.teardown)
    return _report(job)


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from typing import Any, Callable

import cv2
import numpy as np
from PIL import Image, ImageEnhance

from .errors import CollaboratorFailure

ENGINES = ("auto", "easyocr", "paddleocr")


def _poly_to_xyxy(poly: list[list[float]] | list[tuple[float, float]]) -> tuple[int, int, int, int]:
    xs = [p[0] for p in poly]
    ys = [p[1] for p in poly]
    x0, y0, x1, y1 = min(xs), min(ys), max(xs), max(ys)
    return int(x0), int(y0), int(x1), int(y1)


def tokens_to_text(tokens: list[dict[str, Any]]) -> str:
    """Join OCR tokens into reading-order lines (top to bottom, left to right)."""
    ordered = sorted(tokens, key=lambda t: (t["bbox_xyxy"][1], t["bbox_xyxy"][0]))
    lines: list[list[dict[str, Any]]] = []
    for tok in ordered:
        x0, y0, x1, y1 = tok["bbox_xyxy"]
        mid = (y0 + y1) / 2
        if lines:
            _, ly0, _, ly1 = lines[-1][0]["bbox_xyxy"]
            if ly0 <= mid <= ly1:
                lines[-1].append(tok)
                continue
        lines.append([tok])
    return "\n".join(
        " ".join(str(t["text"]) for t in sorted(line, key=lambda t: t["bbox_xyxy"][0])) for line in lines
    )


@dataclass
class OCRSession:
    """One text-recognition session; terminate() exactly once when done."""

    lang: str = "en"
    engine: str = "auto"  # auto, easyocr, paddleocr
    preprocess: bool = True
    on_progress: Callable[[float], None] | None = None
    _reader: Any | None = None
    _terminated: bool = False

    @property
    def terminated(self) -> bool:
        return self._terminated

    def _report(self, fraction: float) -> None:
        if self.on_progress is not None:
            self.on_progress(fraction)

    def _preprocess_image(self, image: Image.Image) -> Image.Image:
        """Binarize, denoise, sharpen and boost contrast for a second attempt."""
        img_array = np.array(image.convert("RGB"))
        gray = cv2.cvtColor(img_array, cv2.COLOR_RGB2GRAY)

        binary = cv2.adaptiveThreshold(
            gray, 255,
            cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
            cv2.THRESH_BINARY,
            11, 2
        )
        denoised = cv2.fastNlMeansDenoising(binary, None, 10, 7, 21)
        kernel = np.array([[-1, -1, -1], [-1, 9, -1], [-1, -1, -1]])
        sharpened = cv2.filter2D(denoised, -1, kernel)

        processed = Image.fromarray(sharpened)
        processed = ImageEnhance.Contrast(processed).enhance(1.5)
        return processed.convert("RGB")

    def _load_reader(self) -> Any:
        if self._reader is not None:
            return self._reader
        if self.engine in ("auto", "easyocr"):
            try:
                import easyocr

                self._reader = easyocr.Reader(self.lang.split(","), gpu=False)
                self.engine = "easyocr"
                return self._reader
            except Exception:
                if self.engine == "easyocr":
                    raise
        from paddleocr import PaddleOCR

        self._reader = PaddleOCR(use_angle_cls=True, lang=self.lang, show_log=False)
        self.engine = "paddleocr"
        return self._reader

    def _extract(self, image: Image.Image) -> list[dict[str, Any]]:
        reader = self._load_reader()
        arr = np.array(image)
        tokens: list[dict[str, Any]] = []
        if self.engine == "paddleocr":
            try:
                result = reader.ocr(arr, cls=True)
            except TypeError:
                result = reader.ocr(arr)
            for line in result or []:
                for item in line or []:
                    poly, (text, score) = item
                    tokens.append({"text": text, "confidence": float(score), "bbox_xyxy": _poly_to_xyxy(poly)})
            return tokens

        for (bbox, text, confidence) in reader.readtext(arr):
            tokens.append({"text": text, "confidence": float(confidence), "bbox_xyxy": _poly_to_xyxy(bbox)})
        return tokens

    def recognize(self, data: bytes) -> str:
        if self._terminated:
            raise CollaboratorFailure("OCR session already terminated")
        self._report(0.0)
        try:
            image = Image.open(BytesIO(data)).convert("RGB")
        except Exception as e:
            raise CollaboratorFailure(f"Could not read image: {e}") from e

        try:
            tokens = self._extract(image)
            self._report(0.5)
            if not tokens and self.preprocess:
                tokens = self._extract(self._preprocess_image(image))
        except CollaboratorFailure:
            raise
        except Exception as e:
            raise CollaboratorFailure(f"Text recognition failed: {e}", context={"engine": self.engine}) from e

        self._report(1.0)
        return tokens_to_text(tokens)

    def terminate(self) -> None:
        self._reader = None
        self._terminated = True


def create_session(
    lang: str = "en",
    engine: str = "auto",
    *,
    preprocess: bool = True,
    on_progress: Callable[[float], None] | None = None,
    reader: Any | None = None,
) -> OCRSession:
    if engine not in ENGINES:
        raise ValueError(f"Unknown OCR engine: {engine}")
    if reader is not None and engine == "auto":
        engine = "easyocr"
    return OCRSession(lang=lang, engine=engine, preprocess=preprocess, on_progress=on_progress, _reader=reader)

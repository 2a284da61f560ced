from __future__ import annotations

from io import BytesIO

from PIL import Image, UnidentifiedImageError

from .config import EngineConfig
from .errors import FileTooLarge, UnsupportedMediaType

PDF_MAGIC = b"%PDF-"


def image_format(data: bytes) -> str | None:
    """Pillow's name for the image format, lower-cased ("jpeg", "png", ...)."""
    try:
        with Image.open(BytesIO(data)) as img:
            return (img.format or "").lower() or None
    except (UnidentifiedImageError, OSError):
        return None


def detect_media_kind(data: bytes) -> str | None:
    if data[:1024].lstrip().startswith(PDF_MAGIC):
        return "pdf"
    if image_format(data) is not None:
        return "image"
    return None


def _check_size(name: str, data: bytes, cfg: EngineConfig) -> None:
    limit = cfg.max_file_size
    if len(data) > limit:
        raise FileTooLarge(
            f"File too large (max {limit // (1024 * 1024)}MB)",
            context={"file": name, "size": len(data), "limit": limit},
        )


def validate_pdf(name: str, data: bytes, cfg: EngineConfig) -> None:
    _check_size(name, data, cfg)
    if detect_media_kind(data) != "pdf":
        raise UnsupportedMediaType(f"Unsupported file type: {name}", context={"file": name, "expected": "pdf"})


def validate_image(name: str, data: bytes, cfg: EngineConfig) -> str:
    """Return the image format after checking it is one of the allowed types."""
    _check_size(name, data, cfg)
    fmt = image_format(data)
    allowed = [str(t).lower() for t in cfg.limits.get("image_types", [])]
    if fmt is None or fmt not in allowed:
        raise UnsupportedMediaType(
            f"Unsupported file type: {fmt or name}",
            context={"file": name, "format": fmt, "allowed": allowed},
        )
    return fmt


def validate_document_or_image(name: str, data: bytes, cfg: EngineConfig) -> str:
    """For operations that take either kind. Returns "pdf" or "image"."""
    _check_size(name, data, cfg)
    kind = detect_media_kind(data)
    if kind == "pdf":
        return kind
    validate_image(name, data, cfg)
    return "image"

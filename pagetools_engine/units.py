"""Pixel / millimetre / point conversions and raster output parameters."""

from __future__ import annotations

from dataclasses import dataclass

# 96 dpi: 25.4 / 96, truncated the way the conversion has always been done.
MM_PER_PX = 0.264583
POINTS_PER_MM = 72 / 25.4

# EXIF orientations that include a 90 degree turn.
SWAP_ORIENTATIONS = frozenset({5, 6, 7, 8})

RASTER_SCALE = 2.0

_EXTENSIONS = {"png": "png", "jpeg": "jpg", "jpg": "jpg", "webp": "webp"}


@dataclass(frozen=True)
class ImagePageLayout:
    width_px: int
    height_px: int
    width_mm: float
    height_mm: float
    orientation: str  # landscape|portrait
    swapped: bool


def px_to_mm(px: float) -> float:
    return px * MM_PER_PX


def mm_to_points(mm: float) -> float:
    return mm * POINTS_PER_MM


def needs_swap(orientation_tag: int | None) -> bool:
    return orientation_tag in SWAP_ORIENTATIONS


def page_orientation(width: float, height: float) -> str:
    return "landscape" if width > height else "portrait"


def image_page_layout(width_px: int, height_px: int, orientation_tag: int | None = None) -> ImagePageLayout:
    """Page size for an image, after undoing a 90 degree EXIF rotation.

    Mirrored tags (2, 3, 4) keep the pixel dimensions as they are.
    """
    swapped = needs_swap(orientation_tag)
    if swapped:
        width_px, height_px = height_px, width_px
    return ImagePageLayout(
        width_px=width_px,
        height_px=height_px,
        width_mm=px_to_mm(width_px),
        height_mm=px_to_mm(height_px),
        orientation=page_orientation(width_px, height_px),
        swapped=swapped,
    )


def raster_size(width: float, height: float, scale: float = RASTER_SCALE) -> tuple[int, int]:
    return int(round(width * scale)), int(round(height * scale))


def raster_extension(fmt: str) -> str:
    try:
        return _EXTENSIONS[fmt.lower()]
    except KeyError:
        raise ValueError(f"Unknown raster format: {fmt}") from None


def raster_filename(page_number: int, fmt: str, timestamp: int) -> str:
    """page_<n>_<timestamp>.<ext>, page_number is 1-based."""
    return f"page_{page_number}_{timestamp}.{raster_extension(fmt)}"

"""Pillow helpers: EXIF orientation, raster watermarking, image encoding."""

from __future__ import annotations

from io import BytesIO

from PIL import Image, ImageDraw, ImageFont, ImageOps

from .errors import CollaboratorFailure
from .overlay import OverlayPlacement
from .units import ImagePageLayout, image_page_layout

ORIENTATION_TAG = 0x0112

_PIL_FORMATS = {"jpg": "JPEG", "jpeg": "JPEG", "png": "PNG", "webp": "WEBP", "bmp": "BMP"}
_NO_ALPHA = {"JPEG", "BMP"}

CANDIDATE_FONTS = ["DejaVuSans-Bold.ttf", "DejaVuSans.ttf", "arialbd.ttf", "arial.ttf"]


def open_image(data: bytes) -> Image.Image:
    try:
        img = Image.open(BytesIO(data))
        img.load()
        return img
    except Exception as e:
        raise CollaboratorFailure(f"Could not read image: {e}") from e


def read_orientation(img: Image.Image) -> int | None:
    try:
        value = img.getexif().get(ORIENTATION_TAG)
    except Exception:
        return None
    return int(value) if value is not None else None


def upright_page(img: Image.Image) -> tuple[Image.Image, ImagePageLayout]:
    """Apply the EXIF orientation and return the image with its page layout."""
    layout = image_page_layout(img.width, img.height, read_orientation(img))
    upright = ImageOps.exif_transpose(img)
    return upright, layout


def pil_format(fmt: str) -> str:
    try:
        return _PIL_FORMATS[fmt.lower()]
    except KeyError:
        raise ValueError(f"Unsupported image format: {fmt}") from None


def encode_image(img: Image.Image, fmt: str, *, quality: int = 95) -> bytes:
    target = pil_format(fmt)
    if target in _NO_ALPHA and img.mode != "RGB":
        img = img.convert("RGB")
    elif img.mode not in ("RGB", "RGBA", "L"):
        img = img.convert("RGBA")
    buf = BytesIO()
    if target == "JPEG":
        img.save(buf, format=target, quality=quality)
    else:
        img.save(buf, format=target)
    return buf.getvalue()


def load_font(size: int) -> ImageFont.ImageFont:
    for name in CANDIDATE_FONTS:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    return ImageFont.load_default()


def draw_watermark(image: Image.Image, placement: OverlayPlacement) -> Image.Image:
    """Return an RGBA copy of image with the overlay text blended in.

    Text is drawn on a padded transparent layer, rotated about its origin and
    composited, so rotation never clips it at the image border.
    """
    base = image.convert("RGBA")
    w, h = base.size
    font = load_font(int(placement.font_size))

    left, top, right, bottom = ImageDraw.Draw(base).textbbox((0, 0), placement.text, font=font)
    pad = int(max(right - left, bottom - top)) + 1

    layer = Image.new("RGBA", (w + 2 * pad, h + 2 * pad), (0, 0, 0, 0))
    ox = placement.x + pad
    oy = placement.y_down(h) + pad
    gray = tuple(int(round(c * 255)) for c in placement.color)
    alpha = int(round(255 * placement.opacity))
    ImageDraw.Draw(layer).text((ox, oy - (bottom - top)), placement.text, font=font, fill=gray + (alpha,))

    # Pillow turns counter-clockwise for positive angles, same as the y-up convention.
    layer = layer.rotate(placement.rotation, resample=Image.BICUBIC, center=(ox, oy))
    layer = layer.crop((pad, pad, pad + w, pad + h))
    return Image.alpha_composite(base, layer)

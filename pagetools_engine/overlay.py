"""Watermark placement shared by PDF pages and raster images.

Geometry is expressed in y-up page units (origin bottom-left, PDF style).
Renderers convert to their own coordinate system.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .utils import clamp

OVERLAY_ROTATION = -45.0
DEFAULT_FONT_SIZE = 48.0
DEFAULT_OPACITY = 0.5
CENTER_OFFSET_X = 100.0
MARGIN = 50.0
OVERLAY_COLOR = (0.8, 0.8, 0.8)


class Placement(str, Enum):
    CENTER = "center"
    TOP_LEFT_MARGIN = "top-left-margin"

    @classmethod
    def parse(cls, value: "str | Placement") -> "Placement":
        if isinstance(value, Placement):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(p.value for p in cls)
            raise ValueError(f"Unknown placement '{value}' (expected one of: {choices})") from None


@dataclass(frozen=True)
class OverlaySpec:
    text: str
    opacity: float = DEFAULT_OPACITY
    font_size: float = DEFAULT_FONT_SIZE
    placement: Placement = Placement.CENTER


@dataclass(frozen=True)
class OverlayPlacement:
    x: float
    y: float
    rotation: float
    opacity: float
    font_size: float
    color: tuple[float, float, float]
    text: str

    def y_down(self, height: float) -> float:
        """Origin y measured from the top edge."""
        return height - self.y


def parse_opacity(value: Any, default: float = DEFAULT_OPACITY) -> float:
    """Opacity from user input: unparsable gives the default, result is in [0, 1]."""
    try:
        opacity = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(opacity):
        return default
    return clamp(opacity, 0.0, 1.0)


def origin_for(width: float, height: float, placement: Placement) -> tuple[float, float]:
    if placement is Placement.CENTER:
        return width / 2 - CENTER_OFFSET_X, height / 2
    return MARGIN, height - MARGIN


def place_overlay(width: float, height: float, spec: OverlaySpec) -> OverlayPlacement:
    x, y = origin_for(width, height, spec.placement)
    return OverlayPlacement(
        x=x,
        y=y,
        rotation=OVERLAY_ROTATION,
        opacity=clamp(spec.opacity, 0.0, 1.0),
        font_size=spec.font_size,
        color=OVERLAY_COLOR,
        text=spec.text,
    )

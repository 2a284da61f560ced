from __future__ import annotations

import copy
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .utils import load_json

DEFAULTS: dict[str, dict[str, Any]] = {
    "limits": {
        "max_file_size_mb": 50,
        "image_types": ["jpg", "jpeg", "png", "webp", "bmp"],
    },
    "ranges": {"clamp": True},
    "overlay": {"placement": "center", "font_size": 48, "default_opacity": 0.5},
    "raster": {"format": "png"},
    "ocr": {"lang": "en", "engine": "auto", "preprocess": True},
    "output": {"dir": "./output"},
}


@dataclass(frozen=True)
class EngineConfig:
    limits: dict[str, Any]
    ranges: dict[str, Any]
    overlay: dict[str, Any]
    raster: dict[str, Any]
    ocr: dict[str, Any]
    output: dict[str, Any]

    @property
    def max_file_size(self) -> int:
        return int(float(self.limits.get("max_file_size_mb", 50)) * 1024 * 1024)

    @property
    def clamp_ranges(self) -> bool:
        return bool(self.ranges.get("clamp", True))


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    merged = copy.deepcopy(DEFAULTS[name])
    merged.update(data.get(name, {}) or {})
    return merged


def default_config() -> EngineConfig:
    return load_config(None)


def load_config(config_path: str | Path | None) -> EngineConfig:
    """Load a JSON config; sections or keys it leaves out take the defaults."""
    data: dict[str, Any] = {}
    if config_path is not None:
        loaded = load_json(config_path)
        if not isinstance(loaded, dict):
            raise ValueError(f"Config must be a JSON object: {config_path}")
        data = loaded
    return EngineConfig(
        limits=_section(data, "limits"),
        ranges=_section(data, "ranges"),
        overlay=_section(data, "overlay"),
        raster=_section(data, "raster"),
        ocr=_section(data, "ocr"),
        output=_section(data, "output"),
    )

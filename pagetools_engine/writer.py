from __future__ import annotations

import zipfile
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path

from .errors import CollaboratorFailure
from .utils import ensure_dir, sanitize_filename


@dataclass
class ZipPacker:
    """Collects named entries in memory and returns the zip archive bytes."""

    _buffer: BytesIO = field(default_factory=BytesIO)
    _names: list[str] = field(default_factory=list)
    _archive: zipfile.ZipFile | None = None
    _finalized: bool = False

    def __post_init__(self) -> None:
        self._archive = zipfile.ZipFile(self._buffer, "w", compression=zipfile.ZIP_DEFLATED)

    @property
    def names(self) -> list[str]:
        return list(self._names)

    def add_entry(self, name: str, data: bytes) -> None:
        if self._finalized:
            raise RuntimeError("archive already finalized")
        arcname = sanitize_filename(name)
        self._archive.writestr(arcname, data)
        self._names.append(arcname)

    def finalize(self) -> bytes:
        if not self._finalized:
            self._archive.close()
            self._finalized = True
        return self._buffer.getvalue()

    def close(self) -> None:
        self.finalize()


@dataclass
class DirectorySink:
    """Writes outputs under one directory with sanitized names."""

    out_dir: Path
    saved: list[Path] = field(default_factory=list)

    def save(self, data: bytes, filename: str) -> Path:
        ensure_dir(self.out_dir)
        path = Path(self.out_dir) / sanitize_filename(filename)
        try:
            path.write_bytes(data)
        except OSError as e:
            raise CollaboratorFailure(f"Could not save {path.name}: {e}", context={"file": str(path)}) from e
        self.saved.append(path)
        return path

from __future__ import annotations

import json
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

MAX_FILENAME_LEN = 100


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def timestamp_ms() -> int:
    """Milliseconds since the epoch, used to make output names unique."""
    return int(time.time() * 1000)


def ensure_dir(path: str | Path) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def sanitize_filename(name: str, max_len: int = MAX_FILENAME_LEN) -> str:
    """Replace anything outside [a-zA-Z0-9-._] with '_' and cap the length."""
    return re.sub(r"[^a-zA-Z0-9\-._]", "_", name)[:max_len]


def file_stem(name: str) -> str:
    """Base filename with directories and the last extension stripped."""
    base = Path(name).name
    stem = Path(base).stem
    return stem or base


def clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def clamp_int(v: int, lo: int, hi: int) -> int:
    return int(max(lo, min(hi, int(v))))


def append_jsonl(path: str | Path, obj: dict[str, Any]) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(obj, ensure_ascii=False) + "\n")


def load_json(path: str | Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)

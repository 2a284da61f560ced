"""Page range / page order parsing.

User text is 1-indexed ("1,3-5,9"); everything returned here is a list of
zero-based page indices, deduplicated by first occurrence.

Two clamping policies are supported:
- clamp=True: numbers outside [1, total_pages] are moved to the nearest page.
- clamp=False: such numbers raise InvalidSpec.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .errors import InvalidSpec
from .utils import clamp_int

if TYPE_CHECKING:
    from .notifier import Notifier


def _check_total(total_pages: int) -> None:
    if total_pages < 1:
        raise InvalidSpec("Document has no pages", context={"total_pages": total_pages})


def _parse_int(token: str) -> int | None:
    try:
        return int(token.strip())
    except ValueError:
        return None


def _to_index(page: int, total_pages: int, *, clamp: bool, token: str) -> int:
    if not clamp and not 1 <= page <= total_pages:
        raise InvalidSpec(
            f"Page {page} is outside 1-{total_pages}",
            context={"token": token, "total_pages": total_pages},
        )
    return clamp_int(page, 1, total_pages) - 1


def _dedupe(indices: list[int]) -> list[int]:
    seen: set[int] = set()
    out: list[int] = []
    for i in indices:
        if i not in seen:
            seen.add(i)
            out.append(i)
    return out


def resolve_ranges(spec: str | None, total_pages: int, *, clamp: bool = True) -> list[int]:
    """Expand "1,3-5,9" into zero-based indices.

    Tokens that are not numbers are dropped. A reversed range ("5-3")
    contributes nothing. Raises InvalidSpec when the text is blank or when no
    token names a page.
    """
    if spec is None or not spec.strip():
        raise InvalidSpec("No pages specified", context={"spec": spec})
    _check_total(total_pages)

    indices: list[int] = []
    for part in spec.split(","):
        token = part.strip()
        if "-" in token:
            bounds = token.split("-")
            start = _parse_int(bounds[0])
            end = _parse_int(bounds[1])
            if start is None or end is None:
                continue
            lo = _to_index(start, total_pages, clamp=clamp, token=token)
            hi = _to_index(end, total_pages, clamp=clamp, token=token)
            indices.extend(range(lo, hi + 1))
        else:
            page = _parse_int(token)
            if page is None:
                continue
            indices.append(_to_index(page, total_pages, clamp=clamp, token=token))

    out = _dedupe(indices)
    if not out:
        raise InvalidSpec(f"No valid pages in '{spec}'", context={"spec": spec})
    return out


def resolve_order(spec: str | None, total_pages: int, *, clamp: bool = True) -> list[int]:
    """Parse "3,1,2" into [2, 0, 1], keeping the user's order.

    Only single page numbers are accepted.
    """
    if spec is None or not spec.strip():
        raise InvalidSpec("No order specified", context={"spec": spec})
    _check_total(total_pages)

    indices: list[int] = []
    for part in spec.split(","):
        page = _parse_int(part)
        if page is None:
            raise InvalidSpec("Invalid page number", context={"token": part.strip(), "spec": spec})
        indices.append(_to_index(page, total_pages, clamp=clamp, token=part.strip()))
    return _dedupe(indices)


def parse_page_number(text: str | None) -> int:
    value = _parse_int(text or "")
    if value is None:
        raise InvalidSpec("Invalid page number", context={"token": text})
    return value


def parse_page_ranges(
    spec: str | None,
    total_pages: int,
    *,
    clamp: bool = True,
    notifier: "Notifier | None" = None,
) -> list[int]:
    """Soft-fail variant of resolve_ranges: an invalid spec yields []."""
    try:
        return resolve_ranges(spec, total_pages, clamp=clamp)
    except InvalidSpec as e:
        if notifier is not None:
            notifier.error(f"Invalid page range: {e.message}")
        return []


def parse_page_order(
    spec: str | None,
    total_pages: int,
    *,
    clamp: bool = True,
    notifier: "Notifier | None" = None,
) -> list[int]:
    """Soft-fail variant of resolve_order: an invalid spec yields []."""
    try:
        return resolve_order(spec, total_pages, clamp=clamp)
    except InvalidSpec as e:
        if notifier is not None:
            notifier.error(f"Invalid page order: {e.message}")
        return []

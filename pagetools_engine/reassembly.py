"""Merge / split / delete / reorder / rotate over resolved page indices.

These functions only decide which source pages go where. Copying pages and
encoding are left to the codec.
"""

from __future__ import annotations

from typing import Any, Iterable, Protocol, Sequence

from .errors import InsufficientInput, InvalidSpec, OutOfRange


class DocumentCodec(Protocol):
    def new_document(self) -> Any: ...

    def page_count(self, document: Any) -> int: ...

    def copy_pages(self, target: Any, source: Any, indices: Sequence[int]) -> None:
        """Append source pages to target in the given order."""
        ...

    def page_rotation(self, document: Any, index: int) -> int: ...

    def set_rotation(self, document: Any, index: int, degrees: int) -> None: ...


def _build(codec: DocumentCodec, source: Any, indices: Sequence[int]) -> Any:
    out = codec.new_document()
    codec.copy_pages(out, source, list(indices))
    return out


def keep_indices(total_pages: int, remove: Iterable[int]) -> list[int]:
    removed = set(remove)
    return [i for i in range(total_pages) if i not in removed]


def merge(codec: DocumentCodec, documents: Sequence[Any]) -> Any:
    if len(documents) < 2:
        raise InsufficientInput(
            "Please select at least 2 PDF files",
            context={"documents": len(documents)},
        )
    out = codec.new_document()
    for doc in documents:
        codec.copy_pages(out, doc, list(range(codec.page_count(doc))))
    return out


def split(codec: DocumentCodec, document: Any, boundary: int) -> tuple[Any, Any]:
    """First part holds pages [0, boundary), second [boundary, total)."""
    total = codec.page_count(document)
    if not 1 <= boundary <= total - 1:
        raise OutOfRange(
            f"Please enter a page between 1 and {total - 1}",
            context={"boundary": boundary, "total_pages": total},
        )
    first = _build(codec, document, range(0, boundary))
    second = _build(codec, document, range(boundary, total))
    return first, second


def delete_pages(codec: DocumentCodec, document: Any, indices_to_remove: Iterable[int]) -> Any:
    # Removing every page is allowed here; encoding an empty document is the codec's call.
    total = codec.page_count(document)
    return _build(codec, document, keep_indices(total, indices_to_remove))


def reorder_pages(codec: DocumentCodec, document: Any, new_order: Sequence[int]) -> Any:
    """Pages in exactly new_order; pages not listed are dropped."""
    return _build(codec, document, new_order)


def rotate_pages(codec: DocumentCodec, document: Any, indices: Iterable[int], degrees: int) -> Any:
    if degrees % 90 != 0:
        raise InvalidSpec("Rotation must be a multiple of 90 degrees", context={"degrees": degrees})
    total = codec.page_count(document)
    out = _build(codec, document, range(total))
    for i in sorted(set(indices)):
        current = codec.page_rotation(out, i)
        codec.set_rotation(out, i, (current + degrees) % 360)
    return out

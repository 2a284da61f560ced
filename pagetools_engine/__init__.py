"""Page-level PDF operations and media conversions.

This package focuses on:
- resolving page range / page order text into page indices
- merge / split / delete / reorder / rotate over those indices
- image <-> PDF conversion, text watermarks, text extraction
- running each operation as a single-flight job with guaranteed cleanup
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"

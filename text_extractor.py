"""
# Copyright (C) 2025 Qleric
# Licensed under AGPL-3.0 - see LICENSE file
"""

import logging
from typing import Any, List

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)


class ContractAnalysisError(Exception):
    """Base error for the contract analysis pipeline."""


class ExtractionError(ContractAnalysisError):
    """Raised when text cannot be extracted from a cached upload."""


def coerce_blob_to_bytes(blob: Any) -> bytes:
    """
    Normalize a cached value into a byte buffer.

    Accepts raw binary, or a tagged object ``{"type": "Buffer", "data": [...]}``
    as written by cache layers that serialize buffers as plain objects.
    """
    if isinstance(blob, (bytes, bytearray, memoryview)):
        return bytes(blob)

    if isinstance(blob, dict):
        if blob.get("type") == "Buffer" and isinstance(blob.get("data"), list):
            # bytes() rejects values outside 0..255
            return bytes(blob["data"])

    raise TypeError(f"Invalid file data: unsupported blob type {type(blob).__name__}")


def page_fragments(page: fitz.Page) -> List[str]:
    """Return the text runs of a page in reading order."""
    fragments = []
    content = page.get_text("dict")
    for block in content.get("blocks", []):
        for line in block.get("lines", []):
            for span in line.get("spans", []):
                fragments.append(span.get("text", ""))
    return fragments


class TextExtractor:
    """Reads an uploaded PDF out of the blob cache and returns its plain text."""

    def __init__(self, blob_cache):
        self.blob_cache = blob_cache

    def extract_text(self, blob_key: str) -> str:
        try:
            blob = self.blob_cache.get(blob_key)
            if blob is None:
                raise LookupError(f"File not found: {blob_key}")

            data = coerce_blob_to_bytes(blob)

            page_texts = []
            with fitz.open(stream=data, filetype="pdf") as doc:
                logger.info("Processing %d pages from PDF.", doc.page_count)
                for page in doc:
                    page_texts.append(" ".join(page_fragments(page)))

        except Exception as e:
            logger.error("Text extraction failed for %s: %s", blob_key, e)
            raise ExtractionError(f"Failed to extract text from PDF. Error: {e}") from e

        text = "\n".join(page_texts)
        logger.info(f"Extracted {len(text)} chars from {len(page_texts)} pages")
        return text

"""
Tests for pulling contract text out of cached PDF uploads.
"""

from unittest.mock import MagicMock, patch

import pytest

from text_extractor import (
    ContractAnalysisError,
    ExtractionError,
    TextExtractor,
    coerce_blob_to_bytes,
    page_fragments,
)


def _fake_page(*lines):
    """A page whose text dict holds one line per entry, each a list of spans."""
    page = MagicMock()
    page.get_text.return_value = {
        "blocks": [
            {"lines": [{"spans": [{"text": s} for s in spans]} for spans in lines]},
            {"type": 1},  # image block, no lines
        ]
    }
    return page


class _FakeDoc:
    def __init__(self, pages):
        self.pages = pages
        self.page_count = len(pages)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def __iter__(self):
        return iter(self.pages)


class TestCoerceBlob:

    def test_raw_bytes_pass_through(self):
        assert coerce_blob_to_bytes(b"%PDF-1.7") == b"%PDF-1.7"

    def test_bytearray_and_memoryview(self):
        assert coerce_blob_to_bytes(bytearray(b"abc")) == b"abc"
        assert coerce_blob_to_bytes(memoryview(b"abc")) == b"abc"

    def test_tagged_buffer_object(self):
        assert coerce_blob_to_bytes({"type": "Buffer", "data": [37, 80, 68, 70]}) == b"%PDF"

    @pytest.mark.parametrize("blob", [
        "just a string",
        12345,
        ["Buffer"],
        {"type": "Buffer", "data": "not a list"},
        {"type": "Blob", "data": [1, 2, 3]},
        {"data": [1, 2, 3]},
    ])
    def test_unrecognized_shapes_rejected(self, blob):
        with pytest.raises(TypeError):
            coerce_blob_to_bytes(blob)

    def test_out_of_range_byte_values(self):
        with pytest.raises(ValueError):
            coerce_blob_to_bytes({"type": "Buffer", "data": [1, 256]})


class TestPageFragments:

    def test_collects_spans_in_order(self):
        page = _fake_page(["Payment", "terms"], ["Net 30"])
        assert page_fragments(page) == ["Payment", "terms", "Net 30"]
        page.get_text.assert_called_once_with("dict")


class TestTextExtractor:

    def test_multi_page_pdf(self, blob_cache, make_pdf):
        blob_cache.put("contract", make_pdf(["First page", "Second page", "Third page"]))

        text = TextExtractor(blob_cache).extract_text("contract")

        assert text == "First page\nSecond page\nThird page"

    def test_blank_page_keeps_its_slot(self, blob_cache, make_pdf):
        blob_cache.put("contract", make_pdf(["Alpha", "", "Gamma"]))

        assert TextExtractor(blob_cache).extract_text("contract") == "Alpha\n\nGamma"

    def test_no_extractable_text_is_empty_string(self, blob_cache, make_pdf):
        blob_cache.put("contract", make_pdf([""]))

        assert TextExtractor(blob_cache).extract_text("contract") == ""

    def test_tagged_buffer_matches_raw_buffer(self, blob_cache, make_pdf):
        pdf = make_pdf(["Lease agreement", "Signed by both parties"])
        blob_cache.put("raw", pdf)
        blob_cache.put("tagged", {"type": "Buffer", "data": list(pdf)})

        extractor = TextExtractor(blob_cache)

        assert extractor.extract_text("tagged") == extractor.extract_text("raw")

    def test_fragments_joined_by_space_pages_by_newline(self, blob_cache):
        blob_cache.put("contract", b"%PDF")
        doc = _FakeDoc([
            _fake_page(["This", "Agreement"], ["is made"]),
            _fake_page(["between the parties"]),
        ])

        with patch("text_extractor.fitz.open", return_value=doc) as mock_open:
            text = TextExtractor(blob_cache).extract_text("contract")

        assert text == "This Agreement is made\nbetween the parties"
        mock_open.assert_called_once_with(stream=b"%PDF", filetype="pdf")

    def test_reads_cache_exactly_once(self, make_pdf):
        cache = MagicMock()
        cache.get.return_value = make_pdf(["Once"])

        TextExtractor(cache).extract_text("contract")

        cache.get.assert_called_once_with("contract")
        cache.put.assert_not_called()

    def test_missing_blob(self, blob_cache):
        with pytest.raises(ExtractionError, match="File not found"):
            TextExtractor(blob_cache).extract_text("nope")

    @pytest.mark.parametrize("blob", ["%PDF as text", 42, {"type": "Buffer"}])
    def test_invalid_blob_shape(self, blob_cache, blob):
        blob_cache.put("contract", blob)

        with pytest.raises(ExtractionError, match="Invalid file data") as exc_info:
            TextExtractor(blob_cache).extract_text("contract")

        assert isinstance(exc_info.value.__cause__, TypeError)

    def test_corrupt_pdf(self, blob_cache):
        blob_cache.put("contract", b"this is not a pdf at all")

        with pytest.raises(ExtractionError) as exc_info:
            TextExtractor(blob_cache).extract_text("contract")

        assert exc_info.value.__cause__ is not None

    def test_partial_text_discarded_on_page_failure(self, blob_cache):
        blob_cache.put("contract", b"%PDF")
        broken = MagicMock()
        broken.get_text.side_effect = RuntimeError("bad page")
        doc = _FakeDoc([_fake_page(["Good page"]), broken])

        with patch("text_extractor.fitz.open", return_value=doc):
            with pytest.raises(ExtractionError, match="bad page"):
                TextExtractor(blob_cache).extract_text("contract")

    def test_cache_errors_are_wrapped(self):
        cache = MagicMock()
        cache.get.side_effect = ConnectionError("redis down")

        with pytest.raises(ExtractionError) as exc_info:
            TextExtractor(cache).extract_text("contract")

        assert isinstance(exc_info.value.__cause__, ConnectionError)

    def test_extraction_error_is_pipeline_error(self):
        assert issubclass(ExtractionError, ContractAnalysisError)

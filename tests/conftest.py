"""
Shared fixtures for the contract analysis tests.
"""

from typing import List, Optional

import fitz
import pytest

from blob_cache import InMemoryBlobCache
from model_client import ModelResponse


class FakeModelClient:
    """Records prompts and replays canned responses in order."""

    def __init__(self, responses: Optional[List[str]] = None):
        self.responses = list(responses or [])
        self.prompts: List[str] = []

    def generate(self, prompt: str) -> ModelResponse:
        self.prompts.append(prompt)
        return ModelResponse(text=self.responses.pop(0))


def build_pdf(pages: List[str]) -> bytes:
    """Create a PDF with one text line per page (empty string = blank page)."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def blob_cache():
    return InMemoryBlobCache()


@pytest.fixture
def make_pdf():
    return build_pdf


@pytest.fixture
def fake_model():
    def _factory(*responses: str) -> FakeModelClient:
        return FakeModelClient(list(responses))
    return _factory

# tests/conftest.py

"""
Pytest configuration and shared fixtures for testing.
"""

import io
import itertools
from typing import Callable, Dict, List, Optional

import pymupdf as fitz
import pytest
from PIL import Image

from card_redaction.core.definitions import BlockKind
from card_redaction.core.domain import BoundingBox, PageImage, TextBlock
from card_redaction.core.loader import PatternLoader
from card_redaction.engine.analysis import DocumentAnalyzer
from card_redaction.service.config import Settings

_ids = itertools.count(1)


def _block(kind: str, text: str, box: Optional[BoundingBox], block_id: Optional[str]):
    return TextBlock(
        id=block_id or f"{kind.lower()}-{next(_ids)}",
        text=text,
        kind=kind,
        confidence=99.0,
        bounding_box=box,
        page=1,
    )


@pytest.fixture
def word() -> Callable[..., TextBlock]:
    """Factory for WORD blocks."""

    def make(text: str, box: Optional[BoundingBox] = None, block_id: Optional[str] = None):
        return _block(BlockKind.WORD, text, box, block_id)

    return make


@pytest.fixture
def line() -> Callable[..., TextBlock]:
    """Factory for LINE blocks."""

    def make(text: str, box: Optional[BoundingBox] = None, block_id: Optional[str] = None):
        return _block(BlockKind.LINE, text, box, block_id)

    return make


class FakeAnalyzer(DocumentAnalyzer):
    """In-memory analysis service keyed by call order."""

    def __init__(self, responses: Dict[int, object]):
        self.responses = responses
        self.calls: List[bytes] = []

    def analyze(self, page_image: bytes) -> List[TextBlock]:
        index = len(self.calls)
        self.calls.append(page_image)
        response = self.responses.get(index, [])
        if isinstance(response, Exception):
            raise response
        return list(response)


class FakeSplitter:
    """Splitter returning a fixed number of blank page images."""

    def __init__(self, page_count: int):
        self.page_count = page_count

    def split(self, data, content_type, on_progress=None):
        pages = []
        for index in range(self.page_count):
            if on_progress:
                on_progress(f"Rendering page {index + 1}", index, self.page_count)
            pages.append(
                PageImage(index=index, data=f"page-{index}".encode(), width=1224, height=1584)
            )
        return pages


@pytest.fixture
def fake_analyzer() -> Callable[[Dict[int, object]], FakeAnalyzer]:
    return FakeAnalyzer


@pytest.fixture
def fake_splitter() -> Callable[[int], FakeSplitter]:
    return FakeSplitter


@pytest.fixture
def test_settings() -> Settings:
    """Settings with defaults, independent of the process environment."""
    return Settings(_env_file=None)


@pytest.fixture
def blank_pdf() -> Callable[..., bytes]:
    """Factory producing an in-memory PDF with white pages."""

    def make(page_count: int = 1, width: float = 612, height: float = 792) -> bytes:
        document = fitz.open()
        for number in range(page_count):
            page = document.new_page(width=width, height=height)
            page.insert_text((72, 72), f"Page {number + 1}", fontsize=12)
        data = document.tobytes()
        document.close()
        return data

    return make


@pytest.fixture
def white_image() -> Callable[..., bytes]:
    """Factory producing an encoded white RGB image."""

    def make(width: int = 300, height: int = 200, image_format: str = "PNG") -> bytes:
        buffer = io.BytesIO()
        Image.new("RGB", (width, height), (255, 255, 255)).save(buffer, format=image_format)
        return buffer.getvalue()

    return make


@pytest.fixture(autouse=True)
def reset_pattern_loader():
    """Ensure each test sees the packaged patterns.yaml."""
    PatternLoader.reload()
    yield
    PatternLoader.reload()

"""
Shared fixtures: staging area, fake clock, real PDF / PNG payloads.
"""

import os
import sys
from pathlib import Path

import fitz  # PyMuPDF
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from filebot.artifacts import ArtifactManager
from filebot.file_types import FileType
from filebot.models import FileRef


class FakeClock:
    """Manually advanced time source for expiry tests"""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def build_pdf_bytes(pages: int = 3, label: str = "Page") -> bytes:
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page()
        page.insert_text((72, 72), f"{label} {i + 1}")
    data = doc.tobytes()
    doc.close()
    return data


def build_png_bytes(width: int = 40, height: int = 20) -> bytes:
    pix = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, width, height), False)
    pix.clear_with(180)
    return pix.tobytes("png")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def artifacts(tmp_path):
    return ArtifactManager(tmp_path / "staging", retention_minutes=60)


@pytest.fixture
def pdf_bytes():
    return build_pdf_bytes


@pytest.fixture
def png_bytes():
    return build_png_bytes()


@pytest.fixture
def make_ref(artifacts):
    """Stage bytes and wrap them in a FileRef"""

    def _make(data: bytes, file_type: FileType = FileType.PDF, name: str = "doc.pdf") -> FileRef:
        path: Path = artifacts.write(Path(name).suffix or ".bin", data)
        return FileRef(
            handle=path,
            detected_type=file_type,
            size_bytes=len(data),
            original_name=name,
        )

    return _make

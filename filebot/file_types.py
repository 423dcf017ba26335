"""
File Types - detect what kind of document a user sent.

Chat attachments arrive with a MIME type and, sometimes, a file name. Both are
used: the extension wins when it is recognised, the MIME type is the fallback.
"""

from typing import Optional
from enum import Enum
import os


class FileType(str, Enum):
    """Document families the bot knows how to route"""
    PDF = "pdf"
    IMAGE = "image"
    WORD = "word"
    POWERPOINT = "powerpoint"
    EXCEL = "excel"
    HTML = "html"
    UNKNOWN = "unknown"


EXTENSION_TYPES = {
    ".pdf": FileType.PDF,
    ".jpg": FileType.IMAGE,
    ".jpeg": FileType.IMAGE,
    ".png": FileType.IMAGE,
    ".gif": FileType.IMAGE,
    ".bmp": FileType.IMAGE,
    ".webp": FileType.IMAGE,
    ".doc": FileType.WORD,
    ".docx": FileType.WORD,
    ".ppt": FileType.POWERPOINT,
    ".pptx": FileType.POWERPOINT,
    ".xls": FileType.EXCEL,
    ".xlsx": FileType.EXCEL,
    ".html": FileType.HTML,
    ".htm": FileType.HTML,
}

# Order matters: "application/vnd...wordprocessingml.document" must hit word
# before the generic "document" check.
MIME_TYPES = [
    ("pdf", FileType.PDF),
    ("image", FileType.IMAGE),
    ("word", FileType.WORD),
    ("presentation", FileType.POWERPOINT),
    ("powerpoint", FileType.POWERPOINT),
    ("spreadsheet", FileType.EXCEL),
    ("excel", FileType.EXCEL),
    ("html", FileType.HTML),
    ("document", FileType.WORD),
]

# Staging extension per family when the original name is missing or odd
DEFAULT_EXTENSIONS = {
    FileType.PDF: ".pdf",
    FileType.IMAGE: ".jpg",
    FileType.WORD: ".docx",
    FileType.POWERPOINT: ".pptx",
    FileType.EXCEL: ".xlsx",
    FileType.HTML: ".html",
    FileType.UNKNOWN: ".bin",
}


def get_extension(filename: Optional[str]) -> str:
    """Lowercase extension with the leading dot, or '' when there is none"""
    if not filename:
        return ""
    return os.path.splitext(filename)[1].lower()


def detect_file_type(filename: Optional[str], mime_type: Optional[str] = None) -> FileType:
    """Detect file type from extension, falling back to MIME type."""
    ext = get_extension(filename)
    if ext in EXTENSION_TYPES:
        return EXTENSION_TYPES[ext]

    if mime_type:
        mime_lower = mime_type.lower()
        for needle, file_type in MIME_TYPES:
            if needle in mime_lower:
                return file_type

    return FileType.UNKNOWN


def staging_extension(filename: Optional[str], file_type: FileType) -> str:
    """
    Extension to use for the staged copy of an upload.

    Keeps the original extension when it matches the detected family so tools
    that dispatch on extension (LibreOffice, image loaders) see the real format.
    """
    ext = get_extension(filename)
    if ext and EXTENSION_TYPES.get(ext) == file_type:
        return ext
    return DEFAULT_EXTENSIONS[file_type]


def format_file_size(size_bytes: int) -> str:
    """Format file size for display (e.g. '1.5 MB')"""
    if size_bytes <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    value = float(size_bytes)
    exponent = 0
    while value >= 1024 and exponent < len(units) - 1:
        value /= 1024
        exponent += 1
    return f"{round(value, 2):g} {units[exponent]}"

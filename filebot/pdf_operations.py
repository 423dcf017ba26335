"""
PDF Operations - Core file processing functions.

Every function reads its inputs from staged paths and writes its result to a
fresh path allocated from the ArtifactManager, then returns that exact path.
Nothing here scans a directory to discover what a tool produced.

Command line tools (Ghostscript, ocrmypdf) are optional: operations that
can fall back to a pure-Python route do so when the tool is missing.
"""

import io
import os
import shutil
import hashlib
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError
from reportlab.pdfgen import canvas
import fitz  # PyMuPDF

from filebot.artifacts import ArtifactManager
from filebot.error_handler import ExternalToolError, InputValidationError


logger = logging.getLogger(__name__)


# ============================================
# HELPER FUNCTIONS
# ============================================

@dataclass
class ExternalTools:
    """Configured locations of optional CLI tools. None means look up PATH."""
    ghostscript: Optional[str] = None
    soffice: Optional[str] = None
    ocrmypdf: Optional[str] = None
    timeout_seconds: int = 180

    def resolve_ghostscript(self, *, raise_if_missing: bool) -> Optional[str]:
        """Return a Ghostscript executable path if available."""
        if self.ghostscript:
            return self.ghostscript

        names = ("gswin64c.exe", "gswin32c.exe") if os.name == "nt" else ("gs",)
        for name in names:
            found = shutil.which(name)
            if found:
                return found

        if raise_if_missing:
            raise ExternalToolError("Ghostscript not found. Please install Ghostscript (gs) on the server.")
        return None

    def resolve_soffice(self) -> str:
        found = self.soffice or shutil.which("soffice") or shutil.which("libreoffice")
        if not found:
            raise ExternalToolError("LibreOffice (soffice) not found on the server.")
        return found

    def resolve_ocrmypdf(self) -> str:
        found = self.ocrmypdf or shutil.which("ocrmypdf")
        if not found:
            raise ExternalToolError(
                "OCR requires 'ocrmypdf' and a Tesseract install on the server."
            )
        return found


def run_tool(cmd: List[str], timeout_seconds: int, label: str) -> None:
    """
    Run an external tool to completion.

    Raises:
        ExternalToolError: non-zero exit, timeout, or the binary can't start
    """
    logger.debug(f"[TOOL] {label}: {' '.join(cmd)}")
    try:
        subprocess.run(cmd, check=True, timeout=timeout_seconds, capture_output=True)
    except subprocess.TimeoutExpired as e:
        raise ExternalToolError(f"{label} timed out after {timeout_seconds}s") from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or b"").decode("utf-8", errors="replace").strip()
        raise ExternalToolError(f"{label} failed (exit {e.returncode}): {stderr[-500:]}") from e
    except OSError as e:
        raise ExternalToolError(f"{label} could not be started: {e}") from e


def produce(artifacts: ArtifactManager, extension: str, build: Callable[[Path], None]) -> Path:
    """
    Allocate an output path, let `build` write it, and verify the result.

    The allocated path is released if `build` fails or leaves nothing behind.
    """
    output_path = artifacts.allocate(extension)
    try:
        build(output_path)
    except BaseException:
        artifacts.release(output_path)
        raise

    if not artifacts.verify(output_path):
        artifacts.release(output_path)
        raise ExternalToolError(f"No output produced ({output_path.name} missing or empty)")
    return output_path


def _write_pdf(artifacts: ArtifactManager, writer: PdfWriter) -> Path:
    def build(output_path: Path) -> None:
        with open(output_path, "wb") as output_file:
            writer.write(output_file)

    return produce(artifacts, ".pdf", build)


def open_pdf(path: Path) -> PdfReader:
    """
    Open a PDF for reading.

    Raises:
        InputValidationError: the file is not a readable PDF, or it is
            encrypted (password-protected files must be unlocked first)
    """
    try:
        reader = PdfReader(str(path))
    except (PdfReadError, ValueError) as e:
        raise InputValidationError("That file doesn't look like a valid PDF.") from e

    if reader.is_encrypted:
        # Owner-only locks open with an empty password
        if not reader.decrypt(""):
            raise InputValidationError(
                "This PDF is password protected. Use *Unlock PDF* first."
            )
    return reader


def page_count(path: Path) -> int:
    return len(open_pdf(path).pages)


# ============================================
# ORGANIZE
# ============================================

def merge_pdfs(artifacts: ArtifactManager, input_paths: List[Path]) -> Path:
    """
    Merge multiple PDFs into a single file.

    Args:
        artifacts: staging area for the output
        input_paths: PDFs to merge, in order

    Returns:
        Path: merged PDF
    """
    pdf_writer = PdfWriter()

    for input_path in input_paths:
        pdf_reader = open_pdf(input_path)
        for page in pdf_reader.pages:
            pdf_writer.add_page(page)

    logger.info(f"[MERGE] {len(input_paths)} files, {len(pdf_writer.pages)} pages")
    return _write_pdf(artifacts, pdf_writer)


def select_pages(artifacts: ArtifactManager, input_path: Path, pages: List[int]) -> Path:
    """
    Copy the given pages (1-indexed, in order) into a new PDF.

    Split, extract and remove all end up here; they differ only in which
    pages the caller selected.
    """
    reader = open_pdf(input_path)
    total_pages = len(reader.pages)

    writer = PdfWriter()
    for p in pages:
        if p < 1 or p > total_pages:
            raise InputValidationError(f"Invalid page number: {p}. PDF has {total_pages} pages.")
        writer.add_page(reader.pages[p - 1])

    return _write_pdf(artifacts, writer)


def rotate_pdf(
    artifacts: ArtifactManager,
    input_path: Path,
    degrees: int,
    pages: Optional[List[int]] = None,
) -> Path:
    """Rotate pages in a PDF.

    Args:
        degrees: 90/180/270 clockwise
        pages: Optional list of 1-indexed pages to rotate. If None, rotate all pages.
    """
    if degrees not in (90, 180, 270):
        raise InputValidationError("Rotation angle must be 90, 180 or 270.", field="angle")

    reader = open_pdf(input_path)
    total_pages = len(reader.pages)
    pages_set = set(pages) if pages is not None else set(range(1, total_pages + 1))

    writer = PdfWriter()
    for idx, page in enumerate(reader.pages, start=1):
        if idx in pages_set:
            page = page.rotate(degrees)
        writer.add_page(page)

    return _write_pdf(artifacts, writer)


# ============================================
# OPTIMIZE
# ============================================

COMPRESS_PRESETS = {"screen", "ebook", "printer", "prepress"}


def compress_pdf(
    artifacts: ArtifactManager,
    input_path: Path,
    tools: ExternalTools,
    preset: str = "ebook",
) -> Path:
    """
    Compress a PDF using a qualitative preset.

    If Ghostscript is available, uses `-dPDFSETTINGS=/<preset>` where preset is one of:
    screen (smallest), ebook (default), printer (light), prepress (highest quality).
    If Ghostscript is not available, falls back to a basic pypdf stream compression.
    """
    if preset not in COMPRESS_PRESETS:
        preset = "ebook"

    gs_executable = tools.resolve_ghostscript(raise_if_missing=False)
    if gs_executable:
        def build(output_path: Path) -> None:
            run_tool(
                [
                    gs_executable,
                    "-sDEVICE=pdfwrite",
                    "-dCompatibilityLevel=1.4",
                    f"-dPDFSETTINGS=/{preset}",
                    "-dDetectDuplicateImages=true",
                    "-dCompressFonts=true",
                    "-dNOPAUSE",
                    "-dBATCH",
                    "-dQUIET",
                    f"-sOutputFile={output_path}",
                    str(input_path),
                ],
                tools.timeout_seconds,
                "Ghostscript compression",
            )

        return produce(artifacts, ".pdf", build)

    logger.info("[COMPRESS] Ghostscript not available, using pypdf stream compression")
    pdf_reader = open_pdf(input_path)
    pdf_writer = PdfWriter()
    for page in pdf_reader.pages:
        pdf_writer.add_page(page)
    for page in pdf_writer.pages:
        page.compress_content_streams()
    return _write_pdf(artifacts, pdf_writer)


def rewrite_pdf(artifacts: ArtifactManager, input_path: Path) -> Path:
    """
    Re-save a PDF through PyMuPDF.

    MuPDF rebuilds a broken cross-reference table on open; saving with
    garbage collection drops unreachable objects and normalises content streams.
    """
    try:
        doc = fitz.open(str(input_path))
    except Exception as e:
        raise ExternalToolError(f"PyMuPDF could not open the document: {e}") from e

    try:
        if doc.needs_pass:
            raise InputValidationError("This PDF is password protected. Use *Unlock PDF* first.")

        def build(output_path: Path) -> None:
            doc.save(str(output_path), garbage=4, clean=True, deflate=True)

        return produce(artifacts, ".pdf", build)
    finally:
        doc.close()


def repair_pdf(artifacts: ArtifactManager, input_path: Path, tools: ExternalTools) -> Path:
    """Repair a damaged PDF: Ghostscript rewrite when installed, PyMuPDF otherwise."""
    gs_executable = tools.resolve_ghostscript(raise_if_missing=False)
    if gs_executable:
        def build(output_path: Path) -> None:
            run_tool(
                [
                    gs_executable,
                    "-sDEVICE=pdfwrite",
                    "-dCompatibilityLevel=1.4",
                    "-dNOPAUSE",
                    "-dQUIET",
                    "-dBATCH",
                    f"-sOutputFile={output_path}",
                    str(input_path),
                ],
                tools.timeout_seconds,
                "Ghostscript repair",
            )

        try:
            return produce(artifacts, ".pdf", build)
        except ExternalToolError as e:
            logger.warning(f"[REPAIR] Ghostscript failed, retrying with PyMuPDF: {e}")

    return rewrite_pdf(artifacts, input_path)


def ocr_pdf(
    artifacts: ArtifactManager,
    input_path: Path,
    tools: ExternalTools,
    language: str = "eng",
) -> Path:
    """Run OCR to produce a searchable PDF.

    Uses the `ocrmypdf` CLI (requires Tesseract installed on the machine) so the
    timeout is enforced and OCR memory stays out of the server process.
    """
    ocrmypdf_cmd = tools.resolve_ocrmypdf()
    total_pages = page_count(input_path)

    # Timeout scales mildly with pages
    timeout_s = tools.timeout_seconds + total_pages * 20

    def build(output_path: Path) -> None:
        cmd = [
            ocrmypdf_cmd,
            "--skip-text",
            "--jobs",
            "1",
            "--tesseract-timeout",
            "120",
            "-l",
            language,
            str(input_path),
            str(output_path),
        ]
        run_tool(cmd, timeout_s, "OCR")

    return produce(artifacts, ".pdf", build)


def pdf_to_pdfa(artifacts: ArtifactManager, input_path: Path, tools: ExternalTools) -> Path:
    """Convert to PDF/A with Ghostscript."""
    gs_executable = tools.resolve_ghostscript(raise_if_missing=True)

    def build(output_path: Path) -> None:
        run_tool(
            [
                gs_executable,
                "-dPDFA=2",
                "-dBATCH",
                "-dNOPAUSE",
                "-dQUIET",
                "-sColorConversionStrategy=RGB",
                "-sDEVICE=pdfwrite",
                "-dPDFACompatibilityPolicy=1",
                f"-sOutputFile={output_path}",
                str(input_path),
            ],
            tools.timeout_seconds,
            "PDF/A conversion",
        )

    return produce(artifacts, ".pdf", build)


# ============================================
# EDIT
# ============================================

def watermark_pdf(
    artifacts: ArtifactManager,
    input_path: Path,
    text: str,
    opacity: float = 0.3,
    angle: int = 45,
) -> Path:
    """Add a text watermark to each page (reportlab overlay stamping)."""
    if opacity < 0 or opacity > 1:
        raise InputValidationError("Watermark opacity must be between 0 and 1.")

    reader = open_pdf(input_path)
    writer = PdfWriter()

    def _overlay_page(w: float, h: float):
        buf = io.BytesIO()
        c = canvas.Canvas(buf, pagesize=(w, h))
        c.setFillAlpha(float(opacity))
        c.saveState()
        c.translate(w / 2.0, h / 2.0)
        c.rotate(float(angle))
        # Font size based on page size
        base = min(w, h)
        font_size = max(18, min(72, int(base / 10)))
        c.setFont("Helvetica", font_size)
        c.setFillColorRGB(0.5, 0.5, 0.5)
        c.drawCentredString(0, 0, text)
        c.restoreState()
        c.showPage()
        c.save()
        buf.seek(0)
        return PdfReader(buf).pages[0]

    for page in reader.pages:
        mb = page.mediabox
        page.merge_page(_overlay_page(float(mb.width), float(mb.height)))
        writer.add_page(page)

    return _write_pdf(artifacts, writer)


def _number_coords(position: str, w: float, h: float) -> tuple[float, float, int]:
    """x, y and alignment (0 left, 1 centre, 2 right) for a page number"""
    margin = 50.0
    y = h - margin if position.startswith("top") else margin
    if position.endswith("right"):
        return (w - margin, y, 2)
    if position.endswith("left"):
        return (margin, y, 0)
    return (w / 2.0, y, 1)


def add_page_numbers(
    artifacts: ArtifactManager,
    input_path: Path,
    position: str = "bottom_center",
    font_size: int = 12,
    start_at: int = 1,
) -> Path:
    """Add page numbers to each page (reportlab overlay stamping)."""
    reader = open_pdf(input_path)
    writer = PdfWriter()

    for i, page in enumerate(reader.pages):
        mb = page.mediabox
        w = float(mb.width)
        h = float(mb.height)
        x, y, align = _number_coords(position, w, h)

        buf = io.BytesIO()
        c = canvas.Canvas(buf, pagesize=(w, h))
        c.setFont("Helvetica", font_size)
        c.setFillColorRGB(0, 0, 0)
        s = str(start_at + i)
        if align == 1:
            c.drawCentredString(x, y, s)
        elif align == 2:
            c.drawRightString(x, y, s)
        else:
            c.drawString(x, y, s)
        c.showPage()
        c.save()
        buf.seek(0)
        page.merge_page(PdfReader(buf).pages[0])
        writer.add_page(page)

    return _write_pdf(artifacts, writer)


# ============================================
# SECURITY
# ============================================

def unlock_pdf(artifacts: ArtifactManager, input_path: Path, password: str = "") -> Path:
    """
    Remove encryption from a PDF.

    An empty password unlocks files that only carry an owner (permissions)
    password. A wrong password is the user's to fix, so it is reported as an
    input error on the `password` answer.
    """
    try:
        reader = PdfReader(str(input_path))
    except (PdfReadError, ValueError) as e:
        raise InputValidationError("That file doesn't look like a valid PDF.") from e

    if reader.is_encrypted:
        if not reader.decrypt(password):
            raise InputValidationError(
                "Wrong password for this PDF. Please check it and try again.", field="password"
            )
    else:
        logger.info("[UNLOCK] Document is not encrypted, saving a plain copy")

    writer = PdfWriter()
    for page in reader.pages:
        writer.add_page(page)
    return _write_pdf(artifacts, writer)


def protect_pdf(artifacts: ArtifactManager, input_path: Path, password: str) -> Path:
    """Encrypt a PDF with AES-256; the same password opens and owns it."""
    if not password:
        raise InputValidationError("Password can't be empty.", field="password")

    reader = open_pdf(input_path)
    writer = PdfWriter()
    for page in reader.pages:
        writer.add_page(page)
    writer.encrypt(user_password=password, owner_password=password, algorithm="AES-256")
    return _write_pdf(artifacts, writer)


SIGNATURE_SCALE = 0.15
SIGNATURE_MARGIN = 50.0


def sign_pdf(
    artifacts: ArtifactManager,
    input_path: Path,
    signature_path: Path,
    position: str = "bottom_right",
) -> Path:
    """Place a signature image in a corner of the last page."""
    try:
        signature = fitz.Pixmap(str(signature_path))
    except Exception as e:
        raise InputValidationError("The signature image could not be read.") from e
    sig_w = signature.width * SIGNATURE_SCALE
    sig_h = signature.height * SIGNATURE_SCALE

    doc = fitz.open(str(input_path))
    try:
        if doc.needs_pass:
            raise InputValidationError("This PDF is password protected. Use *Unlock PDF* first.")
        page = doc[doc.page_count - 1]
        w, h = page.rect.width, page.rect.height

        # PyMuPDF coordinates start at the top-left corner
        x0 = w - sig_w - SIGNATURE_MARGIN if position.endswith("right") else SIGNATURE_MARGIN
        y0 = SIGNATURE_MARGIN if position.startswith("top") else h - sig_h - SIGNATURE_MARGIN
        page.insert_image(fitz.Rect(x0, y0, x0 + sig_w, y0 + sig_h), filename=str(signature_path))

        def build(output_path: Path) -> None:
            doc.save(str(output_path), garbage=3, deflate=True)

        return produce(artifacts, ".pdf", build)
    finally:
        doc.close()


@dataclass
class PdfComparison:
    """Side-by-side facts about two PDFs"""
    page_count_1: int
    page_count_2: int
    file_size_1: int
    file_size_2: int
    identical: bool

    @property
    def page_count_match(self) -> bool:
        return self.page_count_1 == self.page_count_2

    @property
    def file_size_match(self) -> bool:
        return self.file_size_1 == self.file_size_2

    def report(self) -> str:
        def mark(flag: bool) -> str:
            return "✅" if flag else "❌"

        return (
            "🔍 *Comparison Results:*\n\n"
            f"Page Count Match: {mark(self.page_count_match)}\n"
            f"PDF 1 Pages: {self.page_count_1}\n"
            f"PDF 2 Pages: {self.page_count_2}\n"
            f"File Size Match: {mark(self.file_size_match)}\n"
            f"Identical: {mark(self.identical)}"
        )


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def compare_pdfs(first_path: Path, second_path: Path) -> PdfComparison:
    """Compare page counts, sizes and exact content of two PDFs."""
    comparison = PdfComparison(
        page_count_1=page_count(first_path),
        page_count_2=page_count(second_path),
        file_size_1=first_path.stat().st_size,
        file_size_2=second_path.stat().st_size,
        identical=False,
    )
    if comparison.page_count_match and comparison.file_size_match:
        comparison.identical = _sha256(first_path) == _sha256(second_path)
    return comparison

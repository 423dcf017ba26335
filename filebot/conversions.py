"""
Format conversions into and out of PDF.

Office formats go through LibreOffice (soffice) in a private scratch
directory, so the output name is known in advance and concurrent users never
see each other's files. Everything else is done in-process with PyMuPDF,
pdf2docx and openpyxl.
"""

import shutil
import logging
from pathlib import Path
from typing import List, Optional

import fitz  # PyMuPDF
from pdf2docx import Converter
from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from filebot.artifacts import ArtifactManager
from filebot.error_handler import ExternalToolError, InputValidationError
from filebot.pdf_operations import ExternalTools, produce, run_tool


logger = logging.getLogger(__name__)


# ============================================
# LIBREOFFICE
# ============================================

def soffice_convert(
    artifacts: ArtifactManager,
    input_path: Path,
    tools: ExternalTools,
    target: str,
    infilter: Optional[str] = None,
) -> Path:
    """
    Convert a document with LibreOffice.

    soffice names its output after the input stem, inside --outdir. Each run
    gets its own scratch directory and user profile, which keeps parallel
    conversions from colliding on the output name or the profile lock.
    """
    soffice = tools.resolve_soffice()

    with artifacts.scratch_dir() as scratch:
        scratch = scratch.resolve()
        cmd = [
            soffice,
            "--headless",
            "--nologo",
            "--nofirststartwizard",
            f"-env:UserInstallation={(scratch / 'profile').as_uri()}",
        ]
        if infilter:
            cmd.append(f"--infilter={infilter}")
        cmd += ["--convert-to", target, "--outdir", str(scratch), str(Path(input_path).resolve())]

        run_tool(cmd, tools.timeout_seconds, f"LibreOffice {target} conversion")

        produced = scratch / f"{Path(input_path).stem}.{target}"
        if not artifacts.verify(produced):
            raise ExternalToolError(f"LibreOffice did not produce a {target} file")

        return produce(artifacts, f".{target}", lambda output_path: shutil.move(str(produced), output_path))


def office_to_pdf(artifacts: ArtifactManager, input_path: Path, tools: ExternalTools) -> Path:
    """Word, PowerPoint, Excel or HTML to PDF"""
    return soffice_convert(artifacts, input_path, tools, "pdf")


def pdf_to_pptx(artifacts: ArtifactManager, input_path: Path, tools: ExternalTools) -> Path:
    """PDF to PowerPoint: each page becomes a slide of drawing objects."""
    return soffice_convert(artifacts, input_path, tools, "pptx", infilter="impress_pdf_import")


# ============================================
# IMAGES
# ============================================

# Standard A4 page size in points (72 points = 1 inch)
A4_WIDTH = 595
A4_HEIGHT = 842
IMAGE_MARGIN = 20


def image_to_pdf(artifacts: ArtifactManager, input_paths: List[Path]) -> Path:
    """Place images on A4 pages, one per page, in the given order.

    Landscape images get a landscape page. Images are scaled down to fit the
    page margins but never upscaled.
    """
    if not input_paths:
        raise InputValidationError("No image files provided")

    doc = fitz.open()
    try:
        for input_path in input_paths:
            try:
                pix = fitz.Pixmap(str(input_path))
            except Exception as e:
                raise InputValidationError(
                    "That image could not be read. Please send a JPG or PNG file."
                ) from e
            width, height = pix.width, pix.height

            if width > height:
                page_width, page_height = A4_HEIGHT, A4_WIDTH
            else:
                page_width, page_height = A4_WIDTH, A4_HEIGHT

            avail_width = page_width - 2 * IMAGE_MARGIN
            avail_height = page_height - 2 * IMAGE_MARGIN
            fit_scale = min(avail_width / width, avail_height / height, 1.0)

            final_width = width * fit_scale
            final_height = height * fit_scale

            # Center the image on the page
            x_offset = (page_width - final_width) / 2
            y_offset = (page_height - final_height) / 2

            page = doc.new_page(width=page_width, height=page_height)
            img_rect = fitz.Rect(x_offset, y_offset, x_offset + final_width, y_offset + final_height)
            page.insert_image(img_rect, filename=str(input_path))

        def build(output_path: Path) -> None:
            doc.save(str(output_path), garbage=4, deflate=True)

        return produce(artifacts, ".pdf", build)
    finally:
        doc.close()


def pdf_to_images(
    artifacts: ArtifactManager,
    input_path: Path,
    pages: List[int],
    dpi: int = 150,
) -> List[Path]:
    """Render the given pages (1-indexed) to one PNG each."""
    outputs: List[Path] = []
    doc = fitz.open(str(input_path))
    try:
        for p in pages:
            if p < 1 or p > doc.page_count:
                raise InputValidationError(
                    f"Invalid page number: {p}. PDF has {doc.page_count} pages.", field="page_number"
                )
            pix = doc.load_page(p - 1).get_pixmap(dpi=dpi)
            outputs.append(produce(artifacts, ".png", lambda output_path, pix=pix: pix.save(str(output_path))))
    except BaseException:
        artifacts.release_all(outputs)
        raise
    finally:
        doc.close()

    logger.info(f"[PDF→IMAGE] Rendered {len(outputs)} page(s) at {dpi} dpi")
    return outputs


# ============================================
# PDF TO OFFICE
# ============================================

def pdf_to_docx(artifacts: ArtifactManager, input_path: Path) -> Path:
    """
    Convert a PDF file to DOCX with pdf2docx.

    Layout is reconstructed from the page content, so complex documents may
    not come out perfectly editable.
    """
    def build(output_path: Path) -> None:
        cv = Converter(str(input_path))
        try:
            cv.convert(str(output_path))
        finally:
            cv.close()

    return produce(artifacts, ".docx", build)


def _cell(value) -> str:
    return ILLEGAL_CHARACTERS_RE.sub("", "" if value is None else str(value))


def pdf_to_xlsx(artifacts: ArtifactManager, input_path: Path) -> Path:
    """
    Convert a PDF to an Excel workbook, one sheet per page.

    Tables detected by PyMuPDF become rows and cells. Pages without a table
    keep their text, one line per row.
    """
    workbook = Workbook()
    workbook.remove(workbook.active)

    doc = fitz.open(str(input_path))
    try:
        for index in range(doc.page_count):
            page = doc.load_page(index)
            sheet = workbook.create_sheet(title=f"Page {index + 1}")
            tables = page.find_tables().tables
            if not tables:
                for line in (page.get_text("text") or "").splitlines():
                    sheet.append([_cell(line)])
                continue
            for table_no, table in enumerate(tables):
                if table_no:
                    sheet.append([])
                for row in table.extract():
                    sheet.append([_cell(value) for value in row])
    finally:
        doc.close()

    if not workbook.sheetnames:
        workbook.create_sheet(title="Page 1")

    return produce(artifacts, ".xlsx", lambda output_path: workbook.save(str(output_path)))

"""
Conversion Engine - runs one catalog operation on staged input files.

The orchestrator hands over the session's files and the typed parameters of
the selected operation; the engine returns the exact paths of the outputs it
wrote into the staging area (or a text report, for compare).

Errors:
- InputValidationError: something the user can fix (bad page range, wrong
  password, unreadable document). `field` names the answer to ask again.
- ExternalToolError: everything else that went wrong during the conversion.
"""

import time
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from filebot import conversions, pdf_operations
from filebot.artifacts import ArtifactManager
from filebot.error_handler import ArtifactIOError, ExternalToolError, InputValidationError
from filebot.models import FileRef, OperationParams
from filebot.page_ranges import InvalidSelector, pages_to_keep, parse_selector, resolve_selector
from filebot.pdf_operations import ExternalTools


logger = logging.getLogger(__name__)


@dataclass
class ConversionResult:
    """What an operation produced"""
    outputs: List[Path] = field(default_factory=list)
    message: Optional[str] = None


class ConversionEngine(Protocol):
    def run(self, operation_id: str, inputs: List[FileRef], params: OperationParams) -> ConversionResult:
        ...


Handler = Callable[[List[Path], OperationParams], ConversionResult]


class DocumentEngine:
    """Conversion engine backed by pypdf, PyMuPDF and the optional CLI tools"""

    def __init__(self, artifacts: ArtifactManager, tools: Optional[ExternalTools] = None):
        self.artifacts = artifacts
        self.tools = tools or ExternalTools()
        self._handlers: dict[str, Handler] = {
            "merge_pdf": self._merge,
            "split_pdf": self._select,
            "extract_pages": self._select,
            "remove_pages": self._remove,
            "compress_pdf": self._compress,
            "repair_pdf": self._repair,
            "ocr_pdf": self._ocr,
            "image_to_pdf": self._image_to_pdf,
            "word_to_pdf": self._office_to_pdf,
            "powerpoint_to_pdf": self._office_to_pdf,
            "excel_to_pdf": self._office_to_pdf,
            "html_to_pdf": self._office_to_pdf,
            "pdf_to_image": self._pdf_to_image,
            "pdf_to_word": self._pdf_to_word,
            "pdf_to_powerpoint": self._pdf_to_powerpoint,
            "pdf_to_excel": self._pdf_to_excel,
            "pdf_to_pdfa": self._pdf_to_pdfa,
            "rotate_pdf": self._rotate,
            "add_page_numbers": self._page_numbers,
            "add_watermark": self._watermark,
            "basic_edit_pdf": self._basic_edit,
            "unlock_pdf": self._unlock,
            "protect_pdf": self._protect,
            "sign_pdf": self._sign,
            "compare_pdf": self._compare,
        }

    def supports(self, operation_id: str) -> bool:
        return operation_id in self._handlers

    def run(self, operation_id: str, inputs: List[FileRef], params: OperationParams) -> ConversionResult:
        """
        Execute an operation.

        Raises:
            InputValidationError: the user can correct the input and retry
            ExternalToolError: the conversion failed or produced nothing usable
            ArtifactIOError: an input artifact vanished from the staging area
        """
        handler = self._handlers.get(operation_id)
        if handler is None:
            raise ExternalToolError(f"No conversion available for '{operation_id}'")

        paths = [Path(f.handle) for f in inputs]
        for path in paths:
            if not self.artifacts.verify(path):
                raise ArtifactIOError(f"Input artifact {path.name} is missing or empty")

        start = time.time()
        try:
            result = handler(paths, params)
        except (InputValidationError, ExternalToolError, ArtifactIOError):
            raise
        except Exception as e:
            raise ExternalToolError(f"{operation_id} failed: {type(e).__name__}: {e}") from e

        for output in result.outputs:
            if not self.artifacts.verify(output):
                self.artifacts.release_all(result.outputs)
                raise ExternalToolError(f"{operation_id} produced an empty or missing file")

        logger.info(
            f"[ENGINE] {operation_id} finished in {time.time() - start:.2f}s "
            f"({len(result.outputs)} output(s))"
        )
        return result

    # ============================================
    # PAGE SELECTION
    # ============================================

    @staticmethod
    def _pages(resolver, selector: str, path: Path, key: str) -> List[int]:
        """Resolve a selector against the document, tagging errors with the answer key"""
        total = pdf_operations.page_count(path)
        try:
            return resolver(selector, total)
        except InvalidSelector as e:
            raise InvalidSelector(e.message, field=key) from e

    def _select(self, paths, params) -> ConversionResult:
        pages = self._pages(parse_selector, params.page_range, paths[0], "page_range")
        return ConversionResult([pdf_operations.select_pages(self.artifacts, paths[0], pages)])

    def _remove(self, paths, params) -> ConversionResult:
        keep = self._pages(pages_to_keep, params.page_range, paths[0], "page_range")
        return ConversionResult([pdf_operations.select_pages(self.artifacts, paths[0], keep)])

    def _rotate(self, paths, params) -> ConversionResult:
        pages = self._pages(resolve_selector, params.page_range, paths[0], "page_range")
        return ConversionResult([pdf_operations.rotate_pdf(self.artifacts, paths[0], params.angle, pages)])

    def _pdf_to_image(self, paths, params) -> ConversionResult:
        pages = self._pages(resolve_selector, params.page_number, paths[0], "page_number")
        return ConversionResult(conversions.pdf_to_images(self.artifacts, paths[0], pages, dpi=params.dpi))

    # ============================================
    # WHOLE-DOCUMENT OPERATIONS
    # ============================================

    def _merge(self, paths, params) -> ConversionResult:
        return ConversionResult([pdf_operations.merge_pdfs(self.artifacts, paths)])

    def _compress(self, paths, params) -> ConversionResult:
        output = pdf_operations.compress_pdf(self.artifacts, paths[0], self.tools, preset=params.preset)
        return ConversionResult([output])

    def _repair(self, paths, params) -> ConversionResult:
        return ConversionResult([pdf_operations.repair_pdf(self.artifacts, paths[0], self.tools)])

    def _ocr(self, paths, params) -> ConversionResult:
        return ConversionResult([pdf_operations.ocr_pdf(self.artifacts, paths[0], self.tools)])

    def _pdf_to_pdfa(self, paths, params) -> ConversionResult:
        return ConversionResult([pdf_operations.pdf_to_pdfa(self.artifacts, paths[0], self.tools)])

    def _basic_edit(self, paths, params) -> ConversionResult:
        return ConversionResult([pdf_operations.rewrite_pdf(self.artifacts, paths[0])])

    def _page_numbers(self, paths, params) -> ConversionResult:
        output = pdf_operations.add_page_numbers(
            self.artifacts, paths[0], position=params.position, font_size=params.font_size
        )
        return ConversionResult([output])

    def _watermark(self, paths, params) -> ConversionResult:
        output = pdf_operations.watermark_pdf(
            self.artifacts, paths[0], params.watermark_text, opacity=params.opacity
        )
        return ConversionResult([output])

    def _unlock(self, paths, params) -> ConversionResult:
        return ConversionResult([pdf_operations.unlock_pdf(self.artifacts, paths[0], params.password)])

    def _protect(self, paths, params) -> ConversionResult:
        return ConversionResult([pdf_operations.protect_pdf(self.artifacts, paths[0], params.password)])

    def _sign(self, paths, params) -> ConversionResult:
        output = pdf_operations.sign_pdf(self.artifacts, paths[0], paths[1], position=params.position)
        return ConversionResult([output])

    def _compare(self, paths, params) -> ConversionResult:
        comparison = pdf_operations.compare_pdfs(paths[0], paths[1])
        return ConversionResult(message=comparison.report())

    # ============================================
    # FORMAT CONVERSIONS
    # ============================================

    def _image_to_pdf(self, paths, params) -> ConversionResult:
        return ConversionResult([conversions.image_to_pdf(self.artifacts, paths)])

    def _office_to_pdf(self, paths, params) -> ConversionResult:
        return ConversionResult([conversions.office_to_pdf(self.artifacts, paths[0], self.tools)])

    def _pdf_to_word(self, paths, params) -> ConversionResult:
        pdf_operations.open_pdf(paths[0])  # rejects encrypted or unreadable files
        return ConversionResult([conversions.pdf_to_docx(self.artifacts, paths[0])])

    def _pdf_to_powerpoint(self, paths, params) -> ConversionResult:
        pdf_operations.open_pdf(paths[0])  # rejects encrypted or unreadable files
        return ConversionResult([conversions.pdf_to_pptx(self.artifacts, paths[0], self.tools)])

    def _pdf_to_excel(self, paths, params) -> ConversionResult:
        pdf_operations.open_pdf(paths[0])  # rejects encrypted or unreadable files
        return ConversionResult([conversions.pdf_to_xlsx(self.artifacts, paths[0])])

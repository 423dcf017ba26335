"""
Tests for typed operation parameters and error classification
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from filebot.error_handler import (
    ArtifactIOError,
    ErrorType,
    ExternalToolError,
    GENERIC_FAILURE_MESSAGE,
    InputValidationError,
    SessionStateError,
    classify_error,
)
from filebot.file_types import FileType, detect_file_type, format_file_size, staging_extension
from filebot.models import (
    DocumentParams,
    PageSelectionParams,
    PdfToImageParams,
    RotateParams,
    UnlockParams,
    FileRef,
    build_params,
)
from filebot.page_ranges import InvalidSelector


class TestBuildParams:
    """Metadata answers -> typed parameters"""

    def test_rotate(self):
        params = build_params("rotate_pdf", {"angle": "90", "page_range": "all"})
        assert isinstance(params, RotateParams)
        assert params.angle == 90

    def test_rotate_bad_angle_names_field(self):
        with pytest.raises(InputValidationError) as exc:
            build_params("rotate_pdf", {"angle": "45", "page_range": "all"})
        assert exc.value.field == "angle"

    def test_missing_page_range_names_field(self):
        with pytest.raises(InputValidationError) as exc:
            build_params("split_pdf", {})
        assert exc.value.field == "page_range"

    def test_page_selection_keeps_operation(self):
        params = build_params("remove_pages", {"page_range": "2"})
        assert isinstance(params, PageSelectionParams)
        assert params.operation == "remove_pages"

    def test_defaults(self):
        assert build_params("pdf_to_image", {}).page_number == "all"
        assert isinstance(build_params("unlock_pdf", {}), UnlockParams)
        assert build_params("compress_pdf", {}).preset == "ebook"
        assert build_params("sign_pdf", {}).position == "bottom_right"

    def test_document_operations(self):
        params = build_params("merge_pdf", {})
        assert isinstance(params, DocumentParams)
        assert params.operation == "merge_pdf"

    def test_empty_password_rejected_for_protect(self):
        with pytest.raises(InputValidationError) as exc:
            build_params("protect_pdf", {"password": ""})
        assert exc.value.field == "password"

    def test_pdf_to_image_dpi_bounds(self):
        assert isinstance(build_params("pdf_to_image", {"page_number": "2"}), PdfToImageParams)
        with pytest.raises(InputValidationError):
            build_params("pdf_to_image", {"page_number": "2", "dpi": "5000"})


class TestFileRef:

    def test_frozen(self):
        ref = FileRef(handle=Path("/tmp/a.pdf"), detected_type=FileType.PDF)
        with pytest.raises(ValidationError):
            ref.size_bytes = 10


class TestFileTypes:
    """Extension / MIME detection"""

    def test_extension_wins(self):
        assert detect_file_type("report.PDF", "application/octet-stream") == FileType.PDF
        assert detect_file_type("slides.pptx") == FileType.POWERPOINT

    def test_mime_fallback(self):
        assert detect_file_type(None, "image/jpeg") == FileType.IMAGE
        assert detect_file_type(
            "",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        ) == FileType.WORD
        assert detect_file_type(
            "sheet",
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        ) == FileType.EXCEL

    def test_unknown(self):
        assert detect_file_type("archive.zip", "application/zip") == FileType.UNKNOWN

    def test_staging_extension(self):
        assert staging_extension("photo.PNG", FileType.IMAGE) == ".png"
        assert staging_extension(None, FileType.IMAGE) == ".jpg"
        assert staging_extension("weird.txt", FileType.PDF) == ".pdf"

    @pytest.mark.parametrize("size, expected", [
        (0, "0 B"),
        (512, "512 B"),
        (1024, "1 KB"),
        (1536, "1.5 KB"),
        (5 * 1024 * 1024, "5 MB"),
    ])
    def test_format_file_size(self, size, expected):
        assert format_file_size(size) == expected


class TestClassifyError:
    """User-facing messages per error family"""

    def test_validation_shown_verbatim(self):
        result = classify_error(InputValidationError("Send a PDF."))
        assert result.error_type == ErrorType.INPUT_VALIDATION
        assert result.user_message == "Send a PDF."

    def test_selector_is_validation(self):
        result = classify_error(InvalidSelector("No valid pages"))
        assert result.error_type == ErrorType.INPUT_VALIDATION

    def test_session_state(self):
        result = classify_error(SessionStateError("Waiting for an answer"))
        assert result.error_type == ErrorType.SESSION_STATE
        assert result.user_message == "Waiting for an answer"

    def test_engine_failure_is_generic(self):
        result = classify_error(ExternalToolError("gs exit 1: /undefined in ..."))
        assert result.error_type == ErrorType.EXTERNAL_TOOL
        assert result.user_message == GENERIC_FAILURE_MESSAGE
        assert "gs exit 1" in result.system_message

    def test_io_failure(self):
        assert classify_error(ArtifactIOError("disk full")).error_type == ErrorType.ARTIFACT_IO
        assert classify_error(PermissionError("denied")).error_type == ErrorType.ARTIFACT_IO

    def test_unexpected(self):
        result = classify_error(KeyError("x"))
        assert result.error_type == ErrorType.UNEXPECTED
        assert result.user_message == GENERIC_FAILURE_MESSAGE
        assert not result.recoverable

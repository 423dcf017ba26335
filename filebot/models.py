"""
Pydantic models for uploaded files, typed operation parameters and HTTP responses.
"""

from pathlib import Path
from typing import List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from filebot.error_handler import InputValidationError
from filebot.file_types import FileType


# ============================================
# UPLOADED FILES
# ============================================

class FileRef(BaseModel):
    """A file the user sent, staged on disk. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    handle: Path = Field(..., description="Path of the staged copy")
    detected_type: FileType
    mime_type: str = "application/octet-stream"
    size_bytes: int = 0
    original_name: str = ""


# ============================================
# OPERATION PARAMETERS
# ============================================
# One variant per operation shape, tagged by `operation`. Field names match
# the metadata keys collected by the catalog questions.

PagePosition = Literal[
    "bottom_left", "bottom_center", "bottom_right", "top_left", "top_center", "top_right"
]
CornerPosition = Literal["bottom_left", "bottom_right", "top_left", "top_right"]


class PageSelectionParams(BaseModel):
    """Split / extract / remove: which pages"""
    operation: Literal["split_pdf", "extract_pages", "remove_pages"]
    page_range: str = Field(..., min_length=1, description="Page selector, e.g. 1-3,5")


class PdfToImageParams(BaseModel):
    """Render pages to images"""
    operation: Literal["pdf_to_image"] = "pdf_to_image"
    page_number: str = Field(default="all", min_length=1, description="'all' or a page selector")
    dpi: int = Field(default=150, ge=36, le=600)


class RotateParams(BaseModel):
    """Rotate some or all pages clockwise"""
    operation: Literal["rotate_pdf"] = "rotate_pdf"
    angle: int = Field(..., description="Rotation degrees (clockwise)")
    page_range: str = Field(default="all", min_length=1)

    @field_validator("angle")
    @classmethod
    def _check_angle(cls, value: int) -> int:
        if value not in (90, 180, 270):
            raise ValueError("angle must be one of 90, 180, 270")
        return value


class PageNumbersParams(BaseModel):
    """Stamp page numbers"""
    operation: Literal["add_page_numbers"] = "add_page_numbers"
    position: PagePosition = "bottom_center"
    font_size: int = 12


class WatermarkParams(BaseModel):
    """Stamp a text watermark on every page"""
    operation: Literal["add_watermark"] = "add_watermark"
    watermark_text: str = Field(..., min_length=1)
    opacity: float = Field(default=0.3, ge=0, le=1)


class ProtectParams(BaseModel):
    """Encrypt with a user password"""
    operation: Literal["protect_pdf"] = "protect_pdf"
    password: str = Field(..., min_length=1)


class UnlockParams(BaseModel):
    """Remove encryption; empty password for owner-only locked files"""
    operation: Literal["unlock_pdf"] = "unlock_pdf"
    password: str = ""


class CompressParams(BaseModel):
    """Ghostscript PDFSETTINGS preset"""
    operation: Literal["compress_pdf"] = "compress_pdf"
    preset: Literal["screen", "ebook", "printer", "prepress"] = "ebook"


class SignParams(BaseModel):
    """Place a signature image on the last page"""
    operation: Literal["sign_pdf"] = "sign_pdf"
    position: CornerPosition = "bottom_right"


class DocumentParams(BaseModel):
    """Operations that need nothing beyond their input files"""
    operation: Literal[
        "merge_pdf",
        "repair_pdf",
        "ocr_pdf",
        "image_to_pdf",
        "word_to_pdf",
        "powerpoint_to_pdf",
        "excel_to_pdf",
        "html_to_pdf",
        "pdf_to_word",
        "pdf_to_powerpoint",
        "pdf_to_excel",
        "pdf_to_pdfa",
        "basic_edit_pdf",
        "compare_pdf",
        "crop_pdf",
        "redact_pdf",
    ]


OperationParams = Union[
    PageSelectionParams,
    PdfToImageParams,
    RotateParams,
    PageNumbersParams,
    WatermarkParams,
    ProtectParams,
    UnlockParams,
    CompressParams,
    SignParams,
    DocumentParams,
]


PARAMS_MODELS: dict[str, type[BaseModel]] = {
    "split_pdf": PageSelectionParams,
    "extract_pages": PageSelectionParams,
    "remove_pages": PageSelectionParams,
    "pdf_to_image": PdfToImageParams,
    "rotate_pdf": RotateParams,
    "add_page_numbers": PageNumbersParams,
    "add_watermark": WatermarkParams,
    "protect_pdf": ProtectParams,
    "unlock_pdf": UnlockParams,
    "compress_pdf": CompressParams,
    "sign_pdf": SignParams,
}


def build_params(operation_id: str, metadata: dict[str, str]) -> OperationParams:
    """
    Turn the raw answers collected for an operation into its typed parameters.

    Raises:
        InputValidationError: an answer is missing or has the wrong shape.
            `field` names the offending metadata key.
    """
    model = PARAMS_MODELS.get(operation_id, DocumentParams)
    try:
        return model.model_validate({**metadata, "operation": operation_id})
    except ValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][0]) if first.get("loc") else None
        label = (field or "input").replace("_", " ")
        raise InputValidationError(f"Invalid {label}: {first['msg']}", field=field) from e


# ============================================
# HTTP RESPONSE MODELS
# ============================================

class Reply(BaseModel):
    """One outbound message, in the order the bot produced it"""
    kind: Literal["text", "file"]
    text: Optional[str] = None
    filename: Optional[str] = None
    mime_type: Optional[str] = None
    data_base64: Optional[str] = None


class WebhookResponse(BaseModel):
    """Everything the bot said in reply to one inbound message"""
    sender_id: str
    replies: List[Reply] = Field(default_factory=list)


class HealthResponse(BaseModel):
    service: str
    status: str
    version: str
    sessions: dict[str, int] = Field(default_factory=dict)

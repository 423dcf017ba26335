"""
Operation Catalog - static description of the 27 menu operations.

Each entry says how many files the operation needs and of which type, which
follow-up questions must be answered before it can run, and when file
collection is complete:

- single_shot: runs as soon as the file and answers are there
- accumulate_until_keyword: keeps collecting until the user types "done"
- accumulate_fixed_count: stops once exactly N files of the right types arrived
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from filebot.file_types import FileType


class CompletionMode(str, Enum):
    """When file collection for an operation is complete"""
    SINGLE_SHOT = "single_shot"
    ACCUMULATE_UNTIL_KEYWORD = "accumulate_until_keyword"
    ACCUMULATE_FIXED_COUNT = "accumulate_fixed_count"


# ============================================
# ANSWER VALIDATORS
# ============================================
# Each returns the normalised answer or raises ValueError with guidance.

PAGE_POSITIONS = (
    "bottom_left", "bottom_center", "bottom_right", "top_left", "top_center", "top_right",
)
NO_PASSWORD_WORDS = {"none", "skip", "-"}


def validate_selector(answer: str) -> str:
    text = answer.strip()
    if not any(ch.isdigit() for ch in text):
        raise ValueError('Please send page numbers, e.g. "1-5", "1,3,5" or "3-".')
    return text


def validate_selector_or_all(answer: str) -> str:
    text = answer.strip()
    if text.lower() == "all":
        return "all"
    if not any(ch.isdigit() for ch in text):
        raise ValueError('Please send page numbers (e.g. "1-5", "2") or "all".')
    return text


def validate_angle(answer: str) -> str:
    text = answer.strip().lower().rstrip("°").replace("degrees", "").replace("deg", "").strip()
    if text not in ("90", "180", "270"):
        raise ValueError("Rotation angle must be 90, 180 or 270.")
    return text


def validate_position(answer: str) -> str:
    text = answer.strip().lower().replace("-", "_").replace(" ", "_")
    if text not in PAGE_POSITIONS:
        raise ValueError(
            "Position must be one of: bottom-left, bottom-center, bottom-right, "
            "top-left, top-center, top-right."
        )
    return text


def validate_required_text(answer: str) -> str:
    text = answer.strip()
    if not text:
        raise ValueError("This answer can't be empty.")
    return text


def validate_optional_password(answer: str) -> str:
    text = answer.strip()
    return "" if text.lower() in NO_PASSWORD_WORDS else text


@dataclass(frozen=True)
class MetadataQuestion:
    """A follow-up question that must be answered before an operation runs"""
    key: str
    prompt: str
    validator: Callable[[str], str] = validate_required_text

    def validate(self, answer: str) -> str:
        return self.validator(answer)


@dataclass(frozen=True)
class OperationSpec:
    """Static description of one menu operation"""
    id: str
    code: int
    title: str
    group: str
    instructions: str
    # One type per file slot; the last entry applies to any further files.
    # An empty tuple accepts any document.
    required_types: tuple[FileType, ...] = (FileType.PDF,)
    min_files: int = 1
    max_files: Optional[int] = 1
    completion_mode: CompletionMode = CompletionMode.SINGLE_SHOT
    questions: tuple[MetadataQuestion, ...] = field(default_factory=tuple)
    unsupported_reason: Optional[str] = None

    def type_for_slot(self, index: int) -> Optional[FileType]:
        """Required type of the file at position `index`, None for any document"""
        if not self.required_types:
            return None
        return self.required_types[min(index, len(self.required_types) - 1)]

    def accepts(self, file_type: FileType, index: int) -> bool:
        required = self.type_for_slot(index)
        return required is None or file_type == required

    def question_for(self, key: str) -> Optional[MetadataQuestion]:
        for question in self.questions:
            if question.key == key:
                return question
        return None


# ============================================
# CATALOG ENTRIES
# ============================================

ORGANIZE = "ORGANIZE PDF"
OPTIMIZE = "OPTIMIZE PDF"
TO_PDF = "CONVERT TO PDF"
FROM_PDF = "CONVERT FROM PDF"
EDIT = "EDIT PDF"
SECURITY = "PDF SECURITY"

MANUAL_INPUT_UNSUPPORTED = "manual coordinate input is not supported in chat"


def _pages_question(prompt: str) -> MetadataQuestion:
    return MetadataQuestion("page_range", prompt, validate_selector)


OPERATIONS: tuple[OperationSpec, ...] = (
    OperationSpec(
        id="merge_pdf", code=1, title="Merge PDFs", group=ORGANIZE,
        instructions="📎 *Merge PDFs*\n\nSend all the PDF files you want to merge, one by one.\n"
                     "When you're finished, type *done*.",
        min_files=2, max_files=None,
        completion_mode=CompletionMode.ACCUMULATE_UNTIL_KEYWORD,
    ),
    OperationSpec(
        id="split_pdf", code=2, title="Split PDF", group=ORGANIZE,
        instructions="✂️ *Split PDF*\n\nSend the PDF file you want to split.\n"
                     "After that I'll ask for the page range.",
        questions=(_pages_question('📄 Which pages? (e.g. "1-5", "1,3,5", "3-" for page 3 to the end)'),),
    ),
    OperationSpec(
        id="remove_pages", code=3, title="Remove Pages", group=ORGANIZE,
        instructions="🗑️ *Remove Pages*\n\nSend the PDF file.\nAfter that I'll ask which pages to remove.",
        questions=(_pages_question('📄 Which pages should I remove? (e.g. "1-3", "5,7,9")'),),
    ),
    OperationSpec(
        id="extract_pages", code=4, title="Extract Pages", group=ORGANIZE,
        instructions="📄 *Extract Pages*\n\nSend the PDF file.\nAfter that I'll ask which pages to extract.",
        questions=(_pages_question('📄 Which pages should I extract? (e.g. "1-3", "5,7,9")'),),
    ),
    OperationSpec(
        id="compress_pdf", code=5, title="Compress PDF", group=OPTIMIZE,
        instructions="🗜️ *Compress PDF*\n\nSend the PDF file to compress.",
    ),
    OperationSpec(
        id="repair_pdf", code=6, title="Repair PDF", group=OPTIMIZE,
        instructions="🔧 *Repair PDF*\n\nSend the PDF file to repair.",
    ),
    OperationSpec(
        id="ocr_pdf", code=7, title="OCR PDF", group=OPTIMIZE,
        instructions="👁️ *OCR PDF*\n\nSend the scanned PDF to make it searchable.",
    ),
    OperationSpec(
        id="image_to_pdf", code=8, title="Image → PDF", group=TO_PDF,
        instructions="🖼️ *Image to PDF*\n\nSend the image (JPG, PNG, ...).",
        required_types=(FileType.IMAGE,),
    ),
    OperationSpec(
        id="word_to_pdf", code=9, title="Word → PDF", group=TO_PDF,
        instructions="📝 *Word to PDF*\n\nSend the Word document (.doc or .docx).",
        required_types=(FileType.WORD,),
    ),
    OperationSpec(
        id="powerpoint_to_pdf", code=10, title="PowerPoint → PDF", group=TO_PDF,
        instructions="📊 *PowerPoint to PDF*\n\nSend the PowerPoint file (.ppt or .pptx).",
        required_types=(FileType.POWERPOINT,),
    ),
    OperationSpec(
        id="excel_to_pdf", code=11, title="Excel → PDF", group=TO_PDF,
        instructions="📈 *Excel to PDF*\n\nSend the Excel file (.xls or .xlsx).",
        required_types=(FileType.EXCEL,),
    ),
    OperationSpec(
        id="html_to_pdf", code=12, title="HTML → PDF", group=TO_PDF,
        instructions="🌐 *HTML to PDF*\n\nSend the HTML file.",
        required_types=(FileType.HTML,),
    ),
    OperationSpec(
        id="pdf_to_image", code=13, title="PDF → Image", group=FROM_PDF,
        instructions="🖼️ *PDF to Image*\n\nSend the PDF file.\n"
                     'After that I\'ll ask which page to convert (or "all").',
        questions=(
            MetadataQuestion(
                "page_number",
                '📄 Which page? Send a number (1, 2, 3, ...), a range, or "all" for every page:',
                validate_selector_or_all,
            ),
        ),
    ),
    OperationSpec(
        id="pdf_to_word", code=14, title="PDF → Word", group=FROM_PDF,
        instructions="📝 *PDF to Word*\n\n⚠️ PDFs are fixed-layout documents, so the Word file "
                     "may not be perfectly editable.\n\nSend the PDF file.",
    ),
    OperationSpec(
        id="pdf_to_powerpoint", code=15, title="PDF → PowerPoint", group=FROM_PDF,
        instructions="📊 *PDF to PowerPoint*\n\nThis conversion has limitations. Send the PDF file.",
    ),
    OperationSpec(
        id="pdf_to_excel", code=16, title="PDF → Excel", group=FROM_PDF,
        instructions="📈 *PDF to Excel*\n\nSend the PDF file.",
    ),
    OperationSpec(
        id="pdf_to_pdfa", code=17, title="PDF → PDF/A", group=FROM_PDF,
        instructions="📋 *PDF to PDF/A*\n\nSend the PDF file.",
    ),
    OperationSpec(
        id="rotate_pdf", code=18, title="Rotate PDF", group=EDIT,
        instructions="🔄 *Rotate PDF*\n\nSend the PDF file.\nAfter that I'll ask for the angle and pages.",
        questions=(
            MetadataQuestion("angle", "🔄 Rotation angle? (90, 180 or 270)", validate_angle),
            MetadataQuestion(
                "page_range", '📄 Which pages should I rotate? (e.g. "1-5" or "all")',
                validate_selector_or_all,
            ),
        ),
    ),
    OperationSpec(
        id="add_page_numbers", code=19, title="Add Page Numbers", group=EDIT,
        instructions="🔢 *Add Page Numbers*\n\nSend the PDF file.\nAfter that I'll ask for the position.",
        questions=(
            MetadataQuestion(
                "position",
                "🔢 Position? (bottom-left, bottom-center, bottom-right, top-left, top-center, top-right)",
                validate_position,
            ),
        ),
    ),
    OperationSpec(
        id="add_watermark", code=20, title="Add Watermark", group=EDIT,
        instructions="💧 *Add Watermark*\n\nSend the PDF file.\nAfter that I'll ask for the watermark text.",
        questions=(MetadataQuestion("watermark_text", "💧 Type the watermark text:"),),
    ),
    OperationSpec(
        id="crop_pdf", code=21, title="Crop PDF", group=EDIT,
        instructions="✂️ *Crop PDF*\n\nSend the PDF file.",
        unsupported_reason=f"Crop PDF needs exact page coordinates, and {MANUAL_INPUT_UNSUPPORTED}.",
    ),
    OperationSpec(
        id="basic_edit_pdf", code=22, title="Basic Edit", group=EDIT,
        instructions="✏️ *Basic Edit PDF*\n\nSend the PDF file.",
    ),
    OperationSpec(
        id="unlock_pdf", code=23, title="Unlock PDF", group=SECURITY,
        instructions="🔓 *Unlock PDF*\n\nSend the PDF file.\nAfter that I'll ask for its password.",
        questions=(
            MetadataQuestion(
                "password", '🔑 Password of the PDF? (type "none" if it opens without one)',
                validate_optional_password,
            ),
        ),
    ),
    OperationSpec(
        id="protect_pdf", code=24, title="Protect PDF", group=SECURITY,
        instructions="🔒 *Protect PDF*\n\nSend the PDF file.\nAfter that I'll ask for a password.",
        questions=(MetadataQuestion("password", "🔒 Choose a password:"),),
    ),
    OperationSpec(
        id="sign_pdf", code=25, title="Sign PDF", group=SECURITY,
        instructions="✍️ *Sign PDF*\n\nSend the PDF file first, then the signature image.",
        required_types=(FileType.PDF, FileType.IMAGE),
        min_files=2, max_files=2,
        completion_mode=CompletionMode.ACCUMULATE_FIXED_COUNT,
    ),
    OperationSpec(
        id="redact_pdf", code=26, title="Redact PDF", group=SECURITY,
        instructions="🖊️ *Redact PDF*\n\nSend the PDF file.",
        unsupported_reason=f"Redact PDF needs exact redaction areas, and {MANUAL_INPUT_UNSUPPORTED}.",
    ),
    OperationSpec(
        id="compare_pdf", code=27, title="Compare PDFs", group=SECURITY,
        instructions="🔍 *Compare PDFs*\n\nSend the first PDF file, then the second one.",
        required_types=(FileType.PDF, FileType.PDF),
        min_files=2, max_files=2,
        completion_mode=CompletionMode.ACCUMULATE_FIXED_COUNT,
    ),
)


class OperationCatalog:
    """Lookup of operations by id and by menu code"""

    def __init__(self, operations: tuple[OperationSpec, ...] | list[OperationSpec] = OPERATIONS):
        self._by_id = {op.id: op for op in operations}
        self._by_code = {op.code: op for op in operations}
        self._operations = sorted(operations, key=lambda op: op.code)

    def __len__(self) -> int:
        return len(self._operations)

    def get(self, operation_id: Optional[str]) -> Optional[OperationSpec]:
        if not operation_id:
            return None
        return self._by_id.get(operation_id)

    def get_by_code(self, code: str) -> Optional[OperationSpec]:
        """Look up a menu selection like '7'. Unknown or non-numeric -> None"""
        text = (code or "").strip()
        if not text.isdigit():
            return None
        return self._by_code.get(int(text))

    def menu_text(self) -> str:
        lines = ["📄 *File Converter Bot*", "", "Choose an option:"]
        current_group = None
        for op in self._operations:
            if op.group != current_group:
                current_group = op.group
                lines += ["", f"*{op.group}*"]
            lines.append(f"{op.code}. {op.title}")
        lines += [
            "",
            "Type *menu* to see this menu again",
            "Type *cancel* to cancel current operation",
            "Type *clear* to clear all uploaded files",
        ]
        return "\n".join(lines)


default_catalog = OperationCatalog()

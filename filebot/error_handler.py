"""
Error Handler - Error taxonomy and user-facing classification.

Every failure inside a conversation is turned into one of four exception
families, and every exception that reaches the top of event handling is
classified into a short human-friendly message. Users never see raw
tracebacks; the orchestrator keeps serving other users whatever happens.

Error families:
1. Input validation (wrong file type, too few files, bad page range, missing answer)
2. External tool (conversion engine failed or produced nothing usable)
3. Artifact IO (staging area allocation / write / verification failure)
4. Session state (event arrived in a state that cannot handle it)
"""

from enum import Enum
from typing import Optional
from dataclasses import dataclass
import logging


logger = logging.getLogger(__name__)


# ============================================
# EXCEPTIONS
# ============================================

class FileBotError(Exception):
    """Base class for all errors raised by the bot"""


class InputValidationError(FileBotError):
    """
    The user's input cannot be used as-is.

    `field` names the metadata key whose answer caused the failure, if any.
    The orchestrator drops that answer so the question is asked again on retry.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ExternalToolError(FileBotError):
    """Conversion engine reported a failure or produced no usable output"""


class ArtifactIOError(FileBotError, OSError):
    """Staging area could not allocate, persist or verify an artifact"""


class SessionStateError(FileBotError):
    """Event received in a state that cannot handle it"""


# ============================================
# CLASSIFICATION
# ============================================

class ErrorType(str, Enum):
    """Enumeration of all error types"""
    INPUT_VALIDATION = "input_validation"
    EXTERNAL_TOOL = "external_tool"
    ARTIFACT_IO = "artifact_io"
    SESSION_STATE = "session_state"
    UNEXPECTED = "unexpected"


@dataclass
class ErrorClassification:
    """Classification result for an error"""
    error_type: ErrorType
    user_message: str
    system_message: str
    recoverable: bool = True


GENERIC_FAILURE_MESSAGE = "Something went wrong while processing your file. Please try again."


def classify_error(error: BaseException) -> ErrorClassification:
    """
    Map an exception to the message shown to the user.

    Validation and state errors carry their own corrective guidance and are
    shown verbatim. Engine, IO and unexpected errors are reduced to a generic
    message; the technical detail only goes to the log.
    """
    if isinstance(error, InputValidationError):
        return ErrorClassification(
            error_type=ErrorType.INPUT_VALIDATION,
            user_message=error.message,
            system_message=f"Input validation failed: {error.message}",
        )

    if isinstance(error, SessionStateError):
        return ErrorClassification(
            error_type=ErrorType.SESSION_STATE,
            user_message=str(error),
            system_message=f"Unexpected event for current step: {error}",
        )

    if isinstance(error, ExternalToolError):
        return ErrorClassification(
            error_type=ErrorType.EXTERNAL_TOOL,
            user_message=GENERIC_FAILURE_MESSAGE,
            system_message=f"Conversion failed: {error}",
        )

    if isinstance(error, (ArtifactIOError, OSError)):
        return ErrorClassification(
            error_type=ErrorType.ARTIFACT_IO,
            user_message="Could not store the file on the server. Please try again in a moment.",
            system_message=f"Artifact IO failure: {error}",
        )

    return ErrorClassification(
        error_type=ErrorType.UNEXPECTED,
        user_message=GENERIC_FAILURE_MESSAGE,
        system_message=f"Unexpected {type(error).__name__}: {error}",
        recoverable=False,
    )

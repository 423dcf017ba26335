"""
Orchestrator - the per-user conversation state machine.

    idle -> awaiting_file <-> awaiting_metadata(key) -> processing -> idle

Every inbound event goes through `handle_event`:
1. Control commands (menu/start/help, cancel, clear, done) are checked first
2. An attachment is staged and added to the session
3. Otherwise the text is routed by the current step:
   - idle: menu selection ("1" .. "27")
   - awaiting_file: reminder to send a file
   - awaiting_metadata: answer to the pending question

Events for the same user are serialised by a per-user lock; different users
run in parallel. Nothing raised while handling an event escapes: failures are
classified and turned into a reply, and the session goes back to idle with
its files kept so the user can retry.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Iterator, List, Optional

from filebot.artifacts import ArtifactManager
from filebot.catalog import CompletionMode, OperationCatalog, OperationSpec, default_catalog
from filebot.channel import InboundEvent, MessagingChannel
from filebot.engine import ConversionEngine, ConversionResult
from filebot.error_handler import (
    ErrorType,
    InputValidationError,
    SessionStateError,
    classify_error,
)
from filebot.file_types import detect_file_type, format_file_size, staging_extension
from filebot.models import FileRef, build_params
from filebot.session_store import Session, SessionStore, Step


logger = logging.getLogger(__name__)


MENU_COMMANDS = {"menu", "start", "help"}
CANCEL_COMMAND = "cancel"
CLEAR_COMMAND = "clear"
DONE_COMMAND = "done"

ORDINALS = ("first", "second", "third")


def output_filename(operation: OperationSpec, source: Optional[FileRef], output: Path, index: int, count: int) -> str:
    """Friendly name for a delivered file, e.g. report_split_pdf.pdf"""
    stem = Path(source.original_name).stem if source and source.original_name else "document"
    suffix = f"_{index + 1}" if count > 1 else ""
    return f"{stem}_{operation.id}{suffix}{output.suffix}"


class Orchestrator:
    """Drives multi-step operations for many concurrent users"""

    def __init__(
        self,
        store: SessionStore,
        artifacts: ArtifactManager,
        engine: ConversionEngine,
        catalog: OperationCatalog = default_catalog,
        max_file_size_bytes: Optional[int] = None,
    ):
        self.store = store
        self.artifacts = artifacts
        self.engine = engine
        self.catalog = catalog
        self.max_file_size_bytes = max_file_size_bytes

        # user_id -> [lock, number of events holding or waiting for it]
        self._user_locks: dict[str, list] = {}
        self._user_locks_guard = Lock()

    @contextmanager
    def _user_lock(self, user_id: str) -> Iterator[None]:
        """Serialise events per user. The entry is dropped once no event needs it."""
        with self._user_locks_guard:
            entry = self._user_locks.setdefault(user_id, [Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._user_locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._user_locks[user_id]

    # ============================================
    # ENTRY POINT
    # ============================================

    def handle_event(self, event: InboundEvent, channel: MessagingChannel) -> None:
        """Process one inbound message. Never raises."""
        with self._user_lock(event.sender_id):
            try:
                self._dispatch(event, channel)
            except Exception as e:
                self._recover(event.sender_id, e, channel)

    def _dispatch(self, event: InboundEvent, channel: MessagingChannel) -> None:
        user_id = event.sender_id
        text = (event.text or "").strip()
        command = text.lower()
        session = self.store.get_or_create(user_id)

        if command in MENU_COMMANDS:
            self._back_to_idle(user_id)
            channel.reply(self.catalog.menu_text())
            return

        if command == CANCEL_COMMAND:
            self._back_to_idle(user_id)
            channel.reply("✅ Operation cancelled. Type *menu* to see options.")
            return

        if command == CLEAR_COMMAND:
            removed = self.store.clear_files(user_id)
            self.artifacts.release_all(f.handle for f in removed)
            self._reset(user_id)
            channel.reply("✅ All uploaded files cleared. Type *menu* to see options.")
            return

        if event.has_attachment:
            self._receive_file(session, event, channel)
            return

        if command == DONE_COMMAND:
            self._finish_collection(session, channel)
            return

        if session.current_step == Step.IDLE:
            self._select_operation(session, text, channel)
        elif session.current_step == Step.AWAITING_FILE:
            channel.reply("📎 Please send a file. Type *cancel* to cancel or *menu* to see options.")
        elif session.current_step == Step.AWAITING_METADATA:
            self._answer_question(session, text, channel)
        else:
            raise SessionStateError("⏳ Still working on your previous request. Please wait.")

    # ============================================
    # TRANSITIONS
    # ============================================

    def _back_to_idle(self, user_id: str) -> None:
        """Leave the current operation. Files and the answers kept for a retry stay."""
        self.store.update(user_id, current_step=Step.IDLE, selected_operation=None, awaiting_key=None)

    def _reset(self, user_id: str) -> None:
        """Back to idle, forgetting the operation and its answers. Files stay."""
        self.store.update(
            user_id,
            current_step=Step.IDLE,
            selected_operation=None,
            awaiting_key=None,
            metadata={},
            last_operation=None,
        )

    def _current_operation(self, session: Session) -> Optional[OperationSpec]:
        return self.catalog.get(session.selected_operation)

    def _select_operation(self, session: Session, text: str, channel: MessagingChannel) -> None:
        operation = self.catalog.get_by_code(text)
        if operation is None:
            if text.isdigit():
                channel.reply("❌ Invalid option. Please type a number from the menu or *menu* to see options.")
            else:
                channel.reply("❓ I didn't understand that. Type *menu* to see options.")
            return

        # Answers survive a failed run, but only for another try at the same operation
        metadata = dict(session.metadata) if session.last_operation == operation.id else {}
        self.store.update(
            session.user_id,
            selected_operation=operation.id,
            current_step=Step.AWAITING_FILE,
            awaiting_key=None,
            metadata=metadata,
            last_operation=None,
        )
        logger.info(f"[SELECT] {session.user_id} -> {operation.id}")
        channel.reply(operation.instructions)

        if session.uploaded_files:
            self._advance(session.user_id, channel)

    def _receive_file(self, session: Session, event: InboundEvent, channel: MessagingChannel) -> None:
        if session.current_step == Step.AWAITING_METADATA:
            raise SessionStateError(
                "I was waiting for an answer, not a file. Your files are kept; "
                "type *menu* to pick the operation again."
            )
        if session.current_step == Step.PROCESSING:
            raise SessionStateError("⏳ Still working on your previous request. Please wait.")

        attachment = event.download_attachment()
        if attachment is None or not attachment.data:
            channel.reply("❌ Failed to download file. Please try again.")
            return

        size = len(attachment.data)
        if self.max_file_size_bytes and size > self.max_file_size_bytes:
            raise InputValidationError(
                f"File is too large ({format_file_size(size)}). "
                f"Maximum size is {format_file_size(self.max_file_size_bytes)}."
            )

        file_type = detect_file_type(attachment.original_name, attachment.mime_type)

        operation = self._current_operation(session) if session.current_step == Step.AWAITING_FILE else None
        if operation and operation.completion_mode == CompletionMode.ACCUMULATE_FIXED_COUNT:
            slot = len(session.uploaded_files)
            if not operation.accepts(file_type, slot):
                required = operation.type_for_slot(slot)
                raise InputValidationError(
                    f"The {ORDINALS[min(slot, len(ORDINALS) - 1)]} file for {operation.title} "
                    f"must be a {required.value} file, received {file_type.value}."
                )

        path = self.artifacts.write(staging_extension(attachment.original_name, file_type), attachment.data)
        file_ref = FileRef(
            handle=path,
            detected_type=file_type,
            mime_type=attachment.mime_type or "application/octet-stream",
            size_bytes=size,
            original_name=attachment.original_name or path.name,
        )
        count = self.store.add_file(session.user_id, file_ref)
        logger.info(
            f"[UPLOAD] {session.user_id}: {file_ref.original_name} ({file_type.value}, "
            f"{format_file_size(size)}), {count} file(s) in session"
        )

        if operation is None:
            channel.reply(
                f"✅ File received! ({format_file_size(size)})\n\n"
                "Type *menu* to see options, then pick what to do with it."
            )
            return

        channel.reply(f"✅ File received! ({format_file_size(size)})")
        self._advance(session.user_id, channel)

    def _finish_collection(self, session: Session, channel: MessagingChannel) -> None:
        operation = self._current_operation(session)
        if (
            operation is None
            or session.current_step != Step.AWAITING_FILE
            or operation.completion_mode != CompletionMode.ACCUMULATE_UNTIL_KEYWORD
        ):
            channel.reply("ℹ️ *done* is only used to finish sending files for a merge. Type *menu* to see options.")
            return

        if len(session.uploaded_files) < operation.min_files:
            raise InputValidationError(f"Please send at least {operation.min_files} PDF files to merge.")

        self._ask_or_process(session.user_id, operation, channel)

    def _answer_question(self, session: Session, text: str, channel: MessagingChannel) -> None:
        operation = self._current_operation(session)
        question = operation.question_for(session.awaiting_key) if operation else None
        if question is None:
            raise SessionStateError("I lost track of the question. Type *menu* to start again.")

        try:
            value = question.validate(text)
        except ValueError as e:
            channel.reply(f"❌ {e}\n\n{question.prompt}")
            return

        metadata = dict(session.metadata)
        metadata[question.key] = value
        self.store.update(session.user_id, metadata=metadata, awaiting_key=None)
        self._ask_or_process(session.user_id, operation, channel)

    def _advance(self, user_id: str, channel: MessagingChannel) -> None:
        """Decide what happens after the file list changed for the selected operation"""
        session = self.store.get_or_create(user_id)
        operation = self._current_operation(session)
        if operation is None:
            return
        count = len(session.uploaded_files)

        if operation.unsupported_reason:
            self._reset(user_id)
            channel.reply(f"❌ {operation.unsupported_reason}\n\nType *menu* to see other options.")
            return

        if operation.completion_mode == CompletionMode.ACCUMULATE_UNTIL_KEYWORD:
            channel.reply(f"📎 Received {count} file(s). Send more PDFs or type *done* to merge.")
            return

        if count < operation.min_files:
            required = operation.type_for_slot(count)
            kind = required.value.upper() if required is not None else "document"
            channel.reply(f"📎 Please send the {ORDINALS[min(count, len(ORDINALS) - 1)]} file ({kind}).")
            return

        self._ask_or_process(user_id, operation, channel)

    def _ask_or_process(self, user_id: str, operation: OperationSpec, channel: MessagingChannel) -> None:
        session = self.store.get_or_create(user_id)
        for question in operation.questions:
            if question.key not in session.metadata:
                self.store.update(user_id, current_step=Step.AWAITING_METADATA, awaiting_key=question.key)
                channel.reply(question.prompt)
                return
        self._process(user_id, operation, channel)

    # ============================================
    # PROCESSING
    # ============================================

    @staticmethod
    def _select_inputs(operation: OperationSpec, files: List[FileRef]) -> List[FileRef]:
        """Check counts and per-slot types. Returns the files the engine gets."""
        if len(files) < operation.min_files:
            raise InputValidationError(
                f"{operation.title} needs at least {operation.min_files} file(s), "
                f"received {len(files)}."
            )
        selected = files if operation.max_files is None else files[:operation.max_files]
        for index, file_ref in enumerate(selected):
            if not operation.accepts(file_ref.detected_type, index):
                required = operation.type_for_slot(index)
                raise InputValidationError(
                    f"Invalid file type for {operation.title}. "
                    f"Expected {required.value}, received {file_ref.detected_type.value}."
                )
        return selected

    def _process(self, user_id: str, operation: OperationSpec, channel: MessagingChannel) -> None:
        session = self.store.update(user_id, current_step=Step.PROCESSING, awaiting_key=None)

        try:
            inputs = self._select_inputs(operation, list(session.uploaded_files))
            params = build_params(operation.id, session.metadata)
            channel.reply("⏳ Processing... This may take a moment.")
            logger.info(f"[PROCESS] {user_id} -> {operation.id} with {len(inputs)} file(s)")
            result = self.engine.run(operation.id, inputs, params)
        except Exception:
            self.store.update(user_id, last_operation=operation.id)
            raise

        try:
            self._deliver(operation, inputs, result, channel)
        finally:
            self.artifacts.release_all(result.outputs)

        consumed = self.store.clear_files(user_id)
        self.artifacts.release_all(f.handle for f in consumed)
        self._reset(user_id)
        logger.info(f"[PROCESS] {user_id} <- {operation.id} delivered {len(result.outputs)} file(s)")

    def _deliver(
        self,
        operation: OperationSpec,
        inputs: List[FileRef],
        result: ConversionResult,
        channel: MessagingChannel,
    ) -> None:
        if result.message:
            channel.reply(result.message)

        source = inputs[0] if inputs else None
        count = len(result.outputs)
        for index, output in enumerate(result.outputs):
            channel.reply_with_file(output, output_filename(operation, source, output, index, count))

        channel.reply("✅ Done! Type *menu* to see more options.")

    # ============================================
    # FAILURE RECOVERY
    # ============================================

    def _recover(self, user_id: str, error: Exception, channel: MessagingChannel) -> None:
        """Report a failure and put the session back to idle, files kept"""
        classification = classify_error(error)
        if classification.error_type in (ErrorType.INPUT_VALIDATION, ErrorType.SESSION_STATE):
            logger.info(f"[ERROR] {user_id}: {classification.system_message}")
        else:
            logger.error(f"[ERROR] {user_id}: {classification.system_message}", exc_info=error)

        try:
            session = self.store.get_or_create(user_id)
            metadata = dict(session.metadata)
            if isinstance(error, InputValidationError) and error.field:
                # Ask that question again on retry
                metadata.pop(error.field, None)
            self.store.update(
                user_id,
                current_step=Step.IDLE,
                selected_operation=None,
                awaiting_key=None,
                metadata=metadata,
            )
            channel.reply(f"❌ {classification.user_message}\n\nType *menu* to start over.")
        except Exception as e:
            logger.error(f"[ERROR] {user_id}: could not recover from failure: {e}", exc_info=e)

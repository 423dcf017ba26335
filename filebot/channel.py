"""
Messaging Channel - the boundary between the chat transport and the bot.

The orchestrator never talks to a chat network itself. A transport adapter
turns each incoming message into an `InboundEvent` and hands over a channel
object with `reply` / `reply_with_file` for the answers.
"""

import base64
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol

from filebot.models import Reply


@dataclass
class Attachment:
    """Downloaded attachment payload"""
    data: bytes
    mime_type: str
    original_name: str


@dataclass
class InboundEvent:
    """One message delivered by the transport"""
    sender_id: str
    text: str = ""
    download_attachment: Optional[Callable[[], Optional[Attachment]]] = None

    @property
    def has_attachment(self) -> bool:
        return self.download_attachment is not None


class MessagingChannel(Protocol):
    """Outbound side of a conversation"""

    def reply(self, text: str) -> None:
        ...

    def reply_with_file(self, path: Path, filename: Optional[str] = None) -> None:
        ...


class ReplyBuffer:
    """
    Collects replies in order for transports that answer in one response.

    File contents are read immediately, so the artifact can be released as
    soon as `reply_with_file` returns.
    """

    def __init__(self):
        self.replies: list[Reply] = []

    def reply(self, text: str) -> None:
        self.replies.append(Reply(kind="text", text=text))

    def reply_with_file(self, path: Path, filename: Optional[str] = None) -> None:
        path = Path(path)
        filename = filename or path.name
        mime_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        self.replies.append(Reply(
            kind="file",
            filename=filename,
            mime_type=mime_type,
            data_base64=base64.b64encode(path.read_bytes()).decode("ascii"),
        ))

    @property
    def texts(self) -> list[str]:
        return [r.text for r in self.replies if r.kind == "text" and r.text is not None]

"""In-memory records that flow through one batch run."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.message import EmailMessage
from pathlib import Path


@dataclass(frozen=True)
class MessageRange:
    """Inclusive IMAP sequence-number range, e.g. ``1:12``."""

    start: int
    end: int

    def __str__(self) -> str:
        return f"{self.start}:{self.end}"

    def __len__(self) -> int:
        return max(self.end - self.start + 1, 0)


@dataclass(frozen=True)
class AttachmentFile:
    """An attachment decoded into a file inside the scratch directory."""

    storage_path: Path
    original_name: str

    @property
    def extension(self) -> str:
        """Lowercased text after the last ``.`` of the stored file name, or ``""``."""
        _, dot, ext = self.storage_path.name.rpartition(".")
        return ext.lower() if dot else ""


@dataclass
class NormalizedMessage:
    """A reduced view of one mailbox message."""

    received_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    sender_address: str = ""
    subject: str = ""
    body_text: str = ""
    attachments: list[AttachmentFile] = field(default_factory=list)

    @property
    def has_attachments(self) -> bool:
        return len(self.attachments) > 0


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of checking one message against the allow-lists."""

    has_attachments: bool
    sender_ok: bool
    extension_ok: bool
    qualifying_attachments: tuple[AttachmentFile, ...] = ()

    @property
    def eligible(self) -> bool:
        return self.has_attachments and self.sender_ok and self.extension_ok


# ------------------------------------------------------------------
# MIME part variants
# ------------------------------------------------------------------


@dataclass(frozen=True)
class InlinePart:
    """Body text shown in the message itself."""

    part: EmailMessage


@dataclass(frozen=True)
class AttachmentPart:
    """A part declared with ``Content-Disposition: attachment``."""

    filename: str
    part: EmailMessage


@dataclass(frozen=True)
class UnknownPart:
    """Any other leaf part (inline images, named inline files, ...)."""

    content_type: str
    disposition: str | None


MessagePart = InlinePart | AttachmentPart | UnknownPart

"""MIME extraction: raw RFC 822 bytes -> NormalizedMessage with attachment files.

Leaf parts are visited in document order.  Inline text overwrites the
body (the last one wins).  Attachments, untyped non-text parts and
forwarded messages are decoded into unique files inside the scratch
directory; anything else is logged and skipped.  A failure on one part
never aborts the rest of the message.
"""

from __future__ import annotations

import email
import email.errors
import email.policy
import email.utils
import os
import tempfile
from collections.abc import Iterator
from datetime import UTC, datetime
from email.message import EmailMessage
from pathlib import Path, PurePath

import structlog

from .models import (
    AttachmentFile,
    AttachmentPart,
    InlinePart,
    MessagePart,
    NormalizedMessage,
    UnknownPart,
)

logger = structlog.get_logger()

EMBEDDED_MESSAGE = "message/rfc822"

# Malformed headers surface as any of these from the email package
_HEADER_ERRORS = (ValueError, TypeError, IndexError, AttributeError, email.errors.MessageError)


class ExtractionError(Exception):
    """A raw message could not be turned into a NormalizedMessage."""


def classify_part(part: EmailMessage) -> MessagePart:
    """Map a leaf MIME part onto one of the handled part variants.

    Without a ``Content-Disposition`` the content type decides: text is
    body, anything else (``application/pdf; name=scan.pdf`` from a
    scanner, say) is an attachment.  An embedded ``message/rfc822`` is
    always kept whole as an attachment.
    """
    disposition = part.get_content_disposition()
    maintype = part.get_content_maintype()
    if disposition == "attachment" or part.get_content_type() == EMBEDDED_MESSAGE:
        return AttachmentPart(filename=part.get_filename() or "", part=part)
    if disposition is None and maintype not in ("text", "message"):
        return AttachmentPart(filename=part.get_filename() or "", part=part)
    if disposition in (None, "inline") and maintype == "text":
        return InlinePart(part=part)
    return UnknownPart(content_type=part.get_content_type(), disposition=disposition)


def leaf_parts(part: EmailMessage) -> Iterator[EmailMessage]:
    """Yield leaf parts in document order.

    Only ``multipart/*`` containers are descended into; an attached
    message is a leaf, so its body and attachments stay out of the outer
    message.
    """
    if part.get_content_maintype() == "multipart":
        for child in part.iter_parts():
            yield from leaf_parts(child)
    else:
        yield part


class AttachmentExtractor:
    """Parse raw messages and write their attachments into *scratch_dir*."""

    def __init__(self, scratch_dir: Path) -> None:
        self._scratch_dir = scratch_dir

    def extract(self, raw_bytes: bytes | None) -> NormalizedMessage:
        if raw_bytes is None:
            raise ExtractionError("server returned no message body")

        try:
            msg = email.message_from_bytes(raw_bytes, policy=email.policy.default)
        except (TypeError, ValueError, email.errors.MessageError) as exc:
            raise ExtractionError(f"cannot parse MIME structure: {exc}") from exc

        message = NormalizedMessage(
            received_at=_header_date(msg),
            sender_address=_first_address(msg),
            subject=_header_text(msg, "Subject"),
        )

        for part in leaf_parts(msg):
            try:
                kind = classify_part(part)
            except _HEADER_ERRORS as exc:
                logger.warning("part_headers_unreadable", error=str(exc))
                continue

            match kind:
                case InlinePart(part=inline):
                    text = self._read_text(inline)
                    if text is not None:
                        message.body_text = text
                case AttachmentPart(filename=filename, part=attached):
                    attachment = self._store_attachment(filename, attached)
                    if attachment is not None:
                        message.attachments.append(attachment)
                case UnknownPart(content_type=content_type, disposition=disposition):
                    logger.debug(
                        "unhandled_part",
                        content_type=content_type,
                        disposition=disposition,
                    )

        return message

    def _read_text(self, part: EmailMessage) -> str | None:
        try:
            content = part.get_content()
        except (LookupError, ValueError, TypeError) as exc:
            logger.warning("inline_part_unreadable", error=str(exc))
            return None
        if isinstance(content, bytes):
            content = content.decode("utf-8", errors="replace")
        return str(content).strip()

    def _store_attachment(self, filename: str, part: EmailMessage) -> AttachmentFile | None:
        """Decode *part* into a fresh file; return None if anything fails.

        A partially written file is removed before returning, so a returned
        AttachmentFile always points at complete content.
        """
        try:
            payload = _payload_bytes(part)
        except _HEADER_ERRORS as exc:
            logger.warning("attachment_decode_failed", filename=filename, error=str(exc))
            return None
        suffix = "_" + PurePath(filename).name if filename else ""

        try:
            fd, name = tempfile.mkstemp(suffix=suffix, dir=self._scratch_dir)
        except (OSError, ValueError) as exc:
            logger.warning("attachment_create_failed", filename=filename, error=str(exc))
            return None

        path = Path(name)
        try:
            _write_file(fd, payload)
        except OSError as exc:
            logger.warning("attachment_write_failed", filename=filename, error=str(exc))
            path.unlink(missing_ok=True)
            return None

        logger.debug("attachment_saved", filename=filename, path=str(path), size=len(payload))
        return AttachmentFile(storage_path=path, original_name=filename)


def _payload_bytes(part: EmailMessage) -> bytes:
    if part.get_content_maintype() == "message":
        # message/* payloads are parsed sub-messages, not encoded bytes
        inner = part.get_payload()
        if isinstance(inner, list):
            return b"".join(sub.as_bytes() for sub in inner)
        return inner.encode() if isinstance(inner, str) else b""
    return part.get_payload(decode=True) or b""


def _write_file(fd: int, payload: bytes) -> None:
    with os.fdopen(fd, "wb") as fh:
        fh.write(payload)


def _header_text(msg: EmailMessage, name: str) -> str:
    try:
        value = msg.get(name)
    except _HEADER_ERRORS:
        return ""
    return str(value) if value is not None else ""


def _header_date(msg: EmailMessage) -> datetime:
    """``Date`` header as an aware datetime; now() when missing or unparseable."""
    raw = _header_text(msg, "Date")
    if raw:
        try:
            parsed = email.utils.parsedate_to_datetime(raw)
        except _HEADER_ERRORS:
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    return datetime.now(UTC)


def _first_address(msg: EmailMessage) -> str:
    """Address of the first ``From`` mailbox, ``""`` if there is none."""
    try:
        header = msg.get("From")
        addresses = header.addresses if header is not None else ()
    except _HEADER_ERRORS:
        return ""
    return addresses[0].addr_spec if addresses else ""

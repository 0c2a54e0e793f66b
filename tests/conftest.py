"""Shared test fixtures for the imap-print test suite."""

from __future__ import annotations

from collections.abc import AsyncIterator
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from imap_print.config import ImapConfig, PrinterConfig, RunConfig
from imap_print.models import AttachmentFile, MessageRange, NormalizedMessage


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep a developer's .env and shell settings out of the tests."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "IMAP_HOST", "IMAP_PORT", "IMAP_USERNAME", "IMAP_PASSWORD", "IMAP_MAILBOX",
        "CUPS_PRINTER", "CUPS_LP_COMMAND", "CUPS_OPTIONS",
        "ALLOWED", "EXTENSIONS", "DRY_RUN", "VERBOSE", "LOG_JSON",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def imap_config() -> ImapConfig:
    return ImapConfig(
        host="imap.test.com",
        port=993,
        username="testuser",
        password="testpass",
        mailbox="INBOX",
    )


@pytest.fixture
def printer_config() -> PrinterConfig:
    return PrinterConfig(printer="office")


@pytest.fixture
def run_config(imap_config: ImapConfig, printer_config: PrinterConfig) -> RunConfig:
    return RunConfig(
        imap=imap_config,
        cups=printer_config,
        allowed=["allowed@example.com"],
        extensions=["pdf"],
    )


@pytest.fixture
def scratch_dir(tmp_path: Path) -> Path:
    path = tmp_path / "scratch"
    path.mkdir()
    return path


# ------------------------------------------------------------------
# Sample EML builders
# ------------------------------------------------------------------


def _build_plain_email(
    *,
    subject: str = "Test Subject",
    from_addr: str = "allowed@example.com",
    body: str = "Hello, World!",
    date: str | None = "Mon, 02 Jun 2025 12:00:00 +0000",
) -> bytes:
    """Build a simple plain-text email without attachments."""
    msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = "printer@example.com"
    if date is not None:
        msg["Date"] = date
    return msg.as_bytes()


def _build_email_with_attachments(
    *,
    from_addr: str = "allowed@example.com",
    subject: str = "Please print",
    body_text: str = "See attached",
    body_html: str | None = None,
    attachments: list[tuple[str, str, bytes]] | None = None,
    date: str | None = "Mon, 02 Jun 2025 12:00:00 +0000",
) -> bytes:
    """Build a multipart/mixed email with a text body and attachments."""
    msg = MIMEMultipart("mixed")
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = "printer@example.com"
    if date is not None:
        msg["Date"] = date

    if body_html is None:
        msg.attach(MIMEText(body_text, "plain"))
    else:
        alt = MIMEMultipart("alternative")
        alt.attach(MIMEText(body_text, "plain"))
        alt.attach(MIMEText(body_html, "html"))
        msg.attach(alt)

    for filename, content_type, payload in attachments or []:
        maintype, subtype = content_type.split("/", 1)
        part = MIMEBase(maintype, subtype)
        part.set_payload(payload)
        encoders.encode_base64(part)
        part.add_header("Content-Disposition", "attachment", filename=filename)
        msg.attach(part)

    return msg.as_bytes()


@pytest.fixture
def plain_eml_bytes() -> bytes:
    return _build_plain_email()


@pytest.fixture
def invoice_eml_bytes() -> bytes:
    return _build_email_with_attachments(
        attachments=[("invoice.pdf", "application/pdf", b"%PDF-1.4 fake invoice")],
    )


# ------------------------------------------------------------------
# Fake mailbox session
# ------------------------------------------------------------------


class FakeMailboxSession:
    """In-memory stand-in for MailboxSession that records every call."""

    def __init__(self, raw_messages: list[bytes | None] | None = None) -> None:
        self.raw_messages = list(raw_messages or [])
        self.fetch_calls: list[tuple[MessageRange, int]] = []
        self.flag_deleted = AsyncMock()
        self.expunge = AsyncMock()
        self.calls: list[str] = []
        self.flag_deleted.side_effect = lambda rng: self.calls.append(f"flag {rng}")
        self.expunge.side_effect = lambda: self.calls.append("expunge")

    @property
    def message_count(self) -> int:
        return len(self.raw_messages)

    async def fetch(self, message_range: MessageRange, count: int) -> AsyncIterator[bytes | None]:
        self.fetch_calls.append((message_range, count))
        self.calls.append(f"fetch {message_range}")
        for raw in self.raw_messages:
            yield raw


@pytest.fixture
def make_message(scratch_dir: Path):
    """Factory for NormalizedMessage instances backed by real scratch files."""

    def _make(
        sender: str = "allowed@example.com", filenames: tuple[str, ...] = ()
    ) -> NormalizedMessage:
        attachments = []
        for index, name in enumerate(filenames):
            path = scratch_dir / f"tmp{index}_{name}"
            path.write_bytes(b"content")
            attachments.append(AttachmentFile(storage_path=path, original_name=name))
        return NormalizedMessage(sender_address=sender, subject="s", attachments=attachments)

    return _make

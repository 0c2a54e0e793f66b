"""Batch orchestrator: drive one mailbox drain from fetch to print."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from .cleanup import CleanupCoordinator, CleanupStatus
from .extractor import AttachmentExtractor, ExtractionError
from .imap_client import MailboxSession
from .models import AttachmentFile, MessageRange, NormalizedMessage
from .policy import AdmissionPolicy
from .printer import PrintDispatcher, PrintResult

logger = structlog.get_logger()


@dataclass
class BatchResult:
    """Counters and outcomes of one run, mirrored in the final log line."""

    fetched: int = 0
    extracted: int = 0
    eligible: int = 0
    cleanup: CleanupStatus | None = None
    prints: list[PrintResult] = field(default_factory=list)

    @property
    def printed(self) -> int:
        return sum(1 for result in self.prints if result.ok)

    @property
    def print_failures(self) -> int:
        return sum(1 for result in self.prints if not result.ok)


class BatchOrchestrator:
    """Fetch every message, decide what to print, delete the batch, print.

    Ordering is fixed: all messages are fetched and evaluated before the
    mailbox is touched, and the mailbox is cleaned up before anything is
    printed.  Cleanup always covers the whole fetched range, including
    messages that were not eligible or failed to parse.  Only a fetch
    failure propagates; everything after it is isolated per item.
    """

    def __init__(
        self,
        *,
        extractor: AttachmentExtractor,
        policy: AdmissionPolicy,
        cleanup: CleanupCoordinator,
        dispatcher: PrintDispatcher,
        printer_name: str,
        dry_run: bool,
    ) -> None:
        self._extractor = extractor
        self._policy = policy
        self._cleanup = cleanup
        self._dispatcher = dispatcher
        self._printer_name = printer_name
        self._dry_run = dry_run

    async def run(self, session: MailboxSession, message_count: int) -> BatchResult:
        result = BatchResult()

        if message_count == 0:
            logger.info("mailbox_empty", status="nothing to do")
            return result

        message_range = MessageRange(1, message_count)
        raw_messages = [raw async for raw in session.fetch(message_range, message_count)]
        result.fetched = len(raw_messages)
        logger.info("messages_fetched", range=str(message_range), fetched=result.fetched)

        messages = self._extract_all(raw_messages)
        result.extracted = len(messages)

        attachments: list[AttachmentFile] = []
        for message in messages:
            qualifying = self._admit(message)
            if qualifying:
                result.eligible += 1
                attachments.extend(qualifying)

        result.cleanup = await self._cleanup.cleanup(
            session,
            message_range,
            dry_run=self._dry_run,
        )
        result.prints = await self._dispatcher.dispatch(
            attachments,
            self._printer_name,
            dry_run=self._dry_run,
        )

        logger.info(
            "batch_complete",
            fetched=result.fetched,
            extracted=result.extracted,
            eligible=result.eligible,
            cleanup=result.cleanup.value,
            printed=result.printed,
            print_failures=result.print_failures,
        )
        return result

    def _extract_all(self, raw_messages: list[bytes | None]) -> list[NormalizedMessage]:
        messages: list[NormalizedMessage] = []
        for position, raw in enumerate(raw_messages, start=1):
            try:
                messages.append(self._extractor.extract(raw))
            except ExtractionError as exc:
                logger.error("message_extraction_failed", position=position, error=str(exc))
        return messages

    def _admit(self, message: NormalizedMessage) -> tuple[AttachmentFile, ...]:
        decision = self._policy.evaluate(message)
        logger.debug(
            "message_evaluated",
            date=message.received_at.isoformat(),
            sender=message.sender_address,
            subject=message.subject,
            text=message.body_text,
            attachments=len(message.attachments),
            sender_ok=decision.sender_ok,
            has_attachments=decision.has_attachments,
            extension_ok=decision.extension_ok,
            eligible=decision.eligible,
        )
        if decision.eligible:
            logger.info(
                "message_accepted",
                sender=message.sender_address,
                subject=message.subject,
                attachments=len(decision.qualifying_attachments),
            )
        else:
            logger.info(
                "message_ignored",
                sender=message.sender_address,
                subject=message.subject,
            )
        return decision.qualifying_attachments

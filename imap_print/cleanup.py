"""Mailbox cleanup: flag the fetched range as deleted, then expunge."""

from __future__ import annotations

from enum import Enum

import structlog

from .imap_client import MailboxError, MailboxSession
from .models import MessageRange

logger = structlog.get_logger()


class CleanupStatus(str, Enum):
    """How far the cleanup of a fetched range got."""

    DRY_RUN = "dry_run"
    EXPUNGED = "expunged"
    FLAG_FAILED = "flag_failed"
    EXPUNGE_FAILED = "expunge_failed"


class CleanupCoordinator:
    """Delete a whole fetched range in one store + expunge round.

    Failures are logged and reported through the returned status, never
    raised: the run goes on to printing either way.  Expunge is only
    attempted after the flags were stored successfully.
    """

    async def cleanup(
        self,
        session: MailboxSession,
        message_range: MessageRange,
        *,
        dry_run: bool,
    ) -> CleanupStatus:
        logger.debug("cleanup_started", range=str(message_range), dry_run=dry_run)

        if dry_run:
            logger.info("cleanup_skipped_dry_run", range=str(message_range))
            return CleanupStatus.DRY_RUN

        try:
            await session.flag_deleted(message_range)
        except MailboxError as exc:
            logger.error("cleanup_flag_failed", range=str(message_range), error=str(exc))
            return CleanupStatus.FLAG_FAILED

        try:
            await session.expunge()
        except MailboxError as exc:
            logger.error("cleanup_expunge_failed", range=str(message_range), error=str(exc))
            return CleanupStatus.EXPUNGE_FAILED

        logger.info("cleanup_complete", range=str(message_range), deleted=len(message_range))
        return CleanupStatus.EXPUNGED

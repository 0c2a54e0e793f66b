"""Run lifecycle: acquire scratch storage and a mailbox session, run one batch."""

from __future__ import annotations

from pathlib import Path

import structlog

from .cleanup import CleanupCoordinator
from .config import RunConfig
from .extractor import AttachmentExtractor
from .imap_client import MailboxSession
from .orchestrator import BatchOrchestrator, BatchResult
from .policy import AdmissionPolicy
from .printer import LpSubmitter, PrintDispatcher
from .scratch import ScratchDirectory

logger = structlog.get_logger()


def build_orchestrator(config: RunConfig, scratch_dir: Path) -> BatchOrchestrator:
    """Wire the pipeline components from *config*."""
    return BatchOrchestrator(
        extractor=AttachmentExtractor(scratch_dir),
        policy=AdmissionPolicy.from_lists(config.allowed, config.extensions),
        cleanup=CleanupCoordinator(),
        dispatcher=PrintDispatcher(
            LpSubmitter(command=config.cups.lp_command, options=config.cups.options),
        ),
        printer_name=config.cups.printer,
        dry_run=config.dry_run,
    )


def log_settings(config: RunConfig, scratch_dir: Path) -> None:
    logger.info("run_started", dry_run=config.dry_run)
    logger.debug(
        "run_settings",
        imap_host=f"{config.imap.host}:{config.imap.port}",
        imap_user=config.imap.username,
        imap_pass="*****",
        mailbox=config.imap.mailbox,
        printer=config.cups.printer,
        scratch_dir=str(scratch_dir),
        allowed=config.allowed,
        extensions=config.extensions,
    )


async def run(config: RunConfig) -> BatchResult:
    """Execute one batch run.

    Setup failures (scratch directory, connect, login, select) and a
    failed fetch propagate to the caller.  The mailbox session and the
    scratch directory are released on every exit path.
    """
    with ScratchDirectory() as scratch_dir:
        log_settings(config, scratch_dir)
        async with MailboxSession(config.imap) as session:
            orchestrator = build_orchestrator(config, scratch_dir)
            result = await orchestrator.run(session, session.message_count)

    logger.info("run_finished", status="done")
    return result

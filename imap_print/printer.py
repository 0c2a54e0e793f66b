"""Print dispatch: hand qualifying attachments to CUPS one at a time."""

from __future__ import annotations

import abc
import asyncio
import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

from .models import AttachmentFile

logger = structlog.get_logger()

_REQUEST_ID = re.compile(r"request id is (\S+)")


class PrintError(Exception):
    """The printing subsystem refused or could not take a job."""


@dataclass(frozen=True)
class PrintResult:
    """Submission outcome for one attachment."""

    attachment: AttachmentFile
    job_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class PrintSubmitter(abc.ABC):
    """Contract of the printing subsystem."""

    @abc.abstractmethod
    async def submit(self, path: Path, printer: str, title: str) -> str:
        """Queue *path* on *printer* and return the job identifier.

        Raises :class:`PrintError` if the destination is unreachable or
        rejects the job.
        """
        ...


class LpSubmitter(PrintSubmitter):
    """Submit jobs through the CUPS ``lp`` command."""

    def __init__(self, command: str = "lp", options: Sequence[str] = ()) -> None:
        self._command = command
        self._options = tuple(options)

    def build_argv(self, path: Path, printer: str, title: str) -> list[str]:
        argv = [self._command, "-d", printer, "-t", title]
        for option in self._options:
            argv += ["-o", option]
        argv.append(str(path))
        return argv

    async def submit(self, path: Path, printer: str, title: str) -> str:
        argv = self.build_argv(path, printer, title)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise PrintError(f"cannot run {self._command}: {exc}") from exc

        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip()
            raise PrintError(detail or f"{self._command} exited with status {proc.returncode}")

        output = stdout.decode(errors="replace").strip()
        match = _REQUEST_ID.search(output)
        return match.group(1) if match else output


class PrintDispatcher:
    """Submit attachments strictly in order, isolating per-attachment failures."""

    def __init__(self, submitter: PrintSubmitter) -> None:
        self._submitter = submitter

    async def dispatch(
        self,
        attachments: Sequence[AttachmentFile],
        printer_name: str,
        *,
        dry_run: bool,
    ) -> list[PrintResult]:
        if not attachments:
            logger.info("printing_skipped", reason="nothing to do")
            return []

        results: list[PrintResult] = []
        for index, attachment in enumerate(attachments, start=1):
            logger.debug("printing", path=str(attachment.storage_path), printer=printer_name)

            if dry_run:
                job_id = f"{printer_name}-dry-run-{index}"
                logger.info(
                    "print_submitted",
                    job_id=job_id,
                    file=attachment.original_name,
                    dry_run=True,
                )
                results.append(PrintResult(attachment=attachment, job_id=job_id))
                continue

            title = attachment.original_name or attachment.storage_path.name
            try:
                job_id = await self._submitter.submit(attachment.storage_path, printer_name, title)
            except PrintError as exc:
                logger.error("print_failed", file=attachment.original_name, error=str(exc))
                results.append(PrintResult(attachment=attachment, error=str(exc)))
                continue

            logger.info("print_submitted", job_id=job_id, file=attachment.original_name)
            results.append(PrintResult(attachment=attachment, job_id=job_id))

        return results

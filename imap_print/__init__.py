"""imap-print: drain an IMAP mailbox and print allowed attachments via CUPS."""

from .app import run
from .cleanup import CleanupCoordinator, CleanupStatus
from .config import ImapConfig, PrinterConfig, RunConfig, load_config
from .extractor import AttachmentExtractor, ExtractionError
from .imap_client import MailboxError, MailboxSession
from .models import AdmissionDecision, AttachmentFile, MessageRange, NormalizedMessage
from .orchestrator import BatchOrchestrator, BatchResult
from .policy import MATCH_ALL, AdmissionPolicy, evaluate
from .printer import LpSubmitter, PrintDispatcher, PrintError, PrintResult, PrintSubmitter
from .scratch import ScratchDirectory

__version__ = "1.0.0"

__all__ = [
    "MATCH_ALL",
    "AdmissionDecision",
    "AdmissionPolicy",
    "AttachmentExtractor",
    "AttachmentFile",
    "BatchOrchestrator",
    "BatchResult",
    "CleanupCoordinator",
    "CleanupStatus",
    "ExtractionError",
    "ImapConfig",
    "LpSubmitter",
    "MailboxError",
    "MailboxSession",
    "MessageRange",
    "NormalizedMessage",
    "PrintDispatcher",
    "PrintError",
    "PrintResult",
    "PrintSubmitter",
    "PrinterConfig",
    "RunConfig",
    "ScratchDirectory",
    "evaluate",
    "load_config",
    "run",
]

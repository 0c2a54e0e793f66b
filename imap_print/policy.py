"""Admission policy: which messages may have their attachments printed."""

from __future__ import annotations

from collections.abc import Collection, Iterable
from dataclasses import dataclass

from .models import AdmissionDecision, NormalizedMessage

MATCH_ALL = "*"


def evaluate(
    message: NormalizedMessage,
    sender_allowlist: Collection[str],
    extension_allowlist: Collection[str],
) -> AdmissionDecision:
    """Decide whether *message* is eligible for printing.

    The sender must be an exact, case-sensitive member of
    *sender_allowlist*.  At least one attachment's lowercased extension
    must be in *extension_allowlist*, unless that list holds
    :data:`MATCH_ALL`; an empty list admits nothing.  An eligible
    message contributes all of its attachments, not only the matching
    ones.
    """
    has_attachments = message.has_attachments
    sender_ok = message.sender_address in sender_allowlist

    if MATCH_ALL in extension_allowlist:
        extension_ok = has_attachments
    else:
        extension_ok = any(
            attachment.extension and attachment.extension in extension_allowlist
            for attachment in message.attachments
        )

    eligible = has_attachments and sender_ok and extension_ok
    return AdmissionDecision(
        has_attachments=has_attachments,
        sender_ok=sender_ok,
        extension_ok=extension_ok,
        qualifying_attachments=tuple(message.attachments) if eligible else (),
    )


@dataclass(frozen=True)
class AdmissionPolicy:
    """The configured allow-lists, bound for repeated evaluation."""

    senders: frozenset[str]
    extensions: frozenset[str]

    @classmethod
    def from_lists(cls, senders: Iterable[str], extensions: Iterable[str]) -> AdmissionPolicy:
        return cls(
            senders=frozenset(senders),
            extensions=frozenset(ext.lower() for ext in extensions),
        )

    def evaluate(self, message: NormalizedMessage) -> AdmissionDecision:
        return evaluate(message, self.senders, self.extensions)

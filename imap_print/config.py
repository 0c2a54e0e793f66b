"""Run configuration loaded from environment variables and an optional ``.env``.

Uses pydantic-settings so every field can be set from the environment,
which is how a cron job or systemd timer usually hands settings over.
Command-line flags are passed as init kwargs and therefore win over both.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode

DEFAULT_MAILBOX = "INBOX"
LIST_SEPARATOR = ":"


def split_list(value: Any) -> Any:
    """Split a ``:``-separated string into its non-blank, stripped items."""
    if isinstance(value, str):
        return [item.strip() for item in value.split(LIST_SEPARATOR) if item.strip()]
    return value


class ImapConfig(BaseSettings):
    """IMAP server connection settings."""

    model_config = {"env_prefix": "IMAP_", "env_file": ".env", "extra": "ignore"}

    host: str = Field(description="IMAP server hostname")
    port: int = Field(default=993, description="IMAP server port (implicit TLS)")
    username: str = Field(description="IMAP login username")
    password: SecretStr = Field(description="IMAP login password")
    mailbox: str = Field(default=DEFAULT_MAILBOX, description="IMAP mailbox to drain")


class PrinterConfig(BaseSettings):
    """CUPS destination and ``lp`` invocation settings."""

    model_config = {"env_prefix": "CUPS_", "env_file": ".env", "extra": "ignore"}

    printer: str = Field(description="CUPS destination name passed to lp -d")
    lp_command: str = Field(default="lp", description="Path or name of the lp binary")
    options: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Extra lp -o options, ':'-separated in the environment",
    )

    @field_validator("options", mode="before")
    @classmethod
    def split_options(cls, value: Any) -> Any:
        return split_list(value)


class RunConfig(BaseSettings):
    """Root configuration for one batch run.

    The nested IMAP and printer sections read their own env prefixes;
    build them with :func:`load_config` so validation errors surface
    from a single place.
    """

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    imap: ImapConfig
    cups: PrinterConfig
    allowed: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Sender addresses whose attachments may be printed (exact match)",
    )
    extensions: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["*"],
        description="Attachment extensions that make a message printable; '*' matches all",
    )
    dry_run: bool = Field(default=False, description="Log actions without deleting or printing")
    verbose: bool = Field(default=False, description="Log the per-message decision trace")
    log_json: bool = Field(default=False, description="Emit JSON lines instead of console output")

    @field_validator("allowed", mode="before")
    @classmethod
    def split_allowed(cls, value: Any) -> Any:
        return split_list(value)

    @field_validator("extensions", mode="before")
    @classmethod
    def normalize_extensions(cls, value: Any) -> Any:
        value = split_list(value)
        if isinstance(value, list):
            return [str(ext).strip().lstrip(".").lower() for ext in value if str(ext).strip()]
        return value


def load_config(
    *,
    imap: dict[str, Any] | None = None,
    cups: dict[str, Any] | None = None,
    **overrides: Any,
) -> RunConfig:
    """Resolve the full configuration, applying *overrides* over the environment."""
    return RunConfig(
        imap=ImapConfig(**(imap or {})),
        cups=PrinterConfig(**(cups or {})),
        **overrides,
    )

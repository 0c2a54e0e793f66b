"""Entry point for the imap-print batch job.

Usage::

    python -m imap_print [--dry-run] [--verbose] [--printer NAME] ...

Settings come from the environment (and ``.env`` when present); flags
override them.  Exits 0 when the pipeline completed, 1 on configuration
or setup failures and on a failed fetch.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any

import structlog
from pydantic import ValidationError

from . import __version__
from .app import run
from .config import DEFAULT_MAILBOX, RunConfig, load_config
from .imap_client import MailboxError
from .logging import setup_logging

logger = structlog.get_logger()


def parse_addr(value: str) -> tuple[str, int | None]:
    """Split ``HOST[:PORT]`` into its parts."""
    host, sep, port = value.strip().rpartition(":")
    if not sep:
        return value.strip(), None
    if not host or not port.isdigit():
        raise argparse.ArgumentTypeError(f"invalid address {value!r}, expected HOST:PORT")
    return host, int(port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="imap-print",
        description="Query emails and print attachments",
    )
    parser.add_argument("-a", "--addr", type=parse_addr, metavar="HOST:PORT",
                        help="The IMAP server address")
    parser.add_argument("-u", "--user", metavar="USER", help="The IMAP account user")
    parser.add_argument("-p", "--pass", dest="password", metavar="PASS",
                        help="The IMAP account password")
    parser.add_argument("-m", "--mbox", metavar="NAME",
                        help=f"The mailbox name (default {DEFAULT_MAILBOX})")
    parser.add_argument("--printer", "--prt", metavar="PRINTER", help="The CUPS printer name")
    parser.add_argument("--allowed", metavar="ADDRESSES",
                        help='Allowed sender email addresses separated by ":"')
    parser.add_argument("--extensions", metavar="EXTS",
                        help='Printable attachment extensions separated by ":" ("*" for all)')
    parser.add_argument("-d", "--dry-run", action="store_true", help="Execute a dry-run")
    parser.add_argument("-vv", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--log-json", action="store_true", help="Emit JSON log lines")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> RunConfig:
    """Load the configuration, letting flags that were given win over the env."""
    imap: dict[str, Any] = {}
    if args.addr:
        host, port = args.addr
        imap["host"] = host
        if port is not None:
            imap["port"] = port
    if args.user:
        imap["username"] = args.user
    if args.password:
        imap["password"] = args.password
    if args.mbox:
        imap["mailbox"] = args.mbox

    cups: dict[str, Any] = {}
    if args.printer:
        cups["printer"] = args.printer

    overrides: dict[str, Any] = {}
    if args.allowed:
        overrides["allowed"] = args.allowed
    if args.extensions:
        overrides["extensions"] = args.extensions
    for flag in ("dry_run", "verbose", "log_json"):
        if getattr(args, flag):
            overrides[flag] = True

    return load_config(imap=imap, cups=cups, **overrides)


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
    except ValidationError as exc:
        # No config to read the logging switches from; the flags are all we have
        setup_logging(json=args.log_json, verbose=args.verbose)
        logger.error("invalid_configuration", error=str(exc))
        sys.exit(1)

    setup_logging(json=config.log_json, verbose=config.verbose)

    try:
        asyncio.run(run(config))
    except (MailboxError, OSError) as exc:
        logger.error("run_failed", error=str(exc))
        sys.exit(1)


if __name__ == "__main__":
    main()

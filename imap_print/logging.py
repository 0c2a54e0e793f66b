"""structlog configuration for a batch run.

Two switches drive it.  ``json`` picks the renderer: JSON lines for a
scheduler that ships logs somewhere, a console renderer for cron mail and
terminals.  ``verbose`` opens up the per-message decision trace
(``message_evaluated``, ``attachment_saved``, ``printing``, ...), which is
logged at DEBUG and tagged with the emitting module and function.
"""

from __future__ import annotations

import logging
import sys

import structlog

# Loggers of libraries we run on top of; kept out of the decision trace
QUIET_LOGGERS = ("asyncio",)


def log_level(verbose: bool) -> int:
    """Root level for a run: DEBUG shows the decision trace, INFO only milestones."""
    return logging.DEBUG if verbose else logging.INFO


def setup_logging(*, json: bool = False, verbose: bool = False) -> int:
    """Configure structlog on top of stdlib logging and return the root level."""
    level = log_level(verbose)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if verbose:
        shared_processors.append(
            structlog.processors.CallsiteParameterAdder(
                {
                    structlog.processors.CallsiteParameter.MODULE,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                }
            )
        )
    shared_processors += [
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    # Module-level loggers must follow any later reconfiguration
    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return level

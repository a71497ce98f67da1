"""structlog setup for the apigen CLI."""

import logging
import sys

import structlog


def configure_logging(verbose: bool = False) -> None:
    """Render log events to stderr; DEBUG when ``verbose``, INFO otherwise.

    stdout stays reserved for command output.
    """
    level = logging.DEBUG if verbose else logging.INFO
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=lambda *args: structlog.PrintLogger(sys.stderr),
        cache_logger_on_first_use=False,
    )

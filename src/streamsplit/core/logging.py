"""
Structured logging for streamsplit.

The library only emits events; importing it configures nothing. Every
module logs through its own namespaced logger::

    logger = structlog.get_logger(__name__)     # "streamsplit.core.driver"

and each split binds its name, so events from one pipeline can be told
apart from another::

    log = logger.bind(split="frames")
    log.debug("split_backpressure", branch="left", target="right")
    # → {"event": "split_backpressure", "split": "frames",
    #    "branch": "left", "target": "right", "level": "debug", ...}

Applications that already route structlog through stdlib logging get these
events under the ``streamsplit`` logger like any other library. Those that
want them rendered without setting that up call ``configure_logging()``,
which touches only the ``streamsplit`` namespace.
"""

from __future__ import annotations

import logging
import sys

import structlog

LOGGER_NAME = "streamsplit"

_HANDLER_NAME = "streamsplit-structlog"


def configure_logging(
    *,
    level: str = "INFO",
    json_output: bool = False,
    propagate: bool = False,
) -> logging.Logger:
    """
    Render streamsplit's events on stderr.

    Args:
        level: Level name for the ``streamsplit`` logger (DEBUG, INFO, ...).
        json_output: Emit JSON lines instead of console-formatted output.
        propagate: Also pass records on to the application's root handlers.

    Installs the stdlib bridge pipeline only if structlog has not been
    configured yet; an application's own structlog setup is left alone.
    Calling this again replaces the previous handler rather than adding one.

    Returns the configured ``streamsplit`` logger.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if not structlog.is_configured():
        structlog.configure(
            processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=pre_chain,
        )
    )

    lib_logger = logging.getLogger(LOGGER_NAME)
    for existing in [h for h in lib_logger.handlers if h.get_name() == _HANDLER_NAME]:
        lib_logger.removeHandler(existing)
    lib_logger.addHandler(handler)
    lib_logger.setLevel(log_level)
    lib_logger.propagate = propagate
    return lib_logger

"""Logging setup for the console and TUI front ends."""

import logging
import os
from logging.handlers import RotatingFileHandler

from rich.logging import RichHandler

LOG_FILE_ENV = "PORTKILL_LOG_FILE"


def setup_logging(
    verbose: bool = False,
    use_textual: bool = False,
    log_file: str | None = None,
) -> None:
    """
    Configure the root logger.

    Args:
        verbose: Log at DEBUG instead of INFO.
        use_textual: Route records to the Textual devtools console instead of
            stderr, so they do not draw over the running TUI.
        log_file: Optional path for a rotating plain-text log. Falls back to
            the ``PORTKILL_LOG_FILE`` environment variable.
    """
    if log_file is None:
        log_file = os.getenv(LOG_FILE_ENV)

    handlers: list[logging.Handler] = []
    if use_textual:
        from textual.logging import TextualHandler

        handlers.append(TextualHandler())
    else:
        handlers.append(RichHandler(rich_tracebacks=True, show_path=False))

    if log_file:
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        handlers=handlers,
        format="%(message)s",
        force=True,
    )

"""Logger configuration for the dotlink command line."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "dotlink"


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Attach a single rich handler to the ``dotlink`` logger.

    Calling this again replaces the previous handler, so repeated CLI invocations in
    one process do not duplicate output.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=verbose,
        markup=False,
    )
    handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger

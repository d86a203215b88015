"""Logging setup shared by the CLI entry points."""

import logging

_HANDLER_NAME = "specforge"


def configure_logging(level: str | int = "INFO") -> None:
    """Attach a single stream handler to the ``specforge`` logger.

    Safe to call more than once; later calls only adjust the level.
    """
    logger = logging.getLogger("specforge")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)

    if not any(h.get_name() == _HANDLER_NAME for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
        )
        logger.addHandler(handler)

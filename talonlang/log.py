import sys

from loguru import logger

LOG_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"

_handler_id = None


def configure_logging(level: str = "INFO", sink=sys.stderr) -> int:
    """Route loguru output to ``sink`` at ``level``. Safe to call more than once."""
    global _handler_id
    if _handler_id is None:
        # drop loguru's default stderr handler so records are not printed twice
        logger.remove()
    else:
        logger.remove(_handler_id)
    _handler_id = logger.add(sink, level=level.upper(), format=LOG_FORMAT)
    return _handler_id

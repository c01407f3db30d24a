import logging
import sys

_LOGGING_CONFIGURED = False


def configure_logging(level: str = "INFO") -> None:
    """
    Configure logging once per process.
    Safe to call multiple times.
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stdout,
    )
    _LOGGING_CONFIGURED = True

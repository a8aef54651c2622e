"""Logging configuration for VP Context."""

import logging
import sys

# Loggers that trace every bus message or OCR sample at DEBUG
TRAFFIC_LOGGERS = ("vp_context.bus", "vp_context.endpoints", "vp_context.recording")

NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite", "PIL", "multipart")


def setup_logging(level: str = "INFO", debug: bool = False, traffic: bool = False) -> None:
    """
    Configure logging for the service.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        debug: Verbose format with logger name and line number
        traffic: Keep per-message bus and sampler logs when debugging
    """
    log_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)

    if debug:
        log_format = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
    else:
        log_format = "%(asctime)s | %(levelname)-8s | %(message)s"

    # force: uvicorn --reload re-imports the app in the same interpreter
    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(
        logging.DEBUG if debug else logging.WARNING
    )
    logging.getLogger("uvicorn.error").setLevel(log_level)

    # Debug mode still hides the per-message chatter unless asked for
    traffic_level = log_level if traffic else max(log_level, logging.INFO)
    for name in TRAFFIC_LOGGERS:
        logging.getLogger(name).setLevel(traffic_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

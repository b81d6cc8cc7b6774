"""Logging setup for entry points."""

import logging

from bookkeeping.shared.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings, verbose: bool = False) -> None:
    """Configure root logging once per process.

    Args:
        settings: Application settings providing the log level
        verbose: Force DEBUG regardless of settings
    """
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level)
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
    # Third-party HTTP clients are chatty at INFO
    for noisy in ("httpx", "httpcore", "openai", "urllib3", "google"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))

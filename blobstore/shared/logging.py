"""Logging helpers for blobstore and its scripts."""

import logging
import sys

# boto3 stack loggers emit request/credential chatter at DEBUG.
NOISY_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3")


def setup_logging(debug: bool = False) -> None:
    """Install a stdout handler on the root logger.

    blobstore itself only creates module loggers; call this from scripts or
    an embedding application that has no logging setup of its own. The
    boto3 stack stays at WARNING unless debug is True.
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a blobstore module (pass __name__)."""
    return logging.getLogger(name)

"""Logging setup for processes embedding the retrieval engine."""
from __future__ import annotations

import logging
import os
from pathlib import Path


def setup_logging() -> None:
    """Configure file and console logging once per process."""
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    level_name = os.getenv("LEASE_RETRIEVAL_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    log_file = os.getenv("LEASE_RETRIEVAL_LOG_FILE", "lease_retrieval.log")

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    # An empty LEASE_RETRIEVAL_LOG_FILE keeps logging on the console only.
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.setLevel(level)


__all__ = ["setup_logging"]

"""Logging configuration."""

from __future__ import annotations

import logging

from rich.logging import RichHandler


def setup_logging(level: str = "INFO", log_file: str | None = None) -> logging.Logger:
    """Attach a rich console handler (and optional file handler) to the package logger."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger("stockwatch")
    root.setLevel(numeric_level)

    if not root.handlers:
        root.addHandler(RichHandler(level=numeric_level, rich_tracebacks=True, markup=False))

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
            )
            root.addHandler(file_handler)

    return root

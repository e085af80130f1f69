from __future__ import annotations

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def setup_logging(level: str = "INFO", log_file: str | Path | None = None) -> Path | None:
    """
    Configure root logging.

    With log_file set, records go to that file only (the TUI owns the
    terminal). Without it, records go to stderr.

    Returns the log file path, if any.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(LOG_FORMAT)
    path: Path | None = None
    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(path, encoding="utf-8")
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(fmt)
    root.addHandler(handler)

    # aiohttp access logs are noise for a long-lived client
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    return path

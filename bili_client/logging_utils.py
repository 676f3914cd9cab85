from __future__ import annotations

import logging
import sys

_LOG_FORMAT = "{asctime}|{name}|{levelname:^7s}| {message}"
_TIME_FORMAT = "%H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger("bili_client")
    if any(getattr(handler, "_bili_client", False) for handler in root.handlers):
        root.setLevel(level)
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, _TIME_FORMAT, "{"))
    handler._bili_client = True  # type: ignore[attr-defined]

    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False
    logging.getLogger("urllib3").setLevel(logging.WARNING)

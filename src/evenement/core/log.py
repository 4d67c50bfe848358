from __future__ import annotations

import json
import logging
import os
import sys
from typing import Optional

from dotenv import find_dotenv, load_dotenv

_configured = False


def _load_dotenv() -> None:
    # .env next to the working directory; real env vars win
    load_dotenv(find_dotenv(usecwd=True), override=False)


class JsonHandler(logging.StreamHandler):
    """One JSON object per line on stdout."""
    def __init__(self):
        super().__init__(stream=sys.stdout)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            obj = {
                "ts": record.created,
                "lvl": record.levelname,
                "name": record.name,
                "msg": record.getMessage(),
            }
            for k in ("filename", "lineno", "funcName"):
                obj[k] = getattr(record, k, None)
            if record.exc_info:
                obj["exc"] = logging.Formatter().formatException(record.exc_info)
            self.stream.write(json.dumps(obj, ensure_ascii=False, default=str) + "\n")
            self.flush()
        except Exception:  # pragma: no cover
            self.handleError(record)


def _resolve_level(name: str) -> int:
    lvl = logging.getLevelName(name.upper())
    return lvl if isinstance(lvl, int) else logging.INFO


def setup(level: Optional[str] = None, json_mode: Optional[bool] = None, *, force: bool = False) -> None:
    """Configure the root logger.

    - ``level`` / ``json_mode`` fall back to LOG_LEVEL / LOG_JSON (``.env`` is honoured)
    - a second call is a no-op unless ``force=True``
    """
    global _configured
    if _configured and not force:
        return

    _load_dotenv()

    py_level = _resolve_level(level or os.getenv("LOG_LEVEL", "INFO"))
    json_flag = json_mode if json_mode is not None else (os.getenv("LOG_JSON", "0") == "1")

    root = logging.getLogger()
    # drop previous handlers so repeated setup() does not duplicate lines
    root.handlers.clear()
    root.setLevel(py_level)

    if json_flag:
        root.addHandler(JsonHandler())
    else:
        handler = logging.StreamHandler(stream=sys.stdout)
        handler.setFormatter(logging.Formatter(fmt="[%(asctime)s] %(levelname)s %(name)s | %(message)s"))
        root.addHandler(handler)

    _configured = True


def get(name: str) -> logging.Logger:
    """Namespaced logger helper."""
    return logging.getLogger(name)


def set_level(level: str) -> None:
    """Adjust the root level at runtime (handy in tests)."""
    logging.getLogger().setLevel(_resolve_level(level))

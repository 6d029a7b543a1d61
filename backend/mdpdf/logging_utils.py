from __future__ import annotations

import logging
from typing import Any, MutableMapping

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=_FORMAT, datefmt=_DATEFMT)


class RequestLogger(logging.LoggerAdapter):
    """Prefixes every record with the id of the request it belongs to."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        return f"[req={self.extra['request_id']}] {msg}", kwargs


def request_logger(logger: logging.Logger, request_id: str) -> RequestLogger:
    return RequestLogger(logger, {"request_id": request_id})

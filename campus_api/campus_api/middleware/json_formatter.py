"""JSON log formatter.

Activated with ``CAMPUS_STRUCTURED_LOGGING=true``: the root handlers are
replaced by a ``StreamHandler`` using this formatter, one JSON object per
line::

    {
        "timestamp": "2026-10-16T06:00:01.123456+00:00",
        "level": "INFO",
        "logger": "campus_api.services.bill_generator",
        "message": "Bill generation for 2026-10-16 complete: ...",
        "request": { ... },          // access log lines only
        "exc_info": "Traceback ..."  // exceptions only
    }
"""

from __future__ import annotations

import json
import logging
import traceback
from datetime import UTC, datetime
from typing import Any


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_data = getattr(record, "request", None)
        if request_data is not None:
            payload["request"] = request_data

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)


def install_json_logging(level: int = logging.INFO) -> None:
    """Replace the root handlers with a single JSON ``StreamHandler``."""
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

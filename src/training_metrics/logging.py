"""JSON structured logging for the training metrics engine.

The host application picks the format through EngineConfig.configure_logging: "json"
(default) or "text". Engine modules attach structured fields through
``metrics_extra`` so they land as ``metrics_*`` keys in the JSON line.
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any

EXTRA_PREFIX = "metrics_"


def metrics_extra(**fields: Any) -> dict[str, Any]:
    """Build a logging ``extra`` dict with every key namespaced."""
    return {f"{EXTRA_PREFIX}{key}": value for key, value in fields.items()}


class JSONFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
        }

        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = "".join(traceback.format_exception(*record.exc_info))

        for key, value in record.__dict__.items():
            if key.startswith(EXTRA_PREFIX):
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def setup_logging(log_format: str, level: int = logging.INFO) -> logging.Handler:
    """Attach one stderr handler to the ``training_metrics`` logger tree.

    Only the package logger is touched so the host application's root
    logging setup stays intact. Calling it again replaces the handler.
    """
    package_logger = logging.getLogger("training_metrics")
    package_logger.setLevel(level)

    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    package_logger.addHandler(handler)
    return handler

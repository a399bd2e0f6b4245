"""Logging for the composition service.

Every module logs under the "app" namespace. One stdout handler on that
parent logger renders records as JSON lines (or plain text when
LOG_JSON=false), tagged with the job id of the composition task that
emitted them.
"""

import json
import logging
import sys
from contextvars import ContextVar
from typing import Optional

from app.config import settings

# Set by the per-job composition task; asyncio copies context into child tasks
job_id_context: ContextVar[Optional[str]] = ContextVar("job_id", default=None)

_ROOT = "app"
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "job_id"}


class JobIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.job_id = job_id_context.get()
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record; extra= fields are flattened into it."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "job_id": getattr(record, "job_id", None),
            "msg": record.getMessage(),
        }
        entry.update(
            (k, v) for k, v in vars(record).items()
            if k not in _RESERVED and not k.startswith("_")
        )
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _configure(root: logging.Logger) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(JobIdFilter())
    if settings.log_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s [%(job_id)s] %(message)s"))
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))


def get_logger(name: str) -> logging.Logger:
    """Logger for a module, e.g. get_logger("composition.engine")."""
    root = logging.getLogger(_ROOT)
    if not root.handlers:
        _configure(root)
    return logging.getLogger(f"{_ROOT}.{name}")


def set_job_id(job_id: Optional[str]) -> None:
    job_id_context.set(job_id)

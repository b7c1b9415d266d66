"""Logging setup for the API server.

Each record gets the process role plus the id and user of the request being
served. The request middleware binds a mutable context dict with
:func:`bind_request`; sync dependencies and endpoints run in threadpool copies
of the request's context, and every copy shares that dict, so
:func:`bind_user` called from any of them shows up on all later lines of the
same request.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Iterator

request_context: ContextVar[dict[str, str] | None] = ContextVar("request_context", default=None)

QUIET_LOGGERS = ("httpx", "httpcore")
UVICORN_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error")


@contextmanager
def bind_request(request_id: str) -> Iterator[dict[str, str]]:
    ctx = {"request_id": request_id, "user_id": ""}
    token = request_context.set(ctx)
    try:
        yield ctx
    finally:
        request_context.reset(token)


def bind_user(user_id: int | str) -> None:
    """Attach *user_id* to the current request's log context, if there is one."""
    ctx = request_context.get()
    if ctx is not None:
        ctx["user_id"] = str(user_id)


class ContextFilter(logging.Filter):
    def __init__(self, role: str) -> None:
        super().__init__()
        self.role = role

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = request_context.get() or {}
        record.role = self.role  # type: ignore[attr-defined]
        record.request_id = ctx.get("request_id", "")  # type: ignore[attr-defined]
        record.user_id = ctx.get("user_id", "")  # type: ignore[attr-defined]
        return True


class ContextFormatter(logging.Formatter):
    """``2026-02-17 14:30:01 [Server][Req 9f2c1a7b][User 7][WARNING] services.chat:131 - msg``"""

    def format(self, record: logging.LogRecord) -> str:
        tags = [getattr(record, "role", "")]
        request_id = getattr(record, "request_id", "")
        if request_id:
            tags.append(f"Req {request_id[:8]}")
        user_id = getattr(record, "user_id", "")
        if user_id:
            tags.append(f"User {user_id}")
        tags.append(record.levelname)

        prefix = "".join(f"[{t}]" for t in tags if t)
        line = f"{self.formatTime(record, self.datefmt)} {prefix} {record.name}:{record.lineno} - {record.getMessage()}"
        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            line += "\n" + record.exc_text
        if record.stack_info:
            line += "\n" + record.stack_info
        return line


def setup_logging(role: str) -> None:
    """Attach the stderr (and optional rotating file) handler to the root logger.

    Idempotent: a second call finds the ``_chat_stream`` handler and returns.
    """
    from config import settings

    root = logging.getLogger()
    if any(h.name == "_chat_stream" for h in root.handlers):
        return
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    handlers: dict[str, logging.Handler] = {"_chat_stream": logging.StreamHandler(sys.stderr)}
    if settings.LOG_FILE:
        log_path = Path(settings.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers["_chat_file"] = logging.handlers.RotatingFileHandler(
            str(log_path),
            maxBytes=settings.LOG_MAX_BYTES,
            backupCount=settings.LOG_BACKUP_COUNT,
            encoding="utf-8",
        )

    ctx_filter = ContextFilter(role)
    formatter = ContextFormatter(datefmt="%Y-%m-%d %H:%M:%S")
    for name, handler in handlers.items():
        handler.name = name
        handler.addFilter(ctx_filter)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # uvicorn installs its own handlers; send its records through ours instead
    for name in UVICORN_LOGGERS:
        uv_logger = logging.getLogger(name)
        uv_logger.handlers.clear()
        uv_logger.propagate = True

"""
Runtime utilities:
- shared foreground thread pool for blocking store calls, with safe shutdown
- request context for structured logs
"""
from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from contextvars import ContextVar
from typing import Any, Dict, Optional

_LOGGER = logging.getLogger("runtime")

_REQUEST_ID: ContextVar[str] = ContextVar("request_id", default="-")

_FG_EXECUTOR: Optional[ThreadPoolExecutor] = None
_EXECUTOR_LOCK = threading.Lock()
_FOREGROUND_WORKERS = max(2, int(os.getenv("APP_FOREGROUND_MAX_WORKERS", "4")))


def get_request_id() -> str:
    return _REQUEST_ID.get() or "-"


def set_request_id(request_id: Optional[str]) -> str:
    rid = (request_id or "").strip() or str(uuid.uuid4())
    _REQUEST_ID.set(rid)
    return rid


def clear_context() -> None:
    _REQUEST_ID.set("-")


def structured_fields(**extra: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"request_id": get_request_id()}
    payload.update(extra)
    return payload


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    payload = structured_fields(event=event, **fields)
    logger.log(level, json.dumps(payload, default=str, ensure_ascii=True))


def get_foreground_executor() -> ThreadPoolExecutor:
    global _FG_EXECUTOR
    if _FG_EXECUTOR is not None:
        return _FG_EXECUTOR
    with _EXECUTOR_LOCK:
        if _FG_EXECUTOR is None:
            _FG_EXECUTOR = ThreadPoolExecutor(max_workers=_FOREGROUND_WORKERS, thread_name_prefix="assistant-fg")
        return _FG_EXECUTOR


def shutdown_shared_executor(wait: bool = False) -> None:
    global _FG_EXECUTOR
    with _EXECUTOR_LOCK:
        if _FG_EXECUTOR is None:
            return
        _FG_EXECUTOR.shutdown(wait=wait, cancel_futures=True)
        _FG_EXECUTOR = None
        _LOGGER.info("shared_executor_shutdown")

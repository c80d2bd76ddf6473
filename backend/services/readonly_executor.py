"""Primary executor: hands validated SQL to the store's read-only function."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from backend.services.errors import PrimaryExecutionFailed
from backend.services.runtime import log_event
from backend.services.store import DataStore

logger = logging.getLogger("readonly_executor")

Row = Dict[str, Any]


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one execution path. ``rows`` and ``error`` are never both set."""
    rows: Optional[List[Row]] = None
    error: Optional[str] = None

    def __post_init__(self):
        if self.rows is not None and self.error is not None:
            raise ValueError("ExecutionResult cannot carry both rows and an error")

    @classmethod
    def failed(cls, error: str) -> "ExecutionResult":
        return cls(rows=None, error=error)


def execute_primary(store: DataStore, sql: str) -> ExecutionResult:
    """
    Run ``sql`` verbatim through the read-only function.

    Every failure, including the function not being configured at all, is
    raised as PrimaryExecutionFailed so the caller can switch to the fallback.
    """
    if not store.has_readonly_function:
        log_event(logger, logging.INFO, "primary_execution_unavailable")
        raise PrimaryExecutionFailed("read-only function not configured")
    try:
        rows = store.call_readonly(sql)
    except Exception as exc:
        log_event(logger, logging.WARNING, "primary_execution_failed", error=type(exc).__name__, detail=str(exc)[:300])
        raise PrimaryExecutionFailed(str(exc)) from exc

    log_event(logger, logging.INFO, "primary_execution_ok", row_count=len(rows))
    return ExecutionResult(rows=rows, error=None)

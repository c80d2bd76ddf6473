"""
Fallback interpreter - used only when the read-only function path fails.

It deliberately understands very little SQL: the first table after FROM, an
optional ORDER BY column/direction and an optional LIMIT. WHERE, JOIN,
GROUP BY and aggregates are not applied, so callers get unconditioned rows
from the named table, bounded by the limit. The allowlist check on the table
name is the security gate for this path.
"""
import logging
import re
from dataclasses import dataclass
from typing import Optional

from backend.services.errors import AllowlistError, ExecutionError, ParseError, QueryError
from backend.services.readonly_executor import ExecutionResult
from backend.services.runtime import log_event
from backend.services.schema import coerce_rows, is_allowed_table
from backend.services.store import DataStore

logger = logging.getLogger("fallback_interpreter")

DEFAULT_LIMIT = 20
MAX_LIMIT = 50

_FROM_RE = re.compile(r"\bfrom\s+(\w+)")
_LIMIT_RE = re.compile(r"\blimit\s+(\d+)")
_ORDER_RE = re.compile(r"\border\s+by\s+(\w+)(?:\s+(asc|desc))?", re.IGNORECASE)


@dataclass(frozen=True)
class FallbackPlan:
    table: str
    limit: int
    order_by: Optional[str] = None
    ascending: bool = True


def plan_fallback(sql: str, default_limit: int = DEFAULT_LIMIT, max_limit: int = MAX_LIMIT) -> FallbackPlan:
    """Extract table, limit and ordering. Raises ParseError / AllowlistError."""
    low = (sql or "").lower()

    m = _FROM_RE.search(low)
    if not m:
        raise ParseError("Could not parse table name")
    table = m.group(1)
    if not is_allowed_table(table):
        raise AllowlistError("Table not allowed")

    limit_match = _LIMIT_RE.search(low)
    # An explicit LIMIT is clamped to the same ceiling the prompt promises the model.
    limit = min(int(limit_match.group(1)), max_limit) if limit_match else default_limit

    order_by = None
    ascending = True
    order_match = _ORDER_RE.search(sql or "")
    if order_match:
        order_by = order_match.group(1).lower()
        ascending = (order_match.group(2) or "").lower() != "desc"

    return FallbackPlan(table=table, limit=limit, order_by=order_by, ascending=ascending)


def execute_fallback(
    store: DataStore,
    sql: str,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> ExecutionResult:
    try:
        plan = plan_fallback(sql, default_limit=default_limit, max_limit=max_limit)
    except QueryError as exc:
        log_event(logger, logging.WARNING, "fallback_execution_rejected", reason=exc.message)
        return ExecutionResult.failed(exc.message)

    try:
        raw_rows = store.select_rows(
            plan.table,
            order_by=plan.order_by,
            ascending=plan.ascending,
            limit=plan.limit,
        )
        rows = coerce_rows(plan.table, raw_rows)
    except ExecutionError as exc:
        log_event(logger, logging.WARNING, "fallback_execution_failed", table=plan.table, reason=exc.message)
        return ExecutionResult.failed(exc.message)
    except Exception as exc:
        logger.exception("fallback_execution_unexpected_error")
        return ExecutionResult.failed(str(exc) or "Query execution failed")

    log_event(
        logger,
        logging.INFO,
        "fallback_execution_ok",
        table=plan.table,
        limit=plan.limit,
        order_by=plan.order_by,
        ascending=plan.ascending,
        row_count=len(rows),
    )
    return ExecutionResult(rows=rows, error=None)

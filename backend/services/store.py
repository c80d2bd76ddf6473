"""
Data store access - read-only function calls and structured table reads.

Connections are never committed; every call runs inside a connection that is
rolled back when it is returned to the pool.
"""
import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from backend.services.errors import ExecutionError
from backend.services.runtime import log_event
from backend.services.schema import sa_table

logger = logging.getLogger("store")


def create_store_engine(database_url: str) -> Engine:
    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=300,    # Managed databases drop idle connections
        echo=False,
    )


def _decode_payload(values: List[Any]) -> List[Dict[str, Any]]:
    """Normalise what the read-only function returned into a list of row mappings."""
    rows: List[Any] = []
    for value in values:
        if isinstance(value, (bytes, bytearray)):
            value = value.decode("utf-8")
        if isinstance(value, str):
            value = json.loads(value)
        if value is None:
            continue
        if isinstance(value, list):
            rows.extend(value)
        else:
            rows.append(value)
    if not all(isinstance(r, dict) for r in rows):
        raise ValueError("read-only function returned non-row values")
    return rows


class DataStore:
    def __init__(self, engine: Engine, readonly_function: Optional[str] = None):
        self._engine = engine
        self._readonly_function = readonly_function or None

    @classmethod
    def from_url(cls, database_url: str, readonly_function: Optional[str] = None) -> "DataStore":
        return cls(create_store_engine(database_url), readonly_function)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def has_readonly_function(self) -> bool:
        return self._readonly_function is not None

    def call_readonly(self, sql: str) -> List[Dict[str, Any]]:
        """Run ``sql`` through the store's read-only function. Raises on any failure."""
        if self._readonly_function is None:
            raise RuntimeError("read-only function is not configured")
        # Function name is validated as an identifier in AssistantConfig.validate().
        stmt = text(f"SELECT {self._readonly_function}(:sql_query) AS result")
        with self._engine.connect() as conn:
            values = [row[0] for row in conn.execute(stmt, {"sql_query": sql})]
        return _decode_payload(values)

    def select_rows(
        self,
        table_name: str,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: int = 20,
    ) -> List[Dict[str, Any]]:
        """SELECT every declared column of an allowlisted table with optional ORDER BY and LIMIT."""
        table = sa_table(table_name)
        stmt = select(table)
        if order_by:
            column = table.c.get(order_by)
            if column is None:
                raise ExecutionError(f'column "{table_name}.{order_by}" does not exist')
            stmt = stmt.order_by(column.asc() if ascending else column.desc())
        if "id" in table.c and order_by != "id":
            # Stable tie-break so repeated reads return identical ordering.
            stmt = stmt.order_by(table.c.id.asc())
        stmt = stmt.limit(max(0, int(limit)))

        try:
            with self._engine.connect() as conn:
                rows = [dict(r._mapping) for r in conn.execute(stmt)]
        except SQLAlchemyError as exc:
            log_event(logger, logging.WARNING, "store_select_failed", table=table_name, error=type(exc).__name__)
            raise ExecutionError(str(getattr(exc, "orig", None) or exc)) from exc
        return rows

    def dispose(self) -> None:
        self._engine.dispose()

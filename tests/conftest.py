import json
import sqlite3
from datetime import date, datetime

import pytest
from sqlalchemy import create_engine, event, insert

from backend.services.config import AssistantConfig
from backend.services.schema import metadata, sa_table
from backend.services.store import DataStore

PRODUCT_COUNT = 60


def fixed_uuid(i: int) -> str:
    return f"00000000-0000-4000-8000-{i:012d}"


class FakeLLM:
    """Stands in for ChatCompletionClient; returns a canned reply and records prompts."""

    def __init__(self, reply: str = "", error: Exception = None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def complete(self, messages):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return self.reply


def _seed(engine):
    products = sa_table("products")
    categories = sa_table("categories")
    sales = sa_table("sales")
    financial = sa_table("financial_summary")
    created = datetime(2025, 1, 1, 9, 30)
    with engine.begin() as conn:
        conn.execute(insert(categories), [
            {"id": fixed_uuid(900 + i), "name": name, "icon": None, "color": "#00aa00", "created_at": created}
            for i, name in enumerate(["Dairy", "Bakery", "Produce"])
        ])
        conn.execute(insert(products), [
            {
                "id": fixed_uuid(i),
                "name": f"Product {i:02d}",
                "sku": f"SKU-{i:04d}",
                "cost_price": 1.0 + i,
                "selling_price": 2.5 + i,
                # every third product is below its minimum stock level
                "stock_quantity": 5 if i % 3 == 0 else 100 + i,
                "min_stock_level": 10,
                "category_id": fixed_uuid(900 + i % 3),
                "aisle_id": None,
                "supplier": "Acme" if i % 2 else None,
                "shelf_position": i % 5,
                "created_at": created,
                "updated_at": created,
            }
            for i in range(1, PRODUCT_COUNT + 1)
        ])
        conn.execute(insert(sales), [
            {
                "id": fixed_uuid(500 + i),
                "product_id": fixed_uuid(i),
                "quantity": i,
                "total_amount": 2.5 * i,
                "sale_date": date(2025, 3, i),
                "created_at": created,
            }
            for i in range(1, 11)
        ])
        conn.execute(insert(financial), [
            {
                "id": fixed_uuid(700 + m),
                "month": date(2025, m, 1),
                "total_sales": 1000.0 * m,
                "total_costs": 600.0 * m,
                "total_profit": 400.0 * m,
                "total_items_sold": 50 * m,
                "created_at": created,
            }
            for m in range(1, 7)
        ])


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "store.db"
    engine = create_engine(f"sqlite:///{path}")
    metadata.create_all(engine)
    _seed(engine)
    engine.dispose()
    return path


def _readonly_query_function(path):
    def run_readonly_query(sql_query):
        conn = sqlite3.connect(f"file:{path}?mode=ro", uri=True)
        conn.row_factory = sqlite3.Row
        try:
            rows = [dict(r) for r in conn.execute(sql_query).fetchall()]
        finally:
            conn.close()
        return json.dumps(rows)
    return run_readonly_query


@pytest.fixture
def store(db_path):
    """Store naming run_readonly_query without registering it: primary calls fail, so queries take the fallback."""
    s = DataStore(create_engine(f"sqlite:///{db_path}"), readonly_function="run_readonly_query")
    yield s
    s.dispose()


@pytest.fixture
def store_with_function(db_path):
    """Store whose connections expose run_readonly_query backed by a read-only SQLite handle."""
    engine = create_engine(f"sqlite:///{db_path}")

    @event.listens_for(engine, "connect")
    def _register(dbapi_conn, connection_record):
        dbapi_conn.create_function("run_readonly_query", 1, _readonly_query_function(db_path))

    s = DataStore(engine, readonly_function="run_readonly_query")
    yield s
    s.dispose()


@pytest.fixture
def config(db_path):
    return AssistantConfig(llm_api_key="test-key", database_url=f"sqlite:///{db_path}")

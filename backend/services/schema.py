"""
Allowlist & schema descriptor.

The six store tables the assistant may read, their columns, and the derived
artefacts used elsewhere: the prompt schema block, SQLAlchemy tables for the
fallback read, and typed pydantic row models.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type
from uuid import UUID

from pydantic import BaseModel, ConfigDict, create_model
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import Column, Date, DateTime, Integer, MetaData, Numeric, String, Table, Text

from backend.services.errors import ExecutionError

_PY_TYPES: Dict[str, type] = {
    "uuid": UUID,
    "text": str,
    "integer": int,
    "numeric": float,
    "date": date,
    "timestamp": datetime,
}


def _sa_type(kind: str):
    if kind == "uuid":
        return String(36)
    if kind == "text":
        return Text()
    if kind == "integer":
        return Integer()
    if kind == "numeric":
        return Numeric(asdecimal=False)
    if kind == "date":
        return Date()
    if kind == "timestamp":
        return DateTime(timezone=True)
    raise ValueError(f"unknown column kind: {kind}")


@dataclass(frozen=True)
class TableSpec:
    name: str
    columns: Tuple[Tuple[str, str], ...]
    notes: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def column_names(self) -> List[str]:
        return [c for c, _ in self.columns]

    def kind(self, column: str) -> Optional[str]:
        for name, kind in self.columns:
            if name == column:
                return kind
        return None


SCHEMA: Tuple[TableSpec, ...] = (
    TableSpec(
        "products",
        (
            ("id", "uuid"),
            ("name", "text"),
            ("sku", "text"),
            ("cost_price", "numeric"),
            ("selling_price", "numeric"),
            ("stock_quantity", "integer"),
            ("min_stock_level", "integer"),
            ("category_id", "uuid"),
            ("aisle_id", "uuid"),
            ("supplier", "text"),
            ("shelf_position", "integer"),
            ("created_at", "timestamp"),
            ("updated_at", "timestamp"),
        ),
        MappingProxyType({
            "id": "primary key",
            "category_id": "foreign key to categories.id",
            "aisle_id": "foreign key to aisles.id",
        }),
    ),
    TableSpec(
        "sales",
        (
            ("id", "uuid"),
            ("product_id", "uuid"),
            ("quantity", "integer"),
            ("total_amount", "numeric"),
            ("sale_date", "date"),
            ("created_at", "timestamp"),
        ),
        MappingProxyType({"id": "primary key", "product_id": "foreign key to products.id"}),
    ),
    TableSpec(
        "categories",
        (
            ("id", "uuid"),
            ("name", "text"),
            ("icon", "text"),
            ("color", "text"),
            ("created_at", "timestamp"),
        ),
        MappingProxyType({"id": "primary key"}),
    ),
    TableSpec(
        "aisles",
        (
            ("id", "uuid"),
            ("name", "text"),
            ("aisle_number", "integer"),
            ("position_x", "integer"),
            ("position_y", "integer"),
            ("width", "integer"),
            ("height", "integer"),
            ("created_at", "timestamp"),
        ),
        MappingProxyType({"id": "primary key"}),
    ),
    TableSpec(
        "financial_summary",
        (
            ("id", "uuid"),
            ("month", "date"),
            ("total_sales", "numeric"),
            ("total_costs", "numeric"),
            ("total_profit", "numeric"),
            ("total_items_sold", "integer"),
            ("created_at", "timestamp"),
        ),
        MappingProxyType({"id": "primary key"}),
    ),
    TableSpec(
        "ai_predictions",
        (
            ("id", "uuid"),
            ("product_id", "uuid"),
            ("prediction_month", "date"),
            ("predicted_revenue", "numeric"),
            ("predicted_demand", "integer"),
            ("confidence_score", "numeric"),
            ("created_at", "timestamp"),
        ),
        MappingProxyType({"id": "primary key", "product_id": "foreign key to products.id"}),
    ),
)

TABLES: Mapping[str, TableSpec] = MappingProxyType({t.name: t for t in SCHEMA})
ALLOWED_TABLES = frozenset(TABLES)


def is_allowed_table(name: str) -> bool:
    return (name or "") in ALLOWED_TABLES


def get_table_spec(name: str) -> TableSpec:
    try:
        return TABLES[name]
    except KeyError:
        raise KeyError(f"table not in allowlist: {name}") from None


# ---------------------------------------------------------------------------
# SQLAlchemy tables for the structured fallback read
# ---------------------------------------------------------------------------
metadata = MetaData()

for _spec in SCHEMA:
    Table(
        _spec.name,
        metadata,
        *[Column(col, _sa_type(kind), primary_key=(col == "id")) for col, kind in _spec.columns],
    )


def sa_table(name: str) -> Table:
    get_table_spec(name)
    return metadata.tables[name]


# ---------------------------------------------------------------------------
# Typed rows
# ---------------------------------------------------------------------------
@lru_cache(maxsize=None)
def row_model(name: str) -> Type[BaseModel]:
    """Pydantic model with one optional typed field per declared column."""
    spec = get_table_spec(name)
    fields: Dict[str, Any] = {
        col: (Optional[_PY_TYPES[kind]], None) for col, kind in spec.columns
    }
    model_name = "".join(part.capitalize() for part in name.split("_")) + "Row"
    return create_model(model_name, __config__=ConfigDict(extra="forbid"), **fields)


def coerce_rows(name: str, rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Validate raw store rows against the table's row model; JSON-ready output."""
    model = row_model(name)
    out: List[Dict[str, Any]] = []
    for raw in rows:
        try:
            out.append(model.model_validate(dict(raw)).model_dump(mode="json"))
        except PydanticValidationError as exc:
            first = exc.errors()[0] if exc.errors() else {}
            loc = ".".join(str(p) for p in first.get("loc", ()))
            raise ExecutionError(f"Row from {name} does not match schema ({loc}: {first.get('msg', 'invalid')})") from exc
    return out


# ---------------------------------------------------------------------------
# Prompt schema block
# ---------------------------------------------------------------------------
def describe_schema() -> str:
    lines: List[str] = []
    for idx, spec in enumerate(SCHEMA, start=1):
        lines.append(f"{idx}. {spec.name}")
        for col, kind in spec.columns:
            note = spec.notes.get(col)
            lines.append(f"   - {col} ({kind}{', ' + note if note else ''})")
        lines.append("")
    return "\n".join(lines).rstrip()

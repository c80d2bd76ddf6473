"""SELECT-only gate applied to model-generated SQL before any execution."""
from dataclasses import dataclass
from typing import Optional

import sqlparse

SELECT_ONLY_REASON = "Only SELECT queries are allowed"
SINGLE_STATEMENT_REASON = "Only a single SELECT statement is allowed"


@dataclass(frozen=True)
class ValidationOutcome:
    ok: bool
    reason: Optional[str] = None


def _statement_count(sql: str) -> int:
    # sqlparse keeps quoted literals and comments intact, so a ';' inside them
    # does not split the statement.
    statements = (sqlparse.format(s, strip_comments=True) for s in sqlparse.split(sql))
    return len([s for s in statements if s.strip().rstrip(";").strip()])


def validate_sql(sql: str) -> ValidationOutcome:
    # Normalised copy is only used for the check; callers keep the original text.
    low = (sql or "").strip().lower()
    if not low.startswith("select"):
        return ValidationOutcome(ok=False, reason=SELECT_ONLY_REASON)
    if _statement_count(low) > 1:
        return ValidationOutcome(ok=False, reason=SINGLE_STATEMENT_REASON)
    return ValidationOutcome(ok=True)

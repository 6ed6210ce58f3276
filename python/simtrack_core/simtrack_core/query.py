"""In-process evaluation of a :class:`~simtrack_core.schemas.JobQuery`.

Rows are any objects exposing the job attributes by their snake_case names
plus ``project_name``. The SQL repository expresses the same rules in SQL;
both are held to one contract test suite.
"""
from __future__ import annotations

from typing import Any, Iterable, List, Optional, Sequence, TypeVar

from .schemas import JobQuery

Row = TypeVar("Row")

# Columns the free-text search looks at.
SEARCH_FIELDS: Sequence[str] = ("project_name", "simulation_name", "type", "bench", "status")


def matches_search(row: Any, term: str) -> bool:
    needle = term.lower()
    for field in SEARCH_FIELDS:
        value = getattr(row, field, None)
        if value is not None and needle in str(value).lower():
            return True
    return False


def matches(row: Any, query: JobQuery) -> bool:
    """True when ``row`` satisfies every predicate set on ``query``.

    Archived-project exclusion is not handled here; it depends on the
    project row, which the caller owns.
    """
    if query.project_id is not None and row.project_id != query.project_id:
        return False
    if query.status is not None and row.status != query.status:
        return False
    if query.bench is not None and row.bench != query.bench:
        return False
    if query.search and not matches_search(row, query.search):
        return False
    return True


def sort_rows(rows: Iterable[Row], sort_by: Optional[str], sort_order: str = "asc") -> List[Row]:
    """Stable single-key sort where ``None`` ranks above every value.

    Ascending puts nulls last, descending puts them first. Equal keys keep
    their incoming order in both directions.
    """
    rows = list(rows)
    if not sort_by:
        return rows

    def key(row: Any):
        value = getattr(row, sort_by, None)
        # (is_null, value): the value is only compared among non-nulls
        return (value is None, value)

    return sorted(rows, key=key, reverse=(sort_order == "desc"))


def apply_query(rows: Iterable[Row], query: JobQuery) -> List[Row]:
    return sort_rows((r for r in rows if matches(r, query)), query.sort_by, query.sort_order)

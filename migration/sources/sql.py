"""
SQL text builders and row parsing shared by the source adapters
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Mapping, Optional, Tuple
from types import MappingProxyType
from sqlalchemy import text
from sqlalchemy.sql.elements import TextClause
from core.exceptions import RecordParseError
from schemas.job import SourceQuery


def build_select(
    query: SourceQuery,
    after_key: Any = None,
    limit: Optional[int] = None,
) -> Tuple[TextClause, Dict[str, Any]]:
    """
    Build the SELECT for a query.

    ``after_key`` adds a keyset predicate on ``order_by``; paging mode uses
    it for every page and cursor mode when it reopens after a failure.
    """
    columns = ", ".join(query.columns) if query.columns else "*"
    if query.table:
        sql = f"SELECT {columns} FROM {query.table}"
    else:
        sql = f"SELECT {columns} FROM ({query.statement}) src"

    params: Dict[str, Any] = {}
    predicates = []
    if query.where:
        predicates.append(f"({query.where})")
    if after_key is not None:
        predicates.append(f"{query.order_by} > :after_key")
        params["after_key"] = after_key
    if predicates:
        sql += " WHERE " + " AND ".join(predicates)

    if query.order_by:
        sql += f" ORDER BY {query.order_by}"
    if limit is not None:
        sql += " LIMIT :limit"
        params["limit"] = limit

    return text(sql), params


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in ("1", "true", "t", "yes", "y"):
        return True
    if lowered in ("0", "false", "f", "no", "n"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip())


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))


def _parse_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"not a decimal: {value!r}")


CONVERTERS: Dict[str, Callable[[Any], Any]] = {
    "int": lambda v: int(str(v).strip()) if not isinstance(v, int) else v,
    "float": float,
    "decimal": _parse_decimal,
    "date": _parse_date,
    "datetime": _parse_datetime,
    "str": str,
    "bool": _parse_bool,
}


class RowParser:
    """Turns a result row into an immutable Record, converting typed columns."""

    def __init__(self, query: SourceQuery):
        self.key_column = query.order_by
        self.converters = {
            column: CONVERTERS[kind] for column, kind in query.column_types.items()
        }

    def __call__(self, row: Mapping[str, Any]) -> Mapping[str, Any]:
        record = dict(row)
        for column, convert in self.converters.items():
            value = record.get(column)
            if value is None:
                continue
            try:
                record[column] = convert(value)
            except (ValueError, TypeError) as e:
                raise RecordParseError(
                    f"Cannot parse column {column}",
                    context={
                        "record_key": record.get(self.key_column) if self.key_column else None,
                        "field_name": column,
                        "field_value": value,
                    },
                    original_exception=e
                )
        return MappingProxyType(record)

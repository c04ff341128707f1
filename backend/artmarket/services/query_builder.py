"""
Composable, injection-safe list queries.

A QuerySpec is an immutable description of filter / search / sort /
projection / pagination built from request query parameters. Every step
returns a new QuerySpec, so a spec can be shared and reused freely; nothing
touches the database until apply() turns it into a SQLAlchemy query.

Only the comparison operators in OPERATORS can be produced from user input,
and only real, non-hidden, scalar columns of the target model can be
filtered or sorted on.
"""

import json
import operator
import re
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from sqlalchemy import JSON, String, cast, func, inspect, or_
from sqlalchemy.orm import Query

from artmarket.core.errors import InvalidQueryError

RESERVED_PARAMS = frozenset({"page", "sort", "limit", "fields", "search"})

OPERATORS = {
    "eq": operator.eq,
    "gte": operator.ge,
    "gt": operator.gt,
    "lte": operator.le,
    "lt": operator.lt,
}

DEFAULT_SORT = "-created_at"
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 100
MAX_LIMIT = 500

# "price" or "price[gte]"
_FILTER_KEY = re.compile(r"^(?P<field>[A-Za-z_][A-Za-z0-9_]*)(?:\[(?P<op>[^\]]*)\])?$")
_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class Condition:
    field: str
    op: str
    value: Any


def _parse_operator_map(field: str, ops: Mapping) -> list[Condition]:
    conditions = []
    for op, value in ops.items():
        op = str(op).lstrip("$")
        if op not in OPERATORS:
            raise InvalidQueryError(f"Unsupported filter operator '{op}' on '{field}'")
        if isinstance(value, (dict, list)):
            raise InvalidQueryError(f"Filter value for '{field}' must be a scalar")
        conditions.append(Condition(field, op, value))
    return conditions


def _parse_filter(key: str, value: Any) -> list[Condition]:
    match = _FILTER_KEY.match(key)
    if not match:
        raise InvalidQueryError(f"Invalid filter parameter '{key}'")
    field, op = match.group("field"), match.group("op")

    if op is not None:
        return _parse_operator_map(field, {op: value})

    if isinstance(value, Mapping):
        return _parse_operator_map(field, value)

    if isinstance(value, str) and value.lstrip().startswith("{"):
        # JSON-shaped filter, e.g. price={"gte": 100}
        try:
            parsed = json.loads(value)
        except ValueError:
            raise InvalidQueryError(f"Malformed filter value for '{field}'")
        if not isinstance(parsed, dict):
            raise InvalidQueryError(f"Malformed filter value for '{field}'")
        return _parse_operator_map(field, parsed)

    if isinstance(value, (list, tuple)):
        raise InvalidQueryError(f"Filter value for '{field}' must be a scalar")
    return [Condition(field, "eq", value)]


def _parse_field_list(spec: Optional[str], param: str) -> tuple[str, ...]:
    if spec is None:
        return ()
    names = []
    for token in str(spec).split(","):
        token = token.strip()
        if not token:
            continue
        if not _FIELD_NAME.match(token.lstrip("-")):
            raise InvalidQueryError(f"Invalid field '{token}' in '{param}'")
        names.append(token)
    return tuple(names)


def _positive_int(raw: Any, default: int, name: str) -> int:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise InvalidQueryError(f"'{name}' must be a positive integer")
    if value < 1:
        raise InvalidQueryError(f"'{name}' must be a positive integer")
    return value


def _queryable_columns(model) -> dict:
    hidden = getattr(model, "__query_hidden__", frozenset())
    return {
        prop.key: prop
        for prop in inspect(model).column_attrs
        if prop.key not in hidden
    }


def _coerce(raw: Any, column_type, field: str) -> Any:
    if isinstance(column_type, JSON):
        raise InvalidQueryError(f"Cannot filter on field '{field}'")
    try:
        python_type = column_type.python_type
    except NotImplementedError:
        raise InvalidQueryError(f"Cannot filter on field '{field}'")

    if raw is None or (isinstance(raw, python_type) and not isinstance(raw, bool)):
        return raw

    text = str(raw).strip()
    try:
        if python_type is bool:
            lowered = text.lower()
            if lowered in ("true", "1", "yes"):
                return True
            if lowered in ("false", "0", "no"):
                return False
            raise ValueError(text)
        if python_type is datetime:
            return datetime.fromisoformat(text.replace("Z", "+00:00"))
        if python_type is Decimal:
            return Decimal(text)
        return python_type(text)
    except (ValueError, InvalidOperation, TypeError):
        raise InvalidQueryError(f"Invalid value '{raw}' for field '{field}'")


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(frozen=True)
class QuerySpec:
    conditions: tuple[Condition, ...] = ()
    search_term: Optional[str] = None
    ordering: tuple[str, ...] = ()
    fields: tuple[str, ...] = ()
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "QuerySpec":
        """Build a spec from a flat mapping of request query parameters"""
        return (
            cls()
            .filter(params)
            .search(params.get("search"))
            .sort(params.get("sort"))
            .limit_fields(params.get("fields"))
            .paginate(params.get("page"), params.get("limit"))
        )

    def filter(self, params: Mapping[str, Any]) -> "QuerySpec":
        conditions = list(self.conditions)
        for key, value in params.items():
            if key in RESERVED_PARAMS:
                continue
            conditions.extend(_parse_filter(key, value))
        return replace(self, conditions=tuple(conditions))

    def search(self, term: Optional[str]) -> "QuerySpec":
        term = term.strip() if isinstance(term, str) else None
        return replace(self, search_term=term or None)

    def sort(self, spec: Optional[str]) -> "QuerySpec":
        return replace(self, ordering=_parse_field_list(spec, "sort"))

    def limit_fields(self, spec: Optional[str]) -> "QuerySpec":
        return replace(self, fields=_parse_field_list(spec, "fields"))

    def paginate(self, page: Any = None, limit: Any = None) -> "QuerySpec":
        page = _positive_int(page, DEFAULT_PAGE, "page")
        limit = min(_positive_int(limit, DEFAULT_LIMIT, "limit"), MAX_LIMIT)
        return replace(self, page=page, limit=limit)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def apply(self, query: Query, model) -> Query:
        """Return `query` narrowed, ordered and paged according to this spec"""
        columns = _queryable_columns(model)

        for condition in self.conditions:
            prop = columns.get(condition.field)
            if prop is None:
                raise InvalidQueryError(f"Unknown filter field '{condition.field}'")
            value = _coerce(condition.value, prop.expression.type, condition.field)
            compare = OPERATORS[condition.op]
            query = query.filter(compare(getattr(model, condition.field), value))

        if self.search_term:
            query = query.filter(self._search_clause(query, model))

        ordering = self.ordering
        if not ordering and "created_at" in columns:
            ordering = (DEFAULT_SORT,)
        order_by = []
        for token in ordering:
            name = token.lstrip("-")
            if name not in columns:
                raise InvalidQueryError(f"Cannot sort by '{name}'")
            attr = getattr(model, name)
            order_by.append(attr.desc() if token.startswith("-") else attr.asc())
        if "id" not in (token.lstrip("-") for token in ordering):
            # Stable pages when the sort key has ties
            order_by.append(model.id.desc())

        return query.order_by(*order_by).offset(self.offset).limit(self.limit)

    def _search_clause(self, query: Query, model):
        names = getattr(model, "__searchable__", ())
        if not names:
            raise InvalidQueryError("Search is not supported for this resource")

        text_columns = []
        for name in names:
            column = getattr(model, name)
            if isinstance(column.type, JSON):
                column = cast(column, String)
            text_columns.append(column)

        dialect = query.session.get_bind().dialect.name
        if dialect == "postgresql":
            document = func.concat_ws(" ", *text_columns)
            return func.to_tsvector("english", document).op("@@")(
                func.plainto_tsquery("english", self.search_term))

        # Substring fallback for stores without a text index
        pattern = f"%{_escape_like(self.search_term)}%"
        return or_(*(column.ilike(pattern, escape="\\") for column in text_columns))

    def project(self, item: dict) -> dict:
        """Apply the requested field projection to one serialized row"""
        if not self.fields:
            return item
        # "-name" excludes a field, a bare name restricts output to the listed fields
        excluded = {name[1:] for name in self.fields if name.startswith("-")}
        included = {name for name in self.fields if not name.startswith("-")}
        if included:
            item = {key: value for key, value in item.items() if key == "id" or key in included}
        return {key: value for key, value in item.items() if key not in excluded}

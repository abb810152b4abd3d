"""FilterCompiler: flat filter lists <-> nested where clauses.

Only a conjunction of single-operator predicates round-trips. Anything richer
(``or`` groups, nested ``and``, several operators on one field) is kept as a
raw clause and reported as unparseable instead of being half-translated.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..ports.id_gen import FilterIdProvider, UuidFilterIdProvider
from .errors import UnparseableFilterError, ValidationError
from .filters import AND_KEY, Filter, FilterOp, FilterValue, Unparseable, WhereClause

_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_INT_RE = re.compile(r"^[+-]?\d+$")

_OPERATORS: dict[str, FilterOp] = {}
for _op in FilterOp:
    _OPERATORS[_op.value] = _op
    _OPERATORS[f"${_op.value}"] = _op

_AND_KEYS = frozenset({AND_KEY, f"${AND_KEY}"})
_LOGICAL_KEYS = _AND_KEYS | {"or", "$or"}


class FilterCompiler:
    """Translate between Filter lists and where clauses. No I/O."""

    def __init__(self, id_provider: FilterIdProvider | None = None) -> None:
        self._ids = id_provider or UuidFilterIdProvider()

    # ------------------------------------------------------------------
    # Filters -> where clause
    # ------------------------------------------------------------------

    def compile(self, filters: Sequence[Filter]) -> WhereClause:
        if not filters:
            return None
        if len(filters) == 1:
            return filters[0].to_predicate()
        return {AND_KEY: [f.to_predicate() for f in filters]}

    # ------------------------------------------------------------------
    # Where clause -> filters
    # ------------------------------------------------------------------

    def decompile(
        self, where: str | Mapping[str, Any] | None
    ) -> list[Filter] | Unparseable:
        """Recover filters from a where clause, or report why that is impossible.

        Raises:
            ValidationError: ``where`` is a string that is not JSON, or JSON
                that is neither an object nor ``null``.
        """
        clause = self.load_where(where)
        if clause is None:
            return []

        if len(clause) == 1:
            (key,) = clause
            if key in _AND_KEYS and isinstance(clause[key], list):
                return self._decompile_conjunction(clause, clause[key])

        try:
            return [self._decompile_predicate(clause)]
        except UnparseableFilterError as exc:
            return Unparseable(raw=clause, error=exc)

    def _decompile_conjunction(
        self, clause: dict[str, Any], items: Any
    ) -> list[Filter] | Unparseable:
        if not isinstance(items, list) or not items:
            return Unparseable(
                raw=clause,
                error=UnparseableFilterError("'and' must hold a non-empty list of conditions"),
            )
        filters: list[Filter] = []
        for item in items:
            try:
                filters.append(self._decompile_predicate(item))
            except UnparseableFilterError as exc:
                return Unparseable(raw=clause, error=exc)
        return filters

    def _decompile_predicate(self, condition: Any) -> Filter:
        if not isinstance(condition, Mapping) or len(condition) != 1:
            raise UnparseableFilterError("each condition must name exactly one field")
        (field,) = condition
        operator_obj = condition[field]
        if field.startswith("$") or (field in _LOGICAL_KEYS and isinstance(operator_obj, list)):
            raise UnparseableFilterError(f"logical group {field!r} is not supported inside a filter list")
        if not isinstance(operator_obj, Mapping):
            raise UnparseableFilterError(
                f"field {field!r} must map to an operator object such as {{'eq': ...}}"
            )
        if len(operator_obj) != 1:
            raise UnparseableFilterError(f"field {field!r} must use exactly one operator")

        (op_key,) = operator_obj
        operator = _OPERATORS.get(op_key)
        if operator is None:
            raise UnparseableFilterError(f"unsupported operator {op_key!r} on field {field!r}")

        value = operator_obj[op_key]
        if not _value_fits(operator, value):
            raise UnparseableFilterError(
                f"value {value!r} does not fit operator {operator.value!r} on field {field!r}"
            )
        try:
            return self.make_filter(field, operator, value)
        except ValidationError as exc:
            raise UnparseableFilterError(str(exc)) from exc

    @staticmethod
    def load_where(where: str | Mapping[str, Any] | None) -> dict[str, Any] | None:
        """Normalize a raw where clause (JSON text or mapping) into a dict or None."""
        if where is None:
            return None
        if isinstance(where, str):
            if not where.strip():
                return None
            try:
                where = json.loads(where)
            except json.JSONDecodeError as exc:
                raise ValidationError(f"Invalid JSON in where clause: {exc.msg}", field="where") from exc
            if where is None:
                return None
        if not isinstance(where, Mapping):
            raise ValidationError("Where clause must be a JSON object", field="where")
        return json.loads(json.dumps(where))

    # ------------------------------------------------------------------
    # Editing helpers
    # ------------------------------------------------------------------

    def make_filter(self, field: str, operator: FilterOp | str, value: FilterValue) -> Filter:
        """Build a validated Filter with a fresh id."""
        return self.rebuild(
            {"id": self._ids.new_filter_id(), "field": field, "operator": coerce_operator(operator), "value": value}
        )

    @staticmethod
    def rebuild(data: dict[str, Any]) -> Filter:
        """Validate filter data, surfacing pydantic errors as our ValidationError."""
        field = data.get("field")
        if isinstance(field, str):
            data = {**data, "field": field.strip()}
        try:
            return Filter(**data)
        except PydanticValidationError as exc:
            messages = "; ".join(err["msg"] for err in exc.errors())
            raise ValidationError(f"Invalid filter: {messages}", field="value") from exc

    @staticmethod
    def parse_operator_value(raw: str, operator: FilterOp | str) -> FilterValue:
        """Turn the text typed into a filter box into a typed value.

        ``in`` always yields a list of trimmed, non-empty segments; other
        operators yield a base-10 number when the text is one, else the
        trimmed text.
        """
        operator = coerce_operator(operator)
        trimmed = raw.strip()
        if not trimmed:
            raise ValidationError("Filter value cannot be empty", field="value")

        if operator == FilterOp.in_:
            parts = [segment.strip() for segment in trimmed.split(",")]
            parts = [p for p in parts if p]
            if not parts:
                raise ValidationError("'in' needs at least one comma-separated value", field="value")
            return parts

        if _INT_RE.match(trimmed):
            try:
                return int(trimmed)
            except ValueError:
                # past the interpreter's int digit limit
                return trimmed
        if _NUMBER_RE.match(trimmed):
            number = float(trimmed)
            if math.isfinite(number):
                return number
        return trimmed

    @staticmethod
    def value_to_text(value: FilterValue | None) -> str:
        """Inverse of ``parse_operator_value`` for pre-filling an edit box."""
        if value is None:
            return ""
        if isinstance(value, list):
            return ", ".join(value)
        return str(value)


def _value_fits(operator: FilterOp, value: Any) -> bool:
    if operator == FilterOp.in_:
        return isinstance(value, list) and all(isinstance(v, str) for v in value)
    if isinstance(value, bool):
        return False
    return isinstance(value, (str, int, float))


def coerce_operator(operator: FilterOp | str) -> FilterOp:
    """Accept ``eq`` or ``$eq`` spellings; anything else is a ValidationError."""
    if isinstance(operator, FilterOp):
        return operator
    found = _OPERATORS.get(str(operator).strip())
    if found is None:
        supported = ", ".join(op.value for op in FilterOp)
        raise ValidationError(f"Unsupported operator {operator!r}; expected one of {supported}", field="operator")
    return found

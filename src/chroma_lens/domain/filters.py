"""Typed metadata filters and the where-clause shapes they compile to."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import UnparseableFilterError


class FilterOp(str, Enum):
    """Supported comparison operators."""

    eq = "eq"       # field == value
    ne = "ne"       # field != value
    gt = "gt"       # field > value
    lt = "lt"       # field < value
    in_ = "in"      # field in [values]

    @property
    def label(self) -> str:
        return OPERATOR_LABELS[self]


OPERATOR_LABELS: dict[FilterOp, str] = {
    FilterOp.eq: "= (equals)",
    FilterOp.ne: "≠ (not equals)",
    FilterOp.gt: "> (greater than)",
    FilterOp.lt: "< (less than)",
    FilterOp.in_: "in (contains)",
}

AND_KEY = "and"

FilterValue = Union[str, int, float, list[str]]
Predicate = dict[str, dict[str, Any]]
WhereClause = Union[dict[str, Any], None]


class Filter(BaseModel):
    """One user-editable metadata condition.

    ``value`` is a list of strings exactly when ``operator`` is ``in``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Opaque unique filter token")
    field: str = Field(..., min_length=1, description="Metadata field name")
    operator: FilterOp = Field(..., description="Comparison operator")
    value: FilterValue = Field(..., description="Comparison value(s)")

    @model_validator(mode="before")
    @classmethod
    def _keep_numbers_and_lists_apart(cls, data: Any) -> Any:
        # Stops pydantic from coercing ``True`` into a number or a tuple into
        # a list before the shape check below runs.
        if isinstance(data, dict):
            value = data.get("value")
            if isinstance(value, bool):
                raise ValueError("filter value cannot be a boolean")
            if isinstance(value, tuple):
                data = {**data, "value": list(value)}
        return data

    @model_validator(mode="after")
    def _value_matches_operator(self) -> Filter:
        is_list = isinstance(self.value, list)
        if self.operator == FilterOp.in_ and not is_list:
            raise ValueError("operator 'in' requires a list of strings")
        if self.operator != FilterOp.in_ and is_list:
            raise ValueError(f"operator '{self.operator.value}' requires a single value")
        if is_list and not self.value:
            raise ValueError("operator 'in' needs at least one value")
        if isinstance(self.value, float) and not math.isfinite(self.value):
            raise ValueError("filter value must be a finite number")
        if self.field.startswith("$"):
            raise ValueError("field names cannot start with '$'")
        return self

    def to_predicate(self) -> Predicate:
        value = list(self.value) if isinstance(self.value, list) else self.value
        return {self.field: {self.operator.value: value}}


@dataclass(frozen=True)
class Unparseable:
    """Outcome of decompiling a clause that has no flat-filter equivalent."""

    raw: dict[str, Any]
    error: UnparseableFilterError

    @property
    def reason(self) -> str:
        return str(self.error)

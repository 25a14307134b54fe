"""
Typed predicates for pattern-based escalation rules.

A pattern rule stores its predicate as JSON under
`trigger_conditions["predicate"]`. The JSON is parsed into the closed set of
node types below and evaluated against the action context. Nothing stored in
a rule is ever executed as code.

    {"op": "all", "predicates": [
        {"op": "compare", "field": "amount", "operator": "gte", "value": 100},
        {"op": "in", "field": "customer.tier", "values": ["new", "flagged"]}
    ]}
"""
from __future__ import annotations

from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

_MISSING = object()


def lookup(context: Mapping[str, Any], field: str) -> Any:
    """Resolve a dotted field path against nested mappings."""
    current: Any = context
    for part in field.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


class _Node(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class ComparePredicate(_Node):
    op: Literal["compare"]
    field: str = Field(min_length=1)
    operator: Literal["eq", "ne", "gt", "gte", "lt", "lte"]
    value: str | int | float | bool | None

    def matches(self, context: Mapping[str, Any]) -> bool:
        actual = lookup(context, self.field)
        if actual is _MISSING:
            return False
        if self.operator == "eq":
            return actual == self.value
        if self.operator == "ne":
            return actual != self.value
        try:
            if self.operator == "gt":
                return actual > self.value
            if self.operator == "gte":
                return actual >= self.value
            if self.operator == "lt":
                return actual < self.value
            return actual <= self.value
        except TypeError:
            # Ordering across incompatible types never matches.
            return False


class InPredicate(_Node):
    op: Literal["in"]
    field: str = Field(min_length=1)
    values: list[str | int | float | bool]

    def matches(self, context: Mapping[str, Any]) -> bool:
        actual = lookup(context, self.field)
        return actual is not _MISSING and actual in self.values


class ExistsPredicate(_Node):
    op: Literal["exists"]
    field: str = Field(min_length=1)

    def matches(self, context: Mapping[str, Any]) -> bool:
        actual = lookup(context, self.field)
        return actual is not _MISSING and actual is not None


class AllPredicate(_Node):
    op: Literal["all"]
    predicates: list["Predicate"] = Field(min_length=1)

    def matches(self, context: Mapping[str, Any]) -> bool:
        return all(p.matches(context) for p in self.predicates)


class AnyPredicate(_Node):
    op: Literal["any"]
    predicates: list["Predicate"] = Field(min_length=1)

    def matches(self, context: Mapping[str, Any]) -> bool:
        return any(p.matches(context) for p in self.predicates)


class NotPredicate(_Node):
    op: Literal["not"]
    predicate: "Predicate"

    def matches(self, context: Mapping[str, Any]) -> bool:
        return not self.predicate.matches(context)


Predicate = Annotated[
    Union[
        ComparePredicate,
        InPredicate,
        ExistsPredicate,
        AllPredicate,
        AnyPredicate,
        NotPredicate,
    ],
    Field(discriminator="op"),
]

AllPredicate.model_rebuild()
AnyPredicate.model_rebuild()
NotPredicate.model_rebuild()

_predicate_adapter: TypeAdapter[Predicate] = TypeAdapter(Predicate)


def parse_predicate(raw: Any) -> Predicate:
    """Parse stored JSON into a predicate tree.

    Raises:
        pydantic.ValidationError: If the JSON is not a well-formed predicate
    """
    return _predicate_adapter.validate_python(raw)

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import and_, false, or_
from sqlalchemy.sql.elements import ColumnElement

from sharpcrm.platform.security.predicates import And, Eq, In, Missing, Or, Predicate


_PLACEHOLDER_SAFE_RE = re.compile(r"[^0-9A-Za-z_]")

# Attribute names the store's expression language reserves; these are aliased through #names.
RESERVED_ATTRIBUTE_NAMES = frozenset({"role", "status", "name", "type", "source", "date", "owner", "value"})


@dataclass(slots=True)
class RenderedExpression:
    """A filter expression in key/attribute store syntax plus its bound values."""

    expression: str
    values: dict[str, Any] = field(default_factory=dict)
    names: dict[str, str] = field(default_factory=dict)

    def as_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"FilterExpression": self.expression, "ExpressionAttributeValues": self.values}
        if self.names:
            params["ExpressionAttributeNames"] = self.names
        return params


class ExpressionRenderer:
    """Render predicates into DynamoDB-style filter expressions with named placeholders.

    Placeholder names come from each node's ``param`` hint (or its attribute name) and are
    made unique within one rendering: IN clauses bind ``:owner0``, ``:owner1`` and so on.
    """

    def render(self, predicate: Predicate) -> RenderedExpression:
        rendered = RenderedExpression(expression="")
        rendered.expression = self._render(predicate, rendered, top_level=True)
        return rendered

    def _render(self, predicate: Predicate, out: RenderedExpression, *, top_level: bool = False) -> str:
        if isinstance(predicate, Eq):
            placeholder = self._bind(out, predicate.param or predicate.attribute, predicate.value)
            return f"{self._name(out, predicate.attribute)} = {placeholder}"
        if isinstance(predicate, In):
            if not predicate.values:
                raise ValueError(f"IN clause on '{predicate.attribute}' has no values")
            base = predicate.param or predicate.attribute
            placeholders = [self._bind(out, f"{base}{index}", value) for index, value in enumerate(predicate.values)]
            return f"{self._name(out, predicate.attribute)} IN ({', '.join(placeholders)})"
        if isinstance(predicate, Missing):
            return f"attribute_not_exists({self._name(out, predicate.attribute)})"
        if isinstance(predicate, (And, Or)):
            joiner = " AND " if isinstance(predicate, And) else " OR "
            parts = [self._render(clause, out) for clause in predicate.clauses]
            joined = joiner.join(parts)
            return joined if top_level or len(parts) == 1 else f"({joined})"
        raise TypeError(f"Unsupported predicate node: {type(predicate).__name__}")

    @staticmethod
    def _bind(out: RenderedExpression, hint: str, value: Any) -> str:
        base = ":" + _PLACEHOLDER_SAFE_RE.sub("_", hint)
        placeholder = base
        suffix = 1
        while placeholder in out.values:
            placeholder = f"{base}_{suffix}"
            suffix += 1
        out.values[placeholder] = value
        return placeholder

    @staticmethod
    def _name(out: RenderedExpression, attribute: str) -> str:
        if attribute.lower() not in RESERVED_ATTRIBUTE_NAMES:
            return attribute
        alias = f"#{attribute}"
        out.names[alias] = attribute
        return alias


class SqlAlchemyRenderer:
    """Render predicates into SQLAlchemy clauses over a JSON attribute column."""

    def __init__(self, attributes_column: Any) -> None:
        self._column = attributes_column

    def render(self, predicate: Predicate) -> ColumnElement[bool]:
        if isinstance(predicate, Eq):
            return self._typed(predicate.attribute, predicate.value) == predicate.value
        if isinstance(predicate, In):
            if not predicate.values:
                return false()
            return or_(*(self._typed(predicate.attribute, value) == value for value in predicate.values))
        if isinstance(predicate, Missing):
            return self._column[predicate.attribute].as_string().is_(None)
        if isinstance(predicate, And):
            return and_(*(self.render(clause) for clause in predicate.clauses))
        if isinstance(predicate, Or):
            return or_(*(self.render(clause) for clause in predicate.clauses))
        raise TypeError(f"Unsupported predicate node: {type(predicate).__name__}")

    def _typed(self, attribute: str, value: Any) -> Any:
        element = self._column[attribute]
        if isinstance(value, bool):
            return element.as_boolean()
        if isinstance(value, int):
            return element.as_integer()
        if isinstance(value, float):
            return element.as_float()
        return element.as_string()

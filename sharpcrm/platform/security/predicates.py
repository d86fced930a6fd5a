from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True, slots=True)
class Eq:
    attribute: str
    value: Any
    param: str | None = None


@dataclass(frozen=True, slots=True)
class In:
    attribute: str
    values: tuple[Any, ...]
    param: str | None = None


@dataclass(frozen=True, slots=True)
class Missing:
    attribute: str


@dataclass(frozen=True, slots=True)
class And:
    clauses: tuple[Predicate, ...]


@dataclass(frozen=True, slots=True)
class Or:
    clauses: tuple[Predicate, ...]


Predicate = Union[Eq, In, Missing, And, Or]


def and_(*clauses: Predicate | None) -> Predicate:
    """AND the given clauses, dropping ``None`` and flattening nested ANDs."""

    flattened: list[Predicate] = []
    for clause in clauses:
        if clause is None:
            continue
        if isinstance(clause, And):
            flattened.extend(clause.clauses)
        else:
            flattened.append(clause)
    if len(flattened) == 1:
        return flattened[0]
    return And(tuple(flattened))


def or_(*clauses: Predicate) -> Predicate:
    if len(clauses) == 1:
        return clauses[0]
    return Or(tuple(clauses))


def eq_or_in(attribute: str, values: list[Any] | tuple[Any, ...], *, param: str) -> Predicate:
    """Equality for a single value, enumerated IN otherwise."""

    unique = tuple(dict.fromkeys(values))
    if len(unique) == 1:
        return Eq(attribute, unique[0], param=param)
    return In(attribute, unique, param=param)


def not_flagged(attribute: str) -> Predicate:
    """``attribute`` is false or absent; items written before the flag existed count as unflagged."""

    return or_(Missing(attribute), Eq(attribute, False, param=attribute))


def matches(predicate: Predicate, item: Mapping[str, Any]) -> bool:
    """Evaluate a predicate against a single item. Clauses short-circuit left to right."""

    if isinstance(predicate, Eq):
        return predicate.attribute in item and item[predicate.attribute] == predicate.value
    if isinstance(predicate, In):
        return predicate.attribute in item and item[predicate.attribute] in predicate.values
    if isinstance(predicate, Missing):
        return item.get(predicate.attribute) is None
    if isinstance(predicate, And):
        return all(matches(clause, item) for clause in predicate.clauses)
    if isinstance(predicate, Or):
        return any(matches(clause, item) for clause in predicate.clauses)
    raise TypeError(f"Unsupported predicate node: {type(predicate).__name__}")


def attributes_of(predicate: Predicate) -> set[str]:
    if isinstance(predicate, (Eq, In, Missing)):
        return {predicate.attribute}
    names: set[str] = set()
    for clause in predicate.clauses:
        names |= attributes_of(clause)
    return names

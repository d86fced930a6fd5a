from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token

correlation_id_var: ContextVar[str | None] = ContextVar("sharpcrm_correlation_id", default=None)


def set_correlation_id(value: str | None) -> Token[str | None]:
    return correlation_id_var.set(value)


def reset_correlation_id(token: Token[str | None]) -> None:
    correlation_id_var.reset(token)


def get_correlation_id() -> str | None:
    return correlation_id_var.get()


@contextmanager
def correlation_scope(value: str | None) -> Iterator[str | None]:
    """Bind ``value`` as the correlation id for the duration of the block."""

    token = set_correlation_id(value)
    try:
        yield value
    finally:
        reset_correlation_id(token)

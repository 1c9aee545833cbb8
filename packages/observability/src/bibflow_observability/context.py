from __future__ import annotations

import contextvars
from collections.abc import Iterator
from contextlib import contextmanager

request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_id", default=None)
service: contextvars.ContextVar[str | None] = contextvars.ContextVar("service", default=None)
target_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("target_id", default=None)

_VARS = {
    "request_id": request_id,
    "service": service,
    "target_id": target_id,
}


def bind(**fields: str | None) -> None:
    for name, value in fields.items():
        var = _VARS.get(name)
        if var is None:
            raise KeyError(f"unknown log context field: {name}")
        var.set(value)


@contextmanager
def bound(**fields: str | None) -> Iterator[None]:
    """Bind fields for the duration of a block, restoring previous values after."""
    tokens = []
    for name, value in fields.items():
        var = _VARS.get(name)
        if var is None:
            raise KeyError(f"unknown log context field: {name}")
        tokens.append((var, var.set(value)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def snapshot() -> dict[str, str | None]:
    return {name: var.get() for name, var in _VARS.items()}

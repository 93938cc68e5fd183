"""
Argument validation for helper calls made from sandboxed code.

Structural checks walk containers with an explicit identity-keyed visited
set, so self-referencing lists/dicts terminate instead of recursing forever.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from promptbox.core.config import settings
from promptbox.core.errors import ArgumentLimitError


@dataclass(frozen=True)
class ArgumentLimits:
    max_array_size: int = 10_000
    max_string_length: int = 100_000
    max_nesting: int = 10

    @classmethod
    def from_settings(cls) -> "ArgumentLimits":
        return cls(
            max_array_size=settings.ARG_MAX_ARRAY_SIZE,
            max_string_length=settings.ARG_MAX_STRING_LENGTH,
            max_nesting=settings.ARG_MAX_NESTING,
        )


def validate_value(
    value: Any,
    limits: ArgumentLimits,
    *,
    depth: int = 0,
    visited: set[int] | None = None,
) -> None:
    """Raise ``ArgumentLimitError`` when *value* breaks one of *limits*.

    Containers already in *visited* are skipped; that is what stops cycles.
    """
    if depth > limits.max_nesting:
        raise ArgumentLimitError(
            f"Argument exceeds maximum nesting depth of {limits.max_nesting}"
        )
    if isinstance(value, str):
        if len(value) > limits.max_string_length:
            raise ArgumentLimitError(
                f"String argument exceeds maximum length of {limits.max_string_length}"
            )
        return
    if not isinstance(value, (list, tuple, set, frozenset, dict)):
        return

    seen = visited if visited is not None else set()
    if id(value) in seen:
        return
    seen.add(id(value))

    if len(value) > limits.max_array_size:
        raise ArgumentLimitError(
            f"Array argument exceeds maximum size of {limits.max_array_size}"
        )
    items = value.values() if isinstance(value, dict) else value
    for item in items:
        validate_value(item, limits, depth=depth + 1, visited=seen)


def validate_arguments(args: tuple[Any, ...], kwargs: dict[str, Any], limits: ArgumentLimits) -> None:
    visited: set[int] = set()
    for arg in args:
        validate_value(arg, limits, visited=visited)
    for arg in kwargs.values():
        validate_value(arg, limits, visited=visited)


def guard_helper(name: str, fn: Callable[..., Any], limits: ArgumentLimits) -> Callable[..., Any]:
    """Wrap *fn* so every call from sandboxed code validates its arguments."""

    def guarded(*args: Any, **kwargs: Any) -> Any:
        validate_arguments(args, kwargs, limits)
        return fn(*args, **kwargs)

    guarded.__name__ = name
    guarded.__qualname__ = name
    return guarded

"""
RestrictedPython sandbox: the safe-globals registry and restricted compile.

Allowed: the RestrictedPython safe builtins plus common pure builtins (len,
min, max, sum, sorted, enumerate, ...), read-only namespaces for math, json,
re, random, statistics, string and the datetime types, a small ``utils``
namespace, and ``require(name)`` for the same allowlisted namespaces.

Blocked: open, exec, eval, __import__, compile, os, sys, any name or
attribute starting with "_", attribute assignment on anything but per-call
dicts and lists.

``SAFE_GLOBALS`` is built once at import and never mutated; every execution
gets a fresh dict built from it by ``build_restricted_globals``.
"""

import builtins
import json
import math
import operator
import random
import re
import statistics
import string
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from types import CodeType, MappingProxyType
from typing import Any

from RestrictedPython import compile_restricted, safe_builtins
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)
from RestrictedPython.PrintCollector import PrintCollector

from promptbox.core.errors import ModuleNotAllowedError, SecurityViolationError

# Largest range() a sandboxed expression may create in one call.
RANGE_LIMIT = 1_000_000


class ReadOnlyNamespace:
    """Attribute bag that refuses assignment and deletion."""

    __slots__ = ("_name", "_attrs")

    def __init__(self, name: str, attrs: dict[str, Any]) -> None:
        object.__setattr__(self, "_name", name)
        object.__setattr__(self, "_attrs", MappingProxyType(dict(attrs)))

    def __getattr__(self, item: str) -> Any:
        try:
            return self._attrs[item]
        except KeyError:
            raise AttributeError(f"'{self._name}' has no attribute '{item}'") from None

    def __setattr__(self, key: str, value: Any) -> None:
        raise SecurityViolationError(f"'{self._name}' is read-only")

    def __delattr__(self, key: str) -> None:
        raise SecurityViolationError(f"'{self._name}' is read-only")

    def __dir__(self) -> list[str]:
        return sorted(self._attrs)

    def __repr__(self) -> str:
        return f"<namespace {self._name}>"


def _limited_range(*args: int) -> range:
    r = range(*args)
    if len(r) > RANGE_LIMIT:
        raise ValueError(f"range() of {len(r)} elements exceeds the limit of {RANGE_LIMIT}")
    return r


def _deep_clone(value: Any) -> Any:
    return json.loads(json.dumps(value))


def _is_empty(value: Any) -> bool:
    if value is None or value == "":
        return True
    if isinstance(value, (list, tuple, dict, set, frozenset)):
        return len(value) == 0
    return False


def _module_namespaces() -> dict[str, ReadOnlyNamespace]:
    """Read-only views of the modules reachable through ``require``."""
    math_attrs = {k: getattr(math, k) for k in dir(math) if not k.startswith("_")}
    return {
        "math": ReadOnlyNamespace("math", math_attrs),
        "json": ReadOnlyNamespace(
            "json",
            {"loads": json.loads, "dumps": json.dumps, "JSONDecodeError": json.JSONDecodeError},
        ),
        "re": ReadOnlyNamespace(
            "re",
            {
                "match": re.match,
                "search": re.search,
                "fullmatch": re.fullmatch,
                "sub": re.sub,
                "subn": re.subn,
                "findall": re.findall,
                "split": re.split,
                "escape": re.escape,
                "IGNORECASE": re.IGNORECASE,
                "MULTILINE": re.MULTILINE,
                "DOTALL": re.DOTALL,
                "I": re.I,
                "M": re.M,
                "S": re.S,
            },
        ),
        "random": ReadOnlyNamespace(
            "random",
            {
                "random": random.random,
                "randint": random.randint,
                "uniform": random.uniform,
                "choice": random.choice,
                "sample": random.sample,
                "shuffle": random.shuffle,
            },
        ),
        "statistics": ReadOnlyNamespace(
            "statistics",
            {
                "mean": statistics.mean,
                "fmean": statistics.fmean,
                "median": statistics.median,
                "mode": statistics.mode,
                "stdev": statistics.stdev,
                "pstdev": statistics.pstdev,
                "variance": statistics.variance,
                "pvariance": statistics.pvariance,
            },
        ),
        "string": ReadOnlyNamespace(
            "string",
            {
                "ascii_letters": string.ascii_letters,
                "ascii_lowercase": string.ascii_lowercase,
                "ascii_uppercase": string.ascii_uppercase,
                "digits": string.digits,
                "hexdigits": string.hexdigits,
                "punctuation": string.punctuation,
                "whitespace": string.whitespace,
                "capwords": string.capwords,
            },
        ),
        "datetime": ReadOnlyNamespace(
            "datetime",
            {
                "date": date,
                "datetime": datetime,
                "time": time,
                "timedelta": timedelta,
                "timezone": timezone,
            },
        ),
    }


ALLOWED_MODULES: MappingProxyType[str, ReadOnlyNamespace] = MappingProxyType(_module_namespaces())


def require(name: str) -> ReadOnlyNamespace:
    """Restricted module loader: only allowlisted, read-only namespaces."""
    if not isinstance(name, str) or name not in ALLOWED_MODULES:
        raise ModuleNotAllowedError(
            f"Module {name!r} is not in the allowlist. "
            f"Allowed: {', '.join(sorted(ALLOWED_MODULES))}."
        )
    return ALLOWED_MODULES[name]


def _make_safe_builtins() -> dict[str, Any]:
    """RestrictedPython safe_builtins plus pure container/utility builtins."""
    safe = dict(safe_builtins)
    for name in (
        "list", "dict", "set", "frozenset", "tuple", "str", "int", "float", "bool",
        "len", "min", "max", "sum", "abs", "round", "sorted", "reversed",
        "enumerate", "all", "any", "map", "filter", "zip", "isinstance",
    ):
        obj = getattr(builtins, name, None)
        if obj is not None:
            safe.setdefault(name, obj)
    safe["range"] = _limited_range
    safe["getattr"] = safer_getattr
    return safe


_INPLACE_OPS = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "<<=": operator.ilshift,
    ">>=": operator.irshift,
    "&=": operator.iand,
    "^=": operator.ixor,
    "|=": operator.ior,
}


def _inplacevar(op: str, x: Any, y: Any) -> Any:
    fn = _INPLACE_OPS.get(op)
    if fn is None:
        raise SyntaxError(f"Unsupported in-place operator: {op}")
    return fn(x, y)


def _apply(func: Any, *args: Any, **kwargs: Any) -> Any:
    return func(*args, **kwargs)


SAFE_BUILTINS: MappingProxyType[str, Any] = MappingProxyType(_make_safe_builtins())

SAFE_GLOBALS: MappingProxyType[str, Any] = MappingProxyType(
    {
        **ALLOWED_MODULES,
        "date": date,
        "datetime": datetime,
        "time": time,
        "timedelta": timedelta,
        "utils": ReadOnlyNamespace(
            "utils",
            {
                "deep_clone": _deep_clone,
                "is_object": lambda v: isinstance(v, dict),
                "is_list": lambda v: isinstance(v, (list, tuple)),
                "is_empty": _is_empty,
            },
        ),
        "require": require,
    }
)

# Context keys callers may never bind; "_"-prefixed names are refused as well.
RESERVED_NAMES = frozenset({"__builtins__", "__name__", "require"})


def _make_guard_globals() -> dict[str, Any]:
    """Guards required by RestrictedPython's rewritten bytecode."""
    return {
        "_getattr_": safer_getattr,
        "_getiter_": default_guarded_getiter,
        "_getitem_": default_guarded_getitem,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": full_write_guard,
        "_inplacevar_": _inplacevar,
        "_apply_": _apply,
        "_print_": PrintCollector,
    }


@dataclass(frozen=True)
class CompiledExpression:
    """One expression's restricted bytecode, keyed by its exact source."""

    source: str
    code: CodeType


def compile_expression(source: str, filename: str = "<expression>") -> CompiledExpression:
    """Compile a single expression in RestrictedPython ``eval`` mode.

    Raises SyntaxError for invalid syntax and for restricted constructs
    (underscore names, exec, ...).
    """
    code = compile_restricted(source, filename, "eval")
    if code is None:
        raise SyntaxError("RestrictedPython: compile failed")
    return CompiledExpression(source=source, code=code)


def compile_script(script: str, filename: str = "<script>") -> CodeType:
    """
    Compile a statement block (helper definition or module) with RestrictedPython.

    Returns a code object suitable for exec(code, globals).
    """
    code = compile_restricted(script, filename, "exec")
    if code is None:
        raise SyntaxError("RestrictedPython: compile failed")
    return code


def build_restricted_globals(context_dict: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Build a fresh globals dict: safe builtins, guards, safe globals, then
    *context_dict* (vars and helpers). Reserved names in *context_dict* are
    ignored so callers cannot replace guards or registry entries.
    """
    g: dict[str, Any] = {
        "__builtins__": dict(SAFE_BUILTINS),
        "__name__": "sandbox",
    }
    g.update(_make_guard_globals())
    g.update(SAFE_GLOBALS)
    for key, value in (context_dict or {}).items():
        if key in RESERVED_NAMES or key.startswith("_"):
            continue
        g[key] = value
    return g

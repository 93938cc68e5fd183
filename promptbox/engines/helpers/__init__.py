"""
Helpers: compile inline definitions, load helper modules, merge with built-ins.

Exports: HelperFunction, compile_helper, HelperModuleLoader, load_helper_module,
BUILTIN_HELPERS, collect_helpers.
"""

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from .builtin import BUILTIN_HELPERS
from .compiler import HelperFunction, compile_helper, returns_value
from .module_loader import HelperModuleLoader, get_default_loader, load_helper_module

_log = logging.getLogger(__name__)


def collect_helpers(
    definitions: Mapping[str, str] | None = None,
    modules: Iterable[str] | None = None,
    extra: Mapping[str, Callable[..., Any]] | None = None,
    *,
    include_builtins: bool = True,
    loader: HelperModuleLoader | None = None,
) -> dict[str, Callable[..., Any]]:
    """
    Merge helpers in order: built-ins, inline definitions, module tables,
    then trusted host callables. Later sources win on name clashes. A
    definition or module that fails is logged and skipped.
    """
    helpers: dict[str, Callable[..., Any]] = dict(BUILTIN_HELPERS) if include_builtins else {}

    for name, source in (definitions or {}).items():
        try:
            helpers[name] = compile_helper(source, name=name)
        except Exception as e:
            _log.warning("Skipping helper %r: %s: %s", name, e.__class__.__name__, e)

    ldr = loader or get_default_loader()
    for source in modules or ():
        helpers.update(ldr.load(source))

    for name, fn in (extra or {}).items():
        if callable(fn):
            helpers[name] = fn
        else:
            _log.warning("Skipping helper %r: not callable", name)
    return helpers


__all__ = [
    "BUILTIN_HELPERS",
    "HelperFunction",
    "HelperModuleLoader",
    "collect_helpers",
    "compile_helper",
    "get_default_loader",
    "load_helper_module",
    "returns_value",
]

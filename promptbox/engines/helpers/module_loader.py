"""
Helper module loader: a source blob declaring several helpers -> {name: HelperFunction}.

Loading never raises. Any failure (oversize, security match outside a
function, syntax error, timeout, runtime error in the module body) is logged
and yields an empty table. The filtered, compiled module is cached by sha256
of the source in an LRU cache of its own, separate from the expression
cache; the module body runs again in fresh globals on every load, so module
level data is never shared between two loaded tables.
"""

import ast
import logging
import types
from dataclasses import dataclass
from typing import Any

from promptbox.core.cache import LRUCache
from promptbox.core.config import settings
from promptbox.engines.helpers.compiler import (
    HelperFunction,
    content_hash,
    function_arity,
    returns_value,
)
from promptbox.engines.script.executor import call_with_deadline
from promptbox.engines.script.safety import scan
from promptbox.engines.script.sandbox import build_restricted_globals, compile_script

_log = logging.getLogger(__name__)

EXPORTS_NAME = "exports"

_FUNCTION_DEFS = (ast.FunctionDef, ast.AsyncFunctionDef)


@dataclass(frozen=True)
class CompiledModule:
    """Filtered module code plus the (first line, name) keys of its returning functions."""

    code: types.CodeType
    returning: frozenset[tuple[int, str]]
    digest: str


def _returning_functions(tree: ast.Module) -> frozenset[tuple[int, str]]:
    """(first line, code name) of every function in *tree* that returns a value."""
    keys: set[tuple[int, str]] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Lambda):
            keys.add((node.lineno, "<lambda>"))
        elif isinstance(node, _FUNCTION_DEFS) and returns_value(node):
            first = node.decorator_list[0].lineno if node.decorator_list else node.lineno
            keys.add((first, node.name))
    return frozenset(keys)


def _mask_lines(source: str, nodes: list[ast.stmt]) -> str:
    """*source* with the lines of *nodes* blanked, leaving module-level code only."""
    lines = source.splitlines()
    for node in nodes:
        end = node.end_lineno or node.lineno
        for i in range(node.lineno - 1, end):
            lines[i] = ""
    return "\n".join(lines)


class HelperModuleLoader:
    """
    Loads helper modules into isolated restricted globals and harvests helpers.

    Harvested: callables named by an ``exports`` binding (a dict of name to
    function, or a list/tuple of names), then every other new top-level
    function. Only plain functions that pass ``returns_value`` are kept.
    """

    def __init__(
        self,
        cache: LRUCache[CompiledModule] | None = None,
        *,
        max_size: int | None = None,
        timeout_ms: int | None = None,
        allow_imports: bool = False,
    ) -> None:
        self.cache = cache if cache is not None else LRUCache(
            settings.HELPER_MODULE_CACHE_SIZE, name="helper_modules"
        )
        self.max_size = max_size or settings.HELPER_MODULE_MAX_SIZE
        self.timeout_ms = timeout_ms if timeout_ms is not None else settings.HELPER_MODULE_TIMEOUT_MS
        self.allow_imports = allow_imports

    def load(self, source: str, *, use_cache: bool = True) -> dict[str, HelperFunction]:
        if not isinstance(source, str):
            _log.warning("Invalid helper module: code must be a string")
            return {}
        if len(source) > self.max_size:
            _log.warning("Helper module exceeds size limit (%d > %d)", len(source), self.max_size)
            return {}

        digest = content_hash(source)
        key = f"helper_{digest}"
        module = self.cache.get(key) if use_cache else None
        if module is None:
            module = self._compile(source, digest)
            if module is None:
                return {}
            if use_cache:
                self.cache.set(key, module)

        try:
            return self._execute(module)
        except Exception as e:
            _log.warning("Error executing helper module: %s: %s", e.__class__.__name__, e)
            return {}

    def _compile(self, source: str, digest: str) -> CompiledModule | None:
        """Scan, drop violating functions and compile; None when the module is rejected."""
        try:
            tree = ast.parse(source, "<helper-module>", "exec")
        except SyntaxError as e:
            _log.warning("Error parsing helper module: %s", e)
            return None

        functions = [n for n in tree.body if isinstance(n, _FUNCTION_DEFS)]
        violation = scan(_mask_lines(source, functions), allow_imports=self.allow_imports)
        if violation is not None:
            _log.warning("Security violation in helper module: %s", violation.message)
            return None

        dropped: set[int] = set()
        for node in functions:
            segment = ast.get_source_segment(source, node) or ""
            fn_violation = scan(segment, allow_imports=self.allow_imports)
            if fn_violation is not None:
                _log.warning(
                    "Dropping helper %r from module: %s", node.name, fn_violation.message
                )
                dropped.add(id(node))
        tree.body = [n for n in tree.body if id(n) not in dropped]

        filtered = ast.unparse(tree)
        try:
            code = compile_script(filtered, filename="<helper-module>")
        except SyntaxError as e:
            _log.warning("Error compiling helper module: %s", e)
            return None
        return CompiledModule(
            code=code,
            returning=_returning_functions(ast.parse(filtered)),
            digest=digest,
        )

    def _execute(self, module: CompiledModule) -> dict[str, HelperFunction]:
        g = build_restricted_globals()
        baseline = set(g)
        call_with_deadline(
            lambda: exec(module.code, g),  # noqa: S102
            self.timeout_ms / 1000.0,
            label="Helper module",
        )

        bag: dict[str, HelperFunction] = {}

        def _take(name: Any, value: Any) -> None:
            if not isinstance(name, str) or name in bag or name.startswith("_"):
                return
            if not isinstance(value, types.FunctionType):
                return
            fn_code = value.__code__
            if (fn_code.co_firstlineno, fn_code.co_name) not in module.returning:
                _log.debug("helper %r discarded: no return value", name)
                return
            bag[name] = HelperFunction(
                name=name,
                arity=function_arity(value),
                func=value,
                content_hash=module.digest,
            )

        exports = g.get(EXPORTS_NAME)
        if isinstance(exports, dict):
            for name, value in exports.items():
                _take(name, value)
        elif isinstance(exports, (list, tuple)):
            for name in exports:
                if isinstance(name, str):
                    _take(name, g.get(name))

        for name, value in g.items():
            if name in baseline or name == EXPORTS_NAME:
                continue
            _take(name, value)
        return bag

    def clear_cache(self) -> None:
        self.cache.clear()


_default_loader: HelperModuleLoader | None = None


def get_default_loader() -> HelperModuleLoader:
    global _default_loader
    if _default_loader is None:
        _default_loader = HelperModuleLoader()
    return _default_loader


def load_helper_module(source: str, *, use_cache: bool = True) -> dict[str, HelperFunction]:
    """Load *source* with the process-wide default loader and cache."""
    return get_default_loader().load(source, use_cache=use_cache)

"""
Helper compiler: one untrusted helper definition (text) -> HelperFunction.

A definition is a single ``lambda`` expression or a single ``def``. Before
anything is compiled the source is length-checked, scanned by the security
detector and statically checked to return a value. The definition is then
executed with RestrictedPython against fresh safe globals under a short
deadline; the resulting function never sees render variables.
"""

import ast
import hashlib
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

from promptbox.core.config import settings
from promptbox.core.errors import HelperInvalidError
from promptbox.engines.script.executor import call_with_deadline
from promptbox.engines.script.safety import ensure_safe
from promptbox.engines.script.sandbox import build_restricted_globals, compile_script

_log = logging.getLogger(__name__)

# Binding used to capture a lambda helper; a plain name so RestrictedPython accepts it.
_LAMBDA_BINDING = "helper"

_SCOPE_NODES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda, ast.ClassDef)


@dataclass(frozen=True)
class HelperFunction:
    """A validated helper: name, arity, callable and the hash of its source."""

    name: str
    arity: int
    func: Callable[..., Any] = field(repr=False)
    content_hash: str
    source: str = field(default="", repr=False)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self.func(*args, **kwargs)


def content_hash(source: str) -> str:
    return hashlib.sha256(source.encode("utf-8")).hexdigest()


def function_arity(fn: Callable[..., Any]) -> int:
    """Positional parameters without a default value."""
    code = getattr(fn, "__code__", None)
    if code is None:
        return 0
    defaults = getattr(fn, "__defaults__", None) or ()
    return max(code.co_argcount - len(defaults), 0)


def _own_nodes(fn: ast.FunctionDef | ast.AsyncFunctionDef) -> Iterator[ast.AST]:
    """Nodes of *fn*'s body, not descending into nested scopes."""
    stack: list[ast.AST] = [n for n in fn.body if not isinstance(n, _SCOPE_NODES)]
    while stack:
        node = stack.pop()
        yield node
        for child in ast.iter_child_nodes(node):
            if not isinstance(child, _SCOPE_NODES):
                stack.append(child)


def returns_value(node: ast.AST) -> bool:
    """Static check: does this function definition promise a value?

    Lambdas always do. A ``def`` needs at least one ``return <value>`` in its
    own body; returns inside nested functions do not count.
    """
    if isinstance(node, ast.Lambda):
        return True
    if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
        return any(isinstance(n, ast.Return) and n.value is not None for n in _own_nodes(node))
    return False


def _parse_definition(src: str) -> ast.AST:
    try:
        tree = ast.parse(src, "<helper>", "exec")
    except SyntaxError as e:
        raise SyntaxError(f"Syntax error in helper: {e.msg}") from e
    if len(tree.body) != 1:
        raise HelperInvalidError("Helper must be a single lambda expression or a single def")
    stmt = tree.body[0]
    if isinstance(stmt, ast.Expr) and isinstance(stmt.value, ast.Lambda):
        return stmt.value
    if isinstance(stmt, ast.AsyncFunctionDef):
        raise HelperInvalidError("Async helpers are not supported")
    if isinstance(stmt, ast.FunctionDef):
        if stmt.decorator_list:
            raise HelperInvalidError("Decorated helpers are not supported")
        return stmt
    raise HelperInvalidError("Compilation did not result in a function")


def compile_helper(
    source: str,
    *,
    name: str | None = None,
    max_length: int | None = None,
    timeout_ms: int | None = None,
    allow_multiline: bool = True,
    strict: bool = False,
    require_parameters: bool = False,
) -> HelperFunction:
    """
    Compile one helper definition.

    Raises ``HelperInvalidError`` for oversize, non-function or non-returning
    definitions, ``SecurityViolationError`` when the scanner rejects the
    source, ``SyntaxError`` for invalid Python and ``ExecutionTimeoutError``
    when defining the function takes too long.
    """
    if not isinstance(source, str):
        raise HelperInvalidError("Helper source must be a string")
    limit = max_length or settings.HELPER_MAX_LENGTH
    if len(source) > limit:
        raise HelperInvalidError(f"Helper source exceeds maximum length ({limit} chars)")
    src = source.strip()
    if not allow_multiline and "\n" in src:
        raise HelperInvalidError("Multiline helpers are not allowed in this context")

    ensure_safe(src)

    node = _parse_definition(src)
    if not returns_value(node):
        raise HelperInvalidError(
            "Helper must explicitly return a value (use a lambda or a return statement)"
        )

    if isinstance(node, ast.Lambda):
        binding = _LAMBDA_BINDING
        script = f"{binding} = (\n{src}\n)"
    else:
        binding = node.name
        script = src
    code = compile_script(script, filename="<helper>")

    g = build_restricted_globals()
    ms = timeout_ms if timeout_ms is not None else settings.HELPER_COMPILE_TIMEOUT_MS
    call_with_deadline(lambda: exec(code, g), ms / 1000.0, label="Helper compilation")  # noqa: S102

    fn = g.get(binding)
    if not callable(fn):
        raise HelperInvalidError("Compilation did not result in a function")

    arity = function_arity(fn)
    if strict and require_parameters and arity == 0:
        raise HelperInvalidError("Helper function must accept at least one parameter")

    helper_name = name or (binding if binding != _LAMBDA_BINDING else "<lambda>")
    _log.debug("compiled helper %s/%d", helper_name, arity)
    return HelperFunction(
        name=helper_name,
        arity=arity,
        func=fn,
        content_hash=content_hash(source),
        source=source,
    )

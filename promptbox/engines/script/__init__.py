"""
Script sandbox (RestrictedPython) for template expressions and helpers.

Exports: SandboxExecutor, RenderContext, compile_expression, compile_script,
build_restricted_globals, call_with_deadline, scan.
"""

from .context import RenderContext
from .executor import SandboxExecutor, call_with_deadline
from .safety import SecurityViolation, ensure_safe, scan
from .sandbox import (
    SAFE_GLOBALS,
    CompiledExpression,
    build_restricted_globals,
    compile_expression,
    compile_script,
    require,
)

__all__ = [
    "RenderContext",
    "SandboxExecutor",
    "call_with_deadline",
    "SecurityViolation",
    "ensure_safe",
    "scan",
    "SAFE_GLOBALS",
    "CompiledExpression",
    "build_restricted_globals",
    "compile_expression",
    "compile_script",
    "require",
]

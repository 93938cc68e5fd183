"""
promptbox: prompt templates with sandboxed expressions and untrusted helpers.

    from promptbox import render
    text = await render("Hello, {name}! {{ 40 + 2 }}", {"name": "World"})
"""

from promptbox.core.error_classifier import (
    ErrorClassification,
    classify_error,
    format_error_with_suggestions,
    process_error,
)
from promptbox.core.errors import ErrorType
from promptbox.engines.helpers import (
    BUILTIN_HELPERS,
    HelperFunction,
    HelperModuleLoader,
    collect_helpers,
    compile_helper,
    load_helper_module,
)
from promptbox.engines.template import (
    RenderOptions,
    TemplateRenderer,
    find_expressions,
    parse_variables,
    render,
)

__version__ = "0.1.0"

__all__ = [
    "BUILTIN_HELPERS",
    "ErrorClassification",
    "ErrorType",
    "HelperFunction",
    "HelperModuleLoader",
    "RenderOptions",
    "TemplateRenderer",
    "classify_error",
    "collect_helpers",
    "compile_helper",
    "find_expressions",
    "format_error_with_suggestions",
    "load_helper_module",
    "parse_variables",
    "process_error",
    "render",
]

"""
Error classification and suggestions for template rendering.

``classify_error`` maps a raw exception onto an ``ErrorType`` with a
user-facing message, a suggestion and a bad/good example pair.
Classification never changes control flow; the renderer only uses it to
build the inline ``{{Error: ...}}`` marker.

Reports are rendered with Jinja2 (plain text or Markdown).
"""

import asyncio
import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from jinja2 import Environment, Template
from pydantic import BaseModel, ConfigDict

from promptbox.core.errors import ErrorType, TemplateEngineError


class ErrorExamples(BaseModel):
    model_config = ConfigDict(frozen=True)

    bad: str
    good: str


class ErrorClassification(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ErrorType
    message: str
    suggestion: str
    details: str | None = None
    examples: ErrorExamples | None = None
    original_message: str = ""
    error_name: str = "Error"
    context_snippet: str | None = None


@dataclass(frozen=True)
class _Entry:
    message: str
    suggestion: str


_ENTRIES: dict[ErrorType, _Entry] = {
    ErrorType.SYNTAX: _Entry(
        "Syntax error in template expression",
        "Check for missing closing parentheses, brackets, or quotes. "
        "Expressions follow Python expression syntax.",
    ),
    ErrorType.REFERENCE: _Entry(
        "Undefined variable or property",
        "Make sure all variables used in your template are passed in vars or "
        "provided as helpers. Check for typos in names.",
    ),
    ErrorType.TYPE: _Entry(
        "Incorrect data type",
        "Make sure you're using the correct data type. For example, convert numbers "
        "with str() before joining them to text, and only call functions.",
    ),
    ErrorType.SECURITY: _Entry(
        "Security restriction",
        "You're trying to access restricted functionality. "
        "Use only allowed operations within templates.",
    ),
    ErrorType.TIMEOUT: _Entry(
        "Execution timeout",
        "Your expression is too complex or may never finish. "
        "Simplify the logic or make sure loops are bounded.",
    ),
    ErrorType.NESTING_EXCEEDED: _Entry(
        "Excessive template nesting",
        "You've exceeded the maximum nesting depth for templates. "
        "Simplify your template structure or break it into smaller parts.",
    ),
    ErrorType.ITERATION_EXCEEDED: _Entry(
        "Iteration limit exceeded",
        "Template processing exceeded the maximum number of iterations. "
        "Reduce the number of expression blocks or split the template.",
    ),
    ErrorType.MODULE_NOT_ALLOWED: _Entry(
        "Restricted module access",
        "You're trying to require a module that's not in the allowlist. "
        "Only certain safe modules can be used in templates.",
    ),
    ErrorType.HELPER_INVALID: _Entry(
        "Helper function issue",
        "The helper function you're trying to use doesn't exist or didn't return a value. "
        "Check the name and implementation of your helper.",
    ),
    ErrorType.JSON_PARSE: _Entry(
        "JSON parsing error",
        "There's an issue with your JSON data. Ensure it's valid JSON and properly formatted.",
    ),
    ErrorType.UNKNOWN: _Entry(
        "An unexpected error occurred",
        "Check your template syntax and ensure all variables are properly defined.",
    ),
}

ERROR_EXAMPLES: dict[ErrorType, ErrorExamples] = {
    ErrorType.SYNTAX: ErrorExamples(bad="{{ max(1, 2, }}", good="{{ max(1, 2) }}"),
    ErrorType.REFERENCE: ErrorExamples(
        bad="{{ undefined_var + 1 }}",
        good="{{ defined_var + 1 }} (where defined_var is passed in vars)",
    ),
    ErrorType.TYPE: ErrorExamples(bad='{{ "age: " + 42 }}', good='{{ "age: " + str(42) }}'),
    ErrorType.SECURITY: ErrorExamples(bad="{{ os.environ }}", good="{{ allowed_helper() }}"),
    ErrorType.TIMEOUT: ErrorExamples(
        bad="{{ sum(1 for a in range(10 ** 6) for b in range(10 ** 6)) }}",
        good="{{ sum(range(100)) }}",
    ),
    ErrorType.NESTING_EXCEEDED: ErrorExamples(
        bad="{{ {{ {{ {{ ... }} }} }} }}", good="{{ {{ inner }} }}"
    ),
    ErrorType.ITERATION_EXCEEDED: ErrorExamples(
        bad="thousands of {{ … }} blocks in one template",
        good="a template split into smaller renders",
    ),
    ErrorType.MODULE_NOT_ALLOWED: ErrorExamples(
        bad='{{ require("os") }}', good='{{ require("math").sqrt(2) }}'
    ),
    ErrorType.HELPER_INVALID: ErrorExamples(
        bad="{{ not_defined_helper() }}", good="{{ defined_helper() }}"
    ),
    ErrorType.JSON_PARSE: ErrorExamples(
        bad='{{ json.loads("{invalid}") }}', good="{{ json.loads('{\"valid\": true}') }}"
    ),
}

# Ordered fallback table, matched against "<ErrorName>: <message>".
ERROR_PATTERNS: list[tuple[re.Pattern[str], ErrorType]] = [
    (
        re.compile(
            r"invalid syntax|unexpected EOF|was never closed|unmatched|unterminated|"
            r"SyntaxError|Unclosed expression",
            re.I,
        ),
        ErrorType.SYNTAX,
    ),
    (
        re.compile(r"name '(\w+)' is not defined|has no attribute '(\w+)'|ReferenceError|KeyError", re.I),
        ErrorType.REFERENCE,
    ),
    (
        re.compile(
            r"is not callable|is not iterable|unsupported operand|can only concatenate|TypeError",
            re.I,
        ),
        ErrorType.TYPE,
    ),
    (
        re.compile(r"security violation|forbidden access|unsafe operation|restricted|SecurityError", re.I),
        ErrorType.SECURITY,
    ),
    (re.compile(r"timeout|timed out|exceeded.*?time", re.I), ErrorType.TIMEOUT),
    (re.compile(r"nesting|maximum.*?depth|recursion", re.I), ErrorType.NESTING_EXCEEDED),
    (re.compile(r"iteration|exceeded.*?limit", re.I), ErrorType.ITERATION_EXCEEDED),
    (re.compile(r"module.*?not.*?(?:in|found|the) allowlist|No module named", re.I), ErrorType.MODULE_NOT_ALLOWED),
    (re.compile(r"helper.*?(?:not|undefined|none|missing|must)", re.I), ErrorType.HELPER_INVALID),
    (
        re.compile(r"Expecting value|Expecting property name|JSONDecodeError|Unterminated string starting", re.I),
        ErrorType.JSON_PARSE,
    ),
]

# RestrictedPython compile-time rejections arrive as SyntaxError.
_RESTRICTED_SYNTAX = re.compile(
    r'starts with "_"|invalid (?:attribute|variable) name|are not allowed|is not allowed', re.I
)
# RestrictedPython write guard failures arrive as TypeError.
_RESTRICTED_WRITE = re.compile(
    r"attribute-less object|does not support item or slice assignment|is read-only", re.I
)
_NAME_NOT_DEFINED = re.compile(r"name '(\w+)' is not defined")
_POSITION = re.compile(r"position\s+(\d+)|column\s+(\d+)", re.I)


def _type_from_exception(error: BaseException) -> ErrorType | None:
    """Direct mapping by exception class; None falls through to the pattern table."""
    if isinstance(error, TemplateEngineError):
        return error.error_type
    if isinstance(error, RecursionError):
        return ErrorType.NESTING_EXCEEDED
    if isinstance(error, SyntaxError):
        if _RESTRICTED_SYNTAX.search(str(error)):
            return ErrorType.SECURITY
        return ErrorType.SYNTAX
    if isinstance(error, json.JSONDecodeError):
        return ErrorType.JSON_PARSE
    if isinstance(error, PermissionError):
        return ErrorType.SECURITY
    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return ErrorType.TIMEOUT
    if isinstance(error, ImportError):
        return ErrorType.MODULE_NOT_ALLOWED
    if isinstance(error, (NameError, AttributeError, KeyError, IndexError)):
        return ErrorType.REFERENCE
    if isinstance(error, TypeError):
        if _RESTRICTED_WRITE.search(str(error)):
            return ErrorType.SECURITY
        return ErrorType.TYPE
    if isinstance(error, ArithmeticError):
        return ErrorType.TYPE
    return None


def _reference_details(error: BaseException, text: str) -> str | None:
    name = getattr(error, "name", None) if isinstance(error, NameError) else None
    if not name:
        m = _NAME_NOT_DEFINED.search(text)
        name = m.group(1) if m else None
    if not name:
        return None
    return (
        f'The variable "{name}" was used but not defined. Check if it\'s passed in '
        f"vars or defined in a helper function."
    )


def _error_position(error: BaseException, message: str) -> int | None:
    position = getattr(error, "position", None)
    if isinstance(position, int):
        return position
    if isinstance(error, SyntaxError) and isinstance(error.offset, int) and error.offset > 0:
        return error.offset - 1
    m = _POSITION.search(message)
    if m:
        return int(m.group(1) or m.group(2))
    return None


def _context_snippet(context: str, index: int | None) -> str:
    if index is None or not 0 <= index < len(context):
        return context
    start = max(0, index - 20)
    end = min(len(context), index + 20)
    return f"{context[start:end]}\n{' ' * (index - start)}^"


def classify_error(
    error: BaseException,
    context: str = "",
    *,
    include_examples: bool = True,
    verbose: bool = False,
) -> ErrorClassification:
    """
    Classify an error and attach a suggestion for fixing it.

    *context* is the expression or template the error came from; with
    *verbose* a syntax error gets a snippet with a caret under the failing
    position when one is known.
    """
    message = str(error) or error.__class__.__name__
    name = error.__class__.__name__
    text = f"{name}: {message}"

    error_type = _type_from_exception(error)
    if error_type is None:
        error_type = ErrorType.UNKNOWN
        for pattern, candidate in ERROR_PATTERNS:
            if pattern.search(text):
                error_type = candidate
                break

    entry = _ENTRIES[error_type]
    details: str | None = None
    if error_type == ErrorType.REFERENCE:
        details = _reference_details(error, text)
    elif isinstance(error, TemplateEngineError):
        snippet = getattr(error, "snippet", None)
        if snippet:
            details = f"Offending code: {snippet}"

    snippet_text: str | None = None
    if verbose and context and error_type == ErrorType.SYNTAX:
        snippet_text = _context_snippet(context, _error_position(error, message))

    return ErrorClassification(
        type=error_type,
        message=entry.message,
        suggestion=entry.suggestion,
        details=details,
        examples=ERROR_EXAMPLES.get(error_type) if include_examples else None,
        original_message=message,
        error_name=name,
        context_snippet=snippet_text,
    )


_REPORT_SOURCE = """\
{{ h1 }}{{ c.message }}{{ end }}

{{ h2 }}Original Error:{{ end }}
{{ c.original_message }}

{{ h2 }}Suggestion:{{ end }}
{{ c.suggestion }}
{% if c.details %}

{{ h2 }}Details:{{ end }}
{{ c.details }}
{% endif %}
{% if c.context_snippet %}

{{ h2 }}Code Context:{{ end }}
{{ fence }}
{{ c.context_snippet }}
{{ fence }}
{% endif %}
{% if include_examples and c.examples %}

{{ h2 }}Examples:{{ end }}
{{ bad_prefix }}Bad: {{ code }}{{ c.examples.bad }}{{ code }}
{{ good_prefix }}Good: {{ code }}{{ c.examples.good }}{{ code }}
{% endif %}
"""

_INLINE_SOURCE = (
    "{{ '{{' }}Error: {{ c.message }}"
    "{% if debug %}: {{ c.original_message }}"
    "{% if c.details %} | Details: {{ c.details }}{% endif %}"
    " | Suggestion: {{ c.suggestion }}"
    "{% if c.examples %} | Bad: {{ c.examples.bad }} | Good: {{ c.examples.good }}{% endif %}"
    "{% endif %}{{ '}}' }}"
)

_ENV: Environment | None = None
_TEMPLATES: dict[str, Template] = {}


def _get_template(key: str) -> Template:
    """Shared Jinja2 environment for error reports; templates compiled once."""
    global _ENV
    if _ENV is None:
        _ENV = Environment(autoescape=False, trim_blocks=True, keep_trailing_newline=False)
    tpl = _TEMPLATES.get(key)
    if tpl is None:
        source = _REPORT_SOURCE if key == "report" else _INLINE_SOURCE
        tpl = _ENV.from_string(source)
        _TEMPLATES[key] = tpl
    return tpl


def format_error_with_suggestions(
    classification: ErrorClassification,
    *,
    include_examples: bool = True,
    markdown: bool = False,
) -> str:
    """Multi-section, human-readable report for one classification."""
    return _get_template("report").render(
        c=classification,
        include_examples=include_examples,
        h1="## " if markdown else "",
        h2="### " if markdown else "",
        end="",
        code="`" if markdown else "",
        fence="```" if markdown else "",
        bad_prefix="❌ " if markdown else "✗ ",
        good_prefix="✅ " if markdown else "✓ ",
    ).rstrip()


def format_inline_error(classification: ErrorClassification, *, debug: bool = False) -> str:
    """The ``{{Error: ...}}`` marker substituted into rendered output."""
    return _get_template("inline").render(c=classification, debug=debug)


def process_error(
    error: BaseException,
    context: str = "",
    *,
    include_examples: bool = True,
    verbose: bool = False,
    markdown: bool = False,
) -> dict[str, Any]:
    """Classification plus formatted report, shaped for an API response."""
    classification = classify_error(
        error, context, include_examples=include_examples, verbose=verbose
    )
    return {
        "error": True,
        "type": classification.type.value,
        "message": classification.message,
        "suggestion": classification.suggestion,
        "original_message": classification.original_message,
        "classification": classification.model_dump(mode="json"),
        "formatted_message": format_error_with_suggestions(
            classification, include_examples=include_examples, markdown=markdown
        ),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

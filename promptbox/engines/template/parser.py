"""
Template scanning: ``{name}`` placeholders and ``{{ ... }}`` expression blocks.

Placeholder substitution is plain text replacement and never runs code.
Block matching tracks single-brace depth and Python string literals
(single, double and triple quoted, with backslash escapes) so braces inside
strings or dict literals do not end a block early.
"""

import re
from collections.abc import Iterator, Mapping
from typing import Any

from promptbox.core.errors import UnclosedExpressionError

# {name} not directly adjacent to another brace
VARIABLE_PATTERN = re.compile(r"(?<!\{)\{([A-Za-z_]\w*)\}(?!\})")

OPEN = "{{"
CLOSE = "}}"


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def substitute_variables(
    template: str,
    variables: Mapping[str, Any] | None = None,
    *,
    debug: bool = False,
) -> str:
    """
    Replace ``{name}`` with ``variables[name]``.

    Missing names are left as they are, or marked ``{name?}`` when *debug*.
    """
    values = variables or {}

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in values:
            return _format_value(values[name])
        return f"{{{name}?}}" if debug else match.group(0)

    return VARIABLE_PATTERN.sub(_replace, template)


def parse_variables(template: str) -> list[str]:
    """Placeholder names in order of first appearance."""
    seen: dict[str, None] = {}
    for match in VARIABLE_PATTERN.finditer(template):
        seen.setdefault(match.group(1), None)
    return list(seen)


def _skip_string(text: str, i: int) -> int | None:
    """*i* is at an opening quote; return the index after the closing quote, or None."""
    quote = text[i]
    if text.startswith(quote * 3, i):
        delim = quote * 3
        i += 3
    else:
        delim = quote
        i += 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if text.startswith(delim, i):
            return i + len(delim)
        if ch == "\n" and len(delim) == 1:
            return None
        i += 1
    return None


def find_expression_end(text: str, start: int) -> int | None:
    """
    Index of the ``}}`` closing the block whose body begins at *start*
    (just after ``{{``); None if the block is never closed.
    """
    depth = 0
    i = start
    n = len(text)
    while i < n:
        ch = text[i]
        if ch in ("'", '"'):
            after = _skip_string(text, i)
            if after is None:
                return None
            i = after
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            if depth == 0 and text.startswith(CLOSE, i):
                return i
            if depth > 0:
                depth -= 1
        i += 1
    return None


def iter_blocks(text: str) -> Iterator[tuple[int, int]]:
    """
    Yield ``(start, end)`` for each top-level block, where ``text[start:end]``
    is the whole ``{{ ... }}`` span.

    Raises ``UnclosedExpressionError`` at the first block without a match.
    """
    pos = 0
    while True:
        start = text.find(OPEN, pos)
        if start == -1:
            return
        close = find_expression_end(text, start + len(OPEN))
        if close is None:
            raise UnclosedExpressionError(
                f"Unclosed expression: '{{{{' at position {start} has no matching '}}}}'",
                position=start,
            )
        end = close + len(CLOSE)
        yield start, end
        pos = end


def find_expressions(template: str) -> list[str]:
    """Top-level expression sources (whitespace-trimmed), up to the first unclosed block."""
    found: list[str] = []
    try:
        for start, end in iter_blocks(template):
            found.append(template[start + len(OPEN):end - len(CLOSE)].strip())
    except UnclosedExpressionError:
        pass
    return found

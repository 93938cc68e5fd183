"""
TemplateRenderer: render(template, vars, helpers, options) -> str.

Placeholders are substituted once, then ``{{ ... }}`` blocks are evaluated
strictly left to right; a block containing nested ``{{`` has its inner text
rendered first. Failures inside one block become an inline
``{{Error: ...}}`` marker and the rest of the template still renders.
Depth and iteration ceilings end the render with the partial output plus a
trailing marker. Only a non-string template raises.
"""

import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from promptbox.core.cache import LRUCache
from promptbox.core.config import settings
from promptbox.core.error_classifier import classify_error, format_inline_error
from promptbox.core.errors import (
    IterationLimitExceededError,
    NestingDepthExceededError,
    UnclosedExpressionError,
)
from promptbox.engines.helpers.compiler import compile_helper
from promptbox.engines.script.context import RenderContext
from promptbox.engines.script.executor import SandboxExecutor
from promptbox.engines.script.safety import ensure_safe
from promptbox.engines.script.sandbox import CompiledExpression, compile_expression
from promptbox.engines.template.parser import CLOSE, OPEN, iter_blocks, substitute_variables

_log = logging.getLogger(__name__)

_LIMIT_ERRORS = (NestingDepthExceededError, IterationLimitExceededError)


class RenderOptions(BaseModel):
    """Per-call overrides; accepts snake_case or camelCase keys (``maxRenderDepth``)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    max_render_depth: int | None = None
    max_iterations: int | None = None
    debug_mode: bool = False
    clear_cache: bool = False
    timeout: int | None = None
    strict: bool | None = None


def default_max_iterations(template: str) -> int:
    return max(1000, min(10000, 5 * len(template)))


@dataclass
class _RenderState:
    max_depth: int
    max_iterations: int
    timeout_ms: int | None
    debug: bool
    strict: bool
    iterations: int = 0

    def tick(self) -> None:
        self.iterations += 1
        if self.iterations > self.max_iterations:
            raise IterationLimitExceededError(
                f"Template processing exceeded the maximum of {self.max_iterations} iterations"
            )


def _stringify(value: Any, block: str) -> str:
    """None keeps the block literal; containers render as JSON."""
    if value is None:
        return block
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str, ensure_ascii=False)
    return str(value)


class TemplateRenderer:
    """
    Render orchestrator. The expression cache is injected so tests and
    embedding applications control its lifetime; by default a fresh LRU
    cache sized by ``EXPRESSION_CACHE_SIZE`` is created.
    """

    def __init__(
        self,
        executor: SandboxExecutor | None = None,
        expression_cache: LRUCache[CompiledExpression] | None = None,
    ) -> None:
        self.executor = executor or SandboxExecutor()
        self.expression_cache = (
            expression_cache
            if expression_cache is not None
            else LRUCache(settings.EXPRESSION_CACHE_SIZE, name="expressions")
        )

    def compile(self, source: str) -> CompiledExpression:
        return self.expression_cache.get_or_create(source, lambda: compile_expression(source))

    async def render(
        self,
        template: str,
        vars: Mapping[str, Any] | None = None,
        helpers: Mapping[str, Callable[..., Any] | str] | None = None,
        options: RenderOptions | Mapping[str, Any] | None = None,
    ) -> str:
        if not isinstance(template, str):
            raise TypeError(f"Template must be a string, got {type(template).__name__}")
        opts = options if isinstance(options, RenderOptions) else RenderOptions.model_validate(options or {})
        if opts.clear_cache:
            self.expression_cache.clear()

        state = _RenderState(
            max_depth=opts.max_render_depth if opts.max_render_depth is not None else settings.MAX_RENDER_DEPTH,
            max_iterations=opts.max_iterations or default_max_iterations(template),
            timeout_ms=opts.timeout,
            debug=opts.debug_mode,
            strict=opts.strict if opts.strict is not None else settings.STRICT_EXPRESSIONS,
        )
        started = time.perf_counter()
        text = substitute_variables(template, vars, debug=state.debug)
        ctx = RenderContext(variables=vars, helpers=self._resolve_helpers(helpers))
        try:
            result = await self._render_text(text, ctx, state, 0)
        finally:
            await ctx.aclose()
        _log.debug(
            "rendered %d chars in %.1fms (%d blocks)",
            len(template),
            (time.perf_counter() - started) * 1000,
            state.iterations,
        )
        return result

    def _resolve_helpers(
        self, helpers: Mapping[str, Callable[..., Any] | str] | None
    ) -> dict[str, Callable[..., Any]]:
        """Callables pass through; string definitions are compiled, failures dropped."""
        resolved: dict[str, Callable[..., Any]] = {}
        for name, helper in (helpers or {}).items():
            if isinstance(helper, str):
                try:
                    resolved[name] = compile_helper(helper, name=name)
                except Exception as e:
                    _log.warning("Skipping helper %r: %s: %s", name, e.__class__.__name__, e)
                continue
            resolved[name] = helper
        return resolved

    def _marker(self, error: BaseException, context: str, state: _RenderState) -> str:
        classification = classify_error(error, context, verbose=state.debug)
        _log.debug("expression failed (%s): %s", classification.type.value, error)
        return format_inline_error(classification, debug=state.debug)

    async def _render_text(self, text: str, ctx: RenderContext, state: _RenderState, depth: int) -> str:
        out: list[str] = []
        pos = 0
        try:
            if depth > state.max_depth:
                raise NestingDepthExceededError(
                    f"Maximum template nesting depth of {state.max_depth} exceeded"
                )
            try:
                for start, end in iter_blocks(text):
                    out.append(text[pos:start])
                    state.tick()
                    out.append(await self._evaluate_block(text[start:end], ctx, state, depth))
                    pos = end
            except UnclosedExpressionError as e:
                out.append(text[pos:e.position])
                out.append(self._marker(e, text, state))
                return "".join(out)
            out.append(text[pos:])
            return "".join(out)
        except _LIMIT_ERRORS as e:
            if depth > 0:
                raise
            out.append(self._marker(e, text, state))
            return "".join(out)

    async def _evaluate_block(self, block: str, ctx: RenderContext, state: _RenderState, depth: int) -> str:
        expr = block[len(OPEN):-len(CLOSE)]
        if OPEN in expr:
            expr = await self._render_text(expr, ctx, state, depth + 1)
        expr = expr.strip()
        try:
            if state.strict:
                ensure_safe(expr)
            compiled = self.compile(expr)
            value = await self.executor.execute(compiled, ctx, state.timeout_ms)
        except _LIMIT_ERRORS:
            raise
        except Exception as e:
            return self._marker(e, expr, state)
        return _stringify(value, block)


_default_renderer: TemplateRenderer | None = None


def get_default_renderer() -> TemplateRenderer:
    global _default_renderer
    if _default_renderer is None:
        _default_renderer = TemplateRenderer()
    return _default_renderer


async def render(
    template: str,
    vars: Mapping[str, Any] | None = None,
    helpers: Mapping[str, Callable[..., Any] | str] | None = None,
    options: RenderOptions | Mapping[str, Any] | None = None,
) -> str:
    """Render with the process-wide default renderer and expression cache."""
    return await get_default_renderer().render(template, vars, helpers, options)

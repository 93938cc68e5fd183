"""
RenderContext: vars, helpers, http and log for one render call.

Built fresh for every render and discarded afterwards; nothing in here is
shared between concurrent renders.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from promptbox.core.config import settings
from promptbox.engines.script.guards import ArgumentLimits, guard_helper
from promptbox.engines.script.modules import HttpModule, make_http_module, make_log_module
from promptbox.engines.script.sandbox import build_restricted_globals

_log = logging.getLogger(__name__)


class RenderContext:
    """
    Read-only union of safe globals, caller variables and helper callables.

    Helpers are wrapped with argument validation before they are exposed.
    ``globals()`` builds the restricted globals dict once per context.
    """

    def __init__(
        self,
        *,
        variables: Mapping[str, Any] | None = None,
        helpers: Mapping[str, Callable[..., Any]] | None = None,
        limits: ArgumentLimits | None = None,
        http_timeout: float | None = None,
        http_allowed_hosts: frozenset[str] | None = None,
        logger: logging.Logger | None = None,
        log_extra: dict[str, Any] | None = None,
    ) -> None:
        self._limits = limits or ArgumentLimits.from_settings()
        self.variables: dict[str, Any] = dict(variables or {})
        self.helpers: dict[str, Callable[..., Any]] = {}
        for name, fn in (helpers or {}).items():
            if not callable(fn):
                _log.warning("Ignoring helper %r: not callable", name)
                continue
            self.helpers[name] = guard_helper(name, fn, self._limits)

        self.http: HttpModule = make_http_module(
            timeout=http_timeout if http_timeout is not None else settings.HTTP_TIMEOUT_SECONDS,
            allowed_hosts=(
                http_allowed_hosts if http_allowed_hosts is not None else settings.http_allowed_hosts
            ),
        )
        self.log = make_log_module(logger_instance=logger, extra=log_extra)
        self._globals: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Namespace layered over the safe globals: http, log, vars, then helpers."""
        return {
            "http": self.http,
            "log": self.log,
            **self.variables,
            **self.helpers,
        }

    def globals(self) -> dict[str, Any]:
        if self._globals is None:
            self._globals = build_restricted_globals(self.to_dict())
        return self._globals

    async def aclose(self) -> None:
        """Release per-render resources (the http client)."""
        await self.http.aclose()

"""
Engines: script sandbox (RestrictedPython), helpers, template renderer.
"""

from promptbox.engines.helpers import HelperModuleLoader, collect_helpers, compile_helper
from promptbox.engines.script import RenderContext, SandboxExecutor
from promptbox.engines.template import RenderOptions, TemplateRenderer, render

__all__ = [
    "TemplateRenderer",
    "RenderOptions",
    "render",
    "SandboxExecutor",
    "RenderContext",
    "HelperModuleLoader",
    "compile_helper",
    "collect_helpers",
]

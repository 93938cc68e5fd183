"""
Objects injected into every render context: http, log.
"""

from promptbox.engines.script.modules.http import HttpModule, make_http_module
from promptbox.engines.script.modules.log import make_log_module

__all__ = [
    "HttpModule",
    "make_http_module",
    "make_log_module",
]

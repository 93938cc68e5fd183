"""
Template rendering: placeholder substitution and nested ``{{ }}`` evaluation.

Exports: TemplateRenderer, RenderOptions, render, parse_variables, find_expressions.
"""

from .parser import find_expressions, parse_variables, substitute_variables
from .renderer import RenderOptions, TemplateRenderer, get_default_renderer, render

__all__ = [
    "TemplateRenderer",
    "RenderOptions",
    "render",
    "get_default_renderer",
    "parse_variables",
    "find_expressions",
    "substitute_variables",
]

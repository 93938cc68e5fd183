from collections.abc import Iterator

import pytest

from promptbox.engines.helpers.module_loader import get_default_loader
from promptbox.engines.template.renderer import get_default_renderer


@pytest.fixture(autouse=True)
def clear_process_caches() -> Iterator[None]:
    """Process-wide caches start empty in every test."""
    get_default_loader().clear_cache()
    get_default_renderer().expression_cache.clear()
    yield
    get_default_loader().clear_cache()
    get_default_renderer().expression_cache.clear()

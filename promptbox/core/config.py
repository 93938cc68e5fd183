"""
Runtime settings for promptbox.

Values come from environment variables prefixed with ``PROMPTBOX_`` (or a
``.env`` file). Per-render overrides live in ``RenderOptions``.
"""

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PROMPTBOX_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    # Expression evaluation
    EXPRESSION_TIMEOUT_MS: int = 30_000
    EXPRESSION_CACHE_SIZE: int = 512
    STRICT_EXPRESSIONS: bool = False
    MAX_RENDER_DEPTH: int = 10

    # Helpers
    HELPER_COMPILE_TIMEOUT_MS: int = 100
    HELPER_MODULE_TIMEOUT_MS: int = 200
    HELPER_MAX_LENGTH: int = 1_000
    HELPER_MODULE_MAX_SIZE: int = 20_000
    HELPER_MODULE_CACHE_SIZE: int = 128

    # Helper argument limits
    ARG_MAX_ARRAY_SIZE: int = 10_000
    ARG_MAX_STRING_LENGTH: int = 100_000
    ARG_MAX_NESTING: int = 10

    # Outbound HTTP from expressions (comma separated; empty = blocked)
    HTTP_TIMEOUT_SECONDS: float = 5.0
    HTTP_ALLOWED_HOSTS: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def http_allowed_hosts(self) -> frozenset[str]:
        raw = (self.HTTP_ALLOWED_HOSTS or "").strip()
        return frozenset(h.strip().lower() for h in raw.split(",") if h.strip())


settings = Settings()

"""Unit tests for core.config.Settings."""

from promptbox.core.config import Settings


class TestSettings:
    def test_defaults(self) -> None:
        s = Settings(_env_file=None)
        assert s.EXPRESSION_TIMEOUT_MS == 30_000
        assert s.HELPER_COMPILE_TIMEOUT_MS == 100
        assert s.HELPER_MODULE_TIMEOUT_MS == 200
        assert s.HELPER_MAX_LENGTH == 1_000
        assert s.HELPER_MODULE_MAX_SIZE == 20_000
        assert s.MAX_RENDER_DEPTH == 10
        assert s.STRICT_EXPRESSIONS is False
        assert s.http_allowed_hosts == frozenset()

    def test_env_prefix(self, monkeypatch) -> None:
        monkeypatch.setenv("PROMPTBOX_MAX_RENDER_DEPTH", "3")
        monkeypatch.setenv("PROMPTBOX_STRICT_EXPRESSIONS", "true")
        s = Settings(_env_file=None)
        assert s.MAX_RENDER_DEPTH == 3
        assert s.STRICT_EXPRESSIONS is True

    def test_allowed_hosts_parsed(self) -> None:
        s = Settings(_env_file=None, HTTP_ALLOWED_HOSTS=" API.example.com, *.internal.org ,,")
        assert s.http_allowed_hosts == frozenset({"api.example.com", "*.internal.org"})

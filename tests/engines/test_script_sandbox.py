"""Unit tests for engines.script.sandbox: safe globals and restricted compile."""

import math

import pytest

from promptbox.core.errors import ModuleNotAllowedError, SecurityViolationError
from promptbox.engines.script.sandbox import (
    RANGE_LIMIT,
    SAFE_BUILTINS,
    SAFE_GLOBALS,
    build_restricted_globals,
    compile_expression,
    compile_script,
    require,
)


def _eval(source: str, context: dict | None = None):
    compiled = compile_expression(source)
    return eval(compiled.code, build_restricted_globals(context))  # noqa: S307


class TestCompile:
    def test_compile_expression(self) -> None:
        compiled = compile_expression("1 + 2")
        assert compiled.source == "1 + 2"
        assert _eval("1 + 2") == 3

    def test_compile_script(self) -> None:
        assert compile_script("x = [i * 2 for i in [1, 2, 3]]") is not None

    def test_syntax_error(self) -> None:
        with pytest.raises(SyntaxError):
            compile_expression("max(1, 2,")

    def test_statements_rejected_in_expression(self) -> None:
        with pytest.raises(SyntaxError):
            compile_expression("x = 1")

    def test_underscore_names_rejected(self) -> None:
        with pytest.raises(SyntaxError):
            compile_expression("_secret")
        with pytest.raises(SyntaxError):
            compile_expression("().__class__")


class TestSafeGlobals:
    def test_registry_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            SAFE_GLOBALS["math"] = None  # type: ignore[index]
        with pytest.raises(TypeError):
            SAFE_BUILTINS["open"] = open  # type: ignore[index]

    def test_dangerous_builtins_absent(self) -> None:
        for name in ("open", "exec", "eval", "compile", "__import__", "globals", "input"):
            assert name not in SAFE_BUILTINS

    def test_namespace_refuses_assignment(self) -> None:
        with pytest.raises(SecurityViolationError):
            SAFE_GLOBALS["math"].pi = 3
        with pytest.raises(SecurityViolationError):
            del SAFE_GLOBALS["json"].loads

    def test_namespace_missing_attribute(self) -> None:
        with pytest.raises(AttributeError, match="has no attribute"):
            SAFE_GLOBALS["json"].load

    def test_math_and_json_available(self) -> None:
        assert _eval("math.sqrt(16)") == 4.0
        assert _eval("json.loads('{\"a\": 1}')") == {"a": 1}
        assert _eval("json.dumps([1, 2])") == "[1, 2]"

    def test_datetime_types(self) -> None:
        assert _eval("date(2024, 1, 2).isoformat()") == "2024-01-02"
        assert _eval("(datetime(2024, 1, 1) + timedelta(days=1)).day") == 2

    def test_utils_namespace(self) -> None:
        assert _eval("utils.is_empty([])") is True
        assert _eval("utils.is_list((1,))") is True
        assert _eval("utils.is_object({})") is True
        assert _eval("utils.deep_clone({'a': [1]})") == {"a": [1]}

    def test_builtins_usable(self) -> None:
        assert _eval("sorted([3, 1, 2])") == [1, 2, 3]
        assert _eval("sum(x * 2 for x in range(4))") == 12
        assert _eval("', '.join(str(i) for i in [1, 2])") == "1, 2"
        assert _eval("{'a': 1}['a']") == 1

    def test_open_not_reachable(self) -> None:
        with pytest.raises(NameError):
            _eval("open('/etc/passwd')")

    def test_setattr_guarded(self) -> None:
        with pytest.raises(TypeError):
            _eval("setattr(math, 'pi', 3)")
        assert SAFE_GLOBALS["math"].pi == math.pi

    def test_range_limit(self) -> None:
        assert len(_eval("range(10)")) == 10
        with pytest.raises(ValueError, match="exceeds the limit"):
            _eval(f"range({RANGE_LIMIT + 1})")


class TestRequire:
    def test_allowlisted(self) -> None:
        assert require("math").sqrt(9) == 3.0
        assert _eval("require('statistics').mean([1, 2, 3])") == 2

    @pytest.mark.parametrize("name", ["os", "sys", "subprocess", "socket", "builtins"])
    def test_blocked(self, name: str) -> None:
        with pytest.raises(ModuleNotAllowedError, match="not in the allowlist"):
            require(name)


class TestBuildRestrictedGlobals:
    def test_includes_builtins_and_guards(self) -> None:
        g = build_restricted_globals({})
        assert "__builtins__" in g
        for name in ("_getattr_", "_getiter_", "_getitem_", "_write_", "_inplacevar_"):
            assert name in g
        assert "math" in g
        assert "require" in g

    def test_merges_context(self) -> None:
        g = build_restricted_globals({"name": "World", "items": [1, 2]})
        assert g["name"] == "World"
        assert g["items"] == [1, 2]

    def test_reserved_and_private_keys_ignored(self) -> None:
        g = build_restricted_globals(
            {"__builtins__": {"open": open}, "_getattr_": getattr, "require": "x", "_hidden": 1}
        )
        assert "open" not in g["__builtins__"]
        assert g["_getattr_"] is not getattr
        assert g["require"] is require
        assert "_hidden" not in g

    def test_fresh_builtins_per_call(self) -> None:
        g1 = build_restricted_globals()
        g1["__builtins__"]["len"] = None
        g2 = build_restricted_globals()
        assert g2["__builtins__"]["len"] is len

    def test_vars_may_shadow_registry_names(self) -> None:
        g = build_restricted_globals({"date": "2024-01-01"})
        assert g["date"] == "2024-01-01"

"""Unit tests for engines.helpers.builtin and collect_helpers."""

import logging
from datetime import date, datetime, timedelta

import pytest

from promptbox.core.cache import LRUCache
from promptbox.engines.helpers import BUILTIN_HELPERS, HelperModuleLoader, collect_helpers
from promptbox.engines.helpers import builtin as b


class TestDateHelpers:
    def test_day_of_week(self) -> None:
        assert b.day_of_week("2024-01-01") == "星期一"
        assert b.day_of_week(date(2024, 1, 7)) == "星期日"
        assert b.day_of_week("not a date") == ""

    def test_format_date_tokens(self) -> None:
        assert b.format_date("2024-03-05T14:07:09") == "2024-03-05"
        assert b.format_date("2024-03-05T14:07:09", "DD/MM/YYYY HH:mm:ss") == "05/03/2024 14:07:09"
        assert b.format_date("2024-03-05", "M/D") == "3/5"

    def test_format_date_named(self) -> None:
        assert b.format_date("2024-03-05T14:07:00", "long") == "2024年3月5日 14:07"
        assert b.format_date("2024-03-05", "short") == "2024/3/5"

    def test_format_date_invalid(self) -> None:
        assert b.format_date("garbage") == ""
        assert b.format_date(None) == ""

    def test_calculate_age(self) -> None:
        today = date(2024, 6, 15)
        assert b.calculate_age("2000-06-15", today=today) == 24
        assert b.calculate_age("2000-06-16", today=today) == 23
        assert b.calculate_age("nope") is None

    def test_is_future_date(self) -> None:
        assert b.is_future_date(datetime.now() + timedelta(days=2))
        assert not b.is_future_date("2000-01-01")
        assert not b.is_future_date("")

    def test_validation(self) -> None:
        assert b.is_valid_date("2024-02-29")
        assert not b.is_valid_date("2023-02-29")
        assert b.is_valid_time("9:30")
        assert b.is_valid_time("23:59")
        assert not b.is_valid_time("24:00")
        assert not b.is_valid_time(None)


class TestStringHelpers:
    def test_capitalize(self) -> None:
        assert b.capitalize("hello big world") == "Hello Big World"
        assert b.capitalize("") == ""
        assert b.capitalize(None) == ""

    def test_format_number(self) -> None:
        assert b.format_number(1234567) == "1,234,567"
        assert b.format_number("1234.5678") == "1,234.5678"
        assert b.format_number(-1000) == "-1,000"
        assert b.format_number("abc") == ""
        assert b.format_number(None) == ""

    def test_truncate(self) -> None:
        assert b.truncate("short") == "short"
        assert b.truncate("a" * 60) == "a" * 50 + "..."
        assert b.truncate("abcdef", 3) == "abc..."
        assert b.truncate(None) == ""


class TestColorHelpers:
    def test_complementary(self) -> None:
        assert b.get_complementary("#000000") == "#ffffff"
        assert b.get_complementary("#fff") == "#000000"
        assert b.get_complementary("red") == "#000000"

    def test_lighten(self) -> None:
        assert b.lighten_color("#000000", 50) == "#808080"
        assert b.lighten_color("#ffffff") == "#ffffff"
        assert b.lighten_color("oops") == "#FFFFFF"

    def test_is_light(self) -> None:
        assert b.is_light_color("#ffffff")
        assert not b.is_light_color("#000")
        assert b.is_light_color(None)


class TestElementHelpers:
    def test_zodiac(self) -> None:
        assert b.zodiac_to_element("Leo") == "fire"
        assert b.zodiac_to_element(" pisces ") == "water"
        assert b.zodiac_to_element("unknown") is None
        assert b.zodiac_to_element("") is None

    def test_element_color(self) -> None:
        assert b.get_element_color("Fire") == "#FF4500"
        assert b.get_element_color("void") == "#CCCCCC"
        assert b.get_element_color(None) == "#CCCCCC"

    def test_opposite(self) -> None:
        assert b.get_opposite_element("metal") == "fire"
        assert b.get_opposite_element("air") == "earth"
        assert b.get_opposite_element("void") is None


class TestBuiltinTable:
    def test_table_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            BUILTIN_HELPERS["x"] = len  # type: ignore[index]

    def test_all_callable(self) -> None:
        assert len(BUILTIN_HELPERS) == 15
        assert all(callable(fn) for fn in BUILTIN_HELPERS.values())


class TestCollectHelpers:
    def test_builtins_included_by_default(self) -> None:
        helpers = collect_helpers()
        assert set(BUILTIN_HELPERS) <= set(helpers)
        assert collect_helpers(include_builtins=False) == {}

    def test_merge_order(self, caplog: pytest.LogCaptureFixture) -> None:
        loader = HelperModuleLoader(LRUCache(4))
        with caplog.at_level(logging.WARNING):
            helpers = collect_helpers(
                definitions={
                    "inc": "lambda x: x + 1",
                    "truncate": "lambda s: s[:2]",
                    "bad": "lambda: os.environ",
                },
                modules=["def dec(x):\n    return x - 1\n", "import os"],
                extra={"inc": lambda x: x + 100, "skip": "not callable"},
                loader=loader,
            )
        assert helpers["inc"](1) == 101
        assert helpers["truncate"]("hello") == "he"
        assert helpers["dec"](1) == 0
        assert "bad" not in helpers
        assert "skip" not in helpers
        assert "Skipping helper 'bad'" in caplog.text

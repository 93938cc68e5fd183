"""Unit tests for engines.template.parser."""

import pytest

from promptbox.core.errors import UnclosedExpressionError
from promptbox.engines.template.parser import (
    find_expression_end,
    find_expressions,
    iter_blocks,
    parse_variables,
    substitute_variables,
)


class TestSubstituteVariables:
    def test_simple(self) -> None:
        assert substitute_variables("Hello, {name}!", {"name": "World"}) == "Hello, World!"

    def test_scalars_stringified(self) -> None:
        assert substitute_variables("{n}/{f}/{b}", {"n": 3, "f": 1.5, "b": True}) == "3/1.5/True"

    def test_none_renders_empty(self) -> None:
        assert substitute_variables("[{x}]", {"x": None}) == "[]"

    def test_missing_left_literal(self) -> None:
        assert substitute_variables("Hi {who}", {}) == "Hi {who}"

    def test_missing_marked_in_debug(self) -> None:
        assert substitute_variables("Hi {who}", {}, debug=True) == "Hi {who?}"

    def test_not_adjacent_to_braces(self) -> None:
        assert substitute_variables("{{name}}", {"name": "X"}) == "{{name}}"
        assert substitute_variables("{{ {name} }}", {"name": "X"}) == "{{ X }}"

    def test_values_not_rescanned(self) -> None:
        assert substitute_variables("{a}", {"a": "{b}", "b": "no"}) == "{b}"

    def test_non_identifiers_ignored(self) -> None:
        assert substitute_variables("{1} { a } {a-b}", {"a": 1}) == "{1} { a } {a-b}"


class TestParseVariables:
    def test_order_and_uniqueness(self) -> None:
        assert parse_variables("{b} {a} {b} {{ c }}") == ["b", "a"]


class TestFindExpressionEnd:
    def test_simple(self) -> None:
        text = "{{ 1 + 1 }} tail"
        assert find_expression_end(text, 2) == 9

    def test_braces_in_strings(self) -> None:
        text = "{{ '}}' + \"{{\" }}"
        end = find_expression_end(text, 2)
        assert end == len(text) - 2

    def test_dict_literal(self) -> None:
        text = "{{ {'a': {'b': 1}}['a'] }}"
        assert find_expression_end(text, 2) == len(text) - 2

    def test_dict_closing_next_to_block_end(self) -> None:
        text = "{{ {'a': 1}}}"
        assert find_expression_end(text, 2) == len(text) - 2

    def test_nested_block(self) -> None:
        text = "{{ {{ inner }} + 1 }}"
        assert find_expression_end(text, 2) == len(text) - 2

    def test_escaped_quote(self) -> None:
        text = "{{ 'it\\'s }}' }}"
        assert find_expression_end(text, 2) == len(text) - 2

    def test_triple_quoted(self) -> None:
        text = "{{ '''a ' }} b''' }}"
        assert find_expression_end(text, 2) == len(text) - 2

    def test_unclosed(self) -> None:
        assert find_expression_end("{{ 1 + 1", 2) is None
        assert find_expression_end("{{ 'open }}", 2) is None


class TestIterBlocks:
    def test_spans(self) -> None:
        text = "a {{ 1 }} b {{ 2 }}"
        assert [text[s:e] for s, e in iter_blocks(text)] == ["{{ 1 }}", "{{ 2 }}"]

    def test_unclosed_raises_with_position(self) -> None:
        with pytest.raises(UnclosedExpressionError) as exc:
            list(iter_blocks("ok {{ 1 }} then {{ broken"))
        assert exc.value.position == 16


class TestFindExpressions:
    def test_top_level_only(self) -> None:
        assert find_expressions("{{ a }} and {{ {{ b }} + 1 }}") == ["a", "{{ b }} + 1"]

    def test_stops_at_unclosed(self) -> None:
        assert find_expressions("{{ a }} {{ b") == ["a"]

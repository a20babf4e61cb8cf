"""Tests for the filter expression compiler."""

import pytest

from doclite.errors import FilterSyntaxError
from doclite.filters import (
    BIGINT,
    DOUBLE,
    INTEGER,
    TEXT,
    Literal,
    compile_filter,
    infer_literal,
    like_pattern,
    tokenize,
)


class TestCompile:
    """Compiling filters into WHERE fragments and bind lists."""

    def test_and_with_pattern_match(self):
        """The canonical example: comparison, connector, implicit contains."""
        compiled = compile_filter("age>=18&&name=~Jo")

        assert compiled.where == (
            "json_extract(value, ?) >= ? AND json_extract(value, ?) LIKE ?"
        )
        assert compiled.paths == ["age", "name"]
        assert compiled.values == ["18", "%Jo%"]
        assert compiled.parameters() == ["$.age", 18, "$.name", "%Jo%"]

    def test_clause_path_value_counts_match(self):
        compiled = compile_filter("a=1||b=2&&c=3")
        assert len(compiled.clauses) == len(compiled.paths) == len(compiled.values) == 3
        assert [c.connector for c in compiled.clauses] == ["OR", "AND", None]

    def test_all_operators(self):
        for op in ("=", "!=", "<", "<=", ">", ">="):
            compiled = compile_filter(f"n{op}5")
            assert compiled.clauses[0].operator == op
            assert compiled.where == f"json_extract(value, ?) {op} ?"

    def test_whitespace_is_insignificant(self):
        spaced = compile_filter("  age >= 18 &&\tname =~ Jo ")
        compact = compile_filter("age>=18&&name=~Jo")
        assert spaced.where == compact.where
        assert spaced.parameters() == compact.parameters()

    def test_group_markers_carried_verbatim(self):
        """Parentheses become SQL parentheses around the same clauses."""
        compiled = compile_filter("(role=admin||role=owner)&&active=1")
        assert compiled.where == (
            "(json_extract(value, ?) = ? OR "
            "json_extract(value, ?) = ?) AND "
            "json_extract(value, ?) = ?"
        )
        assert compiled.parameters() == [
            "$.role", "admin", "$.role", "owner", "$.active", 1,
        ]

    def test_close_then_or(self):
        compiled = compile_filter("(a=1&&b=2)||c=3")
        assert compiled.clauses[1].closes == 1
        assert compiled.clauses[1].connector == "OR"
        assert ") OR" in compiled.where

    def test_group_at_end(self):
        compiled = compile_filter("a=1&&(b=2||c=3)")
        assert compiled.where.endswith("= ?)")

    def test_nested_paths(self):
        compiled = compile_filter("address.city=Paris&&tags[0]=red")
        assert compiled.parameters()[0] == "$.address.city"
        assert compiled.parameters()[2] == "$.tags[0]"

    def test_quoted_values(self):
        compiled = compile_filter('name="John Smith"&&code=\'42\'')
        assert compiled.values == ["John Smith", "42"]
        # Quoted literals are never numbers
        assert compiled.parameters()[3] == "42"

    def test_quoted_escapes(self):
        compiled = compile_filter(r'quote="say \"hi\""')
        assert compiled.values == ['say "hi"']

    def test_like_keeps_explicit_wildcards(self):
        assert compile_filter("name=~Jo%").values == ["Jo%"]
        assert compile_filter("name=~J_n").values == ["J_n"]

    def test_like_binds_text_even_for_digits(self):
        assert compile_filter("zip=~75").parameters() == ["$.zip", "%75%"]

    def test_negative_number(self):
        assert compile_filter("delta<-5").parameters() == ["$.delta", -5]

    def test_explicit_plus_sign(self):
        assert compile_filter("age>+5").parameters() == ["$.age", 5]
        assert compile_filter("ratio<=+0.5").parameters() == ["$.ratio", 0.5]


class TestSyntaxErrors:
    """Malformed filters fail instead of being dropped."""

    @pytest.mark.parametrize("source", [
        "",
        "   ",
        "age>=",
        "age 18",
        ">=18",
        "age>=18&&",
        "age>=18 name=Jo",
        "age>=18&&&&name=Jo",
        "a..b=1",
        "age==18",
    ])
    def test_malformed(self, source):
        with pytest.raises(FilterSyntaxError):
            compile_filter(source)

    def test_unexpected_character_position(self):
        with pytest.raises(FilterSyntaxError) as exc_info:
            compile_filter("age>=18 $ x")
        assert exc_info.value.position == 8

    def test_unclosed_group(self):
        with pytest.raises(FilterSyntaxError, match="Unclosed"):
            compile_filter("(age>=18&&name=Jo")

    def test_unbalanced_close(self):
        with pytest.raises(FilterSyntaxError, match="Unbalanced"):
            compile_filter("age>=18)&&name=Jo")

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            compile_filter("nope")


class TestLiteralInference:
    """Bind-time storage type of unquoted literals."""

    def test_decimal_is_double(self):
        assert infer_literal("3.14") == Literal(DOUBLE, 3.14)

    def test_whole_number_is_integer(self):
        literal = infer_literal("42")
        assert literal == Literal(INTEGER, 42)
        assert isinstance(literal.value, int)

    def test_word_is_text(self):
        assert infer_literal("hello") == Literal(TEXT, "hello")

    def test_wide_integer(self):
        assert infer_literal("3000000000") == Literal(BIGINT, 3000000000)
        assert infer_literal("-2147483648").kind == INTEGER
        assert infer_literal("-2147483649").kind == BIGINT

    def test_integer_beyond_64_bits(self):
        with pytest.raises(FilterSyntaxError):
            infer_literal("99999999999999999999")

    def test_not_quite_numbers(self):
        assert infer_literal("2024-01-01").kind == TEXT
        assert infer_literal("1.2.3").kind == TEXT
        assert infer_literal("12abc").kind == TEXT


class TestHelpers:

    def test_like_pattern(self):
        assert like_pattern("Jo") == "%Jo%"
        assert like_pattern("%Jo") == "%Jo"

    def test_tokenize_kinds(self):
        kinds = [t.kind for t in tokenize("(a>=1)||b=~'x y'")]
        assert kinds == [
            "open", "word", "op", "word", "close", "connector", "word", "op", "quoted",
        ]

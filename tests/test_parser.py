"""
Тесты для парсера шаблонов.
"""

import pytest

from stencil import nodes as n
from stencil.errors import ParseError
from stencil.parser import parse_template


def _expr(source):
    """AST выражения из {{ source }}."""
    root = parse_template("{{ " + source + " }}")
    assert len(root.children) == 1
    return root.children[0].expr


class TestExpressionParser:
    """Тесты приоритетов и форм выражений."""

    def test_text_and_output(self):
        """Текст и вывод выражения."""
        root = parse_template("Hello {{ name }}")
        assert root == n.Root((n.TextNode("Hello "), n.Output(n.Symbol("name"))))

    def test_positions_recorded(self):
        """Узлы хранят строку и колонку."""
        root = parse_template("ab\n  {{ name }}")
        output = root.children[1]
        assert (output.line, output.column) == (2, 3)
        assert (output.expr.line, output.expr.column) == (2, 6)

    def test_arithmetic_precedence(self):
        """Умножение связывает сильнее сложения."""
        assert _expr("1 + 2 * 3") == n.BinOp(
            "+", n.Literal(1), n.BinOp("*", n.Literal(2), n.Literal(3))
        )

    def test_power_is_right_associative(self):
        """Возведение в степень правоассоциативно."""
        assert _expr("2 ** 3 ** 2") == n.BinOp(
            "**", n.Literal(2), n.BinOp("**", n.Literal(3), n.Literal(2))
        )

    def test_additive_is_left_associative(self):
        """Вычитание левоассоциативно."""
        assert _expr("1 - 2 - 3") == n.BinOp(
            "-", n.BinOp("-", n.Literal(1), n.Literal(2)), n.Literal(3)
        )

    def test_group_is_preserved(self):
        """Скобки сохраняются как Group."""
        assert _expr("(a or b) and c") == n.And(
            n.Group(n.Or(n.Symbol("a"), n.Symbol("b"))), n.Symbol("c")
        )

    def test_or_binds_looser_than_and(self):
        """or связывает слабее and."""
        assert _expr("a or b and c") == n.Or(
            n.Symbol("a"), n.And(n.Symbol("b"), n.Symbol("c"))
        )

    def test_not(self):
        """Унарный not."""
        assert _expr("not a") == n.Not(n.Symbol("a"))

    def test_chained_comparison(self):
        """Цепочка сравнений: один узел Compare."""
        assert _expr("1 < x <= 3") == n.Compare(
            n.Literal(1), ("<", "<="), (n.Symbol("x"), n.Literal(3))
        )

    def test_in_and_not_in(self):
        """Операторы in и not in."""
        assert _expr("x in items") == n.Compare(n.Symbol("x"), ("in",), (n.Symbol("items"),))
        assert _expr("x not in items") == n.Compare(n.Symbol("x"), ("not in",), (n.Symbol("items"),))

    def test_is_tests(self):
        """Проверки is со скобками и без."""
        assert _expr("x is defined") == n.IsTest("defined", n.Symbol("x"))
        assert _expr("x is not none") == n.IsTest("none", n.Symbol("x"), (), True)
        assert _expr("x is divisibleby 3") == n.IsTest("divisibleby", n.Symbol("x"), (n.Literal(3),))
        assert _expr("x is divisibleby(3)") == n.IsTest("divisibleby", n.Symbol("x"), (n.Literal(3),))

    def test_is_test_with_bare_constant_argument(self):
        """Аргумент проверки без скобок может быть true/false/none."""
        assert _expr("x is sameas false") == n.IsTest("sameas", n.Symbol("x"), (n.Literal(False),))
        assert _expr("x is not sameas none") == n.IsTest("sameas", n.Symbol("x"), (n.Literal(None),), True)

    def test_filter_binds_below_postfix(self):
        """Фильтр применяется к результату доступа по индексу."""
        assert _expr("items[0] | upper") == n.FilterCall(
            "upper", n.LookupAttr(n.Symbol("items"), n.Literal(0))
        )

    def test_unary_minus_applies_to_filtered_value(self):
        """Унарный минус применяется к отфильтрованному значению."""
        assert _expr("-x | abs") == n.UnaryOp("-", n.FilterCall("abs", n.Symbol("x")))

    def test_filter_chain_with_arguments(self):
        """Цепочка фильтров с аргументами."""
        assert _expr('x | replace("a", "b") | upper') == n.FilterCall(
            "upper",
            n.FilterCall("replace", n.Symbol("x"), (n.Literal("a"), n.Literal("b"))),
        )

    def test_dot_and_subscript_lookup(self):
        """Доступ через точку, индекс и .0."""
        assert _expr("foo.bar") == n.LookupAttr(n.Symbol("foo"), n.Literal("bar"))
        assert _expr('foo["bar"]') == n.LookupAttr(n.Symbol("foo"), n.Literal("bar"))
        assert _expr("foo.0") == n.LookupAttr(n.Symbol("foo"), n.Literal(0))

    def test_slices(self):
        """Срезы."""
        assert _expr("x[1:3]") == n.LookupAttr(
            n.Symbol("x"), n.Slice(n.Literal(1), n.Literal(3), None)
        )
        assert _expr("x[::2]") == n.LookupAttr(n.Symbol("x"), n.Slice(None, None, n.Literal(2)))

    def test_call_with_keyword_arguments(self):
        """Вызов с именованными аргументами."""
        assert _expr('f(1, name="x")') == n.FunCall(
            n.Symbol("f"), (n.Literal(1),), (("name", n.Literal("x")),)
        )

    def test_collections(self):
        """Литералы списков и словарей."""
        assert _expr("[1, 'a']") == n.ArrayLiteral((n.Literal(1), n.Literal("a")))
        assert _expr("{ one: 1, 'two': 2 }") == n.DictLiteral(
            ((n.Literal("one"), n.Literal(1)), (n.Literal("two"), n.Literal(2)))
        )

    def test_inline_if(self):
        """Условное выражение."""
        assert _expr("a if cond else b") == n.InlineIf(n.Symbol("cond"), n.Symbol("a"), n.Symbol("b"))
        assert _expr("a if cond") == n.InlineIf(n.Symbol("cond"), n.Symbol("a"))

    def test_tilde_concatenation(self):
        """Оператор ~."""
        assert _expr('"a" ~ b') == n.BinOp("~", n.Literal("a"), n.Symbol("b"))

    def test_super(self):
        """Вызов super()."""
        assert _expr("super()") == n.Super()


class TestStatementParser:
    """Тесты тегов."""

    def test_if_elif_else(self):
        """elif разворачивается во вложенный If."""
        root = parse_template("{% if a %}A{% elif b %}B{% else %}C{% endif %}")
        assert root.children == (
            n.If(
                n.Symbol("a"),
                (n.TextNode("A"),),
                (n.If(n.Symbol("b"), (n.TextNode("B"),), (n.TextNode("C"),)),),
            ),
        )

    def test_for_with_two_targets_and_else(self):
        """for с двумя целями и else."""
        root = parse_template("{% for k, v in d %}x{% else %}empty{% endfor %}")
        assert root.children == (
            n.For(("k", "v"), n.Symbol("d"), (n.TextNode("x"),), (n.TextNode("empty"),)),
        )

    def test_set_forms(self):
        """Обычный и блочный set."""
        root = parse_template('{% set x, y = "foo" %}{% set z %}body{% endset %}')
        assert root.children == (
            n.Set(("x", "y"), n.Literal("foo")),
            n.Set(("z",), None, (n.TextNode("body"),)),
        )

    def test_block_with_named_end(self):
        """endblock с именем блока."""
        root = parse_template("{% block title %}T{% endblock title %}")
        assert root.children == (n.Block("title", (n.TextNode("T"),)),)

    def test_inheritance_and_composition_tags(self):
        """extends, include, import и from."""
        root = parse_template(
            '{% extends "base.html" %}'
            '{% include tmpl ignore missing %}'
            '{% import "m.html" as m %}'
            '{% from "m.html" import foo as bar, baz %}'
        )
        assert root.children == (
            n.Extends(n.Literal("base.html")),
            n.Include(n.Symbol("tmpl"), True),
            n.Import(n.Literal("m.html"), "m"),
            n.FromImport(n.Literal("m.html"), (("foo", "bar"), ("baz", None))),
        )

    def test_macro_with_defaults(self):
        """Макрос со значениями по умолчанию."""
        root = parse_template('{% macro foo(bar, baz="x") %}{{ bar }}{% endmacro %}')
        assert root.children == (
            n.Macro(
                "foo",
                ("bar", "baz"),
                (("baz", n.Literal("x")),),
                (n.Output(n.Symbol("bar")),),
            ),
        )

    def test_filter_block(self):
        """Тег filter с аргументами."""
        root = parse_template("{% filter truncate(5) %}text{% endfilter %}")
        assert root.children == (n.FilterBlock("truncate", (n.Literal(5),), (n.TextNode("text"),)),)

    def test_whitespace_control_in_tags(self):
        """Маркеры '-' в тегах."""
        root = parse_template("a\n  {%- if x -%}\n  b\n{%- endif %}")
        assert root.children == (
            n.TextNode("a"),
            n.If(n.Symbol("x"), (n.TextNode("b"),)),
        )


class TestParserErrors:
    """Синтаксические ошибки."""

    def test_unknown_tag(self):
        """Неизвестный тег."""
        with pytest.raises(ParseError, match="Unknown tag 'foo'"):
            parse_template("{% foo %}")

    def test_unmatched_end_tag(self):
        """Закрывающий тег без открывающего."""
        with pytest.raises(ParseError, match="Unexpected 'endif' tag"):
            parse_template("text{% endif %}")

    def test_mismatched_end_tag(self):
        """Закрывающий тег не того типа."""
        with pytest.raises(ParseError, match="Unexpected 'endfor' tag"):
            parse_template("{% if x %}{% endfor %}")

    def test_missing_end_tag(self):
        """Незакрытый тег до конца шаблона."""
        with pytest.raises(ParseError, match="expected 'elif' or 'else' or 'endif'"):
            parse_template("{% if x %}never closed")

    def test_duplicate_block(self):
        """Блок определён дважды."""
        with pytest.raises(ParseError, match="defined twice"):
            parse_template("{% block a %}{% endblock %}{% block a %}{% endblock %}")

    def test_positional_after_keyword(self):
        """Позиционный аргумент после именованного."""
        with pytest.raises(ParseError, match="Positional argument follows keyword argument"):
            parse_template("{{ f(a=1, 2) }}")

    def test_missing_in(self):
        """for без in."""
        with pytest.raises(ParseError, match="Expected 'in'"):
            parse_template("{% for x of y %}{% endfor %}")

    def test_error_position(self):
        """Ошибка содержит позицию."""
        with pytest.raises(ParseError) as exc_info:
            parse_template("line\n{{ 1 + }}")
        assert exc_info.value.line == 2
        assert exc_info.value.column == 8

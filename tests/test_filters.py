"""
Тесты встроенных фильтров и проверок (через рендеринг).
"""

import pytest

from stencil.errors import RenderError


class TestTextFilters:
    """Текстовые фильтры."""

    def test_case_filters(self, render):
        """Изменение регистра."""
        assert render('{{ "hello world" | capitalize }}') == "Hello world"
        assert render('{{ "hello WORLD" | title }}') == "Hello World"
        assert render('{{ "MiXeD" | lower }}{{ "up" | upper }}') == "mixedUP"

    def test_trim_and_replace(self, render):
        """trim и replace."""
        assert render('[{{ "  x  " | trim }}]') == "[x]"
        assert render('{{ "aaa" | replace("a", "b") }}') == "bbb"
        assert render('{{ "aaa" | replace("a", "b", 2) }}') == "bba"

    def test_truncate(self, render):
        """Обрезка по границе слова и посимвольно."""
        assert render('{{ "hello world foo" | truncate(9) }}') == "hello..."
        assert render('{{ "abcdefghij" | truncate(5, true) }}') == "ab..."
        assert render('{{ "short" | truncate(10) }}') == "short"

    def test_string_and_concat(self, render):
        """string и конкатенация."""
        assert render('{{ 5 | string ~ "!" }}') == "5!"


class TestSequenceFilters:
    """Фильтры последовательностей."""

    def test_sort_and_join(self, render):
        """Сортировка и склейка."""
        assert render('{{ [3, 1, 2] | sort | join(",") }}') == "1,2,3"
        assert render('{{ ["b", "A", "c"] | sort | join }}') == "Abc"
        assert render('{{ [1, 2, 3] | sort(reverse=true) | join("-") }}') == "3-2-1"

    def test_sort_and_join_by_attribute(self, render):
        """Сортировка и склейка по атрибуту."""
        users = [{"n": "b"}, {"n": "a"}]
        assert render('{{ users | sort(attribute="n") | join(",", attribute="n") }}', {"users": users}) == "a,b"

    def test_batch(self, render):
        """Разбиение на группы с заполнением."""
        source = '{% for row in [1, 2, 3, 4, 5] | batch(2, 0) %}[{{ row | join(",") }}]{% endfor %}'
        assert render(source) == "[1,2][3,4][5,0]"

    def test_first_last_length(self, render):
        """first, last и length."""
        assert render("{{ [1, 2, 3] | first }}{{ [1, 2, 3] | last }}") == "13"
        assert render("[{{ [] | first }}]") == "[]"
        assert render('{{ [1, 2] | length }}{{ "abc" | count }}') == "23"

    def test_list_and_reverse(self, render):
        """list и reverse."""
        assert render('{{ "abc" | list | join("-") }}') == "a-b-c"
        assert render('{{ "abc" | reverse }}') == "cba"
        assert render("{{ [1, 2, 3] | reverse | join }}") == "321"

    def test_sum(self, render):
        """Сумма элементов и атрибутов."""
        assert render("{{ [1, 2, 3] | sum }}") == "6"
        assert render('{{ items | sum(attribute="p") }}', {"items": [{"p": 2}, {"p": 5}]}) == "7"


class TestValueFilters:
    """Фильтры значений."""

    def test_default(self, render):
        """default для неопределённых и ложных значений."""
        assert render('{{ missing | default("d") }}') == "d"
        assert render('{{ missing | d("x") }}') == "x"
        assert render('[{{ "" | default("d") }}]') == "[]"
        assert render('{{ "" | default("d", true) }}') == "d"

    def test_numeric_conversion(self, render):
        """Преобразование в числа."""
        assert render('{{ "3" | int + 1 }}') == "4"
        assert render('{{ "4.7" | int }}') == "4"
        assert render('{{ "x" | int }}') == "0"
        assert render('{{ "2.5" | float }}') == "2.5"
        assert render("{{ x | abs }}", {"x": -3}) == "3"

    def test_round(self, render):
        """Округление разными методами."""
        assert render("{{ 2.5 | round }}") == "3"
        assert render("{{ 1.25 | round(1) }}") == "1.3"
        assert render('{{ 1.2 | round(0, "ceil") }}') == "2"
        assert render('{{ 1.8 | round(0, "floor") }}') == "1"

    def test_round_rejects_unknown_method(self, render):
        """Неизвестный метод округления: ошибка."""
        with pytest.raises(RenderError, match="method must be"):
            render('{{ 1 | round(0, "up") }}')

    def test_escape_without_autoescape(self, render):
        """escape работает и без автоэкранирования."""
        assert render('{{ "<a>" | escape }}{{ "&" | e }}') == "&lt;a&gt;&amp;"


class TestFilterExtension:
    """Блок filter и пользовательские фильтры."""

    def test_filter_block(self, render):
        """Фильтр применяется к телу блока."""
        assert render("{% filter upper %}hi {{ name }}{% endfilter %}", {"name": "bob"}) == "HI BOB"

    def test_custom_filter_with_keyword_arguments(self, env):
        """Пользовательский фильтр получает именованные аргументы."""
        env.add_filter("wrap", lambda v, left="[", right="]": left + v + right)
        assert env.from_string('{{ "x" | wrap(right=">") }}').render() == "[x>"

    def test_filters_are_resolved_at_render_time(self, env):
        """Фильтр ищется при рендеринге, а не при компиляции."""
        template = env.from_string("{{ 'a' | shout }}")
        env.add_filter("shout", lambda v: v.upper() + "!")
        assert template.render() == "A!"


class TestPredicates:
    """Проверки is."""

    def test_number_tests(self, render):
        """Проверки чисел."""
        assert render("{{ 3 is odd }}{{ 3 is even }}") == "truefalse"
        assert render("{{ 1 is number }}{{ true is number }}") == "truefalse"
        assert render("{{ 9 is divisibleby(3) }}{{ 9 is divisibleby 2 }}") == "truefalse"

    def test_type_tests(self, render):
        """Проверки типов."""
        assert render('{{ none is none }}{{ "a" is string }}') == "truetrue"
        assert render('{{ {"a": 1} is mapping }}{{ [1] is sequence }}') == "truetrue"
        assert render("{{ f is callable }}{{ 1 is callable }}", {"f": len}) == "truefalse"
        assert render("{{ [1] is iterable }}{{ missing is iterable }}") == "truefalse"

    def test_macro_is_callable(self, render):
        """Макрос проходит проверку callable."""
        assert render("{% macro m() %}{% endmacro %}{{ m is callable }}") == "true"

    def test_comparison_tests(self, render):
        """Проверки сравнения и регистра."""
        assert render("{{ 2 is equalto 2 }}{{ 2 is eq(3) }}") == "truefalse"
        assert render("{{ x is sameas x }}", {"x": object()}) == "true"
        assert render("{{ x is sameas false }}{{ y is sameas none }}", {"x": False, "y": 0}) == "truefalse"
        assert render('{{ "A" is upper }}{{ "a" is lower }}{{ "a" is upper }}') == "truetruefalse"

    def test_negated_test(self, render):
        """is not инвертирует результат."""
        assert render("{{ missing is not defined }}{{ 1 is not odd }}") == "truefalse"

    def test_custom_test(self, env):
        """Пользовательская проверка."""
        env.add_test("positive", lambda v: v > 0)
        assert env.from_string("{{ 1 is positive }}{{ -1 is positive }}").render() == "truefalse"

    def test_unknown_test(self, render):
        """Неизвестная проверка: ошибка."""
        with pytest.raises(RenderError, match="No test named 'bogus'"):
            render("{{ 1 is bogus }}")

"""
Тесты для модели значений времени выполнения.
"""

import pytest

from stencil.errors import RenderError
from stencil.runtime import (
    Frame,
    LoopInfo,
    TemplateModule,
    Undefined,
    get_member,
    is_truthy,
    run_sync,
    to_text,
)


class TestUndefined:
    """Значение неразрешённого имени."""

    def test_is_falsy_and_empty(self):
        """Undefined ложно и пусто."""
        value = Undefined("x")
        assert not value
        assert len(value) == 0
        assert str(value) == ""
        assert value.__html__() == ""

    def test_propagates_through_access(self):
        """Доступ к атрибутам и индексам даёт Undefined."""
        value = Undefined("x")
        assert isinstance(value.attr, Undefined)
        assert isinstance(value["key"], Undefined)
        assert value.attr.name == "x.attr"

    def test_call_and_iteration_fail(self):
        """Вызов и перебор: ошибки."""
        value = Undefined("x")
        with pytest.raises(RenderError, match="cannot be called"):
            value()
        with pytest.raises(RenderError, match="cannot be iterated"):
            list(value)

    def test_equality(self):
        """Undefined равно только Undefined."""
        assert Undefined("a") == Undefined("b")
        assert Undefined("a") != None  # noqa: E711
        assert Undefined("a") != ""


class TestFrame:
    """Цепочка фреймов."""

    def test_lookup_walks_parents(self):
        """Поиск идёт по родителям."""
        root = Frame(variables={"a": 1})
        child = root.push({"b": 2})
        assert child.lookup("a") == 1
        assert child.lookup("b") == 2
        assert "a" in child
        assert "b" not in root

    def test_child_shadows_parent(self):
        """Дочерний фрейм перекрывает родителя."""
        root = Frame(variables={"i": 1})
        child = root.push()
        child.set("i", 3)
        assert child.lookup("i") == 3
        assert root.lookup("i") == 1

    def test_missing_returns_default(self):
        """Промах возвращает значение по умолчанию."""
        assert Frame().lookup("nope", None) is None

    def test_find_block(self):
        """Поиск ближайшего блока по цепочке."""
        root = Frame()
        block_frame = root.push()
        block_frame.block = ("title", 1)
        inner = block_frame.push().push()
        assert inner.find_block() == ("title", 1)
        assert root.find_block() is None

    def test_variables_are_own_only(self):
        """variables() возвращает только свои переменные."""
        root = Frame(variables={"a": 1})
        child = root.push({"b": 2})
        assert child.variables() == {"b": 2}


class TestLoopInfo:
    """Метаданные цикла."""

    def test_positions(self):
        """Индексы, first/last и длина."""
        infos = [LoopInfo.at(i, 3) for i in range(3)]
        assert [i.index for i in infos] == [1, 2, 3]
        assert [i.index0 for i in infos] == [0, 1, 2]
        assert [i.revindex for i in infos] == [3, 2, 1]
        assert [i.revindex0 for i in infos] == [2, 1, 0]
        assert [i.first for i in infos] == [True, False, False]
        assert [i.last for i in infos] == [False, False, True]
        assert {i.length for i in infos} == {3}


class TestCoercion:
    """Приведение значений."""

    def test_to_text(self):
        """Преобразование в текст."""
        assert to_text(None) == ""
        assert to_text(Undefined()) == ""
        assert to_text(True) == "true"
        assert to_text(3.0) == "3"
        assert to_text(0.5) == "0.5"
        assert to_text(["a", 1, None]) == "a,1,"
        assert to_text({"k": 1}) == "{'k': 1}"

    def test_truthiness(self):
        """Истинность значений."""
        assert not any(is_truthy(v) for v in ([], {}, "", 0, None, False, Undefined()))
        assert all(is_truthy(v) for v in ([0], "0", 1, True))


class TestGetMember:
    """Доступ к членам."""

    def test_mapping_key_and_attribute(self):
        """Ключ словаря и атрибут объекта."""
        assert get_member({"a": 1}, "a") == 1

        class Obj:
            name = "n"

        assert get_member(Obj(), "name") == "n"

    def test_mapping_methods_are_reachable(self):
        """Методы обычного словаря доступны."""
        items = get_member({"a": 1}, "items")
        assert list(items()) == [("a", 1)]

    def test_sequence_index(self):
        """Индекс последовательности, включая отрицательный."""
        assert get_member(["x", "y"], 1) == "y"
        assert get_member(["x", "y"], -1) == "y"
        assert isinstance(get_member(["x"], 5), Undefined)

    def test_slice(self):
        """Срез."""
        assert get_member([1, 2, 3], slice(1, None)) == [2, 3]

    def test_misses_are_undefined(self):
        """Промахи дают Undefined."""
        assert isinstance(get_member({}, "a"), Undefined)
        assert isinstance(get_member(None, "a"), Undefined)
        assert isinstance(get_member(object(), "__class__"), Undefined)

    def test_template_module(self):
        """Пространство имён импорта отдаёт только экспорты."""
        module = TemplateModule("m.html", {"bar": "baz"})
        assert get_member(module, "bar") == "baz"
        assert module.bar == "baz"
        assert isinstance(module.missing, Undefined)
        assert "bar" in module
        assert isinstance(get_member(module, "keys"), Undefined)
        assert isinstance(get_member(module, "get"), Undefined)


class TestRunSync:
    """Синхронный запуск корутин."""

    def test_returns_value(self):
        """Результат корутины без приостановки."""
        async def compute():
            return 42

        assert run_sync(compute()) == 42

    def test_suspension_is_rejected(self):
        """Приостановка: RenderError."""
        import asyncio

        async def suspends():
            await asyncio.sleep(0)
            return 1

        with pytest.raises(RenderError, match="render_async"):
            run_sync(suspends())

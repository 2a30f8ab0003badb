"""
AST-узлы шаблона.

Определяет закрытую иерархию неизменяемых классов узлов. Дочерние узлы
хранятся в кортежах, обратных ссылок нет. Каждый узел помнит позицию
в исходнике (line/column), которая не участвует в сравнении.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Tuple


@dataclass(frozen=True)
class TemplateNode:
    """Базовый класс для всех узлов AST шаблона."""
    line: int = field(default=0, kw_only=True, compare=False, repr=False)
    column: int = field(default=0, kw_only=True, compare=False, repr=False)


@dataclass(frozen=True)
class Expr(TemplateNode):
    """Базовый класс для выражений."""
    pass


@dataclass(frozen=True)
class Stmt(TemplateNode):
    """Базовый класс для инструкций (текст, вывод, теги)."""
    pass


Body = Tuple[Stmt, ...]


# ---- Выражения ----

@dataclass(frozen=True)
class Literal(Expr):
    """Литерал: число, строка, true/false, none."""
    value: Any


@dataclass(frozen=True)
class Symbol(Expr):
    """Ссылка на переменную по имени."""
    name: str


@dataclass(frozen=True)
class Group(Expr):
    """
    Выражение в скобках: (expr)

    Сохраняется в дереве для явной группировки и изменения приоритета.
    """
    expr: Expr


@dataclass(frozen=True)
class ArrayLiteral(Expr):
    """Литерал списка: [a, b, c]"""
    items: Tuple[Expr, ...]


@dataclass(frozen=True)
class DictLiteral(Expr):
    """
    Литерал словаря: {key: value, ...}

    Голый идентификатор в позиции ключа трактуется как строка.
    """
    pairs: Tuple[Tuple[Expr, Expr], ...]


@dataclass(frozen=True)
class BinOp(Expr):
    """Арифметика и конкатенация: + - * / // % ** ~"""
    op: str
    left: Expr
    right: Expr


@dataclass(frozen=True)
class UnaryOp(Expr):
    """Унарный минус/плюс."""
    op: str
    operand: Expr


@dataclass(frozen=True)
class Compare(Expr):
    """
    Цепочка сравнений: a < b <= c

    Каждое попарное сравнение вычисляется по очереди, результат — их AND.
    """
    left: Expr
    ops: Tuple[str, ...]
    rights: Tuple[Expr, ...]


@dataclass(frozen=True)
class And(Expr):
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Or(Expr):
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Not(Expr):
    operand: Expr


@dataclass(frozen=True)
class InlineIf(Expr):
    """Условное выражение: body if cond else else_"""
    cond: Expr
    body: Expr
    else_: Optional[Expr] = None


@dataclass(frozen=True)
class FunCall(Expr):
    """Вызов: target(args, name=value)"""
    target: Expr
    args: Tuple[Expr, ...] = ()
    kwargs: Tuple[Tuple[str, Expr], ...] = ()


@dataclass(frozen=True)
class FilterCall(Expr):
    """Применение фильтра: target | name(args)"""
    name: str
    target: Expr
    args: Tuple[Expr, ...] = ()
    kwargs: Tuple[Tuple[str, Expr], ...] = ()


@dataclass(frozen=True)
class IsTest(Expr):
    """Проверка: target is [not] name(args)"""
    name: str
    target: Expr
    args: Tuple[Expr, ...] = ()
    negated: bool = False


@dataclass(frozen=True)
class LookupAttr(Expr):
    """Доступ к члену: target.key и target[key] представлены одинаково."""
    target: Expr
    key: Expr


@dataclass(frozen=True)
class Slice(Expr):
    """Срез внутри квадратных скобок: target[start:stop:step]"""
    start: Optional[Expr] = None
    stop: Optional[Expr] = None
    step: Optional[Expr] = None


@dataclass(frozen=True)
class Super(Expr):
    """super() — вывод перекрытой версии текущего блока."""
    pass


# ---- Инструкции ----

@dataclass(frozen=True)
class Root(TemplateNode):
    """Корень шаблона."""
    children: Body


@dataclass(frozen=True)
class TextNode(Stmt):
    """
    Обычный текстовый контент в шаблоне.

    Выводится в результат как есть.
    """
    text: str


@dataclass(frozen=True)
class Output(Stmt):
    """Вывод выражения {{ expr }}."""
    expr: Expr


@dataclass(frozen=True)
class If(Stmt):
    """
    Условный блок {% if %}...{% endif %}.

    Ветки elif представлены вложенным If в else_body.
    """
    cond: Expr
    body: Body
    else_body: Body = ()


@dataclass(frozen=True)
class For(Stmt):
    """
    Цикл {% for targets in iterable %}...{% else %}...{% endfor %}.

    Одна цель — связывается элемент; несколько — ключ/значение для словаря
    или распаковка элемента последовательности.
    """
    targets: Tuple[str, ...]
    iterable: Expr
    body: Body
    else_body: Body = ()


@dataclass(frozen=True)
class Set(Stmt):
    """
    Присваивание {% set a, b = expr %} — одно значение во все цели.

    Блочная форма {% set a %}...{% endset %} хранит тело в body, value=None.
    """
    targets: Tuple[str, ...]
    value: Optional[Expr] = None
    body: Body = ()


@dataclass(frozen=True)
class Block(Stmt):
    """Именованный переопределяемый блок {% block name %}."""
    name: str
    body: Body


@dataclass(frozen=True)
class Extends(Stmt):
    """{% extends expr %}"""
    template: Expr


@dataclass(frozen=True)
class Include(Stmt):
    """{% include expr [ignore missing] %}"""
    template: Expr
    ignore_missing: bool = False


@dataclass(frozen=True)
class Import(Stmt):
    """{% import expr as alias %}"""
    template: Expr
    alias: str


@dataclass(frozen=True)
class FromImport(Stmt):
    """{% from expr import name [as alias], ... %}"""
    template: Expr
    names: Tuple[Tuple[str, Optional[str]], ...]


@dataclass(frozen=True)
class Macro(Stmt):
    """
    Определение макроса {% macro name(params) %}.

    defaults — пары (имя параметра, выражение по умолчанию); выражения
    вычисляются в момент вызова, а не определения.
    """
    name: str
    params: Tuple[str, ...]
    defaults: Tuple[Tuple[str, Expr], ...]
    body: Body


@dataclass(frozen=True)
class FilterBlock(Stmt):
    """{% filter name(args) %}...{% endfilter %}"""
    name: str
    args: Tuple[Expr, ...]
    body: Body


def iter_child_nodes(node: TemplateNode):
    """Перебирает непосредственных потомков узла (для обходов дерева)."""
    for name in node.__dataclass_fields__:
        if name in ("line", "column"):
            continue
        value = getattr(node, name)
        if isinstance(value, TemplateNode):
            yield value
        elif isinstance(value, tuple):
            for item in value:
                if isinstance(item, TemplateNode):
                    yield item
                elif isinstance(item, tuple):
                    for sub in item:
                        if isinstance(sub, TemplateNode):
                            yield sub


def format_ast_tree(node: TemplateNode, indent: int = 0) -> str:
    """Форматирует AST как дерево для отладки."""
    prefix = "  " * indent
    if isinstance(node, TextNode):
        preview = node.text[:30] + "..." if len(node.text) > 30 else node.text
        lines = [f"{prefix}TextNode({preview!r})"]
    elif isinstance(node, (Literal, Symbol)):
        lines = [f"{prefix}{node!r}"]
    else:
        details = ""
        for attr in ("name", "op", "ops", "targets", "alias"):
            if attr in node.__dataclass_fields__:
                details = f"({getattr(node, attr)!r})"
                break
        lines = [f"{prefix}{type(node).__name__}{details}"]
        for child in iter_child_nodes(node):
            lines.append(format_ast_tree(child, indent + 1))
    return "\n".join(lines)


__all__ = [
    "TemplateNode", "Expr", "Stmt", "Body",
    "Literal", "Symbol", "Group", "ArrayLiteral", "DictLiteral",
    "BinOp", "UnaryOp", "Compare", "And", "Or", "Not", "InlineIf",
    "FunCall", "FilterCall", "IsTest", "LookupAttr", "Slice", "Super",
    "Root", "TextNode", "Output", "If", "For", "Set", "Block", "Extends",
    "Include", "Import", "FromImport", "Macro", "FilterBlock",
    "iter_child_nodes", "format_ast_tree",
]

"""
Вычислитель шаблонов.

Обходит AST в глубину и собирает вывод. Каждый шаг — корутина: так один
и тот же обход обслуживает и синхронный рендеринг (через run_sync), и
асинхронный (с ожиданием асинхронных фильтров и загрузчиков).
"""

from __future__ import annotations

import inspect
import logging
import operator
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Tuple

from markupsafe import Markup, escape

from . import nodes
from .errors import RenderError, StencilUserError, TemplateNotFoundError
from .runtime import (
    ExportedBlock,
    Frame,
    LoopInfo,
    Macro,
    TemplateCallable,
    TemplateModule,
    Undefined,
    get_member,
    is_truthy,
    to_text,
)

if TYPE_CHECKING:
    from .context import RenderContext
    from .template import Template

logger = logging.getLogger(__name__)

_BINARY_OPS: Dict[str, Callable[[Any, Any], Any]] = {
    '+': operator.add,
    '-': operator.sub,
    '*': operator.mul,
    '/': operator.truediv,
    '//': operator.floordiv,
    '%': operator.mod,
    '**': operator.pow,
    '~': lambda a, b: to_text(a) + to_text(b),
}

_COMPARE_OPS: Dict[str, Callable[[Any, Any], bool]] = {
    '==': operator.eq,
    '!=': operator.ne,
    '<': operator.lt,
    '>': operator.gt,
    '<=': operator.le,
    '>=': operator.ge,
    'in': lambda a, b: a in b,
    'not in': lambda a, b: a not in b,
}

StmtHandler = Callable[[Any, Frame, List[str]], Awaitable[None]]
ExprHandler = Callable[[Any, Frame], Awaitable[Any]]


class TemplateEvaluator:
    """
    Вычислитель AST шаблона в рамках одного контекста рендеринга.

    Обработчики узлов выбираются по классу узла из таблиц диспетчеризации.
    Исключения, не являющиеся пользовательскими ошибками, оборачиваются
    в RenderError с позицией самого внутреннего узла.
    """

    def __init__(self, context: RenderContext):
        self.context = context
        self.environment = context.environment
        # Имя шаблона, узлы которого вычисляются сейчас (для сообщений об ошибках)
        self.template_name: Optional[str] = context.name
        # Шаблон с {% extends %} на верхнем уровне не выводит свои блоки сам
        self._skip_blocks = False

        self._stmt_handlers: Dict[type, StmtHandler] = {
            nodes.TextNode: self._render_text,
            nodes.Output: self._render_output,
            nodes.If: self._render_if,
            nodes.For: self._render_for,
            nodes.Set: self._render_set,
            nodes.Block: self._render_block_node,
            nodes.Extends: self._render_extends,
            nodes.Include: self._render_include,
            nodes.Import: self._render_import,
            nodes.FromImport: self._render_from_import,
            nodes.Macro: self._render_macro_def,
            nodes.FilterBlock: self._render_filter_block,
        }
        self._expr_handlers: Dict[type, ExprHandler] = {
            nodes.Literal: self._eval_literal,
            nodes.Symbol: self._eval_symbol,
            nodes.Group: self._eval_group,
            nodes.ArrayLiteral: self._eval_array,
            nodes.DictLiteral: self._eval_dict,
            nodes.BinOp: self._eval_binop,
            nodes.UnaryOp: self._eval_unary,
            nodes.Compare: self._eval_compare,
            nodes.And: self._eval_and,
            nodes.Or: self._eval_or,
            nodes.Not: self._eval_not,
            nodes.InlineIf: self._eval_inline_if,
            nodes.FunCall: self._eval_call,
            nodes.FilterCall: self._eval_filter,
            nodes.IsTest: self._eval_test,
            nodes.LookupAttr: self._eval_lookup,
            nodes.Slice: self._eval_slice,
            nodes.Super: self._eval_super,
        }

    # ======= Точки входа =======

    async def render_root(self, template: Template, frame: Frame) -> str:
        """
        Рендерит шаблон с учётом цепочки наследования.

        Если шаблон выполнил {% extends %}, его вывод отбрасывается и
        рендеринг продолжается родителем в том же контексте и фрейме.
        Итоговый вывод даёт самый базовый шаблон цепочки.
        """
        current = template
        while True:
            self.context.register_blocks(current)
            self.context.parent_template = None
            self.template_name = current.name
            self._skip_blocks = current.parent_expr is not None

            buf: List[str] = []
            await self.render_body(current.root.children, frame, buf)

            parent = self.context.parent_template
            if parent is None:
                self._skip_blocks = False
                return "".join(buf)
            logger.debug("Template %r extends %r", current.name, parent.name)
            current = parent

    async def render_body(self, body: nodes.Body, frame: Frame, buf: List[str]) -> None:
        for child in body:
            await self.render_stmt(child, frame, buf)

    async def render_stmt(self, node: nodes.Stmt, frame: Frame, buf: List[str]) -> None:
        handler = self._stmt_handlers.get(type(node))
        if handler is None:
            raise RenderError(f"Unsupported statement node: {type(node).__name__}")
        try:
            await handler(node, frame, buf)
        except RenderError as e:
            e.locate(self.template_name, node.line, node.column)
            raise
        except StencilUserError:
            raise
        except Exception as e:
            raise self._wrap_error(e, node) from e

    async def evaluate(self, node: nodes.Expr, frame: Frame) -> Any:
        handler = self._expr_handlers.get(type(node))
        if handler is None:
            raise RenderError(f"Unsupported expression node: {type(node).__name__}")
        try:
            return await handler(node, frame)
        except RenderError as e:
            e.locate(self.template_name, node.line, node.column)
            raise
        except StencilUserError:
            raise
        except Exception as e:
            raise self._wrap_error(e, node) from e

    async def render_block(self, name: str, frame: Frame, level: int = 0) -> str:
        """
        Рендерит реализацию блока указанного уровня.

        Уровень 0 — самая производная реализация; super() рендерит level + 1.
        """
        entries = self.context.blocks.get(name)
        if not entries or level >= len(entries):
            raise RenderError(f"Unknown block '{name}'")

        owner, block = entries[level]
        logger.debug("Rendering block %r (level %d from %r)", name, level, owner)

        block_frame = frame.push()
        block_frame.block = (name, level)

        saved_name, saved_skip = self.template_name, self._skip_blocks
        self.template_name, self._skip_blocks = owner, False
        try:
            return await self.capture(block.body, block_frame)
        finally:
            self.template_name, self._skip_blocks = saved_name, saved_skip

    async def call_macro(self, macro: Macro, args: List[Any], kwargs: Dict[str, Any]) -> Any:
        """
        Вызывает макрос.

        Связывание: позиционные аргументы, затем именованные, затем
        значения по умолчанию, вычисляемые сейчас во фрейме вызова.
        """
        node = macro.node
        params = node.params
        if len(args) > len(params):
            raise RenderError(
                f"Macro '{node.name}' takes {len(params)} positional arguments but {len(args)} were given"
            )

        call_frame = macro.frame.push()
        bound = set()
        for param, value in zip(params, args):
            call_frame.set(param, value)
            bound.add(param)

        for key, value in kwargs.items():
            if key not in params:
                raise RenderError(f"Macro '{node.name}' got an unexpected keyword argument '{key}'")
            if key in bound:
                raise RenderError(f"Macro '{node.name}' got multiple values for argument '{key}'")
            call_frame.set(key, value)
            bound.add(key)

        defaults = dict(node.defaults)
        saved_name = self.template_name
        self.template_name = macro.template_name
        try:
            for param in params:
                if param in bound:
                    continue
                if param not in defaults:
                    raise RenderError(f"Macro '{node.name}' missing required argument '{param}'")
                call_frame.set(param, await self.evaluate(defaults[param], call_frame))

            return await self.capture(node.body, call_frame)
        finally:
            self.template_name = saved_name

    async def call(self, target: Any, args: List[Any], kwargs: Dict[str, Any], description: str = "object") -> Any:
        """Вызывает значение шаблона или Python-функцию, дожидаясь awaitable-результата."""
        if isinstance(target, TemplateCallable):
            return await target.call_async(args, kwargs)
        if isinstance(target, Undefined):
            raise RenderError(f"'{target.name}' is undefined and cannot be called")
        if not callable(target):
            raise RenderError(f"'{description}' is not callable ({type(target).__name__})")
        result = target(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def capture(self, body: nodes.Body, frame: Frame) -> str:
        """Рендерит тело в отдельный буфер и возвращает текст."""
        buf: List[str] = []
        await self.render_body(body, frame, buf)
        return self._markup("".join(buf))

    # ======= Инструкции =======

    async def _render_text(self, node: nodes.TextNode, frame: Frame, buf: List[str]) -> None:
        buf.append(node.text)

    async def _render_output(self, node: nodes.Output, frame: Frame, buf: List[str]) -> None:
        value = await self.evaluate(node.expr, frame)
        buf.append(self._output_text(value))

    async def _render_if(self, node: nodes.If, frame: Frame, buf: List[str]) -> None:
        if is_truthy(await self.evaluate(node.cond, frame)):
            await self.render_body(node.body, frame, buf)
        else:
            await self.render_body(node.else_body, frame, buf)

    async def _render_for(self, node: nodes.For, frame: Frame, buf: List[str]) -> None:
        iterable = await self.evaluate(node.iterable, frame)
        items, is_mapping = await self._materialize(iterable)

        if not items:
            await self.render_body(node.else_body, frame, buf)
            return

        targets = node.targets
        length = len(items)
        for index0, item in enumerate(items):
            loop_frame = frame.push()
            if len(targets) == 1:
                loop_frame.set(targets[0], item[0] if is_mapping else item)
            else:
                values = tuple(item) if not isinstance(item, (str, Undefined)) else (item,)
                if len(values) != len(targets):
                    raise RenderError(
                        f"Cannot unpack {len(values)} values into {len(targets)} loop variables"
                    )
                for target, value in zip(targets, values):
                    loop_frame.set(target, value)
            loop_frame.set('loop', LoopInfo.at(index0, length))
            await self.render_body(node.body, loop_frame, buf)

    async def _render_set(self, node: nodes.Set, frame: Frame, buf: List[str]) -> None:
        if node.value is not None:
            value = await self.evaluate(node.value, frame)
        else:
            value = await self.capture(node.body, frame)
        # Одно значение во все цели, без распаковки
        for target in node.targets:
            self.context.export(frame, target, value)

    async def _render_block_node(self, node: nodes.Block, frame: Frame, buf: List[str]) -> None:
        if self._skip_blocks or self.context.parent_template is not None:
            return
        buf.append(await self.render_block(node.name, frame))

    async def _render_extends(self, node: nodes.Extends, frame: Frame, buf: List[str]) -> None:
        if self.context.parent_template is not None:
            raise RenderError("Template extends more than one parent")
        target = await self.evaluate(node.template, frame)
        self.context.parent_template = await self.context.load_template(target)

    async def _render_include(self, node: nodes.Include, frame: Frame, buf: List[str]) -> None:
        target = await self.evaluate(node.template, frame)
        try:
            template = await self.context.load_template(target)
        except TemplateNotFoundError:
            if node.ignore_missing:
                logger.debug("Skipping missing include %r", target)
                return
            raise

        child = self.context.derive_for_include(frame, template.name)
        buf.append(await child.evaluator.render_root(template, child.root_frame))

    async def _render_import(self, node: nodes.Import, frame: Frame, buf: List[str]) -> None:
        module = await self._import_module(node.template, frame)
        self.context.export(frame, node.alias, module)

    async def _render_from_import(self, node: nodes.FromImport, frame: Frame, buf: List[str]) -> None:
        module = await self._import_module(node.template, frame)
        for name, alias in node.names:
            if name not in module:
                raise RenderError(f"cannot import '{name}'")
            self.context.export(frame, alias or name, module[name])

    async def _render_macro_def(self, node: nodes.Macro, frame: Frame, buf: List[str]) -> None:
        macro = Macro(node, frame, self.context, self.template_name)
        self.context.export(frame, node.name, macro)

    async def _render_filter_block(self, node: nodes.FilterBlock, frame: Frame, buf: List[str]) -> None:
        func = self.environment.get_filter(node.name)
        text = await self.capture(node.body, frame)
        args = [await self.evaluate(arg, frame) for arg in node.args]
        result = await self.call(func, [text, *args], {}, node.name)
        buf.append(self._output_text(self._markup(result) if isinstance(result, str) else result))

    # ======= Выражения =======

    async def _eval_literal(self, node: nodes.Literal, frame: Frame) -> Any:
        return node.value

    async def _eval_symbol(self, node: nodes.Symbol, frame: Frame) -> Any:
        return self.context.resolve(node.name, frame)

    async def _eval_group(self, node: nodes.Group, frame: Frame) -> Any:
        return await self.evaluate(node.expr, frame)

    async def _eval_array(self, node: nodes.ArrayLiteral, frame: Frame) -> Any:
        return [await self.evaluate(item, frame) for item in node.items]

    async def _eval_dict(self, node: nodes.DictLiteral, frame: Frame) -> Any:
        result = {}
        for key_node, value_node in node.pairs:
            key = await self.evaluate(key_node, frame)
            result[key] = await self.evaluate(value_node, frame)
        return result

    async def _eval_binop(self, node: nodes.BinOp, frame: Frame) -> Any:
        left = await self.evaluate(node.left, frame)
        right = await self.evaluate(node.right, frame)
        return _BINARY_OPS[node.op](left, right)

    async def _eval_unary(self, node: nodes.UnaryOp, frame: Frame) -> Any:
        value = await self.evaluate(node.operand, frame)
        return -value if node.op == '-' else +value

    async def _eval_compare(self, node: nodes.Compare, frame: Frame) -> Any:
        left = await self.evaluate(node.left, frame)
        for op, right_node in zip(node.ops, node.rights):
            right = await self.evaluate(right_node, frame)
            if not _COMPARE_OPS[op](left, right):
                return False
            left = right
        return True

    async def _eval_and(self, node: nodes.And, frame: Frame) -> Any:
        left = await self.evaluate(node.left, frame)
        if not is_truthy(left):
            return left
        return await self.evaluate(node.right, frame)

    async def _eval_or(self, node: nodes.Or, frame: Frame) -> Any:
        left = await self.evaluate(node.left, frame)
        if is_truthy(left):
            return left
        return await self.evaluate(node.right, frame)

    async def _eval_not(self, node: nodes.Not, frame: Frame) -> Any:
        return not is_truthy(await self.evaluate(node.operand, frame))

    async def _eval_inline_if(self, node: nodes.InlineIf, frame: Frame) -> Any:
        if is_truthy(await self.evaluate(node.cond, frame)):
            return await self.evaluate(node.body, frame)
        if node.else_ is None:
            return Undefined()
        return await self.evaluate(node.else_, frame)

    async def _eval_call(self, node: nodes.FunCall, frame: Frame) -> Any:
        target = await self.evaluate(node.target, frame)
        args, kwargs = await self._eval_arguments(node.args, node.kwargs, frame)
        return await self.call(target, args, kwargs, _describe(node.target))

    async def _eval_filter(self, node: nodes.FilterCall, frame: Frame) -> Any:
        func = self.environment.get_filter(node.name)
        value = await self.evaluate(node.target, frame)
        args, kwargs = await self._eval_arguments(node.args, node.kwargs, frame)
        return await self.call(func, [value, *args], kwargs, node.name)

    async def _eval_test(self, node: nodes.IsTest, frame: Frame) -> Any:
        func = self.environment.get_test(node.name)
        value = await self.evaluate(node.target, frame)
        args = [await self.evaluate(arg, frame) for arg in node.args]
        result = is_truthy(await self.call(func, [value, *args], {}, node.name))
        return not result if node.negated else result

    async def _eval_lookup(self, node: nodes.LookupAttr, frame: Frame) -> Any:
        target = await self.evaluate(node.target, frame)
        key = await self.evaluate(node.key, frame)
        return get_member(target, key)

    async def _eval_slice(self, node: nodes.Slice, frame: Frame) -> Any:
        parts = []
        for part in (node.start, node.stop, node.step):
            parts.append(None if part is None else await self.evaluate(part, frame))
        return slice(*parts)

    async def _eval_super(self, node: nodes.Super, frame: Frame) -> Any:
        info = frame.find_block()
        if info is None:
            raise RenderError("super() used outside of a block")
        name, level = info
        if level + 1 >= len(self.context.blocks.get(name, ())):
            raise RenderError(f"No parent block '{name}' for super()")
        return await self.render_block(name, frame, level + 1)

    # ======= Вспомогательные методы =======

    async def _eval_arguments(
        self,
        args: Tuple[nodes.Expr, ...],
        kwargs: Tuple[Tuple[str, nodes.Expr], ...],
        frame: Frame,
    ) -> Tuple[List[Any], Dict[str, Any]]:
        """Вычисляет аргументы слева направо."""
        values = [await self.evaluate(arg, frame) for arg in args]
        named: Dict[str, Any] = {}
        for key, expr in kwargs:
            if key in named:
                raise RenderError(f"Keyword argument '{key}' repeated")
            named[key] = await self.evaluate(expr, frame)
        return values, named

    async def _import_module(self, template_expr: nodes.Expr, frame: Frame) -> TemplateModule:
        """Рендерит шаблон в изолированном контексте и собирает его экспорты."""
        target = await self.evaluate(template_expr, frame)
        template = await self.context.load_template(target)

        module_ctx = self.context.isolated(template.name)
        await module_ctx.evaluator.render_root(template, module_ctx.root_frame)

        exports = dict(module_ctx.exports)
        for block_name in module_ctx.blocks:
            exports.setdefault(block_name, ExportedBlock(block_name, module_ctx))
        logger.debug("Imported %r: %s", template.name, sorted(exports))
        return TemplateModule(template.name, exports)

    async def _materialize(self, iterable: Any) -> Tuple[List[Any], bool]:
        """
        Превращает итерируемое значение в список до начала цикла.

        Для словаря возвращает пары (ключ, значение) в порядке вставки.
        """
        if iterable is None:
            return [], False
        if isinstance(iterable, Undefined):
            raise RenderError(f"'{iterable.name}' is undefined and cannot be iterated")
        if isinstance(iterable, Mapping):
            return list(iterable.items()), True
        if hasattr(iterable, '__aiter__'):
            return [item async for item in iterable], False
        try:
            return list(iterable), False
        except TypeError as e:
            raise RenderError(f"'{type(iterable).__name__}' object is not iterable") from e

    def _markup(self, text: str) -> str:
        """Результаты макросов и блоков при автоэкранировании уже безопасны."""
        if self.environment.autoescape and not isinstance(text, Markup):
            return Markup(text)
        return text

    def _output_text(self, value: Any) -> str:
        """Преобразует значение {{ }} в текст с учётом finalize и автоэкранирования."""
        value = self.environment.finalize(value)
        if not self.environment.autoescape:
            return to_text(value)
        if hasattr(value, '__html__'):
            return Markup(value.__html__())
        return escape(to_text(value))

    def _wrap_error(self, error: Exception, node: nodes.TemplateNode) -> RenderError:
        wrapped = RenderError(f"{type(error).__name__}: {error}")
        wrapped.locate(self.template_name, node.line, node.column)
        logger.debug("Error at %s:%d:%d: %s", self.template_name, node.line, node.column, error)
        return wrapped


def _describe(node: nodes.Expr) -> str:
    """Короткое имя выражения для сообщений об ошибках."""
    if isinstance(node, nodes.Symbol):
        return node.name
    if isinstance(node, nodes.LookupAttr) and isinstance(node.key, nodes.Literal):
        return f"{_describe(node.target)}.{node.key.value}"
    return type(node).__name__


__all__ = ["TemplateEvaluator"]

"""
Скомпилированный шаблон.

Неизменяемая обёртка над AST: реестр блоков, выражение родителя
(extends) и точки входа для синхронного и асинхронного рендеринга.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

from . import nodes
from .context import RenderContext
from .errors import ParseError
from .runtime import run_sync

if TYPE_CHECKING:
    from .environment import Environment


class Template:
    """
    Шаблон, готовый к рендерингу.

    Один объект можно рендерить многократно и параллельно: всё изменяемое
    состояние живёт в RenderContext отдельного вызова.
    """

    def __init__(
        self,
        environment: Environment,
        root: nodes.Root,
        name: Optional[str] = None,
        filename: Optional[str] = None,
        uptodate: Optional[Callable[[], bool]] = None,
    ):
        self.environment = environment
        self.root = root
        self.name = name
        self.filename = filename
        self._uptodate = uptodate
        self.blocks: Dict[str, nodes.Block] = collect_blocks(root)
        self.parent_expr: Optional[nodes.Expr] = _find_parent_expr(root)

    def is_up_to_date(self) -> bool:
        """Проверяет, не изменился ли исходник шаблона с момента загрузки."""
        return self._uptodate is None or self._uptodate()

    def new_context(self, data: Optional[Mapping[str, Any]] = None) -> RenderContext:
        return RenderContext(self.environment, dict(data or {}), name=self.name)

    async def render_async(self, data: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> str:
        """
        Рендерит шаблон, дожидаясь асинхронных фильтров, функций и загрузчиков.

        Args:
            data: Данные рендеринга
            **kwargs: Дополнительные переменные (перекрывают data)

        Returns:
            Отрендеренный текст

        Raises:
            RenderError: При ошибке рендеринга (частичный вывод не возвращается)
        """
        context = self.new_context({**(data or {}), **kwargs})
        return await context.evaluator.render_root(self, context.root_frame)

    def render(self, data: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> str:
        """
        Рендерит шаблон синхронно.

        Raises:
            RenderError: При ошибке рендеринга или если шаблону потребовалась
                асинхронная операция
        """
        return run_sync(self.render_async(data, **kwargs))

    def __repr__(self) -> str:
        return f"<Template {self.name or '<string>'!r}>"


def collect_blocks(root: nodes.TemplateNode) -> Dict[str, nodes.Block]:
    """Собирает все блоки шаблона, включая вложенные, по имени."""
    blocks: Dict[str, nodes.Block] = {}

    def visit(node: nodes.TemplateNode) -> None:
        if isinstance(node, nodes.Block):
            if node.name in blocks:
                raise ParseError(f"Block '{node.name}' defined twice", node.line, node.column)
            blocks[node.name] = node
        for child in nodes.iter_child_nodes(node):
            visit(child)

    visit(root)
    return blocks


def _find_parent_expr(root: nodes.Root) -> Optional[nodes.Expr]:
    for child in root.children:
        if isinstance(child, nodes.Extends):
            return child.template
    return None


__all__ = ["Template", "collect_blocks"]

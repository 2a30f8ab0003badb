"""
Контекст рендеринга.

Хранит состояние одного вызова рендеринга: данные, корневой фрейм,
реестр блоков для наследования, экспортируемые имена и ссылку на
родительский шаблон после {% extends %}.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple

from .errors import RenderError
from .runtime import MISSING, Frame, Undefined

if TYPE_CHECKING:
    from .environment import Environment
    from .evaluator import TemplateEvaluator
    from .template import Template
    from . import nodes

# Запись реестра блоков: (имя шаблона-владельца, узел блока)
BlockEntry = Tuple[Optional[str], "nodes.Block"]


class RenderContext:
    """
    Состояние рендеринга.

    Создаётся заново для каждого вызова render, а также для каждого
    включения (include) и импорта (import). Никогда не разделяется между
    параллельными рендерингами.
    """

    def __init__(
        self,
        environment: Environment,
        data: Optional[Mapping[str, Any]] = None,
        *,
        name: Optional[str] = None,
        root_frame: Optional[Frame] = None,
    ):
        self.environment = environment
        self.data: Mapping[str, Any] = data if data is not None else {}
        self.name = name
        self.root_frame = root_frame if root_frame is not None else Frame()

        # имя блока -> реализации, от самой производной к базовой
        self.blocks: Dict[str, List[BlockEntry]] = {}

        # Имена верхнего уровня, видимые при импорте шаблона
        self.exports: Dict[str, Any] = {}

        # Выставляется тегом {% extends %} текущего шаблона
        self.parent_template: Optional[Template] = None

        self._evaluator: Optional[TemplateEvaluator] = None

    @property
    def evaluator(self) -> TemplateEvaluator:
        """Вычислитель, связанный с этим контекстом (создаётся лениво)."""
        if self._evaluator is None:
            from .evaluator import TemplateEvaluator
            self._evaluator = TemplateEvaluator(self)
        return self._evaluator

    def resolve(self, name: str, frame: Frame) -> Any:
        """
        Разрешает имя переменной.

        Порядок: цепочка фреймов, данные рендеринга, глобальные
        переменные окружения. Неразрешённое имя даёт Undefined.
        """
        value = frame.lookup(name)
        if value is not MISSING:
            return value
        if name in self.data:
            return self.data[name]
        if name in self.environment.globals:
            return self.environment.globals[name]
        return Undefined(name)

    def register_blocks(self, template: Template) -> None:
        """Добавляет блоки шаблона в реестр как менее производные, чем уже известные."""
        for block_name, block in template.blocks.items():
            self.blocks.setdefault(block_name, []).append((template.name, block))

    def export(self, frame: Frame, name: str, value: Any) -> None:
        """Привязывает имя во фрейме; на верхнем уровне шаблона оно также экспортируется."""
        frame.set(name, value)
        if frame is self.root_frame:
            self.exports[name] = value

    async def load_template(self, target: Any) -> Template:
        """Получает шаблон по имени через окружение (или принимает готовый Template)."""
        from .template import Template

        if isinstance(target, Template):
            return target
        if isinstance(target, Undefined):
            raise RenderError(f"Template name '{target.name}' is undefined")
        if not isinstance(target, str):
            raise RenderError(f"Template name must be a string, got {type(target).__name__}")
        return await self.environment.get_template_async(target)

    def derive_for_include(self, frame: Frame, name: Optional[str]) -> RenderContext:
        """
        Контекст для {% include %}: видит фреймы и данные места включения,
        но имеет собственный реестр блоков и экспорты.
        """
        return RenderContext(self.environment, self.data, name=name, root_frame=frame.push())

    def isolated(self, name: Optional[str]) -> RenderContext:
        """Контекст для {% import %}: без данных и фреймов вызывающего шаблона."""
        return RenderContext(self.environment, {}, name=name)


__all__ = ["RenderContext", "BlockEntry"]

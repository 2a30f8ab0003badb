"""
Окружение шаблонизатора.

Явный объект конфигурации, передаваемый в компиляцию и рендеринг:
загрузчик, глобальные переменные, фильтры, проверки, кэш шаблонов и
политика автоэкранирования. Несколько окружений с разной регистрацией
могут сосуществовать в одном процессе.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .errors import FilterNotFoundError, RenderError, TemplateNotFoundError
from .filters import DEFAULT_FILTERS
from .loaders import BaseLoader
from .nodes import iter_child_nodes
from .parser import parse_template
from .predicates import DEFAULT_TESTS
from .runtime import run_sync
from .template import Template

logger = logging.getLogger(__name__)

DEFAULT_GLOBALS: Dict[str, Any] = {
    "range": range,
    "dict": dict,
}


class Environment:
    """
    Окружение: реестр фильтров, проверок и глобальных переменных
    плюс загрузка и кэширование шаблонов.
    """

    def __init__(
        self,
        loader: Optional[BaseLoader] = None,
        *,
        globals: Optional[Mapping[str, Any]] = None,
        filters: Optional[Mapping[str, Callable[..., Any]]] = None,
        tests: Optional[Mapping[str, Callable[..., Any]]] = None,
        autoescape: bool = False,
        auto_reload: bool = True,
        finalize: Optional[Callable[[Any], Any]] = None,
    ):
        self.loader = loader
        self.globals: Dict[str, Any] = {**DEFAULT_GLOBALS, **(globals or {})}
        self.filters: Dict[str, Callable[..., Any]] = {**DEFAULT_FILTERS, **(filters or {})}
        self.tests: Dict[str, Callable[..., Any]] = {**DEFAULT_TESTS, **(tests or {})}
        self.autoescape = autoescape
        self.auto_reload = auto_reload
        self._finalize = finalize
        self._cache: Dict[str, Template] = {}

    # ---- Реестры ----

    def add_filter(self, name: str, func: Callable[..., Any]) -> None:
        self.filters[name] = func

    def add_test(self, name: str, func: Callable[..., Any]) -> None:
        self.tests[name] = func

    def add_global(self, name: str, value: Any) -> None:
        self.globals[name] = value

    def get_filter(self, name: str) -> Callable[..., Any]:
        try:
            return self.filters[name]
        except KeyError:
            raise FilterNotFoundError(name) from None

    def get_test(self, name: str) -> Callable[..., Any]:
        try:
            return self.tests[name]
        except KeyError:
            raise RenderError(f"No test named '{name}'") from None

    def finalize(self, value: Any) -> Any:
        """Последняя обработка значения {{ }} перед преобразованием в текст."""
        if self._finalize is None:
            return value
        return self._finalize(value)

    # ---- Компиляция ----

    def compile(
        self,
        source: str,
        name: Optional[str] = None,
        filename: Optional[str] = None,
        uptodate: Optional[Callable[[], bool]] = None,
    ) -> Template:
        """
        Компилирует исходник в шаблон.

        Raises:
            LexError: При ошибке лексического анализа
            ParseError: При ошибке синтаксического анализа
        """
        root = parse_template(source)
        template = Template(self, root, name, filename, uptodate)
        logger.debug("Compiled template %r -> %d nodes", name or "<string>", _count_nodes(root))
        return template

    def from_string(self, source: str) -> Template:
        return self.compile(source)

    # ---- Загрузка ----

    async def get_template_async(self, name: Union[str, Template]) -> Template:
        """
        Возвращает шаблон по имени, используя кэш.

        При auto_reload закэшированный шаблон проверяется на актуальность.
        Загрузчик может вернуть результат синхронно или как awaitable.
        """
        if isinstance(name, Template):
            return name

        cached = self._cache.get(name)
        if cached is not None and (not self.auto_reload or cached.is_up_to_date()):
            logger.debug("Template cache hit: %r", name)
            return cached

        if self.loader is None:
            raise TemplateNotFoundError(name)

        source = self.loader.get_source(self, name)
        if inspect.isawaitable(source):
            source = await source

        template = self.compile(source.source, name, source.filename, source.uptodate)
        self._cache[name] = template
        return template

    def get_template(self, name: Union[str, Template]) -> Template:
        """
        Синхронный вариант get_template_async.

        Raises:
            TemplateNotFoundError: Если шаблон не найден
            RenderError: Если загрузчик асинхронный
        """
        return run_sync(self.get_template_async(name))

    def list_templates(self) -> List[str]:
        if self.loader is None:
            return []
        return self.loader.list_templates()

    def clear_cache(self) -> None:
        self._cache.clear()

    # ---- Рендеринг ----

    def render(self, template: Union[str, Template], data: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> str:
        """Загружает шаблон по имени (или берёт готовый) и рендерит его."""
        return self.get_template(template).render(data, **kwargs)

    async def render_async(self, template: Union[str, Template], data: Optional[Mapping[str, Any]] = None,
                           **kwargs: Any) -> str:
        loaded = await self.get_template_async(template)
        return await loaded.render_async(data, **kwargs)


def _count_nodes(node: Any) -> int:
    return 1 + sum(_count_nodes(child) for child in iter_child_nodes(node))


__all__ = ["Environment", "DEFAULT_GLOBALS"]

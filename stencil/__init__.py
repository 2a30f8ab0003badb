"""
Stencil — шаблонизатор: лексер, парсер, вычислитель и среда выполнения
с наследованием шаблонов, макросами, включениями и импортами.

Публичный API:
    Environment, Template, загрузчики, ошибки и две удобные функции
    compile_template() и render().
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Union

from .environment import Environment
from .errors import (
    ConfigError,
    FilterNotFoundError,
    LexError,
    ParseError,
    RenderError,
    StencilUserError,
    TemplateNotFoundError,
)
from .loaders import BaseLoader, DictLoader, FileSystemLoader, FunctionLoader, TemplateSource
from .runtime import LoopInfo, Macro, TemplateModule, Undefined
from .template import Template


def compile_template(source: str, name: Optional[str] = None, environment: Optional[Environment] = None) -> Template:
    """Компилирует исходник в шаблон (в новом окружении по умолчанию)."""
    env = environment if environment is not None else Environment()
    return env.compile(source, name)


def render(
    template: Union[str, Template],
    data: Optional[Mapping[str, Any]] = None,
    environment: Optional[Environment] = None,
) -> str:
    """Рендерит шаблон; строка трактуется как исходный текст шаблона."""
    if isinstance(template, str):
        template = compile_template(template, environment=environment)
    return template.render(data)


__all__ = [
    "Environment",
    "Template",
    "BaseLoader",
    "DictLoader",
    "FileSystemLoader",
    "FunctionLoader",
    "TemplateSource",
    "LoopInfo",
    "Macro",
    "TemplateModule",
    "Undefined",
    "StencilUserError",
    "LexError",
    "ParseError",
    "RenderError",
    "TemplateNotFoundError",
    "FilterNotFoundError",
    "ConfigError",
    "compile_template",
    "render",
]

"""
Base exception for user-facing errors.

All expected errors that should be displayed to the user
as clean messages (without stack traces) must inherit from StencilUserError.

Programming errors and bugs should NOT inherit from StencilUserError —
they will propagate with full tracebacks.
"""

from __future__ import annotations

from typing import Optional


class StencilUserError(Exception):
    """
    Base class for all user-facing errors in stencil.

    These errors indicate problems that the user can fix:
    template syntax, missing templates, undefined names, invalid config.
    """
    pass


class LexError(StencilUserError):
    """Ошибка лексического анализа (незакрытая строка, тег или комментарий)."""

    def __init__(self, message: str, line: int, column: int, position: int = 0):
        super().__init__(f"{message} at {line}:{column}")
        self.message = message
        self.line = line
        self.column = column
        self.position = position


class ParseError(StencilUserError):
    """Ошибка синтаксического анализа."""

    def __init__(self, message: str, line: int = 0, column: int = 0):
        location = f" at {line}:{column}" if line else ""
        super().__init__(f"{message}{location}")
        self.message = message
        self.line = line
        self.column = column


class RenderError(StencilUserError):
    """
    Ошибка рендеринга шаблона.

    Позиция заполняется вычислителем по самому внутреннему узлу,
    на котором произошла ошибка.
    """

    def __init__(
        self,
        message: str,
        template_name: Optional[str] = None,
        line: int = 0,
        column: int = 0,
    ):
        super().__init__(message)
        self.message = message
        self.template_name = template_name
        self.line = line
        self.column = column

    @property
    def located(self) -> bool:
        return self.line > 0

    def locate(self, template_name: Optional[str], line: int, column: int) -> None:
        """Привязывает ошибку к позиции в исходнике, если она ещё не привязана."""
        if self.located:
            return
        self.template_name = template_name
        self.line = line
        self.column = column

    def __str__(self) -> str:
        if not self.located:
            return self.message
        name = self.template_name or "<string>"
        return f"{self.message} ({name}:{self.line}:{self.column})"


class TemplateNotFoundError(RenderError):
    """Загрузчик не нашёл шаблон с указанным именем."""

    def __init__(self, name: str):
        super().__init__(f"Template not found: {name}")
        self.name = name


class FilterNotFoundError(RenderError):
    """Фильтр с указанным именем не зарегистрирован в окружении."""

    def __init__(self, name: str):
        super().__init__(f"No filter named '{name}'")
        self.name = name


class ConfigError(StencilUserError):
    """Ошибка загрузки или валидации stencil.yaml."""
    pass


__all__ = [
    "StencilUserError",
    "LexError",
    "ParseError",
    "RenderError",
    "TemplateNotFoundError",
    "FilterNotFoundError",
    "ConfigError",
]

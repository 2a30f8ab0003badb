"""
Загрузчики исходников шаблонов.

Загрузчик по имени шаблона возвращает TemplateSource или awaitable с ним;
отсутствие шаблона сообщается через TemplateNotFoundError.
"""

from __future__ import annotations

import inspect
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Iterable, List, Mapping, Optional, Sequence, Union

import pathspec

from .errors import TemplateNotFoundError

if TYPE_CHECKING:
    from .environment import Environment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TemplateSource:
    """Исходник шаблона вместе с информацией для проверки актуальности кэша."""
    source: str
    filename: Optional[str] = None
    uptodate: Optional[Callable[[], bool]] = None


class BaseLoader:
    """Базовый загрузчик: не знает ни одного шаблона."""

    def get_source(self, environment: Environment, name: str) -> Any:
        raise TemplateNotFoundError(name)

    def list_templates(self) -> List[str]:
        return []


class DictLoader(BaseLoader):
    """Шаблоны из словаря имя -> исходник (тесты, встроенные шаблоны)."""

    def __init__(self, mapping: Mapping[str, str]):
        self.mapping = mapping

    def get_source(self, environment: Environment, name: str) -> TemplateSource:
        if name not in self.mapping:
            raise TemplateNotFoundError(name)
        source = self.mapping[name]
        return TemplateSource(source, None, lambda: self.mapping.get(name) == source)

    def list_templates(self) -> List[str]:
        return sorted(self.mapping)


class FileSystemLoader(BaseLoader):
    """
    Шаблоны из каталогов на диске.

    Имя шаблона — путь относительно одного из каталогов поиска через '/'.
    Выход за пределы каталога ('..') запрещён. Исключения для
    list_templates задаются в стиле .gitignore.
    """

    def __init__(
        self,
        search_paths: Union[str, os.PathLike, Sequence[Union[str, os.PathLike]]],
        encoding: str = "utf-8",
        exclude: Iterable[str] = (),
    ):
        if isinstance(search_paths, (str, os.PathLike)):
            search_paths = [search_paths]
        self.search_paths: List[Path] = [Path(p) for p in search_paths]
        self.encoding = encoding
        patterns = list(exclude)
        self.exclude_spec: Optional[pathspec.PathSpec] = (
            pathspec.PathSpec.from_lines("gitwildmatch", patterns) if patterns else None
        )

    def get_source(self, environment: Environment, name: str) -> TemplateSource:
        pieces = _split_template_path(name)
        for base in self.search_paths:
            path = base.joinpath(*pieces)
            if not path.is_file():
                continue

            source = path.read_text(encoding=self.encoding)
            mtime = path.stat().st_mtime
            logger.debug("Loaded template %r from %s", name, path)

            def uptodate(path: Path = path, mtime: float = mtime) -> bool:
                try:
                    return path.stat().st_mtime == mtime
                except OSError:
                    return False

            return TemplateSource(source, str(path), uptodate)

        raise TemplateNotFoundError(name)

    def list_templates(self) -> List[str]:
        found = set()
        for base in self.search_paths:
            if not base.is_dir():
                continue
            for path in base.rglob("*"):
                if not path.is_file():
                    continue
                rel = path.relative_to(base).as_posix()
                if self.exclude_spec is not None and self.exclude_spec.match_file(rel):
                    continue
                found.add(rel)
        return sorted(found)


class FunctionLoader(BaseLoader):
    """
    Загрузчик на основе функции.

    Функция получает имя и возвращает исходник, кортеж
    (source, filename, uptodate), None при отсутствии шаблона или
    awaitable с любым из этих результатов.
    """

    def __init__(self, load_func: Callable[[str], Any]):
        self.load_func = load_func

    def get_source(self, environment: Environment, name: str) -> Any:
        result = self.load_func(name)
        if inspect.isawaitable(result):
            return self._finish_async(result, name)
        return _to_source(result, name)

    async def _finish_async(self, pending: Any, name: str) -> TemplateSource:
        return _to_source(await pending, name)


def _to_source(result: Any, name: str) -> TemplateSource:
    if result is None:
        raise TemplateNotFoundError(name)
    if isinstance(result, TemplateSource):
        return result
    if isinstance(result, str):
        return TemplateSource(result)
    source, filename, uptodate = result
    return TemplateSource(source, filename, uptodate)


def _split_template_path(name: str) -> List[str]:
    """Разбивает имя шаблона на части пути, запрещая выход из каталога."""
    pieces = []
    for piece in name.replace("\\", "/").split("/"):
        if piece == "..":
            raise TemplateNotFoundError(name)
        if piece and piece != ".":
            pieces.append(piece)
    if not pieces:
        raise TemplateNotFoundError(name)
    return pieces


__all__ = [
    "TemplateSource",
    "BaseLoader",
    "DictLoader",
    "FileSystemLoader",
    "FunctionLoader",
]

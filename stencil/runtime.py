"""
Модель значений времени выполнения.

Undefined, цепочка фреймов, метаданные цикла, замыкания макросов,
пространства имён импортированных шаблонов и правила приведения значений
(истинность, преобразование в текст, доступ к членам).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Tuple

from .errors import RenderError

if TYPE_CHECKING:
    from .context import RenderContext
    from . import nodes

# Маркер отсутствующего значения при поиске в фреймах
MISSING = object()


class Undefined:
    """
    Значение неразрешённого имени.

    Ложно, выводится как пустая строка и молча распространяется через
    доступ к атрибутам и индексам. Ошибкой является только попытка
    вызвать или перебрать его.
    """

    __slots__ = ("_name",)

    def __init__(self, name: Optional[str] = None):
        self._name = name

    @property
    def name(self) -> str:
        return self._name or "undefined"

    def __bool__(self) -> bool:
        return False

    def __len__(self) -> int:
        return 0

    def __str__(self) -> str:
        return ""

    def __html__(self) -> str:
        return ""

    def __iter__(self) -> Iterator[Any]:
        raise RenderError(f"'{self.name}' is undefined and cannot be iterated")

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        raise RenderError(f"'{self.name}' is undefined and cannot be called")

    def __getattr__(self, name: str) -> Undefined:
        if name.startswith("__"):
            raise AttributeError(name)
        return Undefined(f"{self.name}.{name}")

    def __getitem__(self, key: Any) -> Undefined:
        return Undefined(f"{self.name}[{key!r}]")

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Undefined)

    def __ne__(self, other: object) -> bool:
        return not isinstance(other, Undefined)

    def __hash__(self) -> int:
        return hash(Undefined)

    def __repr__(self) -> str:
        return f"Undefined({self._name!r})"


class Frame:
    """
    Один уровень лексической области видимости.

    Ссылка на родителя фиксируется при создании. Поиск идёт от
    внутреннего фрейма к внешнему и возвращает первое совпадение.
    """

    __slots__ = ("parent", "_vars", "block")

    def __init__(self, parent: Optional[Frame] = None, variables: Optional[Dict[str, Any]] = None):
        self.parent = parent
        self._vars: Dict[str, Any] = dict(variables or {})
        # (имя блока, уровень наследования) для фреймов тел блоков
        self.block: Optional[Tuple[str, int]] = None

    def push(self, variables: Optional[Dict[str, Any]] = None) -> Frame:
        """Создаёт дочерний фрейм."""
        return Frame(self, variables)

    def set(self, name: str, value: Any) -> None:
        self._vars[name] = value

    def lookup(self, name: str, default: Any = MISSING) -> Any:
        frame: Optional[Frame] = self
        while frame is not None:
            if name in frame._vars:
                return frame._vars[name]
            frame = frame.parent
        return default

    def find_block(self) -> Optional[Tuple[str, int]]:
        """Возвращает ближайший по цепочке блок, внутри которого идёт рендеринг."""
        frame: Optional[Frame] = self
        while frame is not None:
            if frame.block is not None:
                return frame.block
            frame = frame.parent
        return None

    def variables(self) -> Dict[str, Any]:
        """Копия собственных переменных фрейма (без родительских)."""
        return dict(self._vars)

    def __contains__(self, name: str) -> bool:
        return self.lookup(name) is not MISSING


@dataclass(frozen=True)
class LoopInfo:
    """Метаданные текущей итерации цикла (переменная loop)."""
    index: int
    index0: int
    revindex: int
    revindex0: int
    first: bool
    last: bool
    length: int

    @classmethod
    def at(cls, index0: int, length: int) -> LoopInfo:
        return cls(
            index=index0 + 1,
            index0=index0,
            revindex=length - index0,
            revindex0=length - index0 - 1,
            first=index0 == 0,
            last=index0 == length - 1,
            length=length,
        )


class TemplateCallable:
    """
    Базовый класс вызываемых объектов шаблона (макросы, экспортированные блоки).

    Внутри рендеринга вызывается через call_async, из Python-кода — как
    обычная функция; во втором случае асинхронные операции недоступны.
    """

    async def call_async(self, args: List[Any], kwargs: Dict[str, Any]) -> Any:
        raise NotImplementedError

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return run_sync(self.call_async(list(args), kwargs))


class Macro(TemplateCallable):
    """Замыкание макроса: узел определения плюс фрейм, в котором оно выполнено."""

    def __init__(
        self,
        node: nodes.Macro,
        frame: Frame,
        context: RenderContext,
        template_name: Optional[str] = None,
    ):
        self.node = node
        self.frame = frame
        self.context = context
        self.template_name = template_name

    @property
    def name(self) -> str:
        return self.node.name

    async def call_async(self, args: List[Any], kwargs: Dict[str, Any]) -> Any:
        return await self.context.evaluator.call_macro(self, args, kwargs)

    def __repr__(self) -> str:
        return f"<Macro {self.node.name}({', '.join(self.node.params)})>"


class ExportedBlock(TemplateCallable):
    """Блок импортированного шаблона: вызов без аргументов возвращает текст блока."""

    def __init__(self, name: str, context: RenderContext):
        self.name = name
        self.context = context

    async def call_async(self, args: List[Any], kwargs: Dict[str, Any]) -> Any:
        if args or kwargs:
            raise RenderError(f"block '{self.name}' takes no arguments")
        return await self.context.evaluator.render_block(self.name, self.context.root_frame)

    def __repr__(self) -> str:
        return f"<ExportedBlock {self.name}>"


class TemplateModule(Mapping):
    """
    Пространство имён импортированного шаблона ({% import "x" as m %}).

    Члены доступны и как m.name, и как m["name"].
    """

    def __init__(self, name: Optional[str], exports: Dict[str, Any]):
        self._name = name
        self._exports = dict(exports)

    def __getitem__(self, key: str) -> Any:
        return self._exports[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._exports)

    def __len__(self) -> int:
        return len(self._exports)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._exports[name]
        except KeyError:
            return Undefined(f"{self._name}.{name}")

    def __repr__(self) -> str:
        return f"<TemplateModule {self._name!r} exports={sorted(self._exports)!r}>"


# ---- Приведение значений ----

def is_truthy(value: Any) -> bool:
    """Истинность: пустые коллекции, none, 0, false и undefined ложны."""
    return bool(value)


def to_text(value: Any) -> str:
    """
    Преобразует значение в текст для вывода.

    none/undefined → "", булевы → true/false, целочисленные float → без
    дробной части, списки и кортежи → элементы через запятую.
    """
    if value is None or isinstance(value, Undefined):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(to_text(item) for item in value)
    return str(value)


def get_member(obj: Any, key: Any) -> Any:
    """
    Доступ к члену: obj.key и obj[key] обрабатываются одинаково.

    Ключ словаря, затем атрибут; для последовательностей — целый индекс.
    Промах даёт Undefined, а не исключение.
    """
    hint = key if isinstance(key, str) else repr(key)
    if obj is None or isinstance(obj, Undefined):
        return Undefined(hint)

    # Служебные атрибуты Python из шаблона недоступны
    if isinstance(key, str) and key.startswith("__"):
        return Undefined(hint)

    # Пространство имён импорта отдаёт только экспорты, без методов Mapping
    if isinstance(obj, TemplateModule):
        try:
            return obj[key]
        except (KeyError, TypeError):
            return Undefined(hint)

    if isinstance(obj, Mapping):
        try:
            return obj[key]
        except (KeyError, TypeError):
            pass
    elif isinstance(obj, Sequence) and not isinstance(key, str):
        try:
            return obj[key]
        except (IndexError, TypeError):
            return Undefined(hint)

    if isinstance(key, str):
        try:
            return getattr(obj, key)
        except AttributeError:
            return Undefined(hint)

    try:
        return obj[key]
    except (LookupError, TypeError):
        return Undefined(hint)


def run_sync(coro: Any) -> Any:
    """
    Выполняет корутину рендеринга синхронно.

    Если корутина действительно приостанавливается (асинхронный фильтр
    или загрузчик), она закрывается и выбрасывается RenderError.
    """
    try:
        coro.send(None)
    except StopIteration as stop:
        return stop.value
    coro.close()
    raise RenderError("Template awaited an asynchronous call, use render_async()")


__all__ = [
    "MISSING",
    "Undefined",
    "Frame",
    "LoopInfo",
    "TemplateCallable",
    "Macro",
    "ExportedBlock",
    "TemplateModule",
    "is_truthy",
    "to_text",
    "get_member",
    "run_sync",
]

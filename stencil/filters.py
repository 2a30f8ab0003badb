"""
Встроенные фильтры.

Фильтр — обычная функция, получающая уже вычисленное значение первым
аргументом. Фильтр может вернуть awaitable: вычислитель его дождётся.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterable, List, Optional

from markupsafe import Markup, escape as _escape

from .errors import RenderError
from .runtime import Undefined, to_text


def do_abs(value: Any) -> Any:
    return abs(value)


def do_batch(value: Iterable[Any], linecount: int, fill_with: Any = None) -> List[List[Any]]:
    """Разбивает последовательность на группы по linecount элементов."""
    if linecount <= 0:
        raise RenderError("batch size must be positive")
    result: List[List[Any]] = []
    current: List[Any] = []
    for item in value:
        current.append(item)
        if len(current) == linecount:
            result.append(current)
            current = []
    if current:
        if fill_with is not None:
            current.extend([fill_with] * (linecount - len(current)))
        result.append(current)
    return result


def do_capitalize(value: Any) -> str:
    return to_text(value).capitalize()


def do_default(value: Any, default_value: Any = "", boolean: bool = False) -> Any:
    """Подставляет значение по умолчанию для undefined (или для любого ложного при boolean=True)."""
    if isinstance(value, Undefined) or (boolean and not value):
        return default_value
    return value


def do_escape(value: Any) -> Markup:
    if value is None or isinstance(value, Undefined):
        return Markup("")
    return _escape(value if hasattr(value, "__html__") else to_text(value))


def do_first(value: Iterable[Any]) -> Any:
    for item in value:
        return item
    return Undefined("first")


def do_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def do_int(value: Any, default: int = 0, base: int = 10) -> int:
    try:
        if isinstance(value, str):
            return int(value, base)
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return default


def do_join(value: Iterable[Any], d: str = "", attribute: Optional[str] = None) -> str:
    if attribute is not None:
        value = [_get_attribute(item, attribute) for item in value]
    return to_text(d).join(to_text(item) for item in value)


def do_last(value: Iterable[Any]) -> Any:
    items = list(value)
    if not items:
        return Undefined("last")
    return items[-1]


def do_length(value: Any) -> int:
    return len(value)


def do_list(value: Any) -> List[Any]:
    if isinstance(value, str):
        return list(value)
    if isinstance(value, Mapping):
        return list(value.keys())
    return list(value)


def do_lower(value: Any) -> str:
    return to_text(value).lower()


def do_upper(value: Any) -> str:
    return to_text(value).upper()


def do_replace(value: Any, old: str, new: str, count: Optional[int] = None) -> str:
    text = to_text(value)
    if count is None:
        return text.replace(old, new)
    return text.replace(old, new, count)


def do_reverse(value: Any) -> Any:
    if isinstance(value, str):
        return value[::-1]
    return list(reversed(list(value)))


def do_round(value: Any, precision: int = 0, method: str = "common") -> float:
    """
    Округление: common — половины от нуля, ceil — вверх, floor — вниз.
    """
    if method not in ("common", "ceil", "floor"):
        raise RenderError("method must be common, ceil or floor")
    factor = 10 ** precision
    if method == "ceil":
        return math.ceil(value * factor) / factor
    if method == "floor":
        return math.floor(value * factor) / factor
    scaled = abs(value) * factor
    rounded = math.floor(scaled + 0.5) / factor
    return math.copysign(rounded, value)


def do_safe(value: Any) -> Markup:
    return Markup(to_text(value))


def do_sort(value: Iterable[Any], reverse: bool = False, case_sensitive: bool = False,
            attribute: Optional[str] = None) -> List[Any]:
    def sort_key(item: Any) -> Any:
        if attribute is not None:
            item = _get_attribute(item, attribute)
        if not case_sensitive and isinstance(item, str):
            return item.lower()
        return item

    return sorted(value, key=sort_key, reverse=reverse)


def do_string(value: Any) -> str:
    return to_text(value)


def do_sum(value: Iterable[Any], attribute: Optional[str] = None, start: Any = 0) -> Any:
    if attribute is not None:
        value = [_get_attribute(item, attribute) for item in value]
    return sum(value, start)


def do_title(value: Any) -> str:
    return " ".join(word[:1].upper() + word[1:].lower() for word in to_text(value).split(" "))


def do_trim(value: Any) -> str:
    return to_text(value).strip()


def do_truncate(value: Any, length: int = 255, killwords: bool = False, end: str = "...") -> str:
    """Обрезает текст до length символов; без killwords режет по границе слова."""
    text = to_text(value)
    if len(text) <= length:
        return text
    if killwords:
        return text[:max(length - len(end), 0)] + end
    cut = text[:max(length - len(end), 0)].rsplit(" ", 1)[0]
    return cut + end


def _get_attribute(item: Any, attribute: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(attribute)
    return getattr(item, attribute, None)


DEFAULT_FILTERS: Dict[str, Callable[..., Any]] = {
    "abs": do_abs,
    "batch": do_batch,
    "capitalize": do_capitalize,
    "count": do_length,
    "d": do_default,
    "default": do_default,
    "e": do_escape,
    "escape": do_escape,
    "first": do_first,
    "float": do_float,
    "int": do_int,
    "join": do_join,
    "last": do_last,
    "length": do_length,
    "list": do_list,
    "lower": do_lower,
    "replace": do_replace,
    "reverse": do_reverse,
    "round": do_round,
    "safe": do_safe,
    "sort": do_sort,
    "string": do_string,
    "sum": do_sum,
    "title": do_title,
    "trim": do_trim,
    "truncate": do_truncate,
    "upper": do_upper,
}


__all__ = ["DEFAULT_FILTERS"]

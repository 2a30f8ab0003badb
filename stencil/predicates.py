"""
Встроенные проверки для выражений вида `x is name(args)`.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Callable, Dict

from .runtime import TemplateCallable, Undefined


def test_defined(value: Any) -> bool:
    return not isinstance(value, Undefined)


def test_undefined(value: Any) -> bool:
    return isinstance(value, Undefined)


def test_none(value: Any) -> bool:
    return value is None


def test_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def test_string(value: Any) -> bool:
    return isinstance(value, str)


def test_mapping(value: Any) -> bool:
    return isinstance(value, Mapping)


def test_sequence(value: Any) -> bool:
    return isinstance(value, Sequence)


def test_iterable(value: Any) -> bool:
    return isinstance(value, Iterable) and not isinstance(value, Undefined)


def test_callable(value: Any) -> bool:
    return isinstance(value, TemplateCallable) or (callable(value) and not isinstance(value, Undefined))


def test_odd(value: int) -> bool:
    return value % 2 == 1


def test_even(value: int) -> bool:
    return value % 2 == 0


def test_divisibleby(value: int, num: int) -> bool:
    return value % num == 0


def test_equalto(value: Any, other: Any) -> bool:
    return value == other


def test_sameas(value: Any, other: Any) -> bool:
    return value is other


def test_lower(value: Any) -> bool:
    return str(value).islower()


def test_upper(value: Any) -> bool:
    return str(value).isupper()


DEFAULT_TESTS: Dict[str, Callable[..., bool]] = {
    "callable": test_callable,
    "defined": test_defined,
    "divisibleby": test_divisibleby,
    "eq": test_equalto,
    "equalto": test_equalto,
    "even": test_even,
    "iterable": test_iterable,
    "lower": test_lower,
    "mapping": test_mapping,
    "none": test_none,
    "number": test_number,
    "odd": test_odd,
    "sameas": test_sameas,
    "sequence": test_sequence,
    "string": test_string,
    "undefined": test_undefined,
    "upper": test_upper,
}


__all__ = ["DEFAULT_TESTS"]

"""
Утилиты для создания файлов и директорий в тестах.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping


def write(p: Path, text: str) -> Path:
    """
    Записывает текст в файл, создавая родительские директории при необходимости.

    Args:
        p: Путь к файлу
        text: Содержимое для записи

    Returns:
        Путь к созданному файлу
    """
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    return p


def write_templates(root: Path, templates: Mapping[str, str]) -> Path:
    """
    Раскладывает шаблоны по файлам внутри root.

    Ключи — имена шаблонов через '/', значения — исходники.
    """
    for name, source in templates.items():
        write(root.joinpath(*name.split("/")), source)
    return root

from __future__ import annotations

import enum
import json
from pathlib import Path
from typing import Any


def _default(obj: Any) -> Any:
    if isinstance(obj, enum.Enum):
        return obj.name
    if isinstance(obj, Path):
        return obj.as_posix()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def dumps(obj: Any) -> str:
    """
    Минимальный JSON-дампер для ответов CLI.
    — без prettify; ensure_ascii=False; enum пишется по имени.
    """
    return json.dumps(obj, ensure_ascii=False, default=_default)

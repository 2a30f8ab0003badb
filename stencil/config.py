from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .environment import Environment
from .errors import ConfigError
from .loaders import FileSystemLoader

SCHEMA_VERSION = 1
DEFAULT_CFG_FILE = "stencil.yaml"

# --------------------------------------------------------------------------- #
# YAML loader
# --------------------------------------------------------------------------- #
_yaml = YAML(typ="safe")


@dataclass
class StencilConfig:
    """Настройки проекта шаблонов (stencil.yaml)."""
    schema_version: int = SCHEMA_VERSION
    # каталоги поиска шаблонов относительно корня проекта
    search_paths: List[str] = field(default_factory=lambda: ["templates"])
    encoding: str = "utf-8"
    # gitignore-паттерны, скрывающие файлы из `stencil list`
    exclude: List[str] = field(default_factory=list)
    autoescape: bool = False
    auto_reload: bool = True
    globals: Dict[str, Any] = field(default_factory=dict)


# --------------------------------------------------------------------------- #
# HELPERS
# --------------------------------------------------------------------------- #
_FIELD_KINDS: Dict[str, type] = {
    "schema_version": int,
    "search_paths": list,
    "encoding": str,
    "exclude": list,
    "autoescape": bool,
    "auto_reload": bool,
    "globals": dict,
}


def _build_config(raw: Dict[str, Any]) -> StencilConfig:
    """Строгая сборка StencilConfig: лишние ключи и неверные типы — ошибка."""
    allowed = {f.name for f in fields(StencilConfig)}
    extras = set(raw.keys()) - allowed
    if extras:
        raise ConfigError(f"Unexpected keys in {DEFAULT_CFG_FILE}: {sorted(extras)!r}")

    kwargs: Dict[str, Any] = {}
    for f in fields(StencilConfig):
        if f.name not in raw:
            continue
        value = raw[f.name]
        kind = _FIELD_KINDS[f.name]
        # bool является подклассом int
        if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
            raise ConfigError(f"{f.name}: expected {kind.__name__}, got {type(value).__name__}")
        if kind is list:
            value = [str(item) for item in value]
        kwargs[f.name] = value
    return StencilConfig(**kwargs)


# --------------------------------------------------------------------------- #
# PUBLIC API
# --------------------------------------------------------------------------- #
def load_config(path: Path) -> StencilConfig:
    """
    Загрузить stencil.yaml.

    • Если файла нет — вернуть дефолты.
    • Если schema_version отсутствует — считаем, что это актуальная версия.
    • Проверяем несовместимость схем и лишние ключи.
    """
    if not path.exists():
        return StencilConfig()

    try:
        with path.open(encoding="utf-8") as f:
            raw = _yaml.load(f) or {}
    except YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a mapping at top level")

    if raw.get("schema_version", SCHEMA_VERSION) != SCHEMA_VERSION:
        raise ConfigError(
            f"Unsupported config schema {raw.get('schema_version')} "
            f"(tool expects {SCHEMA_VERSION})"
        )

    return _build_config(raw)


def create_environment(config: Optional[StencilConfig] = None, root: Optional[Path] = None) -> Environment:
    """Создаёт окружение с FileSystemLoader по каталогам из конфигурации."""
    cfg = config if config is not None else StencilConfig()
    base = root if root is not None else Path.cwd()
    loader = FileSystemLoader(
        [base / p for p in cfg.search_paths],
        encoding=cfg.encoding,
        exclude=cfg.exclude,
    )
    return Environment(
        loader,
        globals=cfg.globals,
        autoescape=cfg.autoescape,
        auto_reload=cfg.auto_reload,
    )


def config_to_dict(config: StencilConfig) -> Dict[str, Any]:
    return dataclasses.asdict(config)


__all__ = ["StencilConfig", "load_config", "create_environment", "config_to_dict", "SCHEMA_VERSION", "DEFAULT_CFG_FILE"]

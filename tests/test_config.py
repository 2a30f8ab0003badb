from pathlib import Path
import pytest

from stencil.config import (
    SCHEMA_VERSION,
    StencilConfig,
    config_to_dict,
    create_environment,
    load_config,
)
from stencil.errors import ConfigError
from tests.infrastructure import write, write_templates


# ========= Загрузка stencil.yaml =========

def test_load_config_missing_gives_defaults(tmp_path: Path):
    """Отсутствие файла конфигурации не ошибка, а настройки по умолчанию."""
    cfg = load_config(tmp_path / "stencil.yaml")
    assert cfg == StencilConfig()
    assert cfg.search_paths == ["templates"]
    assert cfg.schema_version == SCHEMA_VERSION


def test_load_config_values(tmp_path: Path):
    """Значения из stencil.yaml попадают в StencilConfig."""
    path = write(tmp_path / "stencil.yaml", (
        "schema_version: 1\n"
        "search_paths: [views, shared]\n"
        "autoescape: true\n"
        "exclude:\n"
        "  - '*.bak'\n"
        "globals:\n"
        "  site: Example\n"
    ))
    cfg = load_config(path)

    assert cfg.search_paths == ["views", "shared"]
    assert cfg.autoescape is True
    assert cfg.auto_reload is True
    assert cfg.exclude == ["*.bak"]
    assert cfg.globals == {"site": "Example"}


def test_empty_file_gives_defaults(tmp_path: Path):
    """Пустой файл эквивалентен настройкам по умолчанию."""
    path = write(tmp_path / "stencil.yaml", "")
    assert load_config(path) == StencilConfig()


def test_unknown_keys_are_rejected(tmp_path: Path):
    """Лишние ключи: ConfigError."""
    path = write(tmp_path / "stencil.yaml", "search_paths: [a]\nextra: 1\n")
    with pytest.raises(ConfigError, match="Unexpected keys in stencil.yaml: \\['extra'\\]"):
        load_config(path)


def test_schema_mismatch(tmp_path: Path):
    """Неподдерживаемая версия схемы: ConfigError."""
    path = write(tmp_path / "stencil.yaml", "schema_version: 2\n")
    with pytest.raises(ConfigError, match="Unsupported config schema 2"):
        load_config(path)


@pytest.mark.parametrize("text, message", [
    ("autoescape: 'yes'\n", "autoescape: expected bool, got str"),
    ("search_paths: templates\n", "search_paths: expected list, got str"),
    ("schema_version: true\n", "schema_version: expected int, got bool"),
    ("globals: [1]\n", "globals: expected dict, got list"),
])
def test_wrong_types(tmp_path: Path, text: str, message: str):
    """Неверный тип поля: ConfigError с именем поля."""
    path = write(tmp_path / "stencil.yaml", text)
    with pytest.raises(ConfigError, match=message):
        load_config(path)


def test_invalid_yaml(tmp_path: Path):
    """Синтаксическая ошибка YAML: ConfigError."""
    path = write(tmp_path / "stencil.yaml", "search_paths: [unclosed\n")
    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_config(path)


def test_top_level_must_be_mapping(tmp_path: Path):
    """Верхний уровень конфигурации должен быть словарём."""
    path = write(tmp_path / "stencil.yaml", "- a\n- b\n")
    with pytest.raises(ConfigError, match="expected a mapping"):
        load_config(path)


# ========= Окружение из конфигурации =========

def test_create_environment(tmp_path: Path):
    """Окружение из конфигурации: загрузчик, глобальные и автоэкранирование."""
    write_templates(tmp_path / "views", {"page.html": "{{ site }} {{ v }}"})
    cfg = StencilConfig(search_paths=["views"], autoescape=True, globals={"site": "S"})
    env = create_environment(cfg, tmp_path)

    assert env.autoescape is True
    assert env.render("page.html", v="<") == "S &lt;"


def test_create_environment_exclude(tmp_path: Path):
    """exclude из конфигурации скрывает шаблоны в list_templates."""
    write_templates(tmp_path / "templates", {"a.html": "", "old.bak": ""})
    env = create_environment(StencilConfig(exclude=["*.bak"]), tmp_path)
    assert env.list_templates() == ["a.html"]


def test_config_to_dict():
    """Конфигурация сериализуется в словарь."""
    data = config_to_dict(StencilConfig())
    assert data["search_paths"] == ["templates"]
    assert data["autoescape"] is False

import pytest

from stencil import DictLoader, Environment

# Шаблоны, на которые ссылаются тесты наследования, включения и импорта
FIXTURE_TEMPLATES = {
    "base.html": "Foo{% block block1 %}Bar{% endblock %}{% block block2 %}Baz{% endblock %}Fizzle",
    "base2.html": "{% for item in [1,2] %}{% block item %}{{ item }}{% endblock %}{% endfor %}",
    "import.html": "{% macro foo() %}Here's a macro{% endmacro %}{% set bar = \"baz\" %}",
    "include.html": "FooInclude {{ name }}",
    "item.html": "showing {{ item }}",
    "set.html": "{% set foo = \"baz\" %}",
}


@pytest.fixture
def env() -> Environment:
    """Окружение со словарным загрузчиком фикстурных шаблонов."""
    return Environment(DictLoader(dict(FIXTURE_TEMPLATES)))


@pytest.fixture
def render(env: Environment):
    """Рендерит исходник шаблона в окружении env."""
    def _render(source: str, data=None, **kwargs) -> str:
        return env.from_string(source).render(data, **kwargs)
    return _render

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .config import DEFAULT_CFG_FILE, create_environment, load_config
from .environment import Environment
from .errors import ConfigError, StencilUserError
from .jsonic import dumps as jdumps
from .lexer import tokenize_template
from .version import tool_version

_yaml = YAML(typ="safe")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="stencil",
        description="Stencil template engine",
        add_help=True,
    )
    p.add_argument("-v", "--version", action="version", version=f"%(prog)s {tool_version()}")
    p.add_argument("--verbose", action="store_true", help="отладочный вывод в stderr")
    p.add_argument(
        "--config",
        metavar="PATH",
        help=f"путь к конфигурации (по умолчанию ./{DEFAULT_CFG_FILE})",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # Общие аргументы для команд, работающих с одним шаблоном
    def add_template_arg(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("name", help="имя шаблона относительно search_paths")
        sp.add_argument(
            "--string",
            action="store_true",
            help="трактовать NAME как исходный текст шаблона, а не имя",
        )

    sp_render = sub.add_parser("render", help="Отрендерить шаблон в stdout")
    add_template_arg(sp_render)
    sp_render.add_argument(
        "--data",
        metavar="FILE",
        help="YAML или JSON файл с данными рендеринга",
    )
    sp_render.add_argument(
        "--set",
        action="append",
        metavar="KEY=VALUE",
        help="переменная рендеринга (можно указать несколько, перекрывает --data)",
    )

    sp_tokens = sub.add_parser("tokens", help="Токены шаблона (JSON)")
    add_template_arg(sp_tokens)

    sp_check = sub.add_parser("check", help="Проверка синтаксиса и сводка по шаблону (JSON)")
    add_template_arg(sp_check)

    sub.add_parser("list", help="Список доступных шаблонов (JSON)")

    return p


def _setup_logging(verbose: bool) -> None:
    if os.environ.get("STENCIL_DEBUG") == "1":
        verbose = True
    logger = logging.getLogger("stencil")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _environment(ns: argparse.Namespace) -> Environment:
    root = Path.cwd()
    cfg_path = Path(ns.config) if ns.config else root / DEFAULT_CFG_FILE
    config = load_config(cfg_path)
    return create_environment(config, cfg_path.parent if ns.config else root)


def _read_source(env: Environment, ns: argparse.Namespace) -> str:
    if ns.string:
        return ns.name
    return env.loader.get_source(env, ns.name).source


def _load_data(data_file: Optional[str], assignments: Optional[List[str]]) -> Dict[str, Any]:
    """
    Собирает данные рендеринга из файла и пар KEY=VALUE.

    Значения --set разбираются как YAML-скаляры (числа, true/false),
    прочее остаётся строкой.
    """
    data: Dict[str, Any] = {}
    if data_file:
        path = Path(data_file)
        if not path.exists():
            raise ConfigError(f"Data file not found: {path}")
        try:
            with path.open(encoding="utf-8") as f:
                loaded = _yaml.load(f) or {}
        except YAMLError as e:
            raise ConfigError(f"Invalid data file {path}: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigError(f"Data file {path} must contain a mapping")
        data.update(loaded)

    for item in assignments or []:
        if "=" not in item:
            raise ConfigError(f"Invalid --set value '{item}'. Expected 'KEY=VALUE'")
        key, raw = item.split("=", 1)
        try:
            value = _yaml.load(raw) if raw else ""
        except YAMLError:
            value = raw
        data[key.strip()] = value if value is not None else raw
    return data


def main(argv: list[str] | None = None) -> int:
    ns = _build_parser().parse_args(argv)
    _setup_logging(ns.verbose)

    try:
        env = _environment(ns)

        if ns.cmd == "render":
            data = _load_data(ns.data, ns.set)
            template = env.from_string(ns.name) if ns.string else env.get_template(ns.name)
            sys.stdout.write(template.render(data))
            return 0

        if ns.cmd == "tokens":
            source = _read_source(env, ns)
            tokens = [
                {"type": t.type, "value": t.value, "line": t.line, "column": t.column}
                for t in tokenize_template(source)
            ]
            sys.stdout.write(jdumps(tokens))
            return 0

        if ns.cmd == "check":
            template = env.from_string(ns.name) if ns.string else env.get_template(ns.name)
            summary = {
                "name": template.name,
                "blocks": sorted(template.blocks),
                "extends": template.parent_expr is not None,
            }
            sys.stdout.write(jdumps(summary))
            return 0

        if ns.cmd == "list":
            sys.stdout.write(jdumps({"templates": env.list_templates()}))
            return 0

    except StencilUserError as e:
        sys.stderr.write(str(e).rstrip() + "\n")
        return 2

    return 2


if __name__ == "__main__":
    raise SystemExit(main())

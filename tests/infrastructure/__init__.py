"""
Unified test infrastructure for stencil.

Modules:
- file_utils: Utilities for creating template projects on disk
- cli_utils: Utilities for running the stencil CLI
"""

from .file_utils import write, write_templates
from .cli_utils import run_cli, jload

__all__ = [
    "write",
    "write_templates",
    "run_cli",
    "jload",
]

"""CLI do Ponte.

Registra todos os comandos no grupo principal.
"""

from ponte.cli.build import build
from ponte.cli.main import cli
from ponte.cli.replay import replay

__all__ = [
    "build",
    "cli",
    "replay",
]

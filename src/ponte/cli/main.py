"""Grupo principal de comandos CLI do Ponte."""

from __future__ import annotations

import sys

import click

import ponte
from ponte.config.settings import config_from_env, load_config
from ponte.exceptions import ConfigError
from ponte.logging import configure_logging, reset_logging


@click.group()
@click.version_option(version=ponte.__version__, prog_name="ponte")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Arquivo YAML de configuracao. Sem ele, usa variaveis PONTE_*.",
)
@click.option(
    "--log-format",
    type=click.Choice(["console", "json"]),
    default="console",
    show_default=True,
    help="Formato de log.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default="WARNING",
    show_default=True,
    help="Nivel de log.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_format: str, log_level: str) -> None:
    """Ponte — ferramentas de desenvolvimento para o plugin AudioBridge."""
    # Modulos ja configuraram logging com defaults ao importar
    reset_logging()
    configure_logging(log_format=log_format, level=log_level)
    try:
        ctx.obj = load_config(config_path) if config_path else config_from_env()
    except ConfigError as exc:
        click.echo(f"Erro: {exc}", err=True)
        sys.exit(1)

"""Comando `ponte build` — monta o body de um request sem envia-lo."""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING, Any

import click

from ponte.audiobridge.requests import build_request
from ponte.cli.main import cli
from ponte.exceptions import InvalidRequestError

if TYPE_CHECKING:
    from ponte.config.settings import BridgeConfig


def parse_param(raw: str) -> tuple[str, Any]:
    """Converte ``key=value``. O valor e interpretado como JSON quando possivel."""
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise click.BadParameter(f"esperado KEY=VALUE, recebido '{raw}'", param_hint="--param")
    try:
        return key, json.loads(value)
    except json.JSONDecodeError:
        return key, value


@cli.command()
@click.argument("operation")
@click.option(
    "--param",
    "-p",
    "params",
    multiple=True,
    metavar="KEY=VALUE",
    help="Parametro da operacao (repetivel). Ex: -p room=1234 -p muted=true",
)
@click.pass_obj
def build(config: BridgeConfig, operation: str, params: tuple[str, ...]) -> None:
    """Imprime o body do request OPERATION e o evento esperado na resposta."""
    parsed = dict(parse_param(raw) for raw in params)
    if operation == "join" and "feed" not in parsed:
        parsed["feed"] = config.default_feed

    try:
        request = build_request(operation, parsed)
    except InvalidRequestError as exc:
        click.echo(f"Erro: {exc}", err=True)
        sys.exit(1)

    output = {"body": request.body, "expected": request.expected.value}
    click.echo(json.dumps(output, indent=2, ensure_ascii=False))

"""Comando `ponte replay` — reprocessa mensagens gravadas pelo dispatcher.

Cada linha do arquivo e um envelope JSON recebido do servidor. O estado do
handle evolui ao longo do replay exatamente como evoluiria em producao; a
ownership de transacoes e simulada com ``--owned``.
"""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING, Any, TextIO

import click

from ponte.audiobridge.dispatcher import Dispatched, dispatch
from ponte.audiobridge.state import UNBOUND
from ponte.cli.main import cli

if TYPE_CHECKING:
    from ponte.audiobridge.state import HandleState
    from ponte.config.settings import BridgeConfig


class FixedOwnership:
    """Ownership simulada: um conjunto fixo de transacoes."""

    def __init__(self, transactions: tuple[str, ...]) -> None:
        self._transactions = frozenset(transactions)

    def owns(self, transaction_id: str) -> bool:
        return transaction_id in self._transactions


def state_summary(state: HandleState) -> dict[str, Any]:
    return {"phase": state.phase.value, "feed": state.feed, "room": state.room}


@cli.command()
@click.argument("source", type=click.File("r"), default="-")
@click.option(
    "--owned",
    multiple=True,
    metavar="TXN",
    help="Transacao tratada como pertencente ao handle (repetivel).",
)
@click.pass_obj
def replay(config: BridgeConfig, source: TextIO, owned: tuple[str, ...]) -> None:
    """Reprocessa mensagens JSON (uma por linha) de SOURCE ('-' para stdin).

    Imprime uma linha JSON por evento normalizado e, ao final, o estado do handle.
    """
    ownership = FixedOwnership(owned)
    state = UNBOUND

    for lineno, line in enumerate(source, start=1):
        line = line.strip()
        if not line:
            continue

        try:
            message = json.loads(line)
        except json.JSONDecodeError as exc:
            click.echo(f"Erro: linha {lineno} nao e JSON valido: {exc.msg}", err=True)
            sys.exit(1)

        if not isinstance(message, dict):
            click.echo(f"Erro: linha {lineno} nao e um objeto JSON", err=True)
            sys.exit(1)

        result = dispatch(message, state, ownership, domain_tag=config.domain_tag)
        if not result:
            click.echo(f"linha {lineno}: ignorada (fora do dominio)", err=True)
            continue
        if not isinstance(result, Dispatched):
            click.echo(f"linha {lineno}: nao classificada (tag '{result.tag}')", err=True)
            continue

        state = result.state
        output = result.event.to_dict()
        output["delivery"] = result.delivery.kind.value
        click.echo(json.dumps(output, ensure_ascii=False))

    click.echo(json.dumps({"state": state_summary(state)}, ensure_ascii=False))

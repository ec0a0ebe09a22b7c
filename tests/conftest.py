"""Fixtures compartilhadas para todos os testes."""

from __future__ import annotations

from typing import Any

import pytest

from ponte.logging import reset_logging

PLUGIN = "janus.plugin.audiobridge"


def make_wire(
    data: dict[str, Any],
    *,
    transaction: str | None = None,
    jsep: dict[str, Any] | None = None,
    sender: int = 777,
) -> dict[str, Any]:
    """Envelope Janus de uma mensagem do plugin."""
    message: dict[str, Any] = {
        "janus": "event",
        "sender": sender,
        "plugindata": {"plugin": PLUGIN, "data": data},
    }
    if transaction is not None:
        message["transaction"] = transaction
    if jsep is not None:
        message["jsep"] = jsep
    return message


class FakeOwnership:
    """Ownership com conjunto fixo de transacoes."""

    def __init__(self, *transactions: str) -> None:
        self.transactions = set(transactions)
        self.queries: list[str] = []

    def owns(self, transaction_id: str) -> bool:
        self.queries.append(transaction_id)
        return transaction_id in self.transactions


@pytest.fixture
def wire():
    """Factory de envelopes Janus (``wire(data, transaction=..., jsep=...)``)."""
    return make_wire


@pytest.fixture
def owner_of():
    """Factory de ownership fake (``owner_of("txn-1", "txn-2")``)."""
    return FakeOwnership


@pytest.fixture
def no_ownership() -> FakeOwnership:
    return FakeOwnership()


@pytest.fixture
def offer_jsep() -> dict[str, Any]:
    return {"type": "offer", "sdp": "v=0\r\no=- 1 1 IN IP4 127.0.0.1\r\n"}


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    reset_logging()

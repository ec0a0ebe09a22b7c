"""TransactionRegistry — correlaciona requests enviados com suas respostas.

Cada request enviado ao servidor recebe um identificador de transacao e um
future. A resposta (ou o erro) que chega pelo transporte com o mesmo
identificador completa o future exatamente uma vez.

Responsabilidades:
- Gerar identificadores aleatorios (hex).
- Registrar transacoes pendentes com um dono (o handle que enviou).
- Responder ``owns()`` para o dispatcher decidir entre resolver e broadcast.
- Resolver/rejeitar no maximo uma vez; resolucoes repetidas sao no-op.
- Sem timeouts: abandonar uma transacao e decisao do caller.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ponte.exceptions import DuplicateTransactionError
from ponte.logging import get_logger
from ponte.metrics import transactions_completed_total

if TYPE_CHECKING:
    from ponte.config.settings import BridgeConfig

logger = get_logger("transactions")

_DEFAULT_ID_BYTES = 16


@dataclass(slots=True)
class _PendingTransaction:
    """Tracking info de uma transacao pendente."""

    transaction_id: str
    owner: Any
    future: asyncio.Future[Any]


class _OwnerView:
    """Visao de ownership de um unico dono (passada ao dispatcher)."""

    __slots__ = ("_owner", "_registry")

    def __init__(self, registry: TransactionRegistry, owner: Any) -> None:
        self._registry = registry
        self._owner = owner

    def owns(self, transaction_id: str) -> bool:
        return self._registry.owns(self._owner, transaction_id)


class TransactionRegistry:
    """Registro de transacoes pendentes.

    Thread-safe via event loop unico (asyncio single-threaded).

    Fluxo:
    1. ``register()`` antes de enviar o request.
    2. Transporte entrega a resposta ao handle; o dispatcher consulta ``owns()``.
    3. ``resolve()`` ou ``reject()`` completa o future e remove a entrada.
    4. ``abandon()`` remove uma transacao que o caller desistiu de esperar.
    """

    def __init__(self, id_bytes: int = _DEFAULT_ID_BYTES) -> None:
        self._id_bytes = id_bytes
        self._pending: dict[str, _PendingTransaction] = {}

    @classmethod
    def from_config(cls, config: BridgeConfig) -> TransactionRegistry:
        return cls(id_bytes=config.transaction_id_bytes)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def new_transaction_id(self) -> str:
        """Identificador aleatorio, ``2 * id_bytes`` caracteres hex."""
        while True:
            transaction_id = os.urandom(self._id_bytes).hex()
            if transaction_id not in self._pending:
                return transaction_id

    def register(
        self,
        owner: Any,
        transaction_id: str | None = None,
    ) -> tuple[str, asyncio.Future[Any]]:
        """Registra uma transacao pendente de ``owner``.

        Deve ser chamado com event loop rodando.

        Args:
            owner: Dono da transacao (tipicamente o handle).
            transaction_id: Identificador explicito. Se None, gera um.

        Returns:
            Tupla (transaction_id, future).

        Raises:
            DuplicateTransactionError: Identificador ja pendente.
        """
        if transaction_id is None:
            transaction_id = self.new_transaction_id()
        elif transaction_id in self._pending:
            raise DuplicateTransactionError(transaction_id)

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[transaction_id] = _PendingTransaction(
            transaction_id=transaction_id,
            owner=owner,
            future=future,
        )
        logger.debug("transaction_registered", transaction=transaction_id)
        return transaction_id, future

    def owns(self, owner: Any, transaction_id: str) -> bool:
        """True se a transacao esta pendente e pertence a ``owner``."""
        entry = self._pending.get(transaction_id)
        return entry is not None and entry.owner is owner

    def ownership(self, owner: Any) -> _OwnerView:
        """Capacidade ``owns(transaction_id)`` restrita a ``owner``."""
        return _OwnerView(self, owner)

    def resolve(self, transaction_id: str, value: Any) -> bool:
        """Completa a transacao com sucesso.

        Returns:
            True se o future foi completado; False se a transacao e
            desconhecida, ja foi completada ou o caller cancelou o future.
        """
        entry = self._take(transaction_id)
        if entry is None:
            return False
        entry.future.set_result(value)
        self._completed("resolved")
        logger.debug("transaction_resolved", transaction=transaction_id)
        return True

    def reject(self, transaction_id: str, error: BaseException) -> bool:
        """Completa a transacao com erro. Mesmas regras de ``resolve()``."""
        entry = self._take(transaction_id)
        if entry is None:
            return False
        entry.future.set_exception(error)
        self._completed("rejected")
        logger.info("transaction_rejected", transaction=transaction_id, error=str(error))
        return True

    def abandon(self, transaction_id: str) -> bool:
        """Remove a transacao sem resposta e cancela o future se ainda pendente."""
        entry = self._pending.pop(transaction_id, None)
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.cancel()
        self._completed("abandoned")
        logger.debug("transaction_abandoned", transaction=transaction_id)
        return True

    def _take(self, transaction_id: str) -> _PendingTransaction | None:
        entry = self._pending.pop(transaction_id, None)
        if entry is None:
            return None
        if entry.future.done():
            # Caller cancelou enquanto aguardava
            return None
        return entry

    @staticmethod
    def _completed(outcome: str) -> None:
        if transactions_completed_total is not None:
            transactions_completed_total.labels(outcome=outcome).inc()

"""Exceptions tipadas do Ponte.

Hierarquia:
    PonteError (base)
    +-- ConfigError
    |   +-- ConfigParseError
    |   +-- ConfigValidationError
    +-- ProtocolError
    +-- UnexpectedResponseError
    +-- InvalidStateError
    +-- TransactionError
    |   +-- DuplicateTransactionError
    +-- HandleDetachedError
    +-- InvalidRequestError
"""

from __future__ import annotations

from typing import Any


class PonteError(Exception):
    """Base para todas as exceptions do Ponte."""


# --- Configuracao ---


class ConfigError(PonteError):
    """Erro de configuracao do adapter."""


class ConfigParseError(ConfigError):
    """Falha ao parsear arquivo de configuracao YAML."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Falha ao parsear configuracao '{path}': {reason}")


class ConfigValidationError(ConfigError):
    """Configuracao invalida (tipos errados, valores fora do intervalo)."""

    def __init__(self, source: str, errors: list[str]) -> None:
        self.source = source
        self.errors = errors
        detail = "; ".join(errors)
        super().__init__(f"Configuracao '{source}' invalida: {detail}")


# --- Protocolo ---


class ProtocolError(PonteError):
    """Erro reportado pelo plugin remoto (error_code + error)."""

    def __init__(self, code: Any, reason: str) -> None:
        self.code = code
        self.reason = reason
        super().__init__(f"{code} {reason}")


class UnexpectedResponseError(PonteError):
    """Transacao resolvida com tipo de evento diferente do esperado pelo request."""

    def __init__(self, request: str, expected: str, received: str | None) -> None:
        self.request = request
        self.expected = expected
        self.received = received
        super().__init__(
            f"unexpected response to {request} request (esperado {expected}, recebeu {received})"
        )


# --- Estado do handle ---


class InvalidStateError(PonteError):
    """Estado do handle viola o invariante feed/room."""

    def __init__(self, feed: Any, room: Any) -> None:
        self.feed = feed
        self.room = room
        super().__init__(f"Estado invalido: feed={feed!r} room={room!r} (ambos ou nenhum)")


class HandleDetachedError(PonteError):
    """Operacao tentada em handle ja desanexado."""

    def __init__(self, handle_id: Any) -> None:
        self.handle_id = handle_id
        super().__init__(f"Handle '{handle_id}' ja foi desanexado")


# --- Transacoes ---


class TransactionError(PonteError):
    """Erro relacionado ao registro de transacoes."""


class DuplicateTransactionError(TransactionError):
    """Identificador de transacao ja registrado e pendente."""

    def __init__(self, transaction_id: str) -> None:
        self.transaction_id = transaction_id
        super().__init__(f"Transacao '{transaction_id}' ja esta pendente")


# --- Request ---


class InvalidRequestError(PonteError):
    """Parametro de request invalido."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)

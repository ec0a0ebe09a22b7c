"""Dispatcher de mensagens do plugin AudioBridge.

Recebe uma mensagem raw do transporte (envelope Janus) e o estado atual do
handle, e devolve um resultado tipado: fora do dominio, nao classificavel,
ou evento normalizado + proximo estado + instrucao de entrega.

O dispatcher e puro: nao muta a mensagem nem o estado, nao resolve
transacoes e nao emite eventos. Quem aplica a instrucao e o handle.

Fluxo:
    1. Dominio: ``plugindata.data[<domain_tag>]`` presente.
    2. Dono: a transacao do envelope pertence a este handle?
    3. Classificacao: tabela de decisao (``classifier.RULES``).
    4. Entrega: resolve/rejeita a transacao do dono, ou broadcast.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from ponte._types import DeliveryKind, EventKind
from ponte.audiobridge.classifier import classify
from ponte.audiobridge.models import NOT_HANDLED, NormalizedEvent
from ponte.exceptions import ProtocolError
from ponte.logging import get_logger

if TYPE_CHECKING:
    from ponte.audiobridge.models import ErrorData, _NotHandled
    from ponte.audiobridge.state import HandleState

logger = get_logger("audiobridge.dispatcher")

DEFAULT_DOMAIN_TAG = "audiobridge"


class TransactionOwnership(Protocol):
    """Capacidade consultada pelo dispatcher: esta transacao e minha?"""

    def owns(self, transaction_id: str) -> bool: ...


@dataclass(frozen=True, slots=True)
class AnnotatedMessage:
    """Mensagem raw anotada com o evento normalizado (valor de resolucao)."""

    raw: Mapping[str, Any]
    event: NormalizedEvent


# ---------------------------------------------------------------------------
# Instrucoes de entrega
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ResolveTransaction:
    """Resolver a transacao do handle com a mensagem anotada."""

    transaction: str
    message: AnnotatedMessage

    @property
    def kind(self) -> DeliveryKind:
        return DeliveryKind.RESOLVE


@dataclass(frozen=True, slots=True)
class RejectTransaction:
    """Rejeitar a transacao do handle com o erro do plugin."""

    transaction: str
    error: ProtocolError

    @property
    def kind(self) -> DeliveryKind:
        return DeliveryKind.REJECT


@dataclass(frozen=True, slots=True)
class Broadcast:
    """Emitir o evento aos subscribers (push ou transacao de outro dono)."""

    event: NormalizedEvent

    @property
    def kind(self) -> DeliveryKind:
        return DeliveryKind.BROADCAST


Delivery = ResolveTransaction | RejectTransaction | Broadcast


# ---------------------------------------------------------------------------
# Resultados
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Dispatched:
    """Mensagem classificada."""

    event: NormalizedEvent
    state: HandleState
    delivery: Delivery


@dataclass(frozen=True, slots=True)
class Unclassified:
    """Mensagem do dominio que nenhuma regra classificou (estado inalterado)."""

    tag: str
    state: HandleState


DispatchResult = Dispatched | Unclassified


def plugin_data(
    message: Mapping[str, Any],
    domain_tag: str = DEFAULT_DOMAIN_TAG,
) -> Mapping[str, Any] | None:
    """Extrai ``plugindata.data`` se a mensagem for do dominio, senao None."""
    plugindata = message.get("plugindata")
    if not isinstance(plugindata, Mapping):
        return None
    data = plugindata.get("data")
    if not isinstance(data, Mapping) or not data.get(domain_tag):
        return None
    return data


def protocol_error(data: ErrorData) -> ProtocolError:
    """Converte o payload de erro em exception (mensagem embute codigo e motivo)."""
    return ProtocolError(data.code, data.reason)


def _common_fields(message: Mapping[str, Any], data: Mapping[str, Any]) -> dict[str, Any]:
    common: dict[str, Any] = {}
    room = data.get("room")
    # room 0 ou "" nao vai para o payload
    if room:
        common["room"] = room
    jsep = message.get("jsep")
    if isinstance(jsep, dict):
        common["jsep"] = jsep
    return common


def dispatch(
    message: Mapping[str, Any],
    state: HandleState,
    ownership: TransactionOwnership,
    *,
    domain_tag: str = DEFAULT_DOMAIN_TAG,
) -> DispatchResult | _NotHandled:
    """Classifica uma mensagem e decide a entrega do evento.

    Args:
        message: Envelope raw recebido do transporte.
        state: Estado atual do handle.
        ownership: Capacidade de consulta de transacoes do handle.
        domain_tag: Chave de dominio em ``plugindata.data``.

    Returns:
        ``NOT_HANDLED`` para mensagens fora do dominio, ``Unclassified`` para
        mensagens do dominio sem regra, ou ``Dispatched`` com evento, proximo
        estado e instrucao de entrega.
    """
    # 1. Dominio
    data = plugin_data(message, domain_tag)
    if data is None:
        return NOT_HANDLED

    tag = str(data[domain_tag])

    # 2. Dono da transacao (independe da classificacao)
    transaction = message.get("transaction")
    owned = isinstance(transaction, str) and ownership.owns(transaction)

    # 3. Classificacao
    classification = classify(tag, data, state, _common_fields(message, data))
    if classification is None:
        logger.debug("message_unclassified", tag=tag, transaction=transaction)
        return Unclassified(tag=tag, state=state)

    event = NormalizedEvent(kind=classification.kind, data=classification.data)

    # 4. Entrega
    delivery: Delivery
    if not owned:
        delivery = Broadcast(event=event)
    elif classification.kind is EventKind.ERROR:
        delivery = RejectTransaction(
            transaction=transaction,  # type: ignore[arg-type]
            error=protocol_error(classification.data),  # type: ignore[arg-type]
        )
    else:
        delivery = ResolveTransaction(
            transaction=transaction,  # type: ignore[arg-type]
            message=AnnotatedMessage(raw=message, event=event),
        )

    logger.debug(
        "message_classified",
        tag=tag,
        rule=classification.rule,
        event_kind=event.kind,
        delivery=delivery.kind,
        transaction=transaction,
    )

    return Dispatched(event=event, state=classification.state, delivery=delivery)

"""AudioBridgeHandle — liga o nucleo puro (dispatcher) aos colaboradores.

O handle guarda o ``HandleState`` atual, envia requests pelo transporte,
registra as transacoes no ``TransactionRegistry`` e aplica a instrucao de
entrega devolvida pelo dispatcher:

- ``ResolveTransaction`` -> ``registry.resolve()`` com a mensagem anotada;
- ``RejectTransaction``  -> ``registry.reject()`` com ``ProtocolError``;
- ``Broadcast``          -> ``emitter.emit()`` com o payload normalizado.

Regras:
- Handle desanexado nao processa mensagens nem envia requests.
- ``detach()`` nao cancela transacoes pendentes.
- Sem timeouts proprios: o caller decide quanto esperar. Request cancelado
  (``asyncio.wait_for``, ``task.cancel()``) abandona a propria transacao.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Protocol

from ponte.audiobridge.dispatcher import (
    Broadcast,
    Dispatched,
    RejectTransaction,
    ResolveTransaction,
    dispatch,
)
from ponte.audiobridge.requests import (
    build_allow,
    build_configure,
    build_create,
    build_destroy,
    build_exists,
    build_hangup,
    build_join,
    build_kick,
    build_leave,
    build_list_forward,
    build_list_participants,
    build_list_rooms,
    build_start_forward,
    build_stop_forward,
    complete_response,
)
from ponte.audiobridge.state import UNBOUND
from ponte.config.settings import BridgeConfig
from ponte.events import EventEmitter
from ponte.exceptions import HandleDetachedError
from ponte.logging import get_logger
from ponte.metrics import dispatch_events_total, dispatch_unclassified_total

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ponte.audiobridge.dispatcher import AnnotatedMessage
    from ponte.audiobridge.models import NormalizedEvent
    from ponte.audiobridge.requests import BridgeRequest
    from ponte.audiobridge.state import HandleState
    from ponte.transactions import TransactionRegistry

logger = get_logger("audiobridge.handle")


class Transport(Protocol):
    """Canal de saida para o servidor (WebSocket, HTTP long-poll...)."""

    async def send(self, message: dict[str, Any]) -> None: ...


class AudioBridgeHandle:
    """Handle de um participante/operador no plugin AudioBridge.

    Args:
        handle_id: Identificador do handle no servidor.
        transport: Canal de envio das mensagens.
        registry: Registro de transacoes compartilhado pela sessao.
        emitter: Destino dos eventos broadcast. Se None, cria um proprio.
        config: Configuracao do adapter. Se None, usa defaults.
    """

    def __init__(
        self,
        handle_id: Any,
        transport: Transport,
        registry: TransactionRegistry,
        emitter: EventEmitter | None = None,
        config: BridgeConfig | None = None,
    ) -> None:
        self._handle_id = handle_id
        self._transport = transport
        self._registry = registry
        self._emitter = emitter if emitter is not None else EventEmitter()
        self._config = config if config is not None else BridgeConfig()
        self._ownership = registry.ownership(self)
        self._state: HandleState = UNBOUND
        self._detached = False

    @property
    def handle_id(self) -> Any:
        return self._handle_id

    @property
    def plugin_id(self) -> str:
        return self._config.plugin_id

    @property
    def emitter(self) -> EventEmitter:
        return self._emitter

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def feed(self) -> Any:
        return self._state.feed

    @property
    def room(self) -> Any:
        return self._state.room

    @property
    def detached(self) -> bool:
        return self._detached

    def detach(self) -> None:
        """Para de processar mensagens. Transacoes pendentes ficam com o caller."""
        if self._detached:
            return
        self._detached = True
        logger.info("handle_detached", handle_id=self._handle_id)

    # -------------------------------------------------------------------
    # Entrada
    # -------------------------------------------------------------------

    def handle_message(self, message: Mapping[str, Any]) -> NormalizedEvent | None:
        """Processa uma mensagem recebida pelo transporte.

        Returns:
            Evento normalizado, ou None se a mensagem nao e do dominio, nao
            foi classificada ou o handle esta desanexado.
        """
        if self._detached:
            return None

        result = dispatch(
            message,
            self._state,
            self._ownership,
            domain_tag=self._config.domain_tag,
        )
        if not result:
            return None

        if not isinstance(result, Dispatched):
            if dispatch_unclassified_total is not None:
                dispatch_unclassified_total.labels(tag=result.tag).inc()
            return None

        self._transition(result.state)
        self._deliver(result)

        if dispatch_events_total is not None:
            dispatch_events_total.labels(
                kind=result.event.kind.value,
                delivery=result.delivery.kind.value,
            ).inc()

        return result.event

    def _transition(self, state: HandleState) -> None:
        previous = self._state
        self._state = state
        if state == previous:
            return
        if state.bound:
            logger.info(
                "handle_bound",
                handle_id=self._handle_id,
                feed=state.feed,
                room=state.room,
            )
        else:
            logger.info(
                "handle_unbound",
                handle_id=self._handle_id,
                feed=previous.feed,
                room=previous.room,
            )

    def _deliver(self, result: Dispatched) -> None:
        delivery = result.delivery
        if isinstance(delivery, ResolveTransaction):
            if not self._registry.resolve(delivery.transaction, delivery.message):
                logger.debug("transaction_already_completed", transaction=delivery.transaction)
        elif isinstance(delivery, RejectTransaction):
            if not self._registry.reject(delivery.transaction, delivery.error):
                logger.debug("transaction_already_completed", transaction=delivery.transaction)
        elif isinstance(delivery, Broadcast):
            self._emitter.emit(delivery.event.kind, delivery.event.data.payload())

    # -------------------------------------------------------------------
    # Saida
    # -------------------------------------------------------------------

    async def message(
        self,
        body: dict[str, Any],
        jsep: dict[str, Any] | None = None,
    ) -> AnnotatedMessage:
        """Envia um request ao plugin e aguarda a transacao.

        Raises:
            HandleDetachedError: Handle desanexado.
            ProtocolError: Plugin respondeu com erro.
        """
        if self._detached:
            raise HandleDetachedError(self._handle_id)

        transaction, future = self._registry.register(self)
        request: dict[str, Any] = {
            "janus": "message",
            "transaction": transaction,
            "handle_id": self._handle_id,
            "body": body,
        }
        if jsep is not None:
            request["jsep"] = jsep

        try:
            await self._transport.send(request)
        except Exception:
            self._registry.abandon(transaction)
            raise

        try:
            return await future
        except asyncio.CancelledError:
            # Caller desistiu (cancel/timeout): resposta tardia vira broadcast
            self._registry.abandon(transaction)
            raise

    async def _request(
        self,
        request: BridgeRequest,
        jsep: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        response = await self.message(request.body, jsep)
        return complete_response(request, response.event, self._state)

    # -------------------------------------------------------------------
    # API de participante
    # -------------------------------------------------------------------

    async def join(
        self,
        room: Any,
        *,
        feed: Any = None,
        display: str | None = None,
        muted: bool | None = None,
        pin: str | None = None,
        token: str | None = None,
        quality: int | None = None,
        volume: int | None = None,
        record: bool | None = None,
        filename: str | None = None,
        rtp_participant: Mapping[str, Any] | bool | None = None,
        group: str | None = None,
    ) -> dict[str, Any]:
        """Entra na sala. Sem ``feed``, usa ``config.default_feed``."""
        request = build_join(
            room,
            feed=self._config.default_feed if feed is None else feed,
            display=display,
            muted=muted,
            pin=pin,
            token=token,
            quality=quality,
            volume=volume,
            record=record,
            filename=filename,
            rtp_participant=rtp_participant,
            group=group,
        )
        return await self._request(request)

    async def configure(
        self,
        *,
        display: str | None = None,
        muted: bool | None = None,
        quality: int | None = None,
        volume: int | None = None,
        record: bool | None = None,
        filename: str | None = None,
        prebuffer: int | None = None,
        group: str | None = None,
        jsep: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Altera a participacao atual. Retorna os valores enviados + feed/room."""
        request = build_configure(
            display=display,
            muted=muted,
            quality=quality,
            volume=volume,
            record=record,
            filename=filename,
            prebuffer=prebuffer,
            group=group,
        )
        return await self._request(request, jsep)

    async def audio_hangup(self) -> dict[str, Any]:
        return await self._request(build_hangup())

    async def leave(self) -> dict[str, Any]:
        return await self._request(build_leave())

    # -------------------------------------------------------------------
    # API de gerenciamento
    # -------------------------------------------------------------------

    async def list_participants(self, room: Any, *, secret: str | None = None) -> dict[str, Any]:
        return await self._request(build_list_participants(room, secret=secret))

    async def kick(self, room: Any, feed: Any, *, secret: str | None = None) -> dict[str, Any]:
        return await self._request(build_kick(room, feed, secret=secret))

    async def exists(self, room: Any) -> dict[str, Any]:
        return await self._request(build_exists(room))

    async def list_rooms(self) -> dict[str, Any]:
        return await self._request(build_list_rooms())

    async def create(self, room: Any, **options: Any) -> dict[str, Any]:
        """Cria sala. ``options``: mesmos parametros de ``build_create``."""
        return await self._request(build_create(room, **options))

    async def destroy(
        self,
        room: Any,
        *,
        permanent: bool | None = None,
        secret: str | None = None,
    ) -> dict[str, Any]:
        return await self._request(build_destroy(room, permanent=permanent, secret=secret))

    async def allow(
        self,
        room: Any,
        action: str,
        *,
        tokens: list[str] | None = None,
        secret: str | None = None,
    ) -> dict[str, Any]:
        return await self._request(build_allow(room, action, tokens=tokens, secret=secret))

    async def start_forward(
        self,
        room: Any,
        host: str,
        port: int,
        *,
        always: bool | None = None,
        group: str | None = None,
        secret: str | None = None,
    ) -> dict[str, Any]:
        request = build_start_forward(room, host, port, always=always, group=group, secret=secret)
        return await self._request(request)

    async def stop_forward(
        self,
        room: Any,
        stream: Any,
        *,
        secret: str | None = None,
    ) -> dict[str, Any]:
        return await self._request(build_stop_forward(room, stream, secret=secret))

    async def list_forward(self, room: Any, *, secret: str | None = None) -> dict[str, Any]:
        return await self._request(build_list_forward(room, secret=secret))

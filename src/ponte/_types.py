"""Tipos fundamentais do Ponte.

Este modulo define os enums usados por todos os componentes do adapter.
Alteracoes aqui impactam o dispatcher, os request builders e os subscribers.
"""

from __future__ import annotations

from enum import Enum


class EventKind(Enum):
    """Tipo de evento normalizado (enumeracao fechada).

    Os valores sao os nomes expostos aos subscribers do EventEmitter,
    portanto estaveis entre versoes.
    """

    JOINED = "audiobridge_joined"
    PEER_JOINED = "audiobridge_peer_joined"
    PARTICIPANTS_LIST = "audiobridge_participants_list"
    CONFIGURED = "audiobridge_configured"
    PEER_CONFIGURED = "audiobridge_peer_configured"
    LEAVING = "audiobridge_leaving"
    PEER_LEAVING = "audiobridge_peer_leaving"
    KICKED = "audiobridge_kicked"
    PEER_KICKED = "audiobridge_peer_kicked"
    HANGINGUP = "audiobridge_hangingup"
    EXISTS = "audiobridge_exists"
    ROOMS_LIST = "audiobridge_list"
    CREATED = "audiobridge_created"
    DESTROYED = "audiobridge_destroyed"
    RTP_FORWARD = "audiobridge_rtp_fwd"
    FORWARDERS_LIST = "audiobridge_rtp_list"
    SUCCESS = "audiobridge_success"
    ERROR = "audiobridge_error"


class HandlePhase(Enum):
    """Fase do handle na maquina de estados participante/sala.

    Transicoes validas:
        UNBOUND -> BOUND (join do proprio handle)
        BOUND -> BOUND (novo join do proprio handle)
        BOUND -> UNBOUND (left, kicked do proprio feed)
    """

    UNBOUND = "unbound"
    BOUND = "bound"


class DeliveryKind(Enum):
    """Destino de um evento normalizado apos a classificacao."""

    RESOLVE = "resolve"  # transacao pertence ao handle, sucesso
    REJECT = "reject"  # transacao pertence ao handle, erro do plugin
    BROADCAST = "broadcast"  # push assincrono ou transacao de outro dono

"""Modelos Pydantic dos eventos normalizados do AudioBridge.

Cada tipo de evento (``EventKind``) tem um payload de formato fixo. Todos os
payloads aceitam ``room`` e ``jsep`` opcionais, copiados da mensagem original
quando presentes. ``payload()`` produz o dict canonico entregue aos callers:
campos ``None`` sao omitidos, booleanos falsos sao mantidos.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field

from ponte._types import EventKind

# Feed e room podem ser numericos ou strings (string_ids no servidor)
Identifier = int | str

# ---------------------------------------------------------------------------
# Shared models
# ---------------------------------------------------------------------------


class _Payload(BaseModel):
    """Base de todos os payloads normalizados."""

    model_config = ConfigDict(frozen=True)

    room: Identifier | None = None
    jsep: dict[str, Any] | None = None

    def payload(self) -> dict[str, Any]:
        """Dict canonico do evento (sem campos ausentes)."""
        return self.model_dump(exclude_none=True, by_alias=True)


class ParticipantDescriptor(BaseModel):
    """Participante de uma sala, como aparece em rosters e eventos de peer."""

    model_config = ConfigDict(frozen=True)

    feed: Identifier
    display: str | None = None
    muted: bool | None = None
    setup: bool | None = None
    rtp: dict[str, Any] | None = None


class ForwarderDescriptor(BaseModel):
    """Forwarder RTP ativo, como retornado em listforwarders."""

    model_config = ConfigDict(frozen=True)

    host: str | None = None
    audio_port: int | None = None
    audio_stream: Identifier | None = None
    always: bool | None = None
    group: str | None = None


class ForwarderInfo(BaseModel):
    """Forwarder criado ou removido (resposta de rtp_forward/stop_rtp_forward)."""

    model_config = ConfigDict(frozen=True)

    host: str | None = None
    audio_port: int | None = None
    audio_stream: Identifier | None = None
    group: str | None = None


# ---------------------------------------------------------------------------
# Payloads por tipo de evento
# ---------------------------------------------------------------------------


class JoinedData(_Payload):
    """Join do proprio handle: descritor proprio + roster dos demais."""

    feed: Identifier
    display: str | None = None
    muted: bool | None = None
    setup: bool | None = None
    rtp: dict[str, Any] | None = None
    participants: list[ParticipantDescriptor] = []


class PeerData(_Payload):
    """Join ou configure de outro participante."""

    feed: Identifier
    display: str | None = None
    muted: bool | None = None
    setup: bool | None = None
    rtp: dict[str, Any] | None = None


class ParticipantsListData(_Payload):
    """Snapshot do roster de uma sala."""

    participants: list[ParticipantDescriptor] = []


class ConfiguredData(_Payload):
    """Configure do proprio handle.

    O servidor nao devolve os valores aplicados; o request builder reconstroi
    este payload a partir do request enviado e do estado do handle.
    """

    feed: Identifier | None = None
    display: str | None = None
    muted: bool | None = None
    quality: int | float | None = None
    volume: int | float | None = None
    record: bool | None = None
    filename: str | None = None
    prebuffer: int | float | None = None
    group: str | None = None


class FeedData(_Payload):
    """Evento com um feed sujeito (leaving, kicked, hangingup e variantes de peer)."""

    feed: Identifier | None = None


class ExistsData(_Payload):
    exists: bool | None = None


class RoomsListData(_Payload):
    """Salas retornadas pelo request list (exposto como ``list``)."""

    rooms: list[dict[str, Any]] = Field(default=[], serialization_alias="list")


class CreatedData(_Payload):
    permanent: bool | None = None


class RoomData(_Payload):
    """Evento que so carrega a sala (destroyed)."""


class RtpForwardData(_Payload):
    forwarder: ForwarderInfo


class ForwardersListData(_Payload):
    forwarders: list[ForwarderDescriptor] = []


class SuccessData(_Payload):
    """Sucesso generico.

    ``tokens`` (exposto como ``list``) carrega os tokens permitidos do
    request ``allowed``; ``feed`` e preenchido pelo builder de kick.
    """

    tokens: list[str] | None = Field(default=None, serialization_alias="list")
    feed: Identifier | None = None


class ErrorData(_Payload):
    """Erro reportado pelo plugin."""

    code: int | str | None = None
    reason: str


EventPayload = (
    JoinedData
    | PeerData
    | ParticipantsListData
    | ConfiguredData
    | FeedData
    | ExistsData
    | RoomsListData
    | CreatedData
    | RoomData
    | RtpForwardData
    | ForwardersListData
    | SuccessData
    | ErrorData
)


# ---------------------------------------------------------------------------
# Evento normalizado
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NormalizedEvent:
    """Par (tipo, payload) produzido pelo dispatcher para cada mensagem tratada."""

    kind: EventKind
    data: EventPayload

    def to_dict(self) -> dict[str, Any]:
        """Formato entregue fora do processo (CLI, subscribers JSON)."""
        return {"event": self.kind.value, "data": self.data.payload()}


class _NotHandled:
    """Sentinela: mensagem fora do dominio do plugin."""

    _instance: _NotHandled | None = None

    def __new__(cls) -> _NotHandled:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_HANDLED"

    def __bool__(self) -> bool:
        return False


NOT_HANDLED: Final = _NotHandled()


def participant_from_wire(
    raw: Any,
    *,
    include_rtp: bool = True,
) -> ParticipantDescriptor:
    """Converte um participante do wire (``id``, ``display``...) em descritor.

    Campos com tipo inesperado sao omitidos. ``id`` e obrigatorio.
    """
    return ParticipantDescriptor(**participant_fields(raw, include_rtp=include_rtp))


def participant_fields(raw: Any, *, include_rtp: bool = True) -> dict[str, Any]:
    """Campos normalizados de um participante do wire (usado por JoinedData/PeerData)."""
    fields: dict[str, Any] = {"feed": raw["id"]}
    display = raw.get("display")
    if isinstance(display, str):
        fields["display"] = display
    if isinstance(raw.get("muted"), bool):
        fields["muted"] = raw["muted"]
    if isinstance(raw.get("setup"), bool):
        fields["setup"] = raw["setup"]
    if include_rtp and isinstance(raw.get("rtp"), dict):
        fields["rtp"] = raw["rtp"]
    return fields

"""Request builders do plugin AudioBridge.

Cada operacao e descrita por um ``RequestSpec``: nome do request no wire,
campos obrigatorios (repassados sem checagem — o servidor rejeita valores
invalidos com erro de protocolo), campos opcionais com o tipo JSON esperado
(incluidos so se presentes e do tipo certo) e o ``EventKind`` esperado na
resposta.

Depois que a transacao resolve, ``complete_response()`` confere o tipo do
evento e, para configure e kick, reconstroi os dados que o servidor omite.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from ponte._types import EventKind
from ponte.audiobridge.models import ConfiguredData, SuccessData
from ponte.exceptions import InvalidRequestError, UnexpectedResponseError
from ponte.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from ponte.audiobridge.models import EventPayload, NormalizedEvent
    from ponte.audiobridge.state import HandleState

logger = get_logger("audiobridge.requests")


class JsonType(Enum):
    """Tipo JSON esperado para um campo opcional."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


def matches(value: Any, json_type: JsonType) -> bool:
    """True se ``value`` e do tipo JSON esperado.

    ``bool`` e subclasse de ``int`` em Python, mas nao e ``number`` em JSON.
    """
    if json_type is JsonType.STRING:
        return isinstance(value, str)
    if json_type is JsonType.BOOLEAN:
        return isinstance(value, bool)
    if json_type is JsonType.NUMBER:
        return isinstance(value, int | float) and not isinstance(value, bool)
    if json_type is JsonType.ARRAY:
        return isinstance(value, list | tuple)
    if json_type is JsonType.OBJECT:
        return isinstance(value, Mapping)
    return False


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """Campo opcional: nome do parametro, nome no wire e tipo esperado."""

    param: str
    wire: str
    json_type: JsonType


@dataclass(frozen=True, slots=True)
class BridgeRequest:
    """Request pronto para envio + tipo de evento esperado na resposta."""

    operation: str
    body: dict[str, Any]
    expected: EventKind

    @property
    def request(self) -> str:
        return str(self.body["request"])


@dataclass(frozen=True, slots=True)
class RequestSpec:
    """Descricao declarativa de uma operacao."""

    operation: str
    request: str
    expected: EventKind
    required: tuple[tuple[str, str], ...] = ()
    optional: tuple[FieldSpec, ...] = ()
    extra: Callable[[dict[str, Any], Mapping[str, Any]], None] | None = None
    complete: Callable[[BridgeRequest, NormalizedEvent, HandleState], EventPayload] | None = None
    defaults: dict[str, Any] = field(default_factory=dict)

    @property
    def params(self) -> frozenset[str]:
        names = {param for param, _ in self.required}
        names.update(f.param for f in self.optional)
        names.update(self.defaults)
        if self.extra is not None:
            names.update(_EXTRA_PARAMS.get(self.operation, ()))
        return frozenset(names)

    def build(self, params: Mapping[str, Any]) -> BridgeRequest:
        """Monta o body a partir dos parametros do caller."""
        body: dict[str, Any] = {"request": self.request}
        for param, wire in self.required:
            body[wire] = params.get(param, self.defaults.get(param))
        for field_spec in self.optional:
            value = params.get(field_spec.param)
            if value is None:
                continue
            if not matches(value, field_spec.json_type):
                logger.debug(
                    "optional_field_dropped",
                    request=self.request,
                    field=field_spec.param,
                    expected=field_spec.json_type,
                )
                continue
            body[field_spec.wire] = list(value) if field_spec.json_type is JsonType.ARRAY else value
        if self.extra is not None:
            self.extra(body, params)
        return BridgeRequest(operation=self.operation, body=body, expected=self.expected)


def _string(param: str, wire: str | None = None) -> FieldSpec:
    return FieldSpec(param, wire or param, JsonType.STRING)


def _number(param: str, wire: str | None = None) -> FieldSpec:
    return FieldSpec(param, wire or param, JsonType.NUMBER)


def _boolean(param: str, wire: str | None = None) -> FieldSpec:
    return FieldSpec(param, wire or param, JsonType.BOOLEAN)


_SECRET = _string("secret")


# ---------------------------------------------------------------------------
# Hooks de body
# ---------------------------------------------------------------------------


def _join_rtp_participant(body: dict[str, Any], params: Mapping[str, Any]) -> None:
    """``rtp_participant``: descritor (mapping) enviado como esta, ``True`` vira ``{}``."""
    rtp = params.get("rtp_participant")
    if isinstance(rtp, Mapping):
        body["rtp"] = dict(rtp)
    elif rtp is True:
        body["rtp"] = {}


def _allow_tokens(body: dict[str, Any], params: Mapping[str, Any]) -> None:
    tokens = params.get("tokens")
    if isinstance(tokens, list | tuple) and len(tokens) > 0:
        body["allowed"] = list(tokens)


_EXTRA_PARAMS: dict[str, tuple[str, ...]] = {
    "join": ("rtp_participant",),
    "allow": ("tokens",),
}


# ---------------------------------------------------------------------------
# Hooks de resposta
# ---------------------------------------------------------------------------


def complete_configure(
    request: BridgeRequest,
    event: NormalizedEvent,
    state: HandleState,
) -> ConfiguredData:
    """Reconstroi o payload de configure: campos enviados + feed/room do handle.

    O ack do servidor (``result: ok``) nao traz os valores aplicados.
    """
    echoed = {
        field_spec.wire: request.body[field_spec.wire]
        for field_spec in CONFIGURE.optional
        if field_spec.wire in request.body
    }
    update = {"feed": state.feed, "room": state.room, **echoed}
    return event.data.model_copy(update=update)  # type: ignore[return-value]


def complete_kick(
    request: BridgeRequest,
    event: NormalizedEvent,
    _state: HandleState | None = None,
) -> SuccessData:
    """Acrescenta room e feed expulso ao sucesso generico devolvido pelo servidor."""
    return event.data.model_copy(  # type: ignore[return-value]
        update={"room": request.body["room"], "feed": request.body["id"]},
    )


# ---------------------------------------------------------------------------
# Operacoes
# ---------------------------------------------------------------------------

JOIN = RequestSpec(
    operation="join",
    request="join",
    expected=EventKind.JOINED,
    required=(("room", "room"), ("feed", "id")),
    optional=(
        _string("display"),
        _boolean("muted"),
        _string("pin"),
        _string("token"),
        _number("quality"),
        _number("volume"),
        _boolean("record"),
        _string("filename"),
        _string("group"),
    ),
    extra=_join_rtp_participant,
    defaults={"feed": 0},
)

CONFIGURE = RequestSpec(
    operation="configure",
    request="configure",
    expected=EventKind.CONFIGURED,
    optional=(
        _string("display"),
        _boolean("muted"),
        _number("quality"),
        _number("volume"),
        _boolean("record"),
        _string("filename"),
        _number("prebuffer"),
        _string("group"),
    ),
    complete=complete_configure,
)

HANGUP = RequestSpec(operation="hangup", request="hangup", expected=EventKind.HANGINGUP)

LEAVE = RequestSpec(operation="leave", request="leave", expected=EventKind.LEAVING)

LIST_PARTICIPANTS = RequestSpec(
    operation="list_participants",
    request="listparticipants",
    expected=EventKind.PARTICIPANTS_LIST,
    required=(("room", "room"),),
    optional=(_SECRET,),
)

KICK = RequestSpec(
    operation="kick",
    request="kick",
    expected=EventKind.SUCCESS,
    required=(("room", "room"), ("feed", "id")),
    optional=(_SECRET,),
    complete=complete_kick,
)

EXISTS = RequestSpec(
    operation="exists",
    request="exists",
    expected=EventKind.EXISTS,
    required=(("room", "room"),),
)

LIST_ROOMS = RequestSpec(operation="list_rooms", request="list", expected=EventKind.ROOMS_LIST)

CREATE = RequestSpec(
    operation="create",
    request="create",
    expected=EventKind.CREATED,
    required=(("room", "room"),),
    optional=(
        _string("description"),
        _boolean("permanent"),
        _number("sampling_rate", "sampling"),
        _boolean("is_private"),
        _SECRET,
        _string("pin"),
        _boolean("record"),
        _string("filename", "record_file"),
        _number("prebuffer", "default_prebuffering"),
        _boolean("allow_rtp", "allow_rtp_participants"),
        FieldSpec("groups", "groups", JsonType.ARRAY),
    ),
)

DESTROY = RequestSpec(
    operation="destroy",
    request="destroy",
    expected=EventKind.DESTROYED,
    required=(("room", "room"),),
    optional=(_boolean("permanent"), _SECRET),
)

ALLOW = RequestSpec(
    operation="allow",
    request="allowed",
    expected=EventKind.SUCCESS,
    required=(("room", "room"), ("action", "action")),
    optional=(_SECRET,),
    extra=_allow_tokens,
)

START_FORWARD = RequestSpec(
    operation="start_forward",
    request="rtp_forward",
    expected=EventKind.RTP_FORWARD,
    required=(("room", "room"), ("host", "host"), ("port", "port")),
    optional=(_boolean("always", "always_on"), _string("group"), _SECRET),
)

STOP_FORWARD = RequestSpec(
    operation="stop_forward",
    request="stop_rtp_forward",
    expected=EventKind.RTP_FORWARD,
    required=(("room", "room"), ("stream", "stream_id")),
    optional=(_SECRET,),
)

LIST_FORWARD = RequestSpec(
    operation="list_forward",
    request="listforwarders",
    expected=EventKind.FORWARDERS_LIST,
    required=(("room", "room"),),
    optional=(_SECRET,),
)

REQUEST_SPECS: dict[str, RequestSpec] = {
    request_spec.operation: request_spec
    for request_spec in (
        JOIN,
        CONFIGURE,
        HANGUP,
        LEAVE,
        LIST_PARTICIPANTS,
        KICK,
        EXISTS,
        LIST_ROOMS,
        CREATE,
        DESTROY,
        ALLOW,
        START_FORWARD,
        STOP_FORWARD,
        LIST_FORWARD,
    )
}


def build_request(operation: str, params: Mapping[str, Any] | None = None) -> BridgeRequest:
    """Monta um request generico (usado pela CLI).

    Diferente dos builders tipados, valida nomes de parametro e presenca dos
    obrigatorios, ja que os parametros chegam de fora do processo.

    Raises:
        InvalidRequestError: Operacao desconhecida, parametro desconhecido ou
            obrigatorio ausente.
    """
    spec = REQUEST_SPECS.get(operation)
    if spec is None:
        known = ", ".join(sorted(REQUEST_SPECS))
        raise InvalidRequestError(f"Operacao desconhecida: '{operation}' (conhecidas: {known})")

    params = params or {}
    unknown = sorted(set(params) - spec.params)
    if unknown:
        raise InvalidRequestError(
            f"Parametros desconhecidos para '{operation}': {', '.join(unknown)}"
        )

    missing = [
        param
        for param, _ in spec.required
        if param not in params and param not in spec.defaults
    ]
    if missing:
        raise InvalidRequestError(
            f"Parametros obrigatorios ausentes para '{operation}': {', '.join(missing)}"
        )

    return spec.build(params)


def check_response(request: BridgeRequest, event: NormalizedEvent | None) -> NormalizedEvent:
    """Confere que o evento resolvido e o esperado pelo request.

    Raises:
        UnexpectedResponseError: Tipo diferente do esperado (violacao de contrato).
    """
    if event is None or event.kind is not request.expected:
        received = event.kind.value if event is not None else None
        logger.warning(
            "unexpected_response",
            request=request.request,
            expected=request.expected,
            received=received,
        )
        raise UnexpectedResponseError(request.request, request.expected.value, received)
    return event


def complete_response(
    request: BridgeRequest,
    event: NormalizedEvent | None,
    state: HandleState,
) -> dict[str, Any]:
    """Valida o evento e devolve o payload final entregue ao caller."""
    event = check_response(request, event)
    spec = REQUEST_SPECS[request.operation]
    data = event.data if spec.complete is None else spec.complete(request, event, state)
    return data.payload()


# ---------------------------------------------------------------------------
# Builders tipados
# ---------------------------------------------------------------------------


def build_join(
    room: Any,
    *,
    feed: Any = 0,
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
) -> BridgeRequest:
    """Join em uma sala. ``feed=0`` deixa o servidor escolher o identificador."""
    return JOIN.build(
        {
            "room": room,
            "feed": feed,
            "display": display,
            "muted": muted,
            "pin": pin,
            "token": token,
            "quality": quality,
            "volume": volume,
            "record": record,
            "filename": filename,
            "rtp_participant": rtp_participant,
            "group": group,
        }
    )


def build_configure(
    *,
    display: str | None = None,
    muted: bool | None = None,
    quality: int | None = None,
    volume: int | None = None,
    record: bool | None = None,
    filename: str | None = None,
    prebuffer: int | None = None,
    group: str | None = None,
) -> BridgeRequest:
    return CONFIGURE.build(
        {
            "display": display,
            "muted": muted,
            "quality": quality,
            "volume": volume,
            "record": record,
            "filename": filename,
            "prebuffer": prebuffer,
            "group": group,
        }
    )


def build_hangup() -> BridgeRequest:
    return HANGUP.build({})


def build_leave() -> BridgeRequest:
    return LEAVE.build({})


def build_list_participants(room: Any, *, secret: str | None = None) -> BridgeRequest:
    return LIST_PARTICIPANTS.build({"room": room, "secret": secret})


def build_kick(room: Any, feed: Any, *, secret: str | None = None) -> BridgeRequest:
    return KICK.build({"room": room, "feed": feed, "secret": secret})


def build_exists(room: Any) -> BridgeRequest:
    return EXISTS.build({"room": room})


def build_list_rooms() -> BridgeRequest:
    return LIST_ROOMS.build({})


def build_create(
    room: Any,
    *,
    description: str | None = None,
    permanent: bool | None = None,
    sampling_rate: int | None = None,
    is_private: bool | None = None,
    secret: str | None = None,
    pin: str | None = None,
    record: bool | None = None,
    filename: str | None = None,
    prebuffer: int | None = None,
    allow_rtp: bool | None = None,
    groups: list[str] | None = None,
) -> BridgeRequest:
    """Cria uma sala. Nomes do wire: ``sampling``, ``record_file``,
    ``default_prebuffering``, ``allow_rtp_participants``."""
    return CREATE.build(
        {
            "room": room,
            "description": description,
            "permanent": permanent,
            "sampling_rate": sampling_rate,
            "is_private": is_private,
            "secret": secret,
            "pin": pin,
            "record": record,
            "filename": filename,
            "prebuffer": prebuffer,
            "allow_rtp": allow_rtp,
            "groups": groups,
        }
    )


def build_destroy(
    room: Any,
    *,
    permanent: bool | None = None,
    secret: str | None = None,
) -> BridgeRequest:
    return DESTROY.build({"room": room, "permanent": permanent, "secret": secret})


def build_allow(
    room: Any,
    action: str,
    *,
    tokens: list[str] | None = None,
    secret: str | None = None,
) -> BridgeRequest:
    """Edita a ACL de tokens (``enable``, ``disable``, ``add``, ``remove``)."""
    return ALLOW.build({"room": room, "action": action, "tokens": tokens, "secret": secret})


def build_start_forward(
    room: Any,
    host: str,
    port: int,
    *,
    always: bool | None = None,
    group: str | None = None,
    secret: str | None = None,
) -> BridgeRequest:
    return START_FORWARD.build(
        {
            "room": room,
            "host": host,
            "port": port,
            "always": always,
            "group": group,
            "secret": secret,
        }
    )


def build_stop_forward(room: Any, stream: Any, *, secret: str | None = None) -> BridgeRequest:
    return STOP_FORWARD.build({"room": room, "stream": stream, "secret": secret})


def build_list_forward(room: Any, *, secret: str | None = None) -> BridgeRequest:
    return LIST_FORWARD.build({"room": room, "secret": secret})

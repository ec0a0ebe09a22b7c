"""Tabela de decisao que classifica mensagens do AudioBridge.

O wire do plugin nao e auto-descritivo: o campo ``audiobridge`` traz apenas
um tag generico (``success``, ``joined``, ``event``...) e o tipo real do
evento depende de QUAIS campos opcionais estao presentes. Cada ``Rule``
declara o tag, a pre-condicao sobre os campos e a funcao que produz o
evento normalizado e o proximo estado do handle.

Avaliacao:
    1. Filtra as regras do tag, na ordem da tabela.
    2. A primeira regra cuja pre-condicao casa decide.
    3. Se ``classify`` devolve None, a mensagem e do dominio mas nao
       classificavel (nenhuma regra seguinte e tentada).
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from ponte._types import EventKind
from ponte.audiobridge.models import (
    ConfiguredData,
    CreatedData,
    ErrorData,
    ExistsData,
    FeedData,
    ForwarderDescriptor,
    ForwarderInfo,
    ForwardersListData,
    JoinedData,
    ParticipantDescriptor,
    ParticipantsListData,
    PeerData,
    RoomData,
    RoomsListData,
    RtpForwardData,
    SuccessData,
    participant_fields,
    participant_from_wire,
)
from ponte.exceptions import InvalidStateError
from ponte.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from ponte.audiobridge.models import EventPayload
    from ponte.audiobridge.state import HandleState

logger = get_logger("audiobridge.classifier")


@dataclass(frozen=True, slots=True)
class Classification:
    """Resultado de uma regra: evento normalizado + proximo estado do handle."""

    kind: EventKind
    data: EventPayload
    state: HandleState
    rule: str


@dataclass(frozen=True, slots=True)
class RuleContext:
    """Entrada de uma regra.

    Attributes:
        data: ``plugindata.data`` da mensagem.
        state: Estado atual do handle.
        common: Campos copiados para todo payload (``room``, ``jsep``).
    """

    data: Mapping[str, Any]
    state: HandleState
    common: dict[str, Any]

    def result(
        self,
        kind: EventKind,
        data: EventPayload,
        rule: str,
        state: HandleState | None = None,
    ) -> Classification:
        return Classification(
            kind=kind,
            data=data,
            state=self.state if state is None else state,
            rule=rule,
        )


@dataclass(frozen=True, slots=True)
class Rule:
    """Linha da tabela de decisao."""

    tag: str
    name: str
    when: Callable[[Mapping[str, Any]], bool]
    classify: Callable[[RuleContext], Classification | None]


# ---------------------------------------------------------------------------
# Pre-condicoes
# ---------------------------------------------------------------------------


def _has(field: str) -> Callable[[Mapping[str, Any]], bool]:
    """Campo presente (mesmo que null)."""
    return lambda data: field in data


def _truthy(field: str) -> Callable[[Mapping[str, Any]], bool]:
    return lambda data: bool(data.get(field))


def _always(_data: Mapping[str, Any]) -> bool:
    return True


def _identified(raw: Any) -> bool:
    """Participante do wire com ``id``."""
    return isinstance(raw, Mapping) and raw.get("id") is not None


def _single_participant(data: Mapping[str, Any]) -> bool:
    participants = data.get("participants")
    return (
        isinstance(participants, list)
        and len(participants) == 1
        and _identified(participants[0])
    )


def _own_join(data: Mapping[str, Any]) -> bool:
    return data.get("id") is not None and data.get("room") is not None


def _roster(data: Mapping[str, Any]) -> list[ParticipantDescriptor]:
    # Entradas sem id nao identificam participante
    raw = data.get("participants")
    if not isinstance(raw, list):
        return []
    return [participant_from_wire(p) for p in raw if _identified(p)]


# ---------------------------------------------------------------------------
# Classificadores
# ---------------------------------------------------------------------------


def _exists(ctx: RuleContext) -> Classification:
    data = ExistsData(exists=ctx.data["exists"], **ctx.common)
    return ctx.result(EventKind.EXISTS, data, "success.exists")


def _rooms_list(ctx: RuleContext) -> Classification:
    data = RoomsListData(rooms=ctx.data["list"] or [], **ctx.common)
    return ctx.result(EventKind.ROOMS_LIST, data, "success.list")


def _rtp_forward(ctx: RuleContext) -> Classification:
    group = ctx.data.get("group")
    forwarder = ForwarderInfo(
        host=ctx.data.get("host"),
        audio_port=ctx.data.get("port"),
        audio_stream=ctx.data["stream_id"],
        group=group if group else None,
    )
    data = RtpForwardData(forwarder=forwarder, **ctx.common)
    return ctx.result(EventKind.RTP_FORWARD, data, "success.rtp_forward")


def _success(ctx: RuleContext) -> Classification:
    tokens = ctx.data.get("allowed") if "allowed" in ctx.data else None
    data = SuccessData(tokens=tokens, **ctx.common)
    return ctx.result(EventKind.SUCCESS, data, "success.generic")


def _joined_self(ctx: RuleContext) -> Classification:
    feed = ctx.data["id"]
    room = ctx.data["room"]
    roster = _roster(ctx.data)
    fields = participant_fields(ctx.data)
    data = JoinedData(participants=roster, **fields, **ctx.common)
    return ctx.result(
        EventKind.JOINED,
        data,
        "joined.self",
        state=ctx.state.bind(feed, room),
    )


def _joined_peer(ctx: RuleContext) -> Classification:
    fields = participant_fields(ctx.data["participants"][0])
    data = PeerData(**fields, **ctx.common)
    return ctx.result(EventKind.PEER_JOINED, data, "joined.peer")


def _participants(ctx: RuleContext) -> Classification:
    roster = _roster(ctx.data)
    data = ParticipantsListData(participants=roster, **ctx.common)
    return ctx.result(EventKind.PARTICIPANTS_LIST, data, "participants")


def _created(ctx: RuleContext) -> Classification:
    permanent = ctx.data.get("permanent")
    data = CreatedData(
        permanent=permanent if isinstance(permanent, bool) else None,
        **ctx.common,
    )
    return ctx.result(EventKind.CREATED, data, "created")


def _destroyed(ctx: RuleContext) -> Classification:
    return ctx.result(EventKind.DESTROYED, RoomData(**ctx.common), "destroyed")


def _hangingup(ctx: RuleContext) -> Classification:
    data = FeedData(feed=ctx.data.get("id") or ctx.state.feed, **ctx.common)
    return ctx.result(EventKind.HANGINGUP, data, "hangingup")


def _left(ctx: RuleContext) -> Classification:
    # Limpa o estado mesmo se o feed que saiu nao for o deste handle
    data = FeedData(feed=ctx.data.get("id") or ctx.state.feed, **ctx.common)
    return ctx.result(EventKind.LEAVING, data, "left", state=ctx.state.unbind())


def _forwarders(ctx: RuleContext) -> Classification:
    forwarders = []
    for raw in ctx.data.get("rtp_forwarders") or []:
        group = raw.get("group")
        forwarders.append(
            ForwarderDescriptor(
                host=raw.get("ip"),
                audio_port=raw.get("port"),
                audio_stream=raw.get("stream_id"),
                always=raw.get("always_on"),
                group=group if group else None,
            )
        )
    data = ForwardersListData(forwarders=forwarders, **ctx.common)
    return ctx.result(EventKind.FORWARDERS_LIST, data, "forwarders")


def _error(ctx: RuleContext) -> Classification:
    data = ErrorData(
        code=ctx.data.get("error_code"),
        reason=str(ctx.data["error"]),
        **ctx.common,
    )
    return ctx.result(EventKind.ERROR, data, "event.error")


def _configured(ctx: RuleContext) -> Classification | None:
    if ctx.data["result"] != "ok":
        return None
    return ctx.result(EventKind.CONFIGURED, ConfiguredData(**ctx.common), "event.configured")


def _peer_configured(ctx: RuleContext) -> Classification:
    fields = participant_fields(ctx.data["participants"][0], include_rtp=False)
    data = PeerData(**fields, **ctx.common)
    return ctx.result(EventKind.PEER_CONFIGURED, data, "event.peer_configured")


def _peer_leaving(ctx: RuleContext) -> Classification:
    data = FeedData(feed=ctx.data["leaving"], **ctx.common)
    return ctx.result(EventKind.PEER_LEAVING, data, "event.peer_leaving")


def _kicked(ctx: RuleContext) -> Classification:
    feed = ctx.data["kicked"]
    data = FeedData(feed=feed, **ctx.common)
    if ctx.state.owns_feed(feed):
        return ctx.result(EventKind.KICKED, data, "event.kicked", state=ctx.state.unbind())
    return ctx.result(EventKind.PEER_KICKED, data, "event.peer_kicked")


# ---------------------------------------------------------------------------
# Tabela
# ---------------------------------------------------------------------------

RULES: tuple[Rule, ...] = (
    Rule("success", "success.exists", _has("exists"), _exists),
    Rule("success", "success.list", _has("list"), _rooms_list),
    Rule("success", "success.rtp_forward", _has("stream_id"), _rtp_forward),
    Rule("success", "success.generic", _always, _success),
    Rule("joined", "joined.self", _own_join, _joined_self),
    Rule("joined", "joined.peer", _single_participant, _joined_peer),
    Rule("participants", "participants", _always, _participants),
    Rule("created", "created", _always, _created),
    Rule("destroyed", "destroyed", _always, _destroyed),
    Rule("hangingup", "hangingup", _always, _hangingup),
    Rule("left", "left", _always, _left),
    Rule("forwarders", "forwarders", _always, _forwarders),
    Rule("event", "event.error", _truthy("error"), _error),
    Rule("event", "event.configured", _has("result"), _configured),
    Rule("event", "event.peer_configured", _single_participant, _peer_configured),
    Rule("event", "event.peer_leaving", _has("leaving"), _peer_leaving),
    Rule("event", "event.kicked", _has("kicked"), _kicked),
)


def _index(rules: tuple[Rule, ...]) -> dict[str, tuple[Rule, ...]]:
    by_tag: dict[str, list[Rule]] = defaultdict(list)
    for rule in rules:
        by_tag[rule.tag].append(rule)
    return {tag: tuple(tag_rules) for tag, tag_rules in by_tag.items()}


_RULES_BY_TAG = _index(RULES)


def classify(
    tag: str,
    data: Mapping[str, Any],
    state: HandleState,
    common: dict[str, Any] | None = None,
) -> Classification | None:
    """Classifica ``plugindata.data`` de uma mensagem do dominio.

    Args:
        tag: Valor do campo de dominio (``success``, ``joined``, ``event``...).
        data: Conteudo de ``plugindata.data``.
        state: Estado atual do handle.
        common: Campos copiados para o payload (``room``, ``jsep``).

    Returns:
        Classification com evento e proximo estado, ou None se nenhuma regra
        classificou a mensagem ou se a regra escolhida rejeitou os campos.
    """
    ctx = RuleContext(data=data, state=state, common=common or {})
    for rule in _RULES_BY_TAG.get(tag, ()):
        if not rule.when(data):
            continue
        try:
            return rule.classify(ctx)
        except (ValidationError, InvalidStateError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("message_malformed", tag=tag, rule=rule.name, error=str(exc))
            return None
    return None

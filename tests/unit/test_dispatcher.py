"""Testes do dispatcher de mensagens AudioBridge.

Cobre: filtro de dominio, classificacao de cada tipo de evento, formato dos
payloads normalizados, decisao de entrega (resolve/reject/broadcast),
transicoes de estado e pureza (entradas nao sao mutadas).
"""

from __future__ import annotations

import copy

import pytest

from ponte._types import DeliveryKind, EventKind
from ponte.audiobridge.dispatcher import (
    AnnotatedMessage,
    Broadcast,
    Dispatched,
    RejectTransaction,
    ResolveTransaction,
    Unclassified,
    dispatch,
    plugin_data,
)
from ponte.audiobridge.models import NOT_HANDLED
from ponte.audiobridge.state import UNBOUND
from ponte.exceptions import ProtocolError
from tests.conftest import FakeOwnership, make_wire

BOUND = UNBOUND.bind(42, 1234)


def _dispatched(message, state=UNBOUND, ownership=None) -> Dispatched:
    result = dispatch(message, state, ownership or FakeOwnership())
    assert isinstance(result, Dispatched)
    return result


# ---------------------------------------------------------------------------
# Dominio
# ---------------------------------------------------------------------------


class TestDomain:
    def test_message_without_plugindata_not_handled(self) -> None:
        result = dispatch({"janus": "ack", "transaction": "t1"}, UNBOUND, FakeOwnership("t1"))
        assert result is NOT_HANDLED

    def test_other_plugin_not_handled(self) -> None:
        message = {
            "janus": "event",
            "plugindata": {"plugin": "janus.plugin.videoroom", "data": {"videoroom": "joined"}},
        }
        assert dispatch(message, BOUND, FakeOwnership()) is NOT_HANDLED

    def test_not_handled_is_falsy(self) -> None:
        assert not NOT_HANDLED

    def test_state_unchanged_for_foreign_message(self) -> None:
        state = BOUND
        dispatch({"janus": "keepalive"}, state, FakeOwnership())
        assert state.feed == 42

    def test_custom_domain_tag(self) -> None:
        message = {"plugindata": {"data": {"bridge": "destroyed", "room": 9}}}
        result = dispatch(message, UNBOUND, FakeOwnership(), domain_tag="bridge")
        assert isinstance(result, Dispatched)
        assert result.event.kind == EventKind.DESTROYED

    def test_plugin_data_helper(self) -> None:
        data = {"audiobridge": "event", "room": 1}
        assert plugin_data(make_wire(data)) == data
        assert plugin_data({"plugindata": "oops"}) is None
        assert plugin_data({"plugindata": {"data": {"audiobridge": ""}}}) is None


# ---------------------------------------------------------------------------
# Unclassified
# ---------------------------------------------------------------------------


class TestUnclassified:
    def test_unknown_tag_is_unclassified(self) -> None:
        message = make_wire({"audiobridge": "talking", "room": 1234, "id": 7})
        result = dispatch(message, BOUND, FakeOwnership())
        assert isinstance(result, Unclassified)
        assert result.tag == "talking"
        assert result.state is BOUND

    def test_joined_with_null_id_is_unclassified(self) -> None:
        message = make_wire({"audiobridge": "joined", "room": 1, "id": None}, transaction="t1")
        result = dispatch(message, UNBOUND, FakeOwnership("t1"))
        assert isinstance(result, Unclassified)
        assert result.state is UNBOUND

    def test_single_participant_without_id_is_unclassified(self) -> None:
        body = {"audiobridge": "joined", "room": 1, "participants": [{"display": "x"}]}
        message = make_wire(body)
        result = dispatch(message, BOUND, FakeOwnership())
        assert isinstance(result, Unclassified)
        assert result.state is BOUND

    def test_invalid_field_type_is_unclassified(self) -> None:
        message = make_wire({"audiobridge": "success", "room": 1, "list": "nao-e-lista"})
        result = dispatch(message, UNBOUND, FakeOwnership())
        assert isinstance(result, Unclassified)
        assert result.tag == "success"

    def test_roster_skips_entries_without_id(self) -> None:
        message = make_wire(
            {
                "audiobridge": "participants",
                "room": 1,
                "participants": [{"display": "x"}, None, {"id": 7}],
            }
        )
        result = _dispatched(message)
        assert result.event.kind == EventKind.PARTICIPANTS_LIST
        assert result.event.data.payload()["participants"] == [{"feed": 7}]

    def test_result_not_ok_is_unclassified(self) -> None:
        body = {"audiobridge": "event", "room": 1234, "result": "pending"}
        message = make_wire(body, transaction="t1")
        result = dispatch(message, BOUND, FakeOwnership("t1"))
        assert isinstance(result, Unclassified)


# ---------------------------------------------------------------------------
# Join
# ---------------------------------------------------------------------------


class TestJoined:
    def test_own_join_binds_and_resolves(self) -> None:
        message = make_wire(
            {
                "audiobridge": "joined",
                "room": 1234,
                "id": 42,
                "display": "Alice",
                "participants": [
                    {"id": 7, "display": "Bob", "muted": False, "setup": True},
                    {"id": 8, "muted": True, "setup": False},
                ],
            },
            transaction="t1",
        )
        result = _dispatched(message, UNBOUND, FakeOwnership("t1"))

        assert result.event.kind == EventKind.JOINED
        assert result.state.feed == 42
        assert result.state.room == 1234
        assert isinstance(result.delivery, ResolveTransaction)
        assert result.delivery.transaction == "t1"
        assert result.event.data.payload() == {
            "room": 1234,
            "feed": 42,
            "display": "Alice",
            "participants": [
                {"feed": 7, "display": "Bob", "muted": False, "setup": True},
                {"feed": 8, "muted": True, "setup": False},
            ],
        }

    def test_own_join_without_participants_has_empty_roster(self) -> None:
        message = make_wire({"audiobridge": "joined", "room": 1234, "id": 42})
        result = _dispatched(message)
        assert result.event.data.payload()["participants"] == []

    def test_peer_join_broadcast_with_rtp(self) -> None:
        rtp = {"ip": "10.0.0.9", "port": 4000, "payload_type": 111}
        message = make_wire(
            {
                "audiobridge": "joined",
                "room": 1234,
                "participants": [{"id": 9, "display": "Carol", "setup": False, "rtp": rtp}],
            }
        )
        result = _dispatched(message, BOUND)

        assert result.event.kind == EventKind.PEER_JOINED
        assert isinstance(result.delivery, Broadcast)
        assert result.state is BOUND
        assert result.event.data.payload() == {
            "room": 1234,
            "feed": 9,
            "display": "Carol",
            "setup": False,
            "rtp": rtp,
        }

    def test_participant_fields_with_wrong_type_omitted(self) -> None:
        message = make_wire(
            {
                "audiobridge": "joined",
                "room": 1234,
                "participants": [{"id": 9, "display": 5, "muted": "no"}],
            }
        )
        result = _dispatched(message)
        assert result.event.data.payload() == {"room": 1234, "feed": 9}


# ---------------------------------------------------------------------------
# Eventos de sala
# ---------------------------------------------------------------------------


class TestRoomEvents:
    def test_participants_list(self) -> None:
        message = make_wire(
            {
                "audiobridge": "participants",
                "room": 1234,
                "participants": [{"id": 7, "display": "Bob", "muted": True}],
            },
            transaction="t1",
        )
        result = _dispatched(message, BOUND, FakeOwnership("t1"))
        assert result.event.kind == EventKind.PARTICIPANTS_LIST
        assert result.state is BOUND
        assert result.event.data.payload() == {
            "room": 1234,
            "participants": [{"feed": 7, "display": "Bob", "muted": True}],
        }

    def test_created_keeps_false_permanent(self) -> None:
        message = make_wire({"audiobridge": "created", "room": 555, "permanent": False})
        result = _dispatched(message)
        assert result.event.kind == EventKind.CREATED
        assert result.event.data.payload() == {"room": 555, "permanent": False}

    @pytest.mark.parametrize("room", [0, ""])
    def test_falsy_room_not_copied(self, room) -> None:
        result = _dispatched(make_wire({"audiobridge": "destroyed", "room": room}))
        assert result.event.data.payload() == {}

    def test_destroyed(self) -> None:
        result = _dispatched(make_wire({"audiobridge": "destroyed", "room": 555}))
        assert result.event.kind == EventKind.DESTROYED
        assert result.event.data.payload() == {"room": 555}

    def test_forwarders_list_reshaped_in_order(self) -> None:
        message = make_wire(
            {
                "audiobridge": "forwarders",
                "room": 1234,
                "rtp_forwarders": [
                    {"ip": "10.0.0.1", "port": 5000, "stream_id": 1, "always_on": True},
                    {
                        "ip": "10.0.0.2",
                        "port": 5002,
                        "stream_id": 2,
                        "always_on": False,
                        "group": "sala-a",
                    },
                ],
            }
        )
        result = _dispatched(message)
        assert result.event.kind == EventKind.FORWARDERS_LIST
        assert result.event.data.payload()["forwarders"] == [
            {"host": "10.0.0.1", "audio_port": 5000, "audio_stream": 1, "always": True},
            {
                "host": "10.0.0.2",
                "audio_port": 5002,
                "audio_stream": 2,
                "always": False,
                "group": "sala-a",
            },
        ]

    def test_forwarders_missing_list_is_empty(self) -> None:
        result = _dispatched(make_wire({"audiobridge": "forwarders", "room": 1234}))
        assert result.event.data.payload() == {"room": 1234, "forwarders": []}


# ---------------------------------------------------------------------------
# success
# ---------------------------------------------------------------------------


class TestSuccess:
    def test_exists(self) -> None:
        message = make_wire({"audiobridge": "success", "room": 1234, "exists": False})
        result = _dispatched(message)
        assert result.event.kind == EventKind.EXISTS
        assert result.event.data.payload() == {"room": 1234, "exists": False}

    def test_rooms_list(self) -> None:
        rooms = [{"room": 1234, "description": "Demo", "num_participants": 2}]
        result = _dispatched(make_wire({"audiobridge": "success", "list": rooms}))
        assert result.event.kind == EventKind.ROOMS_LIST
        assert result.event.data.payload() == {"list": rooms}

    def test_rtp_forward_drops_empty_group(self) -> None:
        message = make_wire(
            {
                "audiobridge": "success",
                "room": 1234,
                "host": "10.0.0.5",
                "port": 5000,
                "stream_id": 99,
                "group": "",
            }
        )
        result = _dispatched(message)
        assert result.event.kind == EventKind.RTP_FORWARD
        assert result.event.data.payload() == {
            "room": 1234,
            "forwarder": {"host": "10.0.0.5", "audio_port": 5000, "audio_stream": 99},
        }

    def test_rtp_forward_keeps_group(self) -> None:
        message = make_wire(
            {
                "audiobridge": "success",
                "room": 1,
                "host": "h",
                "port": 1,
                "stream_id": 2,
                "group": "g",
            }
        )
        forwarder = _dispatched(message).event.data.payload()["forwarder"]
        assert forwarder["group"] == "g"

    def test_generic_success_with_allowed_tokens(self) -> None:
        message = make_wire({"audiobridge": "success", "room": 1234, "allowed": ["tok1", "tok2"]})
        result = _dispatched(message)
        assert result.event.kind == EventKind.SUCCESS
        assert result.event.data.payload() == {"room": 1234, "list": ["tok1", "tok2"]}

    def test_generic_success_without_tokens(self) -> None:
        result = _dispatched(make_wire({"audiobridge": "success", "room": 1234}))
        assert result.event.kind == EventKind.SUCCESS
        assert result.event.data.payload() == {"room": 1234}


# ---------------------------------------------------------------------------
# event
# ---------------------------------------------------------------------------


class TestEvent:
    def test_configured_ack(self, offer_jsep: dict) -> None:
        message = make_wire(
            {"audiobridge": "event", "room": 1234, "result": "ok"},
            transaction="t1",
            jsep=offer_jsep,
        )
        result = _dispatched(message, BOUND, FakeOwnership("t1"))
        assert result.event.kind == EventKind.CONFIGURED
        assert result.event.data.payload() == {"room": 1234, "jsep": offer_jsep}

    def test_peer_configured_drops_rtp(self) -> None:
        message = make_wire(
            {
                "audiobridge": "event",
                "room": 1234,
                "participants": [{"id": 7, "muted": True, "setup": True, "rtp": {"ip": "x"}}],
            }
        )
        result = _dispatched(message, BOUND)
        assert result.event.kind == EventKind.PEER_CONFIGURED
        assert result.event.data.payload() == {
            "room": 1234,
            "feed": 7,
            "muted": True,
            "setup": True,
        }

    def test_peer_leaving(self) -> None:
        result = _dispatched(make_wire({"audiobridge": "event", "room": 1234, "leaving": 7}), BOUND)
        assert result.event.kind == EventKind.PEER_LEAVING
        assert result.event.data.payload() == {"room": 1234, "feed": 7}
        assert result.state is BOUND

    def test_kicked_self(self) -> None:
        result = _dispatched(make_wire({"audiobridge": "event", "room": 1234, "kicked": 42}), BOUND)
        assert result.event.kind == EventKind.KICKED
        assert result.state == UNBOUND
        assert result.event.data.payload() == {"room": 1234, "feed": 42}

    def test_kicked_other(self) -> None:
        result = _dispatched(make_wire({"audiobridge": "event", "room": 1234, "kicked": 7}), BOUND)
        assert result.event.kind == EventKind.PEER_KICKED
        assert result.state is BOUND


# ---------------------------------------------------------------------------
# hangingup / left
# ---------------------------------------------------------------------------


class TestLeaving:
    def test_hangingup_defaults_to_current_feed(self) -> None:
        message = make_wire({"audiobridge": "hangingup", "room": 1234}, transaction="t1")
        result = _dispatched(message, BOUND, FakeOwnership("t1"))
        assert result.event.kind == EventKind.HANGINGUP
        assert result.event.data.payload() == {"room": 1234, "feed": 42}
        assert result.state is BOUND

    def test_left_unbinds(self) -> None:
        message = make_wire({"audiobridge": "left", "room": 1234}, transaction="t1")
        result = _dispatched(message, BOUND, FakeOwnership("t1"))
        assert result.event.kind == EventKind.LEAVING
        assert result.event.data.payload() == {"room": 1234, "feed": 42}
        assert result.state == UNBOUND

    def test_left_with_other_id_unbinds_anyway(self) -> None:
        result = _dispatched(make_wire({"audiobridge": "left", "room": 1234, "id": 7}), BOUND)
        assert result.event.data.payload()["feed"] == 7
        assert result.state == UNBOUND

    def test_left_while_unbound_has_no_feed(self) -> None:
        result = _dispatched(make_wire({"audiobridge": "left", "room": 1234}), UNBOUND)
        assert result.event.data.payload() == {"room": 1234}


# ---------------------------------------------------------------------------
# Entrega
# ---------------------------------------------------------------------------


class TestDelivery:
    def test_owned_error_rejects(self) -> None:
        message = make_wire(
            {"audiobridge": "event", "error_code": 485, "error": "No such room (1234)"},
            transaction="t1",
        )
        result = _dispatched(message, UNBOUND, FakeOwnership("t1"))

        assert result.event.kind == EventKind.ERROR
        assert isinstance(result.delivery, RejectTransaction)
        assert result.delivery.kind == DeliveryKind.REJECT
        error = result.delivery.error
        assert isinstance(error, ProtocolError)
        assert error.code == 485
        assert error.reason == "No such room (1234)"
        assert str(error) == "485 No such room (1234)"

    def test_unowned_error_broadcast(self) -> None:
        message = make_wire(
            {"audiobridge": "event", "error_code": 485, "error": "No such room"},
            transaction="someone-else",
        )
        result = _dispatched(message, UNBOUND, FakeOwnership("t1"))
        assert isinstance(result.delivery, Broadcast)
        assert result.event.data.payload() == {"code": 485, "reason": "No such room"}

    def test_owned_success_resolves_with_annotated_message(self) -> None:
        message = make_wire({"audiobridge": "success", "room": 1, "exists": True}, transaction="t1")
        result = _dispatched(message, UNBOUND, FakeOwnership("t1"))

        assert isinstance(result.delivery, ResolveTransaction)
        assert result.delivery.kind == DeliveryKind.RESOLVE
        annotated = result.delivery.message
        assert isinstance(annotated, AnnotatedMessage)
        assert annotated.raw is message
        assert annotated.event == result.event

    def test_message_without_transaction_is_broadcast(self) -> None:
        ownership = FakeOwnership("t1")
        result = _dispatched(make_wire({"audiobridge": "destroyed", "room": 1}), UNBOUND, ownership)
        assert isinstance(result.delivery, Broadcast)
        assert result.delivery.kind == DeliveryKind.BROADCAST
        assert ownership.queries == []

    def test_ownership_queried_with_envelope_transaction(self) -> None:
        ownership = FakeOwnership()
        dispatch(make_wire({"audiobridge": "destroyed"}, transaction="abc"), UNBOUND, ownership)
        assert ownership.queries == ["abc"]

    def test_owned_push_event_still_resolves(self) -> None:
        # Um peer_joined que chega com transacao do handle resolve a transacao
        message = make_wire(
            {"audiobridge": "joined", "room": 1, "participants": [{"id": 7}]},
            transaction="t1",
        )
        result = _dispatched(message, BOUND, FakeOwnership("t1"))
        assert result.event.kind == EventKind.PEER_JOINED
        assert isinstance(result.delivery, ResolveTransaction)


# ---------------------------------------------------------------------------
# Pureza
# ---------------------------------------------------------------------------


class TestPurity:
    @pytest.mark.parametrize(
        "data",
        [
            {"audiobridge": "joined", "room": 1, "id": 42, "participants": [{"id": 7}]},
            {"audiobridge": "event", "room": 1, "kicked": 42},
            {"audiobridge": "left", "room": 1},
            {"audiobridge": "forwarders", "room": 1, "rtp_forwarders": [{"ip": "a", "port": 1}]},
        ],
    )
    def test_message_not_mutated(self, data: dict) -> None:
        message = make_wire(data, transaction="t1")
        snapshot = copy.deepcopy(message)
        dispatch(message, BOUND, FakeOwnership("t1"))
        assert message == snapshot

    def test_input_state_not_mutated(self) -> None:
        state = BOUND
        dispatch(make_wire({"audiobridge": "left", "room": 1}), state, FakeOwnership())
        assert state.feed == 42
        assert state.room == 1234

"""Adapter do plugin AudioBridge: classificacao, dispatch, requests e handle."""

from ponte.audiobridge.dispatcher import (
    AnnotatedMessage,
    Broadcast,
    Dispatched,
    RejectTransaction,
    ResolveTransaction,
    TransactionOwnership,
    Unclassified,
    dispatch,
)
from ponte.audiobridge.handle import AudioBridgeHandle, Transport
from ponte.audiobridge.models import NOT_HANDLED, NormalizedEvent
from ponte.audiobridge.requests import BridgeRequest, build_request
from ponte.audiobridge.state import UNBOUND, HandleState

__all__ = [
    "NOT_HANDLED",
    "UNBOUND",
    "AnnotatedMessage",
    "AudioBridgeHandle",
    "BridgeRequest",
    "Broadcast",
    "Dispatched",
    "HandleState",
    "NormalizedEvent",
    "RejectTransaction",
    "ResolveTransaction",
    "TransactionOwnership",
    "Transport",
    "Unclassified",
    "build_request",
    "dispatch",
]

"""HandleState — estado participante/sala de um handle AudioBridge.

Maquina de dois estados, como valor imutavel:

    UNBOUND (feed = room = None)  <->  BOUND (feed e room definidos)

O dispatcher recebe o estado atual e devolve o proximo; quem guarda o valor
e o handle. Assim as transicoes sao testaveis sem transporte.

Regras:
- feed e room sao ambos None ou ambos definidos.
- UNBOUND -> BOUND apenas no join do proprio handle.
- BOUND -> UNBOUND em left, ou kicked do proprio feed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ponte._types import HandlePhase
from ponte.exceptions import InvalidStateError


@dataclass(frozen=True, slots=True)
class HandleState:
    """Feed e sala atualmente vinculados ao handle."""

    feed: Any = None
    room: Any = None

    def __post_init__(self) -> None:
        if (self.feed is None) != (self.room is None):
            raise InvalidStateError(self.feed, self.room)

    @property
    def phase(self) -> HandlePhase:
        return HandlePhase.UNBOUND if self.feed is None else HandlePhase.BOUND

    @property
    def bound(self) -> bool:
        return self.feed is not None

    def bind(self, feed: Any, room: Any) -> HandleState:
        """Vincula o handle a (feed, room). Aceita rebind a partir de BOUND."""
        if feed is None or room is None:
            raise InvalidStateError(feed, room)
        return HandleState(feed=feed, room=room)

    def unbind(self) -> HandleState:
        return UNBOUND

    def owns_feed(self, feed: Any) -> bool:
        """True se ``feed`` e o feed deste handle (comparacao estrita de valor)."""
        return self.bound and self.feed == feed


UNBOUND = HandleState()

"""EventEmitter — fan-out sincrono de eventos normalizados aos subscribers.

Subscribers se registram por ``EventKind``. Uma excecao em um callback e
logada e nao impede a entrega aos demais nem interrompe o dispatch.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ponte.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from ponte._types import EventKind

    Callback = Callable[[dict[str, Any]], object]

logger = get_logger("events")


class EventEmitter:
    """Registro de callbacks por tipo de evento."""

    def __init__(self) -> None:
        self._listeners: dict[EventKind, list[tuple[Callback, bool]]] = {}

    def on(self, kind: EventKind, callback: Callback) -> None:
        self._listeners.setdefault(kind, []).append((callback, False))

    def once(self, kind: EventKind, callback: Callback) -> None:
        """Registra um callback removido apos a primeira entrega."""
        self._listeners.setdefault(kind, []).append((callback, True))

    def off(self, kind: EventKind, callback: Callback) -> None:
        """Remove todas as inscricoes de ``callback`` em ``kind``. No-op se ausente."""
        listeners = self._listeners.get(kind)
        if not listeners:
            return
        remaining = [entry for entry in listeners if entry[0] != callback]
        if remaining:
            self._listeners[kind] = remaining
        else:
            del self._listeners[kind]

    def listener_count(self, kind: EventKind) -> int:
        return len(self._listeners.get(kind, ()))

    def emit(self, kind: EventKind, data: dict[str, Any]) -> int:
        """Entrega ``data`` a cada subscriber de ``kind``.

        Cada callback recebe sua propria copia rasa do payload.

        Returns:
            Numero de callbacks invocados.
        """
        listeners = self._listeners.get(kind)
        if not listeners:
            return 0

        # Snapshot: callbacks podem se inscrever/desinscrever durante a entrega
        snapshot = list(listeners)
        persistent = [entry for entry in listeners if not entry[1]]
        if persistent:
            self._listeners[kind] = persistent
        else:
            del self._listeners[kind]

        for callback, _ in snapshot:
            try:
                callback(dict(data))
            except Exception:
                logger.exception("subscriber_error", event_kind=kind)
        return len(snapshot)

"""Structured logging para o Ponte.

Usa structlog com stdlib logging como backend. Dois formatos:
- console: legivel para desenvolvimento (default)
- json: estruturado para producao

Valores ``Enum`` (EventKind, HandlePhase, DeliveryKind) sao renderizados pelo
``.value`` para que logs JSON usem os mesmos nomes vistos pelos subscribers.
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import MutableMapping

_configured = False
_handler: logging.Handler | None = None


def _render_enums(
    _logger: Any,
    _method: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Processor structlog: substitui membros de Enum pelo seu valor."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
    return event_dict


def configure_logging(
    log_format: str | None = None,
    level: str | None = None,
) -> None:
    """Configura logging estruturado para o adapter.

    Idempotente — chamadas subsequentes sao ignoradas.

    Args:
        log_format: "json" ou "console". Default via PONTE_LOG_FORMAT env ou "console".
        level: Nivel de log (DEBUG, INFO, WARNING, ERROR).
            Default via PONTE_LOG_LEVEL env ou "INFO".
    """
    global _configured, _handler
    if _configured:
        return

    resolved_format = log_format or os.environ.get("PONTE_LOG_FORMAT", "console")
    resolved_level = level or os.environ.get("PONTE_LOG_LEVEL", "INFO")

    shared_processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _render_enums,
        structlog.processors.format_exc_info,
    ]

    if resolved_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    # StreamHandler escreve em stderr; stdout fica livre para a saida da CLI
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    _handler = handler
    root_logger.setLevel(getattr(logging, resolved_level.upper(), logging.INFO))

    _configured = True


def reset_logging() -> None:
    """Desfaz configure_logging() (usado pela CLI ao trocar formato e pelos testes)."""
    global _configured, _handler
    _configured = False
    if _handler is not None:
        logging.getLogger().removeHandler(_handler)
        _handler = None
    structlog.reset_defaults()


def get_logger(component: str, **context: Any) -> structlog.stdlib.BoundLogger:
    """Retorna logger com contexto de componente.

    Args:
        component: Nome do componente (ex: "audiobridge.dispatcher", "transactions").
        **context: Campos extras vinculados ao logger (ex: ``handle_id=123``).

    Returns:
        BoundLogger com campo component (e contexto extra) vinculado.
    """
    configure_logging()
    logger = structlog.get_logger().bind(component=component, **context)
    return logger  # type: ignore[no-any-return]

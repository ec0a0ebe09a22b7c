"""Metricas Prometheus para o dispatcher e o registro de transacoes.

Metricas sao opcionais: se prometheus_client nao estiver instalado,
o modulo exporta None para cada metrica e o codigo consumidor deve
verificar antes de usar.

Metricas definidas:
- ponte_dispatch_events_total: Counter de eventos normalizados por tipo e destino
- ponte_dispatch_unclassified_total: Counter de mensagens do dominio sem classificacao
- ponte_transactions_completed_total: Counter de transacoes concluidas por resultado
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prometheus_client import Counter

try:
    from prometheus_client import Counter as _Counter

    dispatch_events_total: Counter | None = _Counter(
        "ponte_dispatch_events_total",
        "Normalized audiobridge events by kind and delivery target",
        ["kind", "delivery"],
    )

    dispatch_unclassified_total: Counter | None = _Counter(
        "ponte_dispatch_unclassified_total",
        "Audiobridge messages recognized but not classified, by top-level tag",
        ["tag"],
    )

    transactions_completed_total: Counter | None = _Counter(
        "ponte_transactions_completed_total",
        "Transactions completed by outcome (resolved, rejected, abandoned)",
        ["outcome"],
    )

    HAS_METRICS = True

except ImportError:
    dispatch_events_total = None
    dispatch_unclassified_total = None
    transactions_completed_total = None

    HAS_METRICS = False

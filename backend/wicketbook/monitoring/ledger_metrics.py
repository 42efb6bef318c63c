"""
backend/wicketbook/monitoring/ledger_metrics.py

Purpose:
    Prometheus metrics for wager placement, settlement and ledger
    reconciliation. Exposed on /metrics.

Dependencies:
    - prometheus_client
"""

from __future__ import annotations

from contextlib import contextmanager
from time import perf_counter

from prometheus_client import Counter, Gauge, Histogram

METRIC_WAGERS_PLACED = Counter(
    "wicketbook_wagers_placed_total",
    "Wagers accepted and debited.",
)
METRIC_WAGER_REJECTIONS = Counter(
    "wicketbook_wager_rejections_total",
    "Wager placements rejected by the ledger.",
    ["reason"],
)
METRIC_STAKE_COINS = Counter(
    "wicketbook_stake_coins_total",
    "Coins debited as stakes.",
)
METRIC_SETTLEMENTS = Counter(
    "wicketbook_settlements_total",
    "Winner declarations committed.",
)
METRIC_SETTLED_WAGERS = Counter(
    "wicketbook_settled_wagers_total",
    "Wagers resolved by settlement.",
    ["outcome"],
)
METRIC_PAYOUT_COINS = Counter(
    "wicketbook_payout_coins_total",
    "Coins credited to winning wagers.",
)
METRIC_SETTLEMENT_LATENCY = Histogram(
    "wicketbook_settlement_latency_seconds",
    "Duration of one settlement transaction.",
)
METRIC_DRIFTED_WALLETS = Gauge(
    "wicketbook_ledger_drifted_wallets",
    "Wallets whose balance disagreed with the ledger at the last scan.",
)


@contextmanager
def observe_latency(metric):
    start = perf_counter()
    try:
        yield
    finally:
        metric.observe(perf_counter() - start)

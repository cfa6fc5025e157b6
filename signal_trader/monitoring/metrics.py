"""Prometheus metrics definitions."""

from __future__ import annotations

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, start_http_server


class Metrics:
    """Expose core metrics for monitoring."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or REGISTRY
        registry = self.registry

        self.loop_last_tick_age_sec = Gauge(
            "loop_last_tick_age_sec",
            "Seconds since the loop last ticked",
            ["loop"],
            registry=registry,
        )
        self.monitoring_running = Gauge(
            "monitoring_running", "Reconciliation monitoring enabled", registry=registry
        )
        self.managed_orders = Gauge(
            "managed_orders", "Orders currently tracked by the ledger", registry=registry
        )
        self.ledger_durability_degraded = Gauge(
            "ledger_durability_degraded",
            "Last ledger snapshot write failed",
            registry=registry,
        )

        # Reconciliation metrics
        self.reconciliation_success_total = Counter(
            "reconciliation_success_total", "Total successful reconciliations", registry=registry
        )
        self.reconciliation_failure_total = Counter(
            "reconciliation_failure_total", "Total reconciliation failures", registry=registry
        )
        self.reconciliation_consecutive_failures = Gauge(
            "reconciliation_consecutive_failures",
            "Consecutive reconciliation failures",
            registry=registry,
        )
        self.position_closures_total = Counter(
            "position_closures_total",
            "Detected position closures by classification",
            ["kind"],
            registry=registry,
        )

        # Trailing stop metrics
        self.trailing_stop_activations_total = Counter(
            "trailing_stop_activations_total", "Trailing stops activated", registry=registry
        )
        self.trailing_stop_updates_total = Counter(
            "trailing_stop_updates_total", "Trailing stop ratchets", registry=registry
        )
        self.trailing_stop_triggers_total = Counter(
            "trailing_stop_triggers_total", "Trailing stops breached", registry=registry
        )

        # Signal intake metrics
        self.signals_total = Counter(
            "signals_total",
            "Signals processed by outcome",
            ["outcome"],
            registry=registry,
        )

    def start(self, port: int) -> None:
        start_http_server(port, registry=self.registry)

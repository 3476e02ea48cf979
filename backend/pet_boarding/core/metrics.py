"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Order lifecycle metrics
order_transitions = Counter(
    'order_transitions_total',
    'Order lifecycle transition attempts',
    ['transition', 'result']  # create/confirm/cancel/start/complete x applied/rejected/error
)

transition_latency = Histogram(
    'order_transition_latency_seconds',
    'Order transition latency',
    ['transition'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Capacity ledger metrics
ledger_operations = Counter(
    'capacity_ledger_operations_total',
    'Capacity ledger operations',
    ['operation', 'result']  # reserve/release x ok/exhausted/noop
)

# Reconciliation metrics
sweep_runs = Counter(
    'reconciliation_sweep_runs_total',
    'Reconciliation sweep executions',
    ['sweep', 'outcome']  # completed, failed, skipped_overlap
)

sweep_orders = Counter(
    'reconciliation_sweep_orders_total',
    'Orders processed by reconciliation sweeps',
    ['sweep', 'result']  # applied, skipped, failed
)

sweep_latency = Histogram(
    'reconciliation_sweep_latency_seconds',
    'Reconciliation sweep duration',
    ['sweep'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_transition(transition: str, result: str):
    """Record a lifecycle transition. Result: applied, rejected, error"""
    order_transitions.labels(transition=transition, result=result).inc()


def record_ledger_operation(operation: str, result: str):
    """Record ledger operation. Operation: reserve, release"""
    ledger_operations.labels(operation=operation, result=result).inc()


def record_sweep_order(sweep: str, result: str):
    sweep_orders.labels(sweep=sweep, result=result).inc()

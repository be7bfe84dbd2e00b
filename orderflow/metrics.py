"""
Prometheus metrics: orders created, status transitions (committed/rejected), CAS conflicts,
rider assignments, notifications dispatched/failed.
"""
from prometheus_client import Counter, generate_latest

orders_created_total = Counter(
    "orders_created_total",
    "Total orders created",
)

# Workflow: committed transitions and denials
order_transitions_total = Counter(
    "order_transitions_total",
    "Total committed order status transitions",
    ["from_status", "to_status", "role"],
)
order_transitions_rejected_total = Counter(
    "order_transitions_rejected_total",
    "Total status change requests denied by the transition graph or the authorization policy",
    ["reason"],
)
order_mutation_conflicts_total = Counter(
    "order_mutation_conflicts_total",
    "Total lost compare-and-swap races on an order (each retry counts once)",
    ["operation"],
)
rider_assignments_total = Counter(
    "rider_assignments_total",
    "Total committed rider assignments",
    ["role"],
)

# Dispatcher
notifications_dispatched_total = Counter(
    "notifications_dispatched_total",
    "Total notifications persisted",
    ["type"],
)
notifications_failed_total = Counter(
    "notifications_failed_total",
    "Total notifications that could not be persisted",
    ["type"],
)
notification_push_failed_total = Counter(
    "notification_push_failed_total",
    "Total live-channel pushes that failed after the notification was persisted",
)


def get_metrics_content_type():
    return "text/plain; charset=utf-8; version=0.0.4"


def get_metrics_bytes():
    return generate_latest()

"""MQTT topic helpers.

We keep topic construction in one place so all components agree on naming.

Topic layout under a configurable namespace (default: `walkin/v1`):

Request/response:
- `<ns>/queue/requests`
    Customers, staff clients and the walk-in generator all send here.
- `<ns>/queue/responses/<client_id>`
    Each client listens for its own replies.

Streaming/broadcast:
- `<ns>/status/updates`
    Manager broadcasts periodic queue snapshots (admin dashboard).
- `<ns>/notifications/<entry_id>`
    One-time "you're almost up" notice for a customer.

You can run multiple independent queues on a shared broker by changing the
`namespace` parameter (e.g. `--namespace walkin/front-desk`).
"""

from __future__ import annotations

DEFAULT_NAMESPACE = "walkin/v1"


def queue_requests(namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/queue/requests"


def queue_responses(client_id: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/queue/responses/{client_id}"


def status_updates(namespace: str = DEFAULT_NAMESPACE) -> str:
    """Broadcast queue snapshots.

    In normal operation the manager publishes periodic snapshots here, and
    again right after every successful mutation.
    """
    return f"{namespace}/status/updates"


def customer_notifications(entry_id: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    """Per-entry notification stream. Use `+` as entry_id to watch all."""
    return f"{namespace}/notifications/{entry_id}"

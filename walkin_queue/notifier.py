"""Near-the-front notifications.

Once a waiting customer reaches one of the first few positions they get a
single "you're almost up" notice. The pass is idempotent per entry:

1. claim the candidates under the manager lock (already stamped or in-flight
   entries are skipped)
2. send outside the lock
3. stamp `notified_at` only after the send succeeded; a failed send drops the
   claim so a later pass retries it

An entry that has been stamped is never notified again, even if it later
moves back into the top positions.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable

from .entry import Entry

if TYPE_CHECKING:
    from .manager import QueueManager
    from .mqtt_client import MqttClient

logger = logging.getLogger(__name__)

Dispatch = Callable[[Entry], None]


class LogDispatcher:
    """Record the notification locally instead of sending an SMS."""

    def __call__(self, entry: Entry) -> None:
        logger.info("Notification recorded for %s (%s), position %d", entry.name, entry.queue_number, entry.position)


class MqttDispatcher:
    """Publish a notification for the customer's client to pick up."""

    def __init__(self, *, mqtt: MqttClient, namespace: str) -> None:
        from .mqtt_topics import customer_notifications

        self.mqtt = mqtt
        self.namespace = namespace
        self._topic = customer_notifications

    def __call__(self, entry: Entry) -> None:
        self.mqtt.publish(
            self._topic(entry.id, self.namespace),
            {
                "type": "customer_notification",
                "entry_id": entry.id,
                "queue_number": entry.queue_number,
                "phone": entry.phone,
                "position": entry.position,
                "message": f"{entry.name}, you are number {entry.position} in line. Please head to the counter.",
                "ts": time.time(),
            },
        )


class FrontOfQueueNotifier:
    def __init__(self, manager: QueueManager, dispatch: Dispatch, *, top_n: int = 3) -> None:
        if top_n < 0:
            raise ValueError("top_n must be >= 0")
        self.manager = manager
        self.dispatch = dispatch
        self.top_n = top_n

    def run_once(self) -> list[Entry]:
        """Notify every not-yet-notified entry in the top positions.

        Returns the entries whose notification was sent in this pass.
        """
        sent: list[Entry] = []
        for entry in self.manager.claim_notifications(self.top_n):
            try:
                self.dispatch(entry)
            except Exception:
                logger.exception("Notification for %s failed; will retry", entry.queue_number)
                self.manager.release_notification(entry.id)
                continue
            stamped = self.manager.confirm_notified(entry.id)
            if stamped is not None:
                sent.append(stamped)
        return sent

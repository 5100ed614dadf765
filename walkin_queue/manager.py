from __future__ import annotations

# The Queue Manager is the *authoritative brain* of the system.
#
# IMPORTANT: This file contains two layers:
# 1) `QueueManager` (pure logic, easy to unit test)
# 2) `MqttQueueManagerService` + `main()` (integration with MQTT broker)

import argparse
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, TYPE_CHECKING

from .entry import Entry, Status
from .errors import ErrorResponse, InvalidTransition, PredictionError, QueueError, ServingSlotOccupied, ValidationError
from .estimation import DEFAULT_AVERAGE_SERVICE_TIME
from .registry import EntryRegistry
from .validation import validate_registration
from .verification import VerificationClaim, decode_token, verify

if TYPE_CHECKING:
    from .mqtt_client import MqttClient
    from .prediction import QueueAIClient


# Allowed lifecycle moves. Anything not listed raises InvalidTransition.
TRANSITIONS: dict[Status, frozenset[Status]] = {
    Status.WAITING: frozenset({Status.CALLED, Status.SERVING, Status.CANCELLED}),
    Status.CALLED: frozenset({Status.SERVING, Status.CANCELLED}),
    Status.SERVING: frozenset({Status.COMPLETED, Status.CANCELLED}),
    Status.COMPLETED: frozenset(),
    Status.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class QueueStats:
    total_waiting: int
    currently_serving: Entry | None
    served_today: int
    average_service_time: float
    is_paused: bool

    def to_message(self) -> dict[str, Any]:
        serving = self.currently_serving
        return {
            "total_waiting": self.total_waiting,
            "currently_serving": (
                {"queue_number": serving.queue_number, "name": serving.name, "phone": serving.phone}
                if serving is not None
                else None
            ),
            "served_today": self.served_today,
            "average_service_time": self.average_service_time,
            "is_paused": self.is_paused,
        }


@dataclass(frozen=True)
class QueueSnapshot:
    entries: tuple[Entry, ...]
    stats: QueueStats

    def to_message(self) -> dict[str, Any]:
        return {
            "type": "queue_snapshot",
            "stats": self.stats.to_message(),
            "entries": [e.to_message() for e in self.entries],
        }


class QueueManager:
    """Core business logic (testable without MQTT).

    Owns the registry, the pause flag, the served-today counter and the
    notification bookkeeping. Every public method takes the lock, so each
    operation (mutation + recompute) is atomic with respect to the others.
    """

    def __init__(
        self,
        *,
        average_service_time: float = DEFAULT_AVERAGE_SERVICE_TIME,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._registry = EntryRegistry(average_service_time=average_service_time, clock=clock)
        self._paused = False

        self._served_today = 0
        self._served_day = self._today()

        # Entry ids with a notification send in flight.
        self._notify_claims: set[str] = set()

    def _today(self) -> date:
        return date.fromtimestamp(self._clock())

    def _roll_day(self) -> None:
        today = self._today()
        if today != self._served_day:
            self._served_day = today
            self._served_today = 0

    # -------------------- registration --------------------

    def add_to_queue(self, name: str, phone: str) -> Entry | None:
        """Register a customer. Returns None for a duplicate active entry."""
        with self._lock:
            return self._registry.add(name, phone)

    def remove_from_queue(self, entry_id: str) -> Entry | None:
        with self._lock:
            self._notify_claims.discard(entry_id)
            return self._registry.remove(entry_id)

    # -------------------- lifecycle --------------------

    def _transition(self, entry_id: str, target: Status, **changes: Any) -> Entry | None:
        # Caller holds the lock.
        entry = self._registry.get(entry_id)
        if entry is None:
            return None
        if target not in TRANSITIONS[entry.status]:
            raise InvalidTransition(entry_id, entry.status.value, target.value)
        return self._registry.update(entry_id, status=target, **changes)

    def call_next(self) -> Entry | None:
        """Move the front waiting entry to `called`.

        Returns None when the queue is paused or nobody is waiting.
        """
        with self._lock:
            if self._paused:
                return None
            waiting = self._registry.waiting()
            if not waiting:
                return None
            return self._transition(waiting[0].id, Status.CALLED)

    def mark_as_serving(self, entry_id: str) -> Entry | None:
        """Start serving a waiting or called entry (normally after verification)."""
        with self._lock:
            entry = self._registry.get(entry_id)
            if entry is None:
                return None
            if Status.SERVING not in TRANSITIONS[entry.status]:
                raise InvalidTransition(entry_id, entry.status.value, Status.SERVING.value)
            serving = self._registry.with_status(Status.SERVING)
            if serving:
                raise ServingSlotOccupied(entry_id, entry.status.value, serving[0].id)
            return self._transition(entry_id, Status.SERVING, verified_at=self._clock())

    def complete_service(self, entry_id: str) -> Entry | None:
        with self._lock:
            entry = self._transition(entry_id, Status.COMPLETED)
            if entry is not None:
                self._roll_day()
                self._served_today += 1
            return entry

    def cancel_from_queue(self, entry_id: str) -> Entry | None:
        """Customer withdrawal or staff no-show handling."""
        with self._lock:
            entry = self._transition(entry_id, Status.CANCELLED)
            if entry is not None:
                self._notify_claims.discard(entry_id)
            return entry

    def toggle_pause(self) -> bool:
        with self._lock:
            self._paused = not self._paused
            return self._paused

    @property
    def is_paused(self) -> bool:
        with self._lock:
            return self._paused

    def set_average_service_time(self, minutes: float) -> None:
        with self._lock:
            self._registry.average_service_time = minutes

    # -------------------- verification --------------------

    def verify(self, claim: VerificationClaim) -> Entry | None:
        with self._lock:
            return verify(self._registry, claim)

    # -------------------- notifications --------------------

    def claim_notifications(self, top_n: int = 3) -> list[Entry]:
        """Reserve the first `top_n` waiting entries that still need a notice.

        Entries already stamped or already claimed are skipped, so running the
        pass twice never sends twice.
        """
        with self._lock:
            claimed: list[Entry] = []
            for e in self._registry.waiting()[:top_n]:
                if e.notified_at is not None or e.id in self._notify_claims or not e.phone:
                    continue
                self._notify_claims.add(e.id)
                claimed.append(e)
            return claimed

    def confirm_notified(self, entry_id: str) -> Entry | None:
        """Stamp `notified_at` after a successful send. The claim is kept."""
        with self._lock:
            if entry_id not in self._notify_claims:
                return None
            return self._registry.update(entry_id, notified_at=self._clock())

    def release_notification(self, entry_id: str) -> None:
        """Drop a claim after a failed send so a later pass can retry."""
        with self._lock:
            self._notify_claims.discard(entry_id)

    # -------------------- reads --------------------

    def get(self, entry_id: str) -> Entry | None:
        with self._lock:
            return self._registry.get(entry_id)

    def find_by_phone(self, phone: str) -> Entry | None:
        with self._lock:
            return self._registry.find_by_phone(phone)

    def find_by_queue_number(self, number: int | str) -> Entry | None:
        with self._lock:
            return self._registry.find_by_display_number(number)

    def search_queue(self, query: str) -> list[Entry]:
        with self._lock:
            return self._registry.search(query)

    def position_of(self, entry_id: str) -> int:
        with self._lock:
            return self._registry.position_of(entry_id)

    def entries(self) -> tuple[Entry, ...]:
        with self._lock:
            return self._registry.entries()

    def _stats(self) -> QueueStats:
        # Caller holds the lock.
        self._roll_day()
        serving = self._registry.with_status(Status.SERVING)
        return QueueStats(
            total_waiting=len(self._registry.waiting()),
            currently_serving=serving[0] if serving else None,
            served_today=self._served_today,
            average_service_time=self._registry.average_service_time,
            is_paused=self._paused,
        )

    def stats(self) -> QueueStats:
        with self._lock:
            return self._stats()

    def snapshot(self) -> QueueSnapshot:
        with self._lock:
            return QueueSnapshot(entries=self._registry.entries(), stats=self._stats())


class MqttQueueManagerService:
    """MQTT adapter around the QueueManager business logic."""

    def __init__(
        self,
        *,
        mqtt: MqttClient,
        namespace: str = "walkin/v1",
        manager: QueueManager | None = None,
        ai_client: QueueAIClient | None = None,
        notify_top: int = 3,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        # Local imports so unit tests can import QueueManager without paho-mqtt.
        from .mqtt_topics import queue_requests, status_updates
        from .notifier import FrontOfQueueNotifier, MqttDispatcher

        self._queue_requests = queue_requests
        self._status_updates = status_updates

        self.mqtt = mqtt
        self.namespace = namespace
        self.manager = manager or QueueManager()
        self.ai_client = ai_client
        self.notifier = FrontOfQueueNotifier(
            self.manager, MqttDispatcher(mqtt=mqtt, namespace=namespace), top_n=notify_top
        )

        # Prediction calls block on HTTP; keep them off the MQTT network thread.
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="queue-ai")

        # Background publisher thread control.
        self._stop_event = threading.Event()
        self._status_thread: threading.Thread | None = None

    def start(self, *, publish_status_every: float = 2.0) -> None:
        self.mqtt.subscribe(self._queue_requests(self.namespace))
        self.mqtt.add_handler(self._handle_message)

        # Start periodic publisher for observers (also drives notifications).
        self._status_thread = threading.Thread(
            target=self._status_publisher_loop,
            args=(publish_status_every,),
            daemon=True,
        )
        self._status_thread.start()

    def stop(self) -> None:
        """Stop background threads. Call before disconnecting MQTT."""
        self._stop_event.set()
        t = self._status_thread
        if t and t.is_alive():
            t.join(timeout=1.0)
        self._executor.shutdown(wait=False)

    def publish_snapshot(self) -> None:
        self.mqtt.publish(self._status_updates(self.namespace), self.manager.snapshot().to_message())

    def _status_publisher_loop(self, interval: float) -> None:
        """Publish periodic snapshots and run the front-of-queue notifier."""
        while not self._stop_event.is_set():
            try:
                self.notifier.run_once()
                self.publish_snapshot()
            except Exception as e:
                # Keep publishing even if an occasional error occurs.
                print(f"[manager] status loop error: {e}")
            self._stop_event.wait(interval)

    def _reply(self, reply_to: str, corr_id: str | None, message: dict[str, Any]) -> None:
        msg = dict(message)
        if corr_id is not None:
            msg["corr_id"] = corr_id
        self.mqtt.publish(reply_to, msg)

    def _handle_message(self, topic: str, msg: dict[str, Any]) -> None:
        mtype = msg.get("type")

        corr_id = msg.get("corr_id") if isinstance(msg.get("corr_id"), str) else None
        reply_to = msg.get("reply_to") if isinstance(msg.get("reply_to"), str) else None
        if not reply_to:
            return
        if not isinstance(mtype, str):
            self._reply(reply_to, corr_id, ErrorResponse("bad_request", "type required").to_message())
            return

        if mtype in _AI_REQUESTS:
            self._executor.submit(self._handle_ai_request, mtype, msg, reply_to, corr_id)
            return

        try:
            response = self.handle_request(mtype, msg)
        except (QueueError, ValidationError) as e:
            response = e.to_response().to_message()
        self._reply(reply_to, corr_id, response)

        if mtype in _MUTATING_REQUESTS and response.get("type") != "error":
            self.publish_snapshot()

    def handle_request(self, mtype: str, msg: dict[str, Any]) -> dict[str, Any]:
        """Dispatch one (non-AI) request and build the reply message.

        Raises QueueError/ValidationError; the caller turns them into error
        envelopes.
        """
        m = self.manager

        # -------- customer requests --------
        if mtype == "join_queue":
            name, phone = validate_registration(str(msg.get("name", "")), str(msg.get("phone", "")))
            entry = m.add_to_queue(name, phone)
            if entry is None:
                return ErrorResponse("duplicate", "You are already in the queue").to_message()
            return {"type": "joined", "entry": entry.to_message()}

        if mtype == "entry_status":
            entry_id = msg.get("entry_id")
            phone = msg.get("phone")
            if isinstance(entry_id, str) and entry_id:
                entry = m.get(entry_id)
            elif isinstance(phone, str) and phone:
                entry = m.find_by_phone(phone)
            else:
                return ErrorResponse("bad_request", "entry_id or phone required").to_message()
            return _entry_reply("entry_status", entry)

        if mtype == "leave_queue":
            return _entry_reply("left_queue", m.cancel_from_queue(_required_id(msg)))

        # -------- staff requests --------
        if mtype == "call_next":
            entry = m.call_next()
            return {"type": "called", "entry": entry.to_message() if entry else None, "is_paused": m.is_paused}

        if mtype == "mark_serving":
            return _entry_reply("serving", m.mark_as_serving(_required_id(msg)))

        if mtype == "complete":
            return _entry_reply("completed", m.complete_service(_required_id(msg)))

        if mtype == "cancel":
            return _entry_reply("cancelled", m.cancel_from_queue(_required_id(msg)))

        if mtype == "remove":
            return _entry_reply("removed", m.remove_from_queue(_required_id(msg)))

        if mtype == "toggle_pause":
            return {"type": "pause_state", "is_paused": m.toggle_pause()}

        if mtype == "set_service_time":
            try:
                minutes = float(msg.get("minutes"))  # type: ignore[arg-type]
            except (TypeError, ValueError):
                return ErrorResponse("bad_request", "numeric minutes required").to_message()
            if not math.isfinite(minutes) or minutes <= 0:
                return ErrorResponse("bad_request", "minutes must be a finite number > 0").to_message()
            m.set_average_service_time(minutes)
            return {"type": "service_time_set", "average_service_time": minutes}

        if mtype == "verify":
            token = msg.get("token")
            if not isinstance(token, str):
                return ErrorResponse("bad_request", "token required").to_message()
            try:
                claim = decode_token(token)
            except ValueError as e:
                return ErrorResponse("validation_failed", str(e)).to_message()
            entry = m.verify(claim)
            if entry is None:
                return ErrorResponse("not_found", "Ticket not found or already handled").to_message()
            return {"type": "verified", "entry": entry.to_message()}

        if mtype == "search":
            query = str(msg.get("query", ""))
            return {"type": "search_results", "entries": [e.to_message() for e in m.search_queue(query)]}

        if mtype == "snapshot":
            return m.snapshot().to_message()

        return ErrorResponse("unknown_type", f"Unknown request type: {mtype}").to_message()

    def _handle_ai_request(self, mtype: str, msg: dict[str, Any], reply_to: str, corr_id: str | None) -> None:
        # Runs on the worker pool. Replies are not ordered against each other:
        # if a caller fires two requests, whichever answer lands last wins.
        try:
            response = self.handle_ai_request(mtype, msg)
        except PredictionError as e:
            response = e.to_response().to_message()
        except Exception as e:
            print(f"[manager] {mtype} failed: {e}")
            response = ErrorResponse("upstream_error", "AI service unavailable").to_message()
        try:
            self._reply(reply_to, corr_id, response)
        except ConnectionError as e:
            print(f"[manager] {mtype} reply lost: {e}")

    def handle_ai_request(self, mtype: str, msg: dict[str, Any]) -> dict[str, Any]:
        if self.ai_client is None:
            raise PredictionError("not_configured", "AI service is not configured")

        stats = self.manager.stats()

        if mtype == "predict_wait_time":
            prediction = self.ai_client.predict_wait_time(
                queue_size=stats.total_waiting,
                avg_service_time=stats.average_service_time,
                served_today=stats.served_today,
            )
            return {"type": "wait_prediction", "result": prediction.to_message()}

        if mtype == "optimize_queue":
            optimization = self.ai_client.optimize_queue(
                total_waiting=stats.total_waiting,
                served_today=stats.served_today,
                avg_service_time=stats.average_service_time,
            )
            return {"type": "optimization", "result": optimization.to_message()}

        # customer_insights
        entry_id = msg.get("entry_id")
        entry = self.manager.get(entry_id) if isinstance(entry_id, str) else None
        if entry is None or entry.status is not Status.WAITING:
            return ErrorResponse("not_found", "No waiting entry with that id").to_message()
        insights = self.ai_client.customer_insights(
            position=entry.position, estimated_wait=entry.estimated_wait_minutes
        )
        return {"type": "customer_insights", "result": insights.to_message()}


_AI_REQUESTS = frozenset({"predict_wait_time", "optimize_queue", "customer_insights"})
_MUTATING_REQUESTS = frozenset(
    {
        "join_queue",
        "leave_queue",
        "call_next",
        "mark_serving",
        "complete",
        "cancel",
        "remove",
        "toggle_pause",
        "set_service_time",
    }
)


class _MissingEntryId(QueueError):
    code = "bad_request"


def _required_id(msg: dict[str, Any]) -> str:
    entry_id = msg.get("entry_id")
    if not isinstance(entry_id, str) or not entry_id:
        raise _MissingEntryId("entry_id required")
    return entry_id


def _entry_reply(reply_type: str, entry: Entry | None) -> dict[str, Any]:
    if entry is None:
        return ErrorResponse("not_found", "Unknown queue entry").to_message()
    return {"type": reply_type, "entry": entry.to_message()}


def main() -> None:
    # Import MQTT dependencies only when running the real service.
    from .mqtt_client import MqttClient
    from .prediction import QueueAIClient

    parser = argparse.ArgumentParser(description="Queue Manager (MQTT)")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default="walkin/v1")
    parser.add_argument(
        "--publish-status-every",
        type=float,
        default=2.0,
        help="seconds between broadcast snapshots (admin dashboard) and notification passes",
    )
    parser.add_argument(
        "--avg-service-minutes",
        type=float,
        default=DEFAULT_AVERAGE_SERVICE_TIME,
        help="average minutes spent serving one customer (drives wait estimates)",
    )
    parser.add_argument("--notify-top", type=int, default=3, help="notify customers once they reach this position")
    parser.add_argument("--no-ai", action="store_true", help="do not call the hosted prediction service")
    args = parser.parse_args()

    if not math.isfinite(args.avg_service_minutes) or args.avg_service_minutes <= 0:
        parser.error("--avg-service-minutes must be a finite number > 0")

    mqtt_client = MqttClient(client_id="walkin-manager", host=args.mqtt_host, port=args.mqtt_port)
    mqtt_client.start()

    ai_client = None if args.no_ai else QueueAIClient.from_env()

    service = MqttQueueManagerService(
        mqtt=mqtt_client,
        namespace=args.namespace,
        manager=QueueManager(average_service_time=args.avg_service_minutes),
        ai_client=ai_client,
        notify_top=args.notify_top,
    )
    service.start(publish_status_every=args.publish_status_every)

    print(f"[manager] connected to MQTT {args.mqtt_host}:{args.mqtt_port}, namespace={args.namespace}")
    if ai_client is None or not ai_client.configured:
        print("[manager] AI service not configured; prediction requests will be answered with an error")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        service.stop()
        if ai_client is not None:
            ai_client.close()
        mqtt_client.stop()


if __name__ == "__main__":
    main()

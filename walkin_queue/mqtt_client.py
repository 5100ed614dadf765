"""Small MQTT helper built on top of paho-mqtt.

paho-mqtt is callback-based; the queue clients want a blocking
request/response call instead. `MqttClient` manages the connection and the
background network loop, and `request()` publishes a JSON message and waits
for the reply carrying the same `corr_id`.

QoS is kept at 0: lost messages surface as request timeouts and the
periodic snapshot broadcast repairs any dashboard that missed an update.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
import uuid
from typing import Any, Callable

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, dict[str, Any]], None]


class MqttClient:
    """Thin wrapper around paho-mqtt with JSON convenience APIs."""

    def __init__(
        self,
        *,
        client_id: str,
        host: str,
        port: int,
        keepalive: int = 30,
    ) -> None:
        self.client_id = client_id
        self.host = host
        self.port = port
        self.keepalive = keepalive

        self._client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id, clean_session=True)
        self._client.on_message = self._on_message

        # External subscribers. Called with (topic, json_message).
        self._handlers: list[MessageHandler] = []

        # corr_id -> single-slot inbox used by request()
        self._pending: dict[str, "queue.Queue[dict[str, Any]]"] = {}
        self._lock = threading.Lock()

        self._started = False

    def start(self) -> None:
        """Connect and start the background network loop."""
        if self._started:
            return
        self._client.connect(self.host, self.port, keepalive=self.keepalive)
        self._client.loop_start()
        self._started = True

    def stop(self) -> None:
        if not self._started:
            return
        self._client.loop_stop()
        self._client.disconnect()
        self._started = False

    def add_handler(self, handler: MessageHandler) -> None:
        self._handlers.append(handler)

    def subscribe(self, topic: str) -> None:
        self._client.subscribe(topic, qos=0)

    def publish(self, topic: str, message: dict[str, Any]) -> None:
        """Hand a JSON message to the network loop.

        Raises ConnectionError when paho refuses it (not connected, queue
        full). A QoS 0 message accepted here may still be lost in transit.
        """
        payload = json.dumps(message, separators=(",", ":")).encode("utf-8")
        info = self._client.publish(topic, payload=payload, qos=0)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise ConnectionError(f"publish to {topic} failed: {mqtt.error_string(info.rc)}")

    def request(
        self,
        *,
        request_topic: str,
        response_topic: str,
        message: dict[str, Any],
        timeout: float = 5.0,
    ) -> dict[str, Any]:
        """Publish a message and wait for a correlated response.

        The caller must ensure we are subscribed to `response_topic`.
        Raises TimeoutError when nothing arrives in time, ConnectionError when
        the request cannot be published.
        """
        corr_id = str(uuid.uuid4())
        msg = dict(message)
        msg["corr_id"] = corr_id
        msg["reply_to"] = response_topic

        inbox: "queue.Queue[dict[str, Any]]" = queue.Queue(maxsize=1)
        with self._lock:
            self._pending[corr_id] = inbox

        try:
            self.publish(request_topic, msg)
            return inbox.get(timeout=timeout)
        except queue.Empty as e:
            raise TimeoutError(f"No response for {message.get('type')} (corr_id={corr_id})") from e
        finally:
            with self._lock:
                self._pending.pop(corr_id, None)

    # -------------------- internal callbacks --------------------

    def _on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage) -> None:
        try:
            raw = msg.payload
            payload = raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)
            data = json.loads(payload)
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("Dropping malformed message on %s", msg.topic)
            return
        if not isinstance(data, dict):
            return

        # Replies to our own requests go to the waiting caller only.
        corr_id = data.get("corr_id")
        if isinstance(corr_id, str) and "reply_to" not in data:
            with self._lock:
                inbox = self._pending.get(corr_id)
            if inbox is not None:
                try:
                    inbox.put_nowait(data)
                except queue.Full:
                    pass
                return

        for h in list(self._handlers):
            try:
                h(msg.topic, data)
            except Exception:
                # Keep the network loop alive; one bad handler must not stop the others.
                logger.exception("Handler failed for message on %s", msg.topic)

from __future__ import annotations

# Admin dashboard (Tkinter).
#
# Shows the live queue (one row per entry) plus a stats line, and offers the
# counter buttons: call next, serve/complete/cancel the selected row, pause.
#
# Architecture:
# - MQTT callbacks run on a background thread managed by paho-mqtt.
# - Tkinter must be updated from the main UI thread.
# - We therefore push incoming snapshots/replies into a Queue and poll it via
#   `root.after(...)`.
# - Button presses publish a request with `reply_to` set to our own response
#   topic and return immediately; the reply shows up in the info bar.

import argparse
import queue
import time
import tkinter as tk
import uuid
from tkinter import ttk
from typing import Any, cast

from .mqtt_client import MqttClient
from .mqtt_topics import DEFAULT_NAMESPACE, queue_requests, queue_responses, status_updates

COLUMNS = ("queue_number", "name", "phone", "status", "position", "wait", "joined")


class DashboardApp:
    def __init__(self, *, mqtt_host: str, mqtt_port: int, namespace: str, refresh_ms: int = 250) -> None:
        self.mqtt_host = mqtt_host
        self.mqtt_port = mqtt_port
        self.namespace = namespace
        self.refresh_ms = refresh_ms

        self.root = tk.Tk()
        self.root.title("Walk-in Queue Admin")
        self.root.geometry("860x480")

        # Top info bar
        self.info_var = tk.StringVar(value="Connecting...")
        ttk.Label(self.root, textvariable=self.info_var).pack(fill=cast(Any, tk.X), padx=10, pady=(10, 2))
        self.stats_var = tk.StringVar(value="")
        ttk.Label(self.root, textvariable=self.stats_var).pack(fill=cast(Any, tk.X), padx=10, pady=(0, 5))

        # Counter buttons
        bar = ttk.Frame(self.root)
        bar.pack(fill=cast(Any, tk.X), padx=10)
        ttk.Button(bar, text="Call next", command=lambda: self._send("call_next")).pack(side=cast(Any, tk.LEFT))
        ttk.Button(bar, text="Serve", command=lambda: self._send_selected("mark_serving")).pack(side=cast(Any, tk.LEFT))
        ttk.Button(bar, text="Complete", command=lambda: self._send_selected("complete")).pack(side=cast(Any, tk.LEFT))
        ttk.Button(bar, text="Cancel", command=lambda: self._send_selected("cancel")).pack(side=cast(Any, tk.LEFT))
        ttk.Button(bar, text="Pause / Resume", command=lambda: self._send("toggle_pause")).pack(side=cast(Any, tk.RIGHT))

        # Queue table. Row iid is the entry id.
        self.tree = ttk.Treeview(self.root, columns=COLUMNS, show="headings", height=14)
        for col, title, width in (
            ("queue_number", "Number", 80),
            ("name", "Name", 180),
            ("phone", "Phone", 120),
            ("status", "Status", 90),
            ("position", "Position", 80),
            ("wait", "Est. wait", 90),
            ("joined", "Joined", 110),
        ):
            self.tree.heading(col, text=title)
            self.tree.column(col, width=width, anchor=cast(Any, tk.W))
        self.tree.pack(fill=cast(Any, tk.BOTH), expand=True, padx=10, pady=10)

        help_text = "Live updates from MQTT topic: " + status_updates(namespace)
        ttk.Label(self.root, text=help_text).pack(fill=cast(Any, tk.X), padx=10, pady=(0, 10))

        # Incoming messages from the MQTT thread
        self._inbox: "queue.Queue[dict[str, Any]]" = queue.Queue(maxsize=20)

        self._client_id = f"gui-{int(time.time())}"
        self._mqtt = MqttClient(client_id=self._client_id, host=mqtt_host, port=mqtt_port)
        self._reply_topic = queue_responses(self._client_id, namespace)

        self._last_snapshot_ts: float | None = None
        self._last_action: str | None = None

        self.root.protocol("WM_DELETE_WINDOW", self.close)

    def start(self) -> None:
        # Connect to MQTT. If broker isn't reachable, keep UI alive and show error.
        try:
            self._mqtt.start()
            self._mqtt.subscribe(status_updates(self.namespace))
            self._mqtt.subscribe(self._reply_topic)
            self._mqtt.add_handler(self._on_mqtt_message)
            self.info_var.set(self._connected_text("waiting for updates..."))
        except Exception as e:
            self.info_var.set(f"MQTT connection failed: {e}")

        self.root.after(cast(Any, self.refresh_ms), self._drain_inbox)
        self.root.mainloop()

    def close(self) -> None:
        try:
            self._mqtt.stop()
        finally:
            self.root.destroy()

    def _connected_text(self, suffix: str) -> str:
        return f"Connected to MQTT {self.mqtt_host}:{self.mqtt_port} | namespace={self.namespace} | {suffix}"

    # -------------------- staff actions --------------------

    def _send(self, action: str, **fields: Any) -> None:
        self._last_action = action
        try:
            self._mqtt.publish(
                queue_requests(self.namespace),
                {"type": action, "corr_id": str(uuid.uuid4()), "reply_to": self._reply_topic, **fields},
            )
        except ConnectionError as e:
            self.info_var.set(f"{action}: {e}")

    def _send_selected(self, action: str) -> None:
        selected = self.tree.selection()
        if not selected:
            self.info_var.set("Select an entry first")
            return
        self._send(action, entry_id=selected[0])

    # -------------------- MQTT thread callback --------------------

    def _on_mqtt_message(self, topic: str, msg: dict[str, Any]) -> None:
        try:
            self._inbox.put_nowait(msg)
        except queue.Full:
            # Drop updates if the UI is slow; the next snapshot repairs it.
            pass

    # -------------------- UI thread polling --------------------

    def _drain_inbox(self) -> None:
        latest: dict[str, Any] | None = None
        while True:
            try:
                msg = self._inbox.get_nowait()
            except queue.Empty:
                break
            if msg.get("type") == "queue_snapshot":
                latest = msg
            else:
                self._render_reply(msg)

        if latest is not None:
            self._last_snapshot_ts = time.time()
            self._render_snapshot(latest)
        elif self._last_snapshot_ts is not None:
            age = max(0.0, time.time() - self._last_snapshot_ts)
            self.stats_var.set(self.stats_var.get().split(" | last update")[0] + f" | last update {age:0.1f}s ago")

        self.root.after(cast(Any, self.refresh_ms), self._drain_inbox)

    def _render_reply(self, msg: dict[str, Any]) -> None:
        if msg.get("type") == "error":
            self.info_var.set(f"{self._last_action}: {msg.get('message')}")
            return
        entry = msg.get("entry")
        if isinstance(entry, dict):
            self.info_var.set(f"{msg.get('type')}: {entry.get('queue_number')} {entry.get('name')}")
        elif msg.get("type") == "called":
            self.info_var.set("Queue is paused" if msg.get("is_paused") else "Nobody is waiting")
        elif msg.get("type") == "pause_state":
            self.info_var.set("Queue paused" if msg.get("is_paused") else "Queue resumed")

    def _render_snapshot(self, snapshot: dict[str, Any]) -> None:
        stats = snapshot.get("stats") or {}
        serving = stats.get("currently_serving")
        serving_text = f"{serving['queue_number']} {serving['name']}" if isinstance(serving, dict) else "-"
        self.stats_var.set(
            f"Waiting: {stats.get('total_waiting', 0)} | Serving: {serving_text} | "
            f"Served today: {stats.get('served_today', 0)} | "
            f"Avg service: {stats.get('average_service_time', '?')}m"
            + (" | PAUSED" if stats.get("is_paused") else "")
        )

        selected = self.tree.selection()
        for item in self.tree.get_children():
            self.tree.delete(item)

        entries = snapshot.get("entries")
        if not isinstance(entries, list) or not entries:
            self.tree.insert("", cast(Any, tk.END), values=("(empty)", "", "", "", "", "", ""))
            return

        for e in entries:
            if not isinstance(e, dict) or e.get("status") in ("completed", "cancelled"):
                continue
            joined = time.strftime("%H:%M:%S", time.localtime(e.get("joined_at", 0)))
            waiting = e.get("status") == "waiting"
            self.tree.insert(
                "",
                cast(Any, tk.END),
                iid=e["id"],
                values=(
                    e.get("queue_number"),
                    e.get("name"),
                    e.get("phone"),
                    e.get("status"),
                    e.get("position") if waiting else "-",
                    f"{e.get('estimated_wait_minutes', 0):g} min" if waiting else "-",
                    joined,
                ),
            )
        keep = [iid for iid in selected if self.tree.exists(iid)]
        if keep:
            self.tree.selection_set(keep)


def main() -> None:
    parser = argparse.ArgumentParser(description="Admin dashboard (Tkinter + MQTT)")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default=DEFAULT_NAMESPACE)
    parser.add_argument("--refresh-ms", type=int, default=250)
    args = parser.parse_args()

    app = DashboardApp(
        mqtt_host=args.mqtt_host,
        mqtt_port=args.mqtt_port,
        namespace=args.namespace,
        refresh_ms=args.refresh_ms,
    )
    app.start()


if __name__ == "__main__":
    main()

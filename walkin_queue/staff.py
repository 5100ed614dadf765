from __future__ import annotations

# Staff (admin) client.
#
# Every counter action is one request/response round trip to the manager:
#   call-next, serve, complete, cancel, remove, pause, service-time,
#   verify, search, and the AI helpers (predict, optimize, insights).
#
# Typical counter flow:
#   call-next -> verify <ticket code> -> serve <entry id> -> complete <entry id>

import argparse
import json
import time
from typing import Any

from .mqtt_client import MqttClient
from .mqtt_topics import DEFAULT_NAMESPACE, queue_requests, queue_responses

# AI calls go out to a hosted model and may take a while.
AI_TIMEOUT = 30.0


def staff_request(
    *,
    mqtt_host: str,
    mqtt_port: int,
    namespace: str,
    action: str,
    timeout: float = 5.0,
    **fields: Any,
) -> dict[str, Any]:
    client_id = f"staff-{int(time.time() * 1000)}"
    mqtt = MqttClient(client_id=client_id, host=mqtt_host, port=mqtt_port)
    mqtt.start()

    reply_topic = queue_responses(client_id, namespace)
    mqtt.subscribe(reply_topic)

    try:
        return mqtt.request(
            request_topic=queue_requests(namespace),
            response_topic=reply_topic,
            message={"type": action, **fields},
            timeout=timeout,
        )
    finally:
        mqtt.stop()


def format_reply(resp: dict[str, Any]) -> str:
    rtype = resp.get("type")
    if rtype == "error":
        return f"error: {resp.get('code')}: {resp.get('message')}"

    entry = resp.get("entry")
    if rtype == "called" and entry is None:
        return "queue is paused" if resp.get("is_paused") else "nobody is waiting"
    if isinstance(entry, dict):
        return f"{rtype}: {entry['queue_number']} {entry['name']} ({entry['status']}) id={entry['id']}"

    if rtype == "search_results":
        lines = [f"{len(resp['entries'])} match(es)"]
        for e in resp["entries"]:
            lines.append(f"  {e['queue_number']} {e['name']} {e['phone']} {e['status']} id={e['id']}")
        return "\n".join(lines)

    if rtype == "pause_state":
        return "queue paused" if resp.get("is_paused") else "queue resumed"

    if "result" in resp:
        return f"{rtype}:\n{json.dumps(resp['result'], indent=2)}"

    return json.dumps(resp, indent=2)


def main() -> None:
    parser = argparse.ArgumentParser(description="Staff client (MQTT)")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default=DEFAULT_NAMESPACE)
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("call-next", help="call the next waiting customer")
    for name, help_text in (
        ("serve", "start serving an entry"),
        ("complete", "finish serving an entry"),
        ("cancel", "cancel an entry (no-show)"),
        ("remove", "delete an entry from the list"),
        ("insights", "AI message for a waiting customer"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("entry_id")

    sub.add_parser("pause", help="toggle the pause flag")

    p_time = sub.add_parser("service-time", help="set average minutes per customer")
    p_time.add_argument("minutes", type=float)

    p_verify = sub.add_parser("verify", help="check a ticket code")
    p_verify.add_argument("token", help="JSON ticket code as printed on the customer's ticket")

    p_search = sub.add_parser("search", help="search by name, phone or queue number")
    p_search.add_argument("query")

    sub.add_parser("predict", help="AI wait-time prediction")
    sub.add_parser("optimize", help="AI optimization suggestions")
    sub.add_parser("snapshot", help="print the full queue")

    args = parser.parse_args()

    actions: dict[str, tuple[str, dict[str, Any]]] = {
        "call-next": ("call_next", {}),
        "pause": ("toggle_pause", {}),
        "predict": ("predict_wait_time", {}),
        "optimize": ("optimize_queue", {}),
        "snapshot": ("snapshot", {}),
    }
    if args.cmd in ("serve", "complete", "cancel", "remove", "insights"):
        action = {"serve": "mark_serving", "insights": "customer_insights"}.get(args.cmd, args.cmd)
        actions[args.cmd] = (action, {"entry_id": args.entry_id})
    elif args.cmd == "service-time":
        actions[args.cmd] = ("set_service_time", {"minutes": args.minutes})
    elif args.cmd == "verify":
        actions[args.cmd] = ("verify", {"token": args.token})
    elif args.cmd == "search":
        actions[args.cmd] = ("search", {"query": args.query})

    action, fields = actions[args.cmd]
    timeout = AI_TIMEOUT if action in ("predict_wait_time", "optimize_queue", "customer_insights") else 5.0

    resp = staff_request(
        mqtt_host=args.mqtt_host,
        mqtt_port=args.mqtt_port,
        namespace=args.namespace,
        action=action,
        timeout=timeout,
        **fields,
    )
    print(f"[staff] {format_reply(resp)}")


if __name__ == "__main__":
    main()

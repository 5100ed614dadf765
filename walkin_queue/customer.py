from __future__ import annotations

# Customer client.
#
# A customer is a short-lived process:
# - connect to broker
# - publish one request (join, status or leave)
# - wait for the manager's reply
# - print the result and exit
#
# Name/phone are validated here as well as in the manager, so obvious typos
# never leave the terminal.

import argparse
import time
from typing import Any

from .errors import ValidationError
from .mqtt_client import MqttClient
from .mqtt_topics import DEFAULT_NAMESPACE, queue_requests, queue_responses
from .validation import validate_registration


def customer_request(
    *, mqtt_host: str, mqtt_port: int, namespace: str, message: dict[str, Any], timeout: float = 5.0
) -> dict[str, Any]:
    # Use a unique client id so multiple customers can run concurrently.
    client_id = f"customer-{int(time.time() * 1000)}"
    mqtt = MqttClient(client_id=client_id, host=mqtt_host, port=mqtt_port)
    mqtt.start()

    # Customer listens for its response on a dedicated topic.
    reply_topic = queue_responses(client_id, namespace)
    mqtt.subscribe(reply_topic)

    try:
        return mqtt.request(
            request_topic=queue_requests(namespace),
            response_topic=reply_topic,
            message=message,
            timeout=timeout,
        )
    finally:
        mqtt.stop()


def join_queue(*, mqtt_host: str, mqtt_port: int, namespace: str, name: str, phone: str) -> dict[str, Any]:
    name, phone = validate_registration(name, phone)
    return customer_request(
        mqtt_host=mqtt_host,
        mqtt_port=mqtt_port,
        namespace=namespace,
        message={"type": "join_queue", "name": name, "phone": phone},
    )


def entry_status(
    *, mqtt_host: str, mqtt_port: int, namespace: str, entry_id: str | None = None, phone: str | None = None
) -> dict[str, Any]:
    message: dict[str, Any] = {"type": "entry_status"}
    if entry_id:
        message["entry_id"] = entry_id
    if phone:
        message["phone"] = phone
    return customer_request(mqtt_host=mqtt_host, mqtt_port=mqtt_port, namespace=namespace, message=message)


def leave_queue(*, mqtt_host: str, mqtt_port: int, namespace: str, entry_id: str) -> dict[str, Any]:
    return customer_request(
        mqtt_host=mqtt_host,
        mqtt_port=mqtt_port,
        namespace=namespace,
        message={"type": "leave_queue", "entry_id": entry_id},
    )


def describe_entry(entry: dict[str, Any]) -> str:
    status = entry.get("status")
    if status == "waiting":
        return (
            f"{entry['queue_number']} {entry['name']}: position {entry['position']}, "
            f"about {entry['estimated_wait_minutes']:g} min"
        )
    return f"{entry['queue_number']} {entry['name']}: {status}"


def main() -> None:
    parser = argparse.ArgumentParser(description="Customer client (MQTT)")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default=DEFAULT_NAMESPACE)
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_join = sub.add_parser("join", help="register in the queue")
    p_join.add_argument("--name", required=True)
    p_join.add_argument("--phone", required=True, help="10-digit phone number")

    p_status = sub.add_parser("status", help="look up your place in the queue")
    p_status.add_argument("--entry-id")
    p_status.add_argument("--phone")

    p_leave = sub.add_parser("leave", help="withdraw from the queue")
    p_leave.add_argument("--entry-id", required=True)

    args = parser.parse_args()
    conn = {"mqtt_host": args.mqtt_host, "mqtt_port": args.mqtt_port, "namespace": args.namespace}

    if args.cmd == "join":
        try:
            resp = join_queue(name=args.name, phone=args.phone, **conn)
        except ValidationError as e:
            parser.error(str(e))
    elif args.cmd == "status":
        if not args.entry_id and not args.phone:
            parser.error("status needs --entry-id or --phone")
        resp = entry_status(entry_id=args.entry_id, phone=args.phone, **conn)
    else:
        resp = leave_queue(entry_id=args.entry_id, **conn)

    entry = resp.get("entry")
    if resp.get("type") == "error":
        print(f"[customer] error: {resp.get('code')}: {resp.get('message')}")
    elif isinstance(entry, dict):
        print(f"[customer] {describe_entry(entry)}")
        if args.cmd == "join":
            print(f"[customer] entry id {entry['id']}")
            print(f"[customer] ticket code {entry['verification_code']}")
    else:
        print(f"[customer] {resp}")


if __name__ == "__main__":
    main()

from __future__ import annotations

# Walk-in generator (demo / load component).
#
# Simulates a stream of customers walking in and registering, using the exact
# same MQTT request/response protocol as the interactive `customer` CLI.
#
# Poisson arrival model:
# - Customers arrive according to a Poisson process with rate λ (per minute)
# - Inter-arrival times are exponential with mean 1/λ

import argparse
import random
import string
import time

from .arrival import sample_interarrival_seconds
from .mqtt_client import MqttClient
from .mqtt_topics import DEFAULT_NAMESPACE, queue_requests, queue_responses

FIRST_NAMES = (
    "Alice", "Bob", "Carmen", "Dmitri", "Esther", "Farid", "Grace", "Hiro",
    "Ines", "Jonas", "Keiko", "Luis", "Maya", "Noor", "Oscar", "Priya",
)


def make_guest(i: int, rng: random.Random) -> tuple[str, str]:
    """A registration-valid (name, phone) pair for the i-th simulated guest.

    Names are letters and spaces only; the suffix spells `i` in letters so
    two guests with the same first name stay distinguishable.
    """
    suffix = ""
    n = i
    while True:
        n, rem = divmod(n, 26)
        suffix = string.ascii_uppercase[rem] + suffix
        if n == 0:
            break
    name = f"{rng.choice(FIRST_NAMES)} {suffix}"
    phone = str(rng.randrange(10**9, 10**10))
    return name, phone


def run_generator(
    *,
    mqtt_host: str,
    mqtt_port: int,
    namespace: str,
    rate_per_min: float,
    time_scale: float = 1.0,
    max_customers: int | None = None,
    seed: int | None = None,
) -> None:
    """Generate walk-ins indefinitely (or for max_customers).

    Args:
        rate_per_min: λ, walk-ins per simulated minute.
        time_scale: simulated seconds per real second.
        max_customers: if provided, stop after registering this many guests.
        seed: if provided, makes arrivals and guests deterministic.
    """
    rng = random.Random(seed)

    client_id = f"generator-{int(time.time())}"
    mqtt = MqttClient(client_id=client_id, host=mqtt_host, port=mqtt_port)
    mqtt.start()

    reply_topic = queue_responses(client_id, namespace)
    mqtt.subscribe(reply_topic)

    print(
        f"[generator] connected to MQTT {mqtt_host}:{mqtt_port}, namespace={namespace}, "
        f"rate={rate_per_min} walk-ins/min, time_scale={time_scale}"
    )

    i = 0
    try:
        while max_customers is None or i < max_customers:
            dt = sample_interarrival_seconds(rate_per_min=rate_per_min, time_scale=time_scale, rng=rng)
            time.sleep(dt)

            name, phone = make_guest(i, rng)
            i += 1

            try:
                resp = mqtt.request(
                    request_topic=queue_requests(namespace),
                    response_topic=reply_topic,
                    message={"type": "join_queue", "name": name, "phone": phone},
                    timeout=5.0,
                )
            except (TimeoutError, ConnectionError) as e:
                print(f"[generator] {name} -> {e}")
                continue

            entry = resp.get("entry")
            if resp.get("type") == "joined" and isinstance(entry, dict):
                print(
                    f"[generator] {name} -> {entry['queue_number']} "
                    f"(pos {entry['position']}, ~{entry['estimated_wait_minutes']:g} min, dt={dt:0.2f}s)"
                )
            else:
                print(f"[generator] {name} -> error {resp} (dt={dt:0.2f}s)")

        print(f"[generator] reached max_customers={max_customers}, stopping")
    except KeyboardInterrupt:
        pass
    finally:
        mqtt.stop()


def main() -> None:
    parser = argparse.ArgumentParser(description="Walk-in generator (Poisson arrivals over MQTT)")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default=DEFAULT_NAMESPACE)
    parser.add_argument(
        "--rate",
        type=float,
        required=True,
        help="arrival rate λ in walk-ins per minute (Poisson process)",
    )
    parser.add_argument("--time-scale", type=float, default=1.0, help="simulated seconds per real second")
    parser.add_argument("--max-customers", type=int, default=None)
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    run_generator(
        mqtt_host=args.mqtt_host,
        mqtt_port=args.mqtt_port,
        namespace=args.namespace,
        rate_per_min=args.rate,
        time_scale=args.time_scale,
        max_customers=args.max_customers,
        seed=args.seed,
    )


if __name__ == "__main__":
    main()

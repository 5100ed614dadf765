from __future__ import annotations

# Single-command runner.
#
# Starts a full local system from one command by spawning child processes:
# - manager
# - walk-in generator (optional, for demos)
#
# Optionally it also opens the Tkinter admin dashboard in the parent process
# (use `--gui`).

import argparse
import os
import signal
import subprocess
import sys
import time
from dataclasses import dataclass

from .estimation import DEFAULT_AVERAGE_SERVICE_TIME, check_service_time


@dataclass
class Child:
    name: str
    proc: subprocess.Popen


def run_all(
    *,
    mqtt_host: str,
    mqtt_port: int,
    namespace: str,
    avg_service_minutes: float,
    arrival_rate: float | None,
    time_scale: float,
    seed: int | None,
    no_ai: bool,
    show_gui: bool,
) -> None:
    check_service_time(avg_service_minutes)
    if arrival_rate is not None and arrival_rate <= 0:
        raise ValueError("arrival_rate must be > 0")

    python = sys.executable

    # Each child gets its own process group so we can stop it with everything it spawned.
    def popen(name: str, args: list[str]) -> Child:
        proc = subprocess.Popen(args, preexec_fn=os.setsid)
        return Child(name=name, proc=proc)

    conn = ["--mqtt-host", mqtt_host, "--mqtt-port", str(mqtt_port), "--namespace", namespace]
    children: list[Child] = []

    mgr_args = [python, "-m", "walkin_queue.manager", *conn, "--avg-service-minutes", str(avg_service_minutes)]
    if no_ai:
        mgr_args.append("--no-ai")
    children.append(popen("manager", mgr_args))

    # Small delay so the manager subscribes before walk-ins start arriving.
    time.sleep(0.5)

    if arrival_rate is not None:
        gen_args = [
            python,
            "-m",
            "walkin_queue.generator",
            *conn,
            "--rate",
            str(arrival_rate),
            "--time-scale",
            str(time_scale),
        ]
        if seed is not None:
            gen_args += ["--seed", str(seed)]
        children.append(popen("generator", gen_args))

    print(
        "[run] started: "
        + ", ".join(f"{c.name}(pid={c.proc.pid})" for c in children)
        + "\nPress Ctrl+C to stop all."
    )

    if show_gui:
        try:
            from .gui import DashboardApp

            app = DashboardApp(mqtt_host=mqtt_host, mqtt_port=mqtt_port, namespace=namespace)
            app.start()
        finally:
            _terminate_children(children)
        return

    try:
        # The manager must stay up; the generator may finish on its own.
        while True:
            for c in children:
                rc = c.proc.poll()
                if rc is not None and c.name == "manager":
                    raise RuntimeError(f"Child {c.name} exited with code {rc}")
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        _terminate_children(children)


def _terminate_children(children: list[Child]) -> None:
    # Try graceful termination.
    for c in children:
        if c.proc.poll() is None:
            try:
                os.killpg(os.getpgid(c.proc.pid), signal.SIGTERM)
            except ProcessLookupError:
                pass

    deadline = time.time() + 2.0
    while time.time() < deadline:
        if all(c.proc.poll() is not None for c in children):
            return
        time.sleep(0.1)

    # Force kill.
    for c in children:
        if c.proc.poll() is None:
            try:
                os.killpg(os.getpgid(c.proc.pid), signal.SIGKILL)
            except ProcessLookupError:
                pass


def main() -> None:
    parser = argparse.ArgumentParser(description="Run manager (+ optional walk-in generator and dashboard)")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default=f"walkin/run/{int(time.time())}")
    parser.add_argument("--avg-service-minutes", type=float, default=DEFAULT_AVERAGE_SERVICE_TIME)
    parser.add_argument("--arrival-rate", type=float, default=None, help="simulated walk-ins per minute")
    parser.add_argument("--time-scale", type=float, default=1.0)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--no-ai", action="store_true")
    parser.add_argument("--gui", action="store_true", help="show Tkinter admin dashboard")
    args = parser.parse_args()

    run_all(
        mqtt_host=args.mqtt_host,
        mqtt_port=args.mqtt_port,
        namespace=args.namespace,
        avg_service_minutes=args.avg_service_minutes,
        arrival_rate=args.arrival_rate,
        time_scale=args.time_scale,
        seed=args.seed,
        no_ai=args.no_ai,
        show_gui=args.gui,
    )


if __name__ == "__main__":
    main()

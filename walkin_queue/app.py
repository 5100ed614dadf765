from __future__ import annotations

# Single-entrypoint runner.
#
# Primary way to run the project:
#     python -m walkin_queue.app run [--gui] [--arrival-rate LAMBDA]
#
# The other subcommands forward to the individual components:
#     python -m walkin_queue.app customer join --name "Ada Lovelace" --phone 5551234567
#     python -m walkin_queue.app staff call-next
#     python -m walkin_queue.app manager | gui

import argparse

from .estimation import DEFAULT_AVERAGE_SERVICE_TIME
from .mqtt_topics import DEFAULT_NAMESPACE


def main() -> None:
    parser = argparse.ArgumentParser(description="Walk-in Queue System (MQTT) - main entrypoint")
    sub = parser.add_subparsers(dest="cmd", required=True)

    def add_mqtt_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--mqtt-host", default="127.0.0.1")
        p.add_argument("--mqtt-port", type=int, default=1883)
        p.add_argument("--namespace", default=DEFAULT_NAMESPACE)

    # ---- Normal operation: one command ----
    p_run = sub.add_parser("run", help="Start the manager (optional walk-in generator and GUI)")
    add_mqtt_args(p_run)
    p_run.add_argument("--avg-service-minutes", type=float, default=DEFAULT_AVERAGE_SERVICE_TIME)
    p_run.add_argument("--arrival-rate", type=float, default=None, help="simulated walk-ins per minute")
    p_run.add_argument("--time-scale", type=float, default=1.0, help="simulated seconds per real second")
    p_run.add_argument("--seed", type=int, default=None)
    p_run.add_argument("--no-ai", action="store_true", help="do not call the hosted prediction service")
    p_run.add_argument("--gui", action="store_true", help="open Tkinter admin dashboard")

    # ---- Individual components ----
    p_mgr = sub.add_parser("manager", help="Start the queue manager only")
    add_mqtt_args(p_mgr)
    p_mgr.add_argument("--avg-service-minutes", type=float, default=DEFAULT_AVERAGE_SERVICE_TIME)
    p_mgr.add_argument("--no-ai", action="store_true")

    p_gui = sub.add_parser("gui", help="Open the admin dashboard only")
    add_mqtt_args(p_gui)

    p_cust = sub.add_parser("customer", help="Customer client: join | status | leave")
    p_cust.add_argument("args", nargs=argparse.REMAINDER)

    p_staff = sub.add_parser("staff", help="Staff client: call-next | serve | complete | verify | ...")
    p_staff.add_argument("args", nargs=argparse.REMAINDER)

    args = parser.parse_args()

    if args.cmd == "run":
        from .run_all import main as run

        run_args = [
            *_mqtt_argv(args),
            "--avg-service-minutes",
            str(args.avg_service_minutes),
            "--time-scale",
            str(args.time_scale),
        ]
        if args.arrival_rate is not None:
            run_args += ["--arrival-rate", str(args.arrival_rate)]
        if args.seed is not None:
            run_args += ["--seed", str(args.seed)]
        if args.no_ai:
            run_args += ["--no-ai"]
        if args.gui:
            run_args += ["--gui"]

        _dispatch_to_module_main(run, run_args)
        return

    if args.cmd == "manager":
        from .manager import main as run

        run_args = [*_mqtt_argv(args), "--avg-service-minutes", str(args.avg_service_minutes)]
        if args.no_ai:
            run_args += ["--no-ai"]
        _dispatch_to_module_main(run, run_args)
        return

    if args.cmd == "gui":
        from .gui import main as run

        _dispatch_to_module_main(run, _mqtt_argv(args))
        return

    if args.cmd == "customer":
        from .customer import main as run

        _dispatch_to_module_main(run, args.args)
        return

    if args.cmd == "staff":
        from .staff import main as run

        _dispatch_to_module_main(run, args.args)
        return


def _mqtt_argv(args: argparse.Namespace) -> list[str]:
    return ["--mqtt-host", args.mqtt_host, "--mqtt-port", str(args.mqtt_port), "--namespace", args.namespace]


def _dispatch_to_module_main(module_main, argv: list[str]) -> None:
    import sys

    old_argv = sys.argv[:]
    try:
        sys.argv = [old_argv[0], *argv]
        module_main()
    finally:
        sys.argv = old_argv


if __name__ == "__main__":
    main()

from __future__ import annotations

# Single-entrypoint runner.
#
#     python -m counter_queue.app run --counter "Desk 1:Finance,Admissions" --counter "Desk 2:Finance"
#     python -m counter_queue.app ticket --service Finance --auto-assign

import argparse
import logging

from .config import DEFAULT_CONFIG
from .mqtt_topics import DEFAULT_NAMESPACE


def main() -> None:
    parser = argparse.ArgumentParser(description="Counter Queue Scheduler (MQTT) - main entrypoint")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = parser.add_subparsers(dest="cmd", required=True)

    def add_mqtt_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--mqtt-host", default="127.0.0.1")
        p.add_argument("--mqtt-port", type=int, default=1883)
        p.add_argument("--namespace", default=DEFAULT_NAMESPACE)

    p_run = sub.add_parser("run", help="Start the scheduler service and its load monitor")
    add_mqtt_args(p_run)
    p_run.add_argument("--monitor-interval", type=float, default=DEFAULT_CONFIG.monitor_interval)
    p_run.add_argument("--store-timeout", type=float, default=DEFAULT_CONFIG.store_timeout)
    p_run.add_argument(
        "--counter",
        action="append",
        default=[],
        metavar="NAME:SERVICE[,SERVICE...]",
        help="register an open counter at startup (repeatable)",
    )

    p_ticket = sub.add_parser("ticket", help="Take one ticket")
    add_mqtt_args(p_ticket)
    p_ticket.add_argument("--service", required=True)
    p_ticket.add_argument("--submitter-id", default=None)
    p_ticket.add_argument("--priority", default=None)
    p_ticket.add_argument("--student-year", default=None)
    p_ticket.add_argument("--accessibility", action="store_true")
    p_ticket.add_argument("--vip", action="store_true")
    p_ticket.add_argument("--auto-assign", action="store_true")

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    mqtt_args = ["--mqtt-host", args.mqtt_host, "--mqtt-port", str(args.mqtt_port), "--namespace", args.namespace]

    if args.cmd == "run":
        from .service import main as run

        run_args = [
            *mqtt_args,
            "--monitor-interval",
            str(args.monitor_interval),
            "--store-timeout",
            str(args.store_timeout),
        ]
        for spec in args.counter:
            run_args += ["--counter", spec]
        _dispatch_to_module_main(run, run_args)
        return

    if args.cmd == "ticket":
        from .client import main as run

        run_args = [*mqtt_args, "--service", args.service]
        if args.submitter_id:
            run_args += ["--submitter-id", args.submitter_id]
        if args.priority:
            run_args += ["--priority", args.priority]
        if args.student_year:
            run_args += ["--student-year", args.student_year]
        if args.accessibility:
            run_args += ["--accessibility"]
        if args.vip:
            run_args += ["--vip"]
        if args.auto_assign:
            run_args += ["--auto-assign"]
        _dispatch_to_module_main(run, run_args)
        return


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

from __future__ import annotations

# Scheduler service: the MQTT face of the coordinator.
#
# Two layers, same as the rest of the package:
# 1) `TicketAssignmentCoordinator` and friends (pure logic, no broker)
# 2) `MqttSchedulerService` + `main()`: decode requests from
#    `<ns>/scheduler/requests`, call the coordinator, reply on the caller's
#    `reply_to` topic, and run the load monitor in the background.
#
# Every request is a JSON object with a `type`. Replies carry the request's
# `corr_id`. Failures are replied as `{"type": "error", "code", "message"}`.

import argparse
import logging
import time
from typing import Any, Callable, TYPE_CHECKING

from .config import DEFAULT_CONFIG, SchedulerConfig
from .coordinator import TicketAssignmentCoordinator
from .errors import ErrorResponse, SchedulerError, ValidationError
from .models import ServiceType, Submitter, parse_service_type
from .monitor import LoadBroadcastMonitor
from .mqtt_topics import DEFAULT_NAMESPACE, scheduler_requests
from .notify import MqttNotifier
from .rebalancing import RebalancingAdvisor
from .store import InMemoryStore

if TYPE_CHECKING:
    from .mqtt_client import MqttClient

logger = logging.getLogger(__name__)


def _require(msg: dict[str, Any], key: str) -> str:
    value = msg.get(key)
    if value is None or str(value) == "":
        raise ValidationError(f"{key} required")
    return str(value)


def _optional_str(msg: dict[str, Any], key: str) -> str | None:
    value = msg.get(key)
    return None if value is None or value == "" else str(value)


def parse_submitter(raw: Any) -> Submitter | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValidationError("submitter must be an object")
    return Submitter(
        student_year=_optional_str(raw, "student_year"),
        has_accessibility_needs=bool(raw.get("has_accessibility_needs", False)),
        is_vip=bool(raw.get("is_vip", False)),
    )


def parse_counter_spec(text: str) -> tuple[str, list[ServiceType]]:
    """Parse `NAME:Service A,Service B` (the `--counter` CLI flag)."""
    name, sep, services = text.partition(":")
    if not sep or not name.strip() or not services.strip():
        raise argparse.ArgumentTypeError(f"expected NAME:SERVICE[,SERVICE...], got {text!r}")
    try:
        types = [parse_service_type(s.strip()) for s in services.split(",") if s.strip()]
    except ValidationError as e:
        raise argparse.ArgumentTypeError(str(e)) from None
    return name.strip(), types


class MqttSchedulerService:
    """MQTT adapter around the ticket assignment coordinator."""

    def __init__(
        self,
        *,
        mqtt: MqttClient,
        namespace: str = DEFAULT_NAMESPACE,
        config: SchedulerConfig = DEFAULT_CONFIG,
        store: InMemoryStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.mqtt = mqtt
        self.namespace = namespace
        self.config = config
        self.store = store or InMemoryStore(timeout=config.store_timeout)
        self.notifier = MqttNotifier(mqtt=mqtt, namespace=namespace)
        self.coordinator = TicketAssignmentCoordinator(self.store, notifier=self.notifier, config=config, clock=clock)
        self.advisor = RebalancingAdvisor(self.store, calculator=self.coordinator.calculator, config=config)
        self.monitor = LoadBroadcastMonitor(
            self.store,
            notifier=self.notifier,
            calculator=self.coordinator.calculator,
            advisor=self.advisor,
            config=config,
            clock=clock,
            refresh=self.coordinator.housekeeping,
        )

        self._handlers: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
            "create_ticket": self._create_ticket,
            "serve": self._serve,
            "complete": self._complete,
            "cancel": self._cancel,
            "transfer": self._transfer,
            "update_priority": self._update_priority,
            "auto_assign": self._auto_assign,
            "rebalance": self._rebalance,
            "suggest": self._suggest,
            "insights": self._insights,
            "status": self._status,
            "register_counter": self._register_counter,
            "open_counter": self._open_counter,
            "close_counter": self._close_counter,
            "set_availability": self._set_availability,
            "assign_staff": self._assign_staff,
        }

    def start(self, *, monitor: bool = True) -> None:
        self.mqtt.subscribe(scheduler_requests(self.namespace))
        self.mqtt.add_handler(self._handle_message)
        if monitor:
            self.monitor.start()

    def stop(self) -> None:
        """Stop background threads. Call before disconnecting MQTT."""
        self.monitor.stop()

    # -------------------- request dispatch --------------------

    def handle_request(self, msg: dict[str, Any]) -> dict[str, Any]:
        """Run one request and return the reply body (success or error)."""
        mtype = msg.get("type")
        handler = self._handlers.get(str(mtype))
        if handler is None:
            return ErrorResponse("bad_request", f"unknown request type: {mtype!r}").to_message()
        try:
            return handler(msg)
        except SchedulerError as e:
            logger.info("%s rejected: %s (%s)", mtype, e, e.code)
            return e.to_response().to_message()
        except Exception:
            logger.exception("%s failed", mtype)
            return ErrorResponse("internal_error", "internal error").to_message()

    def _reply(self, reply_to: str, corr_id: str | None, message: dict[str, Any]) -> None:
        msg = dict(message)
        if corr_id is not None:
            msg["corr_id"] = corr_id
        self.mqtt.publish(reply_to, msg)

    def _handle_message(self, topic: str, msg: dict[str, Any]) -> None:
        if topic != scheduler_requests(self.namespace):
            return
        corr_id = msg.get("corr_id") if isinstance(msg.get("corr_id"), str) else None
        reply_to = msg.get("reply_to") if isinstance(msg.get("reply_to"), str) else None

        response = self.handle_request(msg)
        if reply_to:
            self._reply(reply_to, corr_id, response)

    # -------------------- tickets --------------------

    def _create_ticket(self, msg: dict[str, Any]) -> dict[str, Any]:
        ticket = self.coordinator.create_ticket(
            _require(msg, "service_type"),
            submitter_id=_optional_str(msg, "submitter_id"),
            submitter=parse_submitter(msg.get("submitter")),
            tier=_optional_str(msg, "priority"),
        )
        return {"type": "ticket_created", "ticket": ticket.to_message()}

    def _serve(self, msg: dict[str, Any]) -> dict[str, Any]:
        ticket = self.coordinator.serve(_require(msg, "ticket_id"), _require(msg, "counter_id"))
        return {"type": "ticket_serving", "ticket": ticket.to_message()}

    def _complete(self, msg: dict[str, Any]) -> dict[str, Any]:
        ticket = self.coordinator.complete(_require(msg, "ticket_id"))
        return {"type": "ticket_completed", "ticket": ticket.to_message()}

    def _cancel(self, msg: dict[str, Any]) -> dict[str, Any]:
        ticket = self.coordinator.cancel(_require(msg, "ticket_id"))
        return {"type": "ticket_cancelled", "ticket": ticket.to_message()}

    def _transfer(self, msg: dict[str, Any]) -> dict[str, Any]:
        ticket = self.coordinator.transfer(
            _require(msg, "ticket_id"),
            _require(msg, "counter_id"),
            reason=_optional_str(msg, "reason") or "",
        )
        return {"type": "ticket_transferred", "ticket": ticket.to_message()}

    def _update_priority(self, msg: dict[str, Any]) -> dict[str, Any]:
        ticket = self.coordinator.update_priority(
            _require(msg, "ticket_id"),
            _require(msg, "priority"),
            reason=_optional_str(msg, "reason"),
        )
        return {"type": "priority_updated", "ticket": ticket.to_message()}

    # -------------------- load balancing --------------------

    def _auto_assign(self, msg: dict[str, Any]) -> dict[str, Any]:
        return self.coordinator.auto_assign(_require(msg, "service_type")).to_message()

    def _rebalance(self, msg: dict[str, Any]) -> dict[str, Any]:
        raw = msg.get("max_batch")
        try:
            max_batch = None if raw is None else int(raw)
        except (TypeError, ValueError):
            raise ValidationError("max_batch must be an integer") from None
        return self.coordinator.rebalance_queue(_require(msg, "service_type"), max_batch).to_message()

    def _suggest(self, msg: dict[str, Any]) -> dict[str, Any]:
        raw = msg.get("load_threshold")
        try:
            threshold = None if raw is None else int(raw)
        except (TypeError, ValueError):
            raise ValidationError("load_threshold must be an integer") from None
        suggestions = self.advisor.suggest(threshold)
        return {"type": "suggestions", "suggestions": [s.to_message() for s in suggestions]}

    def _insights(self, msg: dict[str, Any]) -> dict[str, Any]:
        return {"type": "insights", **self.advisor.optimization_insights()}

    def _status(self, msg: dict[str, Any]) -> dict[str, Any]:
        return {"type": "status_response", **self.monitor.build_dashboard()}

    # -------------------- counters --------------------

    def _register_counter(self, msg: dict[str, Any]) -> dict[str, Any]:
        services = msg.get("service_types")
        if not isinstance(services, list):
            raise ValidationError("service_types must be a list")
        counter = self.coordinator.register_counter(
            _require(msg, "name"),
            services,
            counter_id=_optional_str(msg, "counter_id"),
            status=_optional_str(msg, "status") or "open",
            assigned_staff=_optional_str(msg, "assigned_staff"),
            actor=_optional_str(msg, "actor"),
        )
        return {"type": "counter_registered", "counter": counter.to_message()}

    def _open_counter(self, msg: dict[str, Any]) -> dict[str, Any]:
        counter = self.coordinator.open_counter(_require(msg, "counter_id"), actor=_optional_str(msg, "actor"))
        return {"type": "counter_updated", "counter": counter.to_message()}

    def _close_counter(self, msg: dict[str, Any]) -> dict[str, Any]:
        counter = self.coordinator.close_counter(_require(msg, "counter_id"), actor=_optional_str(msg, "actor"))
        return {"type": "counter_updated", "counter": counter.to_message()}

    def _set_availability(self, msg: dict[str, Any]) -> dict[str, Any]:
        raw_return = msg.get("estimated_return")
        try:
            estimated_return = None if raw_return is None else float(raw_return)
        except (TypeError, ValueError):
            raise ValidationError("estimated_return must be epoch seconds") from None
        counter = self.coordinator.set_availability(
            _require(msg, "counter_id"),
            _require(msg, "availability_status"),
            reason=_optional_str(msg, "reason"),
            actor=_optional_str(msg, "actor"),
            estimated_return=estimated_return,
        )
        return {"type": "counter_updated", "counter": counter.to_message()}

    def _assign_staff(self, msg: dict[str, Any]) -> dict[str, Any]:
        counter = self.coordinator.assign_staff(
            _require(msg, "counter_id"),
            _optional_str(msg, "staff_id"),
            actor=_optional_str(msg, "actor"),
        )
        return {"type": "counter_updated", "counter": counter.to_message()}


def main() -> None:
    from .mqtt_client import MqttClient

    parser = argparse.ArgumentParser(description="Counter queue scheduler (MQTT)")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default=DEFAULT_NAMESPACE)
    parser.add_argument(
        "--monitor-interval",
        type=float,
        default=DEFAULT_CONFIG.monitor_interval,
        help="seconds between load broadcasts on <ns>/dashboard/load",
    )
    parser.add_argument("--store-timeout", type=float, default=DEFAULT_CONFIG.store_timeout)
    parser.add_argument(
        "--counter",
        action="append",
        default=[],
        type=parse_counter_spec,
        metavar="NAME:SERVICE[,SERVICE...]",
        help="register an open counter at startup (repeatable)",
    )
    args = parser.parse_args()

    config = SchedulerConfig(monitor_interval=args.monitor_interval, store_timeout=args.store_timeout)

    mqtt_client = MqttClient(client_id="scheduler", host=args.mqtt_host, port=args.mqtt_port)
    mqtt_client.start()

    service = MqttSchedulerService(mqtt=mqtt_client, namespace=args.namespace, config=config)
    for name, services in args.counter:
        counter = service.coordinator.register_counter(name, services, actor="cli")
        print(f"[scheduler] counter {counter.name} ({', '.join(s.value for s in services)})")
    service.start()

    print(f"[scheduler] connected to MQTT {args.mqtt_host}:{args.mqtt_port}, namespace={args.namespace}")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        service.stop()
        mqtt_client.stop()


if __name__ == "__main__":
    main()

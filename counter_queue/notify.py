from __future__ import annotations

# Notification sinks.
#
# The scheduler publishes through a single capability:
#     notifier.notify(topic, payload)
# where `topic` is an event name (see the constants below) and `payload` a
# JSON-serializable dict. Who receives what (per service, per counter, per
# user, dashboards) is decided by the sink adapter, not by the scheduler.
#
# Delivery is fire-and-forget: the scheduler never waits for an
# acknowledgement, and a failing sink never undoes a committed change.

import logging
import threading
from typing import Any, TYPE_CHECKING

from .mqtt_topics import (
    DEFAULT_NAMESPACE,
    counter_events,
    dashboard_events,
    dashboard_load,
    event_topic,
    service_events,
    service_load,
    user_events,
)

if TYPE_CHECKING:
    from .mqtt_client import MqttClient

logger = logging.getLogger(__name__)

TICKET_CREATED = "ticket.created"
TICKET_SERVING = "ticket.serving"
TICKET_COMPLETED = "ticket.completed"
TICKET_CANCELLED = "ticket.cancelled"
TICKET_TRANSFERRED = "ticket.transferred"
TICKET_PRIORITY_CHANGED = "ticket.priority_changed"
COUNTER_STATUS_CHANGED = "counter.status_changed"
COUNTER_AVAILABILITY_CHANGED = "counter.availability_changed"
QUEUE_REBALANCED = "queue.rebalanced"
LOAD_UPDATED = "load.updated"
SERVICE_LOAD_UPDATED = "load.service_updated"


class NullNotifier:
    """Drops every notification."""

    def notify(self, topic: str, payload: dict[str, Any]) -> None:
        return None


class RecordingNotifier:
    """Keeps notifications in memory (tests, embedding without a broker)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.published: list[tuple[str, dict[str, Any]]] = []

    def notify(self, topic: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self.published.append((topic, payload))

    def topics(self) -> list[str]:
        with self._lock:
            return [t for t, _ in self.published]

    def payloads(self, topic: str) -> list[dict[str, Any]]:
        with self._lock:
            return [p for t, p in self.published if t == topic]


class MqttNotifier:
    """Fans scheduler events out to MQTT topics.

    Routing keys read from the payload:
    - `service_type`  -> per-service topic
    - `counter_ids`   -> per-counter topics
    - `submitter_id`  -> per-user topic
    Load events go to the dashboard / per-service load topics instead.
    """

    def __init__(self, *, mqtt: MqttClient, namespace: str = DEFAULT_NAMESPACE) -> None:
        self.mqtt = mqtt
        self.namespace = namespace

    def routes(self, topic: str, payload: dict[str, Any]) -> list[str]:
        ns = self.namespace
        if topic == LOAD_UPDATED:
            return [dashboard_load(ns)]
        if topic == SERVICE_LOAD_UPDATED:
            return [service_load(str(payload["service_type"]), ns)]

        targets = [event_topic(topic, ns), dashboard_events(ns)]
        if payload.get("service_type"):
            targets.append(service_events(str(payload["service_type"]), ns))
        for cid in payload.get("counter_ids") or ():
            if cid:
                targets.append(counter_events(str(cid), ns))
        if payload.get("submitter_id"):
            targets.append(user_events(str(payload["submitter_id"]), ns))
        return targets

    def notify(self, topic: str, payload: dict[str, Any]) -> None:
        msg = dict(payload)
        msg.setdefault("event", topic)
        targets = self.routes(topic, payload)
        for target in targets:
            self.mqtt.publish(target, msg)
        logger.debug("published %s to %d topic(s)", topic, len(targets))

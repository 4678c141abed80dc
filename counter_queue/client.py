from __future__ import annotations

# Ticket client.
#
# A short-lived process:
# - connect to broker
# - publish a create_ticket request (optionally followed by auto_assign)
# - wait for the reply
# - print the ticket and exit

import argparse
import time
import uuid
from typing import Any

from .models import ServiceType
from .mqtt_client import MqttClient
from .mqtt_topics import DEFAULT_NAMESPACE, scheduler_requests, scheduler_responses


def scheduler_request(
    message: dict[str, Any],
    *,
    mqtt_host: str,
    mqtt_port: int,
    namespace: str = DEFAULT_NAMESPACE,
    timeout: float = 5.0,
) -> dict[str, Any]:
    """Send one request to the scheduler and return its reply."""
    client_id = f"client-{uuid.uuid4().hex[:8]}-{int(time.time() * 1000)}"
    mqtt = MqttClient(client_id=client_id, host=mqtt_host, port=mqtt_port)
    mqtt.start()

    reply_topic = scheduler_responses(client_id, namespace)
    mqtt.subscribe(reply_topic)

    try:
        return mqtt.request(
            request_topic=scheduler_requests(namespace),
            response_topic=reply_topic,
            message=message,
            timeout=timeout,
        )
    finally:
        mqtt.stop()


def ticket_request(
    service_type: str,
    *,
    submitter_id: str | None = None,
    priority: str | None = None,
    student_year: str | None = None,
    accessibility: bool = False,
    vip: bool = False,
) -> dict[str, Any]:
    msg: dict[str, Any] = {"type": "create_ticket", "service_type": service_type}
    if submitter_id:
        msg["submitter_id"] = submitter_id
    if priority:
        msg["priority"] = priority
    if student_year or accessibility or vip:
        msg["submitter"] = {
            "student_year": student_year,
            "has_accessibility_needs": accessibility,
            "is_vip": vip,
        }
    return msg


def submit_ticket(
    service_type: str,
    *,
    mqtt_host: str,
    mqtt_port: int,
    namespace: str = DEFAULT_NAMESPACE,
    timeout: float = 5.0,
    **submitter: Any,
) -> dict[str, Any]:
    return scheduler_request(
        ticket_request(service_type, **submitter),
        mqtt_host=mqtt_host,
        mqtt_port=mqtt_port,
        namespace=namespace,
        timeout=timeout,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Take a ticket (MQTT)")
    parser.add_argument("--service", required=True, choices=[s.value for s in ServiceType])
    parser.add_argument("--submitter-id", default=None)
    parser.add_argument("--priority", default=None, choices=["normal", "high", "urgent", "vip"])
    parser.add_argument("--student-year", default=None, help='e.g. "Final Year", "Postgraduate"')
    parser.add_argument("--accessibility", action="store_true")
    parser.add_argument("--vip", action="store_true")
    parser.add_argument("--auto-assign", action="store_true", help="ask the scheduler to serve the queue head")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default=DEFAULT_NAMESPACE)
    args = parser.parse_args()

    conn = {"mqtt_host": args.mqtt_host, "mqtt_port": args.mqtt_port, "namespace": args.namespace}
    resp = submit_ticket(
        args.service,
        submitter_id=args.submitter_id,
        priority=args.priority,
        student_year=args.student_year,
        accessibility=args.accessibility,
        vip=args.vip,
        **conn,
    )
    if resp.get("type") != "ticket_created":
        print(f"[ticket] error: {resp}")
        return

    t = resp["ticket"]
    print(f"[ticket] #{t['ticket_number']} for {t['service_type']} (priority {t['priority_tier']}, score {t['priority_score']})")

    if args.auto_assign:
        assigned = scheduler_request({"type": "auto_assign", "service_type": args.service}, **conn)
        if assigned.get("success"):
            print(f"[ticket] #{assigned['ticket']['ticket_number']} -> {assigned['counter']['counter_name']}")
        else:
            print(f"[ticket] not assigned: {assigned.get('message', assigned)}")


if __name__ == "__main__":
    main()

import argparse

import pytest

from counter_queue.service import MqttSchedulerService, parse_counter_spec
from counter_queue.models import ServiceType

NS = "test/ns"
REQUESTS = f"{NS}/scheduler/requests"
REPLIES = f"{NS}/scheduler/responses/desk-app"


@pytest.fixture
def service(fake_mqtt, clock):
    svc = MqttSchedulerService(mqtt=fake_mqtt, namespace=NS, clock=clock)
    svc.start(monitor=False)
    return svc


def _send(mqtt, msg, corr_id="c-1"):
    handler = mqtt.handlers[0]
    handler(REQUESTS, {**msg, "corr_id": corr_id, "reply_to": REPLIES})
    return mqtt.on(REPLIES)[-1]


def test_subscribes_to_request_topic(service, fake_mqtt):
    assert fake_mqtt.subscriptions == [REQUESTS]


def test_ticket_round_trip(service, fake_mqtt):
    reply = _send(fake_mqtt, {"type": "register_counter", "name": "Desk 1", "service_types": ["Finance"], "counter_id": "c1"})
    assert reply["type"] == "counter_registered"

    reply = _send(fake_mqtt, {"type": "create_ticket", "service_type": "Finance", "submitter_id": "u1"}, corr_id="c-2")
    assert reply["type"] == "ticket_created"
    assert reply["corr_id"] == "c-2"
    ticket_id = reply["ticket"]["id"]
    assert reply["ticket"]["ticket_number"] == 1
    assert fake_mqtt.on(f"{NS}/users/u1/events")[0]["event"] == "ticket.created"

    reply = _send(fake_mqtt, {"type": "auto_assign", "service_type": "Finance"})
    assert reply["success"] is True
    assert reply["counter"]["counter_name"] == "Desk 1"
    assert fake_mqtt.on(f"{NS}/counters/c1/events")

    reply = _send(fake_mqtt, {"type": "complete", "ticket_id": ticket_id})
    assert reply["type"] == "ticket_completed"
    assert reply["ticket"]["served_by"] == "c1"

    reply = _send(fake_mqtt, {"type": "status"})
    assert reply["type"] == "status_response"
    assert reply["summary"]["total_counters"] == 1


def test_errors_are_replied_with_codes(service, fake_mqtt):
    assert _send(fake_mqtt, {"type": "teleport"})["code"] == "bad_request"
    assert _send(fake_mqtt, {"type": "serve", "counter_id": "c1"})["code"] == "validation_error"
    assert _send(fake_mqtt, {"type": "serve", "ticket_id": "nope", "counter_id": "c1"})["code"] == "ticket_not_found"
    assert _send(fake_mqtt, {"type": "create_ticket", "service_type": "Parking"})["code"] == "validation_error"
    assert _send(fake_mqtt, {"type": "rebalance", "service_type": "Finance", "max_batch": "lots"})["code"] == "validation_error"


def test_messages_on_other_topics_are_ignored(service, fake_mqtt):
    fake_mqtt.handlers[0](f"{NS}/elsewhere", {"type": "status", "reply_to": REPLIES})
    assert fake_mqtt.on(REPLIES) == []


def test_suggest_and_insights(service, fake_mqtt):
    assert _send(fake_mqtt, {"type": "suggest", "load_threshold": 50}) == {
        "type": "suggestions",
        "suggestions": [],
        "corr_id": "c-1",
    }
    assert _send(fake_mqtt, {"type": "insights"})["utilization_rate"] == 0


def test_counter_requests(service, fake_mqtt):
    _send(fake_mqtt, {"type": "register_counter", "name": "Desk 1", "service_types": ["Library"], "counter_id": "c1"})

    reply = _send(
        fake_mqtt,
        {"type": "set_availability", "counter_id": "c1", "availability_status": "on_break", "actor": "sup"},
    )
    assert reply["counter"]["availability_status"] == "on_break"

    assert _send(fake_mqtt, {"type": "close_counter", "counter_id": "c1"})["counter"]["status"] == "closed"
    assert _send(fake_mqtt, {"type": "open_counter", "counter_id": "c1"})["counter"]["status"] == "open"
    assert _send(fake_mqtt, {"type": "assign_staff", "counter_id": "c1", "staff_id": "s1"})["counter"]["assigned_staff"] == "s1"


def test_parse_counter_spec():
    assert parse_counter_spec("Desk 1: Finance, Student Records") == (
        "Desk 1",
        [ServiceType.FINANCE, ServiceType.STUDENT_RECORDS],
    )
    with pytest.raises(argparse.ArgumentTypeError):
        parse_counter_spec("Desk 1")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_counter_spec("Desk 1:Parking")

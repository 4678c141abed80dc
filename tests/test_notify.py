from counter_queue.notify import LOAD_UPDATED, SERVICE_LOAD_UPDATED, TICKET_SERVING, MqttNotifier


def test_ticket_event_fans_out_to_every_audience(fake_mqtt):
    mqtt = fake_mqtt
    notifier = MqttNotifier(mqtt=mqtt, namespace="ns")

    notifier.notify(
        TICKET_SERVING,
        {"service_type": "Student Records", "counter_ids": ["c1", "c2"], "submitter_id": "u9"},
    )

    assert [t for t, _ in mqtt.published] == [
        "ns/events/ticket.serving",
        "ns/dashboard/events",
        "ns/services/student-records/events",
        "ns/counters/c1/events",
        "ns/counters/c2/events",
        "ns/users/u9/events",
    ]
    assert all(m["event"] == "ticket.serving" for _, m in mqtt.published)


def test_anonymous_ticket_has_no_user_topic(fake_mqtt):
    notifier = MqttNotifier(mqtt=fake_mqtt, namespace="ns")
    targets = notifier.routes(TICKET_SERVING, {"service_type": "Finance", "counter_ids": []})
    assert targets == ["ns/events/ticket.serving", "ns/dashboard/events", "ns/services/finance/events"]


def test_load_events_go_to_load_topics(fake_mqtt):
    notifier = MqttNotifier(mqtt=fake_mqtt, namespace="ns")
    assert notifier.routes(LOAD_UPDATED, {"summary": {}}) == ["ns/dashboard/load"]
    assert notifier.routes(SERVICE_LOAD_UPDATED, {"service_type": "ICT Support"}) == ["ns/services/ict-support/load"]

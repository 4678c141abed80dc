import itertools

import pytest

from counter_queue.coordinator import TicketAssignmentCoordinator
from counter_queue.notify import RecordingNotifier
from counter_queue.store import InMemoryStore


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMqtt:
    """Stands in for MqttClient: records subscriptions, handlers and publishes."""

    def __init__(self) -> None:
        self.subscriptions = []
        self.handlers = []
        self.published = []

    def subscribe(self, topic):
        self.subscriptions.append(topic)

    def add_handler(self, handler):
        self.handlers.append(handler)

    def publish(self, topic, message):
        self.published.append((topic, message))

    def on(self, topic):
        return [m for t, m in self.published if t == topic]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryStore(timeout=1.0)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def coordinator(store, notifier, clock):
    ids = (f"t{i}" for i in itertools.count(1))
    return TicketAssignmentCoordinator(store, notifier=notifier, clock=clock, id_factory=lambda: next(ids))


@pytest.fixture
def fake_mqtt():
    return FakeMqtt()

"""MQTT topic helpers.

We keep topic construction in one place so all components agree on naming.

Topic layout under a configurable namespace (default: `counter-queue/v1`):

Request/response:
- `<ns>/scheduler/requests`
- `<ns>/scheduler/responses/<client_id>`

Events (published after every committed state change):
- `<ns>/events/<event>`                 every event, e.g. `.../events/ticket.serving`
- `<ns>/services/<service>/events`      events about one service type
- `<ns>/counters/<counter_id>/events`   events touching one counter
- `<ns>/users/<user_id>/events`         events about one submitter's tickets
- `<ns>/dashboard/events`               everything staff dashboards show

Load stream (periodic, from the load monitor):
- `<ns>/dashboard/load`                 full dashboard snapshot
- `<ns>/services/<service>/load`        per-service counter load

Service types contain spaces ("Student Records"); they are slugged to
`student-records` in topics.
"""

from __future__ import annotations

DEFAULT_NAMESPACE = "counter-queue/v1"


def service_slug(service_type: str) -> str:
    return str(service_type).strip().lower().replace(" ", "-")


def scheduler_requests(namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/scheduler/requests"


def scheduler_responses(client_id: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/scheduler/responses/{client_id}"


def event_topic(event: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/events/{event}"


def service_events(service_type: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/services/{service_slug(service_type)}/events"


def counter_events(counter_id: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/counters/{counter_id}/events"


def user_events(user_id: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/users/{user_id}/events"


def dashboard_events(namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/dashboard/events"


def dashboard_load(namespace: str = DEFAULT_NAMESPACE) -> str:
    """Periodic dashboard snapshots from the load monitor.

    Observers subscribe to this single topic to display live counter load.
    """
    return f"{namespace}/dashboard/load"


def service_load(service_type: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/services/{service_slug(service_type)}/load"

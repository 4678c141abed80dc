"""JSON request/response and pub/sub over paho-mqtt.

`MqttClient` owns the connection and paho's background network loop.
`request()` gives callers a blocking call on top of MQTT: it tags the message
with a `corr_id` and a `reply_to` topic and waits for the reply carrying the
same `corr_id`.

Incoming messages that are not replies go to every registered handler as
`(topic, dict)`. Malformed payloads are dropped.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, dict[str, Any]], None]


@dataclass(frozen=True)
class PendingResponse:
    corr_id: str
    q: "queue.Queue[dict[str, Any]]"


class MqttClient:
    def __init__(
        self,
        *,
        client_id: str,
        host: str,
        port: int,
        keepalive: int = 30,
        qos: int = 0,
    ) -> None:
        self.client_id = client_id
        self.host = host
        self.port = port
        self.keepalive = keepalive
        self.qos = qos

        self._client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id, clean_session=True)
        self._client.on_message = self._on_message

        self._handlers: list[MessageHandler] = []
        self._pending: dict[str, PendingResponse] = {}
        self._lock = threading.Lock()
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        self._client.connect(self.host, self.port, keepalive=self.keepalive)
        self._client.loop_start()
        self._started = True
        logger.info("mqtt client %s connected to %s:%d", self.client_id, self.host, self.port)

    def stop(self) -> None:
        if not self._started:
            return
        self._client.loop_stop()
        self._client.disconnect()
        self._started = False
        logger.info("mqtt client %s disconnected", self.client_id)

    def add_handler(self, handler: MessageHandler) -> None:
        self._handlers.append(handler)

    def subscribe(self, topic: str) -> None:
        self._client.subscribe(topic, qos=self.qos)

    def publish(self, topic: str, message: dict[str, Any]) -> None:
        payload = json.dumps(message, separators=(",", ":"), default=str).encode("utf-8")
        self._client.publish(topic, payload=payload, qos=self.qos)

    def request(
        self,
        *,
        request_topic: str,
        response_topic: str,
        message: dict[str, Any],
        timeout: float = 5.0,
    ) -> dict[str, Any]:
        """Publish `message` and block until the correlated reply arrives.

        The caller must already be subscribed to `response_topic`.

        Raises:
            TimeoutError: no reply within `timeout` seconds.
        """
        corr_id = uuid.uuid4().hex
        msg = dict(message)
        msg["corr_id"] = corr_id
        msg["reply_to"] = response_topic

        q: "queue.Queue[dict[str, Any]]" = queue.Queue(maxsize=1)
        with self._lock:
            self._pending[corr_id] = PendingResponse(corr_id=corr_id, q=q)

        self.publish(request_topic, msg)
        try:
            return q.get(timeout=timeout)
        except queue.Empty as e:
            raise TimeoutError(f"No response for corr_id={corr_id}") from e
        finally:
            with self._lock:
                self._pending.pop(corr_id, None)

    # -------------------- internal callbacks --------------------

    def _on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage) -> None:
        self.dispatch(msg.topic, msg.payload)

    def dispatch(self, topic: str, raw: bytes | str) -> None:
        """Decode one incoming payload and route it to a waiter or the handlers."""
        try:
            text = raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)
            data = json.loads(text)
        except (UnicodeDecodeError, ValueError):
            logger.warning("dropping malformed message on %s", topic)
            return
        if not isinstance(data, dict):
            logger.warning("dropping non-object message on %s", topic)
            return

        corr_id = data.get("corr_id")
        if isinstance(corr_id, str):
            with self._lock:
                pending = self._pending.get(corr_id)
            if pending is not None:
                try:
                    pending.q.put_nowait(data)
                except queue.Full:
                    logger.debug("duplicate reply for corr_id=%s", corr_id)
                return

        for h in list(self._handlers):
            try:
                h(topic, data)
            except Exception:
                logger.exception("message handler failed for %s", topic)

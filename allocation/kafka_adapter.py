"""Kafka side of the external bridge.

Outbound events are sent as flat JSON objects of the event's fields on a
topic named after the event (``line_allocated``); the event class name goes
in the message key. Inbound topics carry exactly the fields needed to build
one command type.

To talk to a broker set KAFKA_BOOTSTRAP_SERVERS to a comma-separated list
(e.g. 'localhost:9092'). Without it the HTTP service uses a no-op client and
nothing leaves the process.
"""
import json
import logging
import time
from dataclasses import MISSING, asdict, dataclass, field, fields
from functools import wraps
from typing import Dict, List, Optional, Union

from kafka import KafkaConsumer, KafkaProducer
from kafka.errors import KafkaError

from .commands import Command
from .errors import DeserializationError, PublishError
from .events import Event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelMessage:
    channel: str
    data: Union[str, bytes]


@dataclass(frozen=True)
class InboundChannel:
    """How payloads on one inbound channel map onto a command.

    `renames` maps payload keys to command field names where they differ.
    """
    command_type: type
    renames: Dict[str, str] = field(default_factory=dict)


def to_channel_message(event: Event) -> str:
    return json.dumps(asdict(event))


def from_channel_message(data: Union[str, bytes], inbound: InboundChannel) -> Command:
    """Build the inbound channel's command from a raw payload.

    Raises DeserializationError for anything that is not a JSON object with
    exactly the command's fields and primitive values of the right type.
    """
    try:
        payload = json.loads(data)
    except (TypeError, ValueError) as e:
        raise DeserializationError(f"invalid JSON payload: {e}") from e
    if not isinstance(payload, dict):
        raise DeserializationError(f"payload must be a JSON object, got {type(payload).__name__}")

    kwargs = {inbound.renames.get(k, k): v for k, v in payload.items()}
    declared = {f.name: f for f in fields(inbound.command_type)}
    unknown = sorted(set(kwargs) - set(declared))
    if unknown:
        raise DeserializationError(f"unexpected field(s) {', '.join(unknown)}")
    missing = sorted(
        name for name, f in declared.items()
        if name not in kwargs and f.default is MISSING and f.default_factory is MISSING
    )
    if missing:
        raise DeserializationError(f"missing field(s) {', '.join(missing)}")
    for name, value in kwargs.items():
        expected = declared[name].type
        # bool is an int subclass but never a valid quantity
        if expected in (int, str) and (isinstance(value, bool) or not isinstance(value, expected)):
            raise DeserializationError(
                f"field {name} must be {expected.__name__}, got {type(value).__name__}")
    return inbound.command_type(**kwargs)


class KafkaPubSubClient:
    """Thin pub/sub facade over kafka-python's producer and consumer."""

    def __init__(self, bootstrap_servers: List[str], group_id: str, send_timeout: float = 10.0):
        self.bootstrap_servers = bootstrap_servers
        self.group_id = group_id
        self.send_timeout = send_timeout
        self._producer = None
        self._consumer = None

    def _get_producer(self) -> KafkaProducer:
        if self._producer is None:
            self._producer = KafkaProducer(
                bootstrap_servers=self.bootstrap_servers,
                key_serializer=lambda k: k.encode('utf-8') if k is not None else None,
                value_serializer=lambda v: v.encode('utf-8'),
            )
        return self._producer

    def publish(self, channel: str, payload: str, key: Optional[str] = None):
        future = self._get_producer().send(channel, value=payload, key=key)
        # block so broker errors surface to the caller instead of a callback
        future.get(timeout=self.send_timeout)

    def subscribe(self, *channels: str):
        if self._consumer is None:
            self._consumer = KafkaConsumer(
                bootstrap_servers=self.bootstrap_servers,
                group_id=self.group_id,
                auto_offset_reset='earliest',
            )
        self._consumer.subscribe(topics=list(channels))

    def next_message(self, timeout: float) -> Optional[ChannelMessage]:
        if self._consumer is None:
            raise RuntimeError('next_message() called before subscribe()')
        batches = self._consumer.poll(timeout_ms=int(timeout * 1000), max_records=1)
        for records in batches.values():
            for record in records:
                return ChannelMessage(channel=record.topic, data=record.value)
        return None

    def unsubscribe(self):
        if self._consumer is not None:
            self._consumer.unsubscribe()

    def close(self):
        if self._consumer is not None:
            self._consumer.close()
            self._consumer = None
        if self._producer is not None:
            self._producer.close()
            self._producer = None


class NoOpPubSubClient:
    """Used when no broker is configured. Publishing is dropped, nothing arrives."""

    def publish(self, channel: str, payload: str, key: Optional[str] = None):
        logger.debug('no broker configured, dropping message for %s', channel)

    def subscribe(self, *channels: str):
        pass

    def next_message(self, timeout: float) -> Optional[ChannelMessage]:
        time.sleep(timeout)
        return None

    def unsubscribe(self):
        pass

    def close(self):
        pass


class EventPublisher:
    """Sends internal events to external channels. Never retries on its own."""

    def __init__(self, client):
        self.client = client

    def publish(self, channel: str, event: Event):
        name = type(event).__name__
        try:
            payload = to_channel_message(event)
        except (TypeError, ValueError) as e:
            raise PublishError(f"cannot serialise {name}: {e}") from e
        try:
            self.client.publish(channel, payload, key=name)
        except (KafkaError, OSError) as e:
            raise PublishError(f"publishing {name} to {channel} failed: {e}") from e
        logger.info('published %s to %s', name, channel)


def with_retries(max_retries=3, delay=0.5, backoff=2, exceptions=(PublishError,)):
    """Retry the wrapped call on `exceptions`, up to `max_retries` attempts in total."""
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            attempt = 1
            current_delay = delay
            while True:
                try:
                    return f(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_retries:
                        logger.error('giving up after %d attempt(s): %s', attempt, e)
                        raise
                    logger.warning('attempt %d/%d failed, retrying in %.1fs: %s',
                                   attempt, max_retries, current_delay, e)
                    time.sleep(current_delay)
                    current_delay *= backoff
                    attempt += 1
        return wrapper
    return decorator

import json

import pytest

from allocation.config import Config
from allocation.di import build_container
from allocation.flask_app import create_app
from allocation.kafka_adapter import ChannelMessage
from allocation.repo_factory import get_session_factory


class FakePubSub:
    """In-memory stand-in for the Kafka client: records publishes, replays an inbox."""

    def __init__(self):
        self.published = []
        self.subscribed = []
        self.inbox = []
        self.on_idle = None
        self.fail_with = None
        self.unsubscribed = False
        self.closed = False

    def publish(self, channel, payload, key=None):
        if self.fail_with is not None:
            raise self.fail_with
        self.published.append((channel, payload, key))

    def subscribe(self, *channels):
        self.subscribed.extend(channels)

    def next_message(self, timeout):
        if self.inbox:
            item = self.inbox.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        if self.on_idle is not None:
            self.on_idle()
        return None

    def unsubscribe(self):
        self.unsubscribed = True

    def close(self):
        self.closed = True

    def deliver(self, channel, payload):
        data = payload if isinstance(payload, str) else json.dumps(payload)
        self.inbox.append(ChannelMessage(channel, data))

    def published_on(self, channel):
        return [json.loads(p) for c, p, _ in self.published if c == channel]


@pytest.fixture
def session_factory():
    return get_session_factory('sqlite://')


@pytest.fixture
def pubsub():
    return FakePubSub()


@pytest.fixture
def cfg():
    c = Config()
    c.KAFKA_BOOTSTRAP_SERVERS = ''
    c.ALLOCATED_CHANNEL = 'line_allocated'
    c.CHANGE_QUANTITY_CHANNEL = 'change_batch_quantity'
    c.PUBLISH_RETRIES = 0
    c.LISTENER_POLL_TIMEOUT = 0.01
    return c


@pytest.fixture
def container(cfg, session_factory, pubsub):
    return build_container(cfg, session_factory=session_factory, pubsub=pubsub)


@pytest.fixture
def client(container):
    app = create_app(container)
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client

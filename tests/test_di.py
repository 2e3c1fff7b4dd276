from allocation import events
from allocation.di import build_container
from allocation.handler_registry import handler_name
from allocation.kafka_adapter import KafkaPubSubClient, NoOpPubSubClient


def test_without_broker_uses_noop_client(cfg, session_factory):
    container = build_container(cfg, session_factory=session_factory)
    assert isinstance(container.pubsub, NoOpPubSubClient)
    assert container.registry.frozen


def test_with_broker_uses_kafka_client(cfg, session_factory):
    cfg.KAFKA_BOOTSTRAP_SERVERS = 'kafka1:9092, kafka2:9092'
    container = build_container(cfg, session_factory=session_factory)
    assert isinstance(container.pubsub, KafkaPubSubClient)
    assert container.pubsub.bootstrap_servers == ['kafka1:9092', 'kafka2:9092']


def test_event_wiring(container):
    allocated = [handler_name(h) for h in container.registry.handlers_for(events.Allocated)]
    assert allocated == ['publish_allocated_event', 'add_allocation_to_read_model']
    deallocated = [handler_name(h) for h in container.registry.handlers_for(events.Deallocated)]
    assert deallocated == ['remove_allocation_from_read_model', 'reallocate']


def test_publish_retries_wrap_the_publishing_handler(cfg, session_factory, pubsub):
    cfg.PUBLISH_RETRIES = 3
    container = build_container(cfg, session_factory=session_factory, pubsub=pubsub)
    publish = container.registry.handlers_for(events.Allocated)[0]
    assert hasattr(publish, '__wrapped__')
    assert handler_name(publish) == 'publish_allocated_event'


def test_listener_uses_configured_channel(container):
    listener = container.listener()
    assert list(listener.channels) == ['change_batch_quantity']
    assert listener.poll_timeout == 0.01

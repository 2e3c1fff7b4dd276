from datetime import date

import pytest

from allocation import commands
from allocation.errors import CommandHandlerError, ConfigurationError
from allocation.kafka_adapter import ChannelMessage, InboundChannel
from allocation.kafka_consumer import ExternalListener, ListenerState

CHANNELS = {
    'change_batch_quantity': InboundChannel(commands.ChangeBatchQuantity, renames={'batchref': 'ref'}),
}


class RecordingBus:
    def __init__(self, fail_on=()):
        self.handled = []
        self.fail_on = fail_on

    def handle(self, message, uow):
        self.handled.append((message, uow))
        if message in self.fail_on:
            raise CommandHandlerError(message, ValueError('nope'))


def make_listener(pubsub, bus):
    listener = ExternalListener(pubsub, bus, uow_factory=object, channels=CHANNELS, poll_timeout=0.01)
    pubsub.on_idle = listener.stop
    return listener


def test_inbound_message_becomes_command_with_fresh_uow(pubsub):
    bus = RecordingBus()
    listener = make_listener(pubsub, bus)
    pubsub.deliver('change_batch_quantity', {'batchref': 'batch1', 'qty': 5})
    pubsub.deliver('change_batch_quantity', {'batchref': 'batch2', 'qty': 1})

    listener.run()

    assert [m for m, _ in bus.handled] == [
        commands.ChangeBatchQuantity(ref='batch1', qty=5),
        commands.ChangeBatchQuantity(ref='batch2', qty=1),
    ]
    first_uow, second_uow = (u for _, u in bus.handled)
    assert first_uow is not second_uow


def test_state_transitions(pubsub):
    listener = make_listener(pubsub, RecordingBus())
    assert listener.state is ListenerState.IDLE
    listener.subscribe()
    assert listener.state is ListenerState.SUBSCRIBED
    assert pubsub.subscribed == ['change_batch_quantity']
    with pytest.raises(RuntimeError):
        listener.subscribe()

    listener.run()

    assert listener.state is ListenerState.STOPPED
    assert pubsub.unsubscribed
    assert pubsub.closed


def test_bad_messages_do_not_stop_the_loop(pubsub):
    bus = RecordingBus()
    listener = make_listener(pubsub, bus)
    pubsub.deliver('change_batch_quantity', 'this is not json')
    pubsub.deliver('change_batch_quantity', {'batchref': 'batch1'})
    pubsub.deliver('somewhere_else', {'batchref': 'batch1', 'qty': 5})
    pubsub.deliver('change_batch_quantity', {'batchref': 'batch1', 'qty': 5})

    listener.run()

    assert [m for m, _ in bus.handled] == [commands.ChangeBatchQuantity(ref='batch1', qty=5)]
    assert listener.state is ListenerState.STOPPED


def test_failing_command_is_logged_and_skipped(pubsub):
    failing = commands.ChangeBatchQuantity(ref='batch1', qty=5)
    bus = RecordingBus(fail_on=[failing])
    listener = make_listener(pubsub, bus)
    pubsub.deliver('change_batch_quantity', {'batchref': 'batch1', 'qty': 5})
    pubsub.deliver('change_batch_quantity', {'batchref': 'batch2', 'qty': 5})

    listener.run()

    assert len(bus.handled) == 2
    assert listener.state is ListenerState.STOPPED


def test_transport_failure_moves_to_error(pubsub):
    bus = RecordingBus()
    listener = make_listener(pubsub, bus)
    pubsub.deliver('change_batch_quantity', {'batchref': 'batch1', 'qty': 5})
    pubsub.inbox.append(ConnectionResetError('connection dropped'))

    with pytest.raises(ConnectionResetError):
        listener.run()

    assert listener.state is ListenerState.ERROR
    assert pubsub.closed
    assert len(bus.handled) == 1


def test_stop_before_run_ends_without_reading(pubsub):
    listener = make_listener(pubsub, RecordingBus())
    pubsub.deliver('change_batch_quantity', {'batchref': 'batch1', 'qty': 5})
    listener.stop()

    listener.run()

    assert listener.state is ListenerState.STOPPED
    assert len(pubsub.inbox) == 1


def test_change_quantity_over_the_bridge_reallocates(container, pubsub):
    bus = container.bus
    bus.handle(commands.CreateBatch('batch1', 'SKU1', 10, date(2026, 1, 1)), container.uow())
    bus.handle(commands.CreateBatch('batch2', 'SKU1', 10, date(2026, 1, 2)), container.uow())
    bus.handle(commands.Allocate('o1', 'SKU1', 10), container.uow())
    assert pubsub.published_on('line_allocated')[-1]['batchref'] == 'batch1'

    listener = container.listener()
    pubsub.on_idle = listener.stop
    pubsub.deliver('change_batch_quantity', {'batchref': 'batch1', 'qty': 5})
    listener.run()

    assert pubsub.published_on('line_allocated')[-1] == {
        'orderid': 'o1', 'sku': 'SKU1', 'qty': 10, 'batchref': 'batch2',
    }


def test_handle_message_ignores_unknown_channel(pubsub):
    bus = RecordingBus()
    listener = make_listener(pubsub, bus)
    listener.handle_message(ChannelMessage('nobody_listens_here', '{}'))
    assert bus.handled == []


class MisconfiguredBus:
    def __init__(self):
        self.calls = 0

    def handle(self, message, uow):
        self.calls += 1
        raise ConfigurationError('no handler registered')


def test_other_bus_errors_do_not_stop_the_loop(pubsub):
    bus = MisconfiguredBus()
    listener = make_listener(pubsub, bus)
    pubsub.deliver('change_batch_quantity', {'batchref': 'batch1', 'qty': 5})
    pubsub.deliver('change_batch_quantity', {'batchref': 'batch2', 'qty': 5})

    listener.run()

    assert bus.calls == 2
    assert listener.state is ListenerState.STOPPED


def test_negative_quantity_over_the_bridge_is_skipped(container, pubsub):
    bus = container.bus
    bus.handle(commands.CreateBatch('batch1', 'SKU2', 10, None), container.uow())
    listener = container.listener()
    pubsub.on_idle = listener.stop
    pubsub.deliver('change_batch_quantity', {'batchref': 'batch1', 'qty': -1})
    pubsub.deliver('change_batch_quantity', {'batchref': 'batch1', 'qty': 7})

    listener.run()

    assert listener.state is ListenerState.STOPPED
    with container.uow() as uow:
        assert uow.products.get(sku='SKU2').batches[0].purchased_quantity == 7

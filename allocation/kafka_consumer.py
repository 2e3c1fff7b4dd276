"""Inbound side of the external bridge.

`ExternalListener` subscribes to the inbound command channels and turns each
message into a command dispatched on the bus with a fresh unit of work. A bad
payload or a failing command is logged and skipped; a broken connection ends
the loop so the process supervisor can restart it.

Run with `allocation-consumer` (or `python -m allocation.kafka_consumer`).
"""
import enum
import logging
import signal
import threading
from typing import Any, Callable, Dict

from kafka.errors import KafkaError

from .errors import AllocationError, CommandHandlerError, DeserializationError
from .kafka_adapter import ChannelMessage, InboundChannel, from_channel_message

logger = logging.getLogger(__name__)


class ListenerState(enum.Enum):
    IDLE = 'idle'
    SUBSCRIBED = 'subscribed'
    LISTENING = 'listening'
    STOPPED = 'stopped'
    ERROR = 'error'


class ExternalListener:
    def __init__(self, client: Any, bus: Any, uow_factory: Callable[[], Any],
                 channels: Dict[str, InboundChannel], poll_timeout: float = 1.0):
        self.client = client
        self.bus = bus
        self.uow_factory = uow_factory
        self.channels = dict(channels)
        self.poll_timeout = poll_timeout
        self.state = ListenerState.IDLE
        self._stop = threading.Event()

    def subscribe(self):
        if self.state is not ListenerState.IDLE:
            raise RuntimeError(f'cannot subscribe from state {self.state.value}')
        self.client.subscribe(*self.channels)
        self.state = ListenerState.SUBSCRIBED
        logger.info('subscribed to %s', ', '.join(self.channels))

    def stop(self):
        """Ask the loop to finish after its current wait. Safe from any thread."""
        self._stop.set()

    def run(self):
        """Listen until `stop()` is called or the transport fails."""
        if self.state is ListenerState.IDLE:
            self.subscribe()
        self.state = ListenerState.LISTENING
        try:
            while not self._stop.is_set():
                message = self.client.next_message(self.poll_timeout)
                if message is not None:
                    self.handle_message(message)
        except (KafkaError, OSError):
            self.state = ListenerState.ERROR
            logger.exception('transport failure, listener stopping')
            self.client.close()
            raise
        self.client.unsubscribe()
        self.client.close()
        self.state = ListenerState.STOPPED
        logger.info('listener stopped')

    def handle_message(self, message: ChannelMessage):
        inbound = self.channels.get(message.channel)
        if inbound is None:
            logger.warning('discarding message on unexpected channel %s', message.channel)
            return
        try:
            command = from_channel_message(message.data, inbound)
        except DeserializationError as e:
            logger.warning('discarding bad message on %s: %s', message.channel, e)
            return
        logger.info('handling %s from %s', command, message.channel)
        try:
            self.bus.handle(command, self.uow_factory())
        except CommandHandlerError:
            # already logged with traceback by the bus
            logger.error('command %s from %s failed', type(command).__name__, message.channel)
        except AllocationError:
            logger.exception('dispatching %s from %s failed', type(command).__name__, message.channel)


def main():
    from .config import configure_logging, get_config
    from .di import build_container

    cfg = get_config()
    configure_logging(cfg.LOG_LEVEL)
    if not cfg.kafka_servers:
        raise SystemExit('KAFKA_BOOTSTRAP_SERVERS is not set')
    container = build_container(cfg)
    listener = container.listener()

    def _shutdown(signum, frame):
        logger.info('received signal %s, stopping', signum)
        listener.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
    listener.run()


if __name__ == '__main__':
    main()

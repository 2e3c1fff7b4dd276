"""
Dependency container / composition root for the allocation service.
Builds the handler registry, the message bus, the unit-of-work factory and the
Kafka bridge in one place so entrypoints and tests share the same wiring.
"""
import logging
from functools import partial
from typing import Any, Optional

from sqlalchemy.orm import sessionmaker

from . import command_handlers, commands, events, projections
from .config import Config, get_config
from .event_bus import MessageBus
from .handler_registry import HandlerRegistry
from .kafka_adapter import (EventPublisher, InboundChannel, KafkaPubSubClient,
                            NoOpPubSubClient, with_retries)
from .kafka_consumer import ExternalListener
from .repo_factory import get_session_factory
from .unit_of_work import SqlAlchemyUnitOfWork

logger = logging.getLogger(__name__)

COMMANDS = (commands.CreateBatch, commands.Allocate, commands.ChangeBatchQuantity)


def build_registry(cfg: Config, publisher: EventPublisher) -> HandlerRegistry:
    """Register every handler and freeze the registry."""
    publish_allocated = partial(command_handlers.publish_allocated_event,
                                publish=publisher.publish, channel=cfg.ALLOCATED_CHANNEL)
    if cfg.PUBLISH_RETRIES > 0:
        publish_allocated = with_retries(max_retries=cfg.PUBLISH_RETRIES,
                                         delay=cfg.PUBLISH_RETRY_DELAY)(publish_allocated)

    registry = HandlerRegistry()
    registry.register(commands.CreateBatch, command_handlers.add_batch)
    registry.register(commands.Allocate, command_handlers.allocate)
    registry.register(commands.ChangeBatchQuantity, command_handlers.change_batch_quantity)
    registry.register(events.Allocated, publish_allocated)
    registry.register(events.Allocated, projections.add_allocation_to_read_model)
    registry.register(events.Deallocated, projections.remove_allocation_from_read_model)
    registry.register(events.Deallocated, command_handlers.reallocate)
    registry.register(events.OutOfStock, command_handlers.log_out_of_stock)
    registry.freeze(required_commands=COMMANDS)
    return registry


class Container:
    def __init__(self, cfg: Config, session_factory: Optional[sessionmaker] = None,
                 pubsub: Optional[Any] = None):
        self.cfg = cfg
        self.session_factory = session_factory or get_session_factory(cfg.DATABASE_URL)
        if pubsub is None:
            if cfg.kafka_servers:
                pubsub = KafkaPubSubClient(cfg.kafka_servers, group_id=cfg.KAFKA_GROUP_ID)
            else:
                logger.info('KAFKA_BOOTSTRAP_SERVERS not set, external publishing disabled')
                pubsub = NoOpPubSubClient()
        self.pubsub = pubsub
        self.publisher = EventPublisher(self.pubsub)
        self.registry = build_registry(cfg, self.publisher)
        self.bus = MessageBus(self.registry)

    def uow(self) -> SqlAlchemyUnitOfWork:
        """A new unit of work; one per `bus.handle` call."""
        return SqlAlchemyUnitOfWork(self.session_factory)

    def inbound_channels(self):
        return {
            self.cfg.CHANGE_QUANTITY_CHANNEL: InboundChannel(
                commands.ChangeBatchQuantity, renames={'batchref': 'ref'}),
        }

    def listener(self) -> ExternalListener:
        return ExternalListener(self.pubsub, self.bus, self.uow, self.inbound_channels(),
                                poll_timeout=self.cfg.LISTENER_POLL_TIMEOUT)


def build_container(cfg: Optional[Config] = None, **overrides) -> Container:
    """Create and return a Container wired from `cfg` (environment by default).

    Tests pass `session_factory` / `pubsub` overrides to swap in doubles.
    """
    return Container(cfg or get_config(), **overrides)

"""Handlers registered on the message bus.

Every handler takes the message and the unit of work of the current
`MessageBus.handle` call. Messages raised by aggregates (or queued with
`uow.add_message`) are picked up by the bus once the handler returns.
"""
import logging
from typing import Callable

from . import commands, events
from .model import Batch, OrderLine, Product

logger = logging.getLogger(__name__)


class InvalidSku(Exception):
    pass


def add_batch(cmd: commands.CreateBatch, uow):
    with uow:
        product = uow.products.get(sku=cmd.sku)
        if product is None:
            product = Product(cmd.sku, batches=[])
            uow.products.add(product)
        if any(b.reference == cmd.ref for b in product.batches):
            raise ValueError(f"Batch {cmd.ref} already exists")
        product.batches.append(Batch(cmd.ref, cmd.sku, cmd.qty, cmd.eta))
        uow.commit()


def allocate(cmd: commands.Allocate, uow):
    line = OrderLine(cmd.orderid, cmd.sku, cmd.qty)
    with uow:
        product = uow.products.get(sku=line.sku)
        if product is None:
            raise InvalidSku(f"Invalid sku {line.sku}")
        product.allocate(line)
        uow.commit()


def change_batch_quantity(cmd: commands.ChangeBatchQuantity, uow):
    with uow:
        product = uow.products.get_by_batchref(batchref=cmd.ref)
        if product is None:
            raise ValueError(f"Unknown batch {cmd.ref}")
        product.change_batch_quantity(ref=cmd.ref, qty=cmd.qty)
        uow.commit()


def reallocate(event: events.Deallocated, uow):
    """Put a deallocated line back through allocation."""
    uow.add_message(commands.Allocate(orderid=event.orderid, sku=event.sku, qty=event.qty))


def publish_allocated_event(event: events.Allocated, uow, publish: Callable, channel: str):
    publish(channel, event)


def log_out_of_stock(event: events.OutOfStock, uow):
    logger.warning("out of stock for %s", event.sku)

"""Projections keeping the `allocations_view` read model in step with events."""
from . import events
from .models.sql_models import AllocationView


def add_allocation_to_read_model(event: events.Allocated, uow):
    with uow:
        uow.session.add(AllocationView(orderid=event.orderid, sku=event.sku, batchref=event.batchref))
        uow.commit()


def remove_allocation_from_read_model(event: events.Deallocated, uow):
    with uow:
        (uow.session.query(AllocationView)
         .filter(AllocationView.orderid == event.orderid, AllocationView.sku == event.sku)
         .delete())
        uow.commit()

from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Set

from . import events


class InvalidQuantity(ValueError):
    pass


@dataclass(frozen=True)
class OrderLine:
    orderid: str
    sku: str
    qty: int

    def __post_init__(self):
        if self.qty <= 0:
            raise InvalidQuantity(f"Order line {self.orderid} needs a positive quantity, got {self.qty}")


class Batch:
    """A quantity of one SKU that order lines can be allocated against.

    Batches with no ETA are already in the warehouse and sort before any
    shipment; shipments sort by ETA.
    """

    def __init__(self, ref: str, sku: str, qty: int, eta: Optional[date] = None,
                 allocations: Iterable[OrderLine] = ()):
        self.reference = ref
        self.sku = sku
        self.eta = eta
        self._purchased_quantity = 0
        self.change_purchased_quantity(qty)
        self._allocations: Set[OrderLine] = set(allocations)

    def __repr__(self):
        return f"<Batch {self.reference}>"

    def __eq__(self, other):
        if not isinstance(other, Batch):
            return False
        return other.reference == self.reference

    def __hash__(self):
        return hash(self.reference)

    def __gt__(self, other):
        if self.eta is None:
            return False
        if other.eta is None:
            return True
        return self.eta > other.eta

    @property
    def purchased_quantity(self) -> int:
        return self._purchased_quantity

    def change_purchased_quantity(self, qty: int):
        if qty < 0:
            raise InvalidQuantity(f"Batch {self.reference} quantity cannot be negative, got {qty}")
        self._purchased_quantity = qty

    @property
    def allocations(self) -> Set[OrderLine]:
        return set(self._allocations)

    def allocate(self, line: OrderLine):
        if self.can_allocate(line):
            self._allocations.add(line)

    def deallocate_one(self) -> OrderLine:
        # highest order id first so the choice is deterministic
        line = max(self._allocations, key=lambda l: l.orderid)
        self._allocations.remove(line)
        return line

    @property
    def allocated_quantity(self) -> int:
        return sum(line.qty for line in self._allocations)

    @property
    def available_quantity(self) -> int:
        return self._purchased_quantity - self.allocated_quantity

    def can_allocate(self, line: OrderLine) -> bool:
        return self.sku == line.sku and self.available_quantity >= line.qty


class Product:
    """Aggregate for one SKU: owns its batches and the messages it raises.

    ``events`` is the aggregate's share of the unit-of-work outbox.
    """

    def __init__(self, sku: str, batches: List[Batch], version_number: int = 0):
        self.sku = sku
        self.batches = batches
        self.version_number = version_number
        self.events: List[events.Message] = []

    def allocate(self, line: OrderLine) -> Optional[str]:
        # a line that is already allocated keeps its batch and raises nothing new
        for batch in self.batches:
            if line in batch.allocations:
                return batch.reference
        candidates = sorted(b for b in self.batches if b.can_allocate(line))
        if not candidates:
            self.events.append(events.OutOfStock(line.sku))
            return None
        batch = candidates[0]
        batch.allocate(line)
        self.version_number += 1
        self.events.append(events.Allocated(
            orderid=line.orderid, sku=line.sku, qty=line.qty, batchref=batch.reference,
        ))
        return batch.reference

    def change_batch_quantity(self, ref: str, qty: int):
        batch = next((b for b in self.batches if b.reference == ref), None)
        if batch is None:
            raise ValueError(f"Unknown batch {ref} for sku {self.sku}")
        batch.change_purchased_quantity(qty)
        while batch.available_quantity < 0:
            line = batch.deallocate_one()
            self.events.append(events.Deallocated(line.orderid, line.sku, line.qty))
        self.version_number += 1

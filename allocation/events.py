"""Messages exchanged on the internal bus.

``Message`` is the common base; ``Event`` records something that already
happened and may have any number of subscribers. Commands live in
``commands.py``.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class Message:
    pass


@dataclass(frozen=True)
class Event(Message):
    pass


@dataclass(frozen=True)
class Allocated(Event):
    orderid: str
    sku: str
    qty: int
    batchref: str


@dataclass(frozen=True)
class Deallocated(Event):
    orderid: str
    sku: str
    qty: int


@dataclass(frozen=True)
class OutOfStock(Event):
    sku: str

"""Commands: requests to change state, each handled by exactly one handler."""
from dataclasses import dataclass
from datetime import date
from typing import Optional

from .events import Message


@dataclass(frozen=True)
class Command(Message):
    pass


@dataclass(frozen=True)
class CreateBatch(Command):
    ref: str
    sku: str
    qty: int
    eta: Optional[date] = None


@dataclass(frozen=True)
class Allocate(Command):
    orderid: str
    sku: str
    qty: int


@dataclass(frozen=True)
class ChangeBatchQuantity(Command):
    ref: str
    qty: int

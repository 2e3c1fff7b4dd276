"""Unit of work: one database transaction plus the outbox of messages it raised."""
import logging
from typing import List

from sqlalchemy.orm import sessionmaker

from .events import Message
from .repositories.sqlalchemy_repo import SQLAlchemyProductsRepository

logger = logging.getLogger(__name__)


class SqlAlchemyUnitOfWork:
    """Owned by a single `MessageBus.handle` call; never shared between threads.

    Handlers enter it with ``with uow:``; leaving the block rolls back
    anything that was not committed.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory
        self.session = None
        self.products = None
        self._outbox: List[Message] = []

    def __enter__(self):
        self.session = self.session_factory()
        self.products = SQLAlchemyProductsRepository(self.session)
        return self

    def __exit__(self, *args):
        self.rollback()
        self.session.close()

    def commit(self):
        self.products.sync()
        self.session.commit()

    def rollback(self):
        self.session.rollback()

    def add_message(self, message: Message):
        self._outbox.append(message)

    def collect_new_messages(self) -> List[Message]:
        """Drain the outbox: aggregate events first, then messages added directly."""
        pending = []
        if self.products is not None:
            for product in self.products.seen:
                pending.extend(product.events)
                product.events.clear()
        pending.extend(self._outbox)
        self._outbox = []
        if pending:
            logger.debug("collected %d new message(s)", len(pending))
        return pending

"""In-process message bus.

Commands and events raised while handling a message are queued on the unit
of work and drained here, breadth first, until nothing is left. Commands
have a single handler whose failure is reported to the caller; event
handlers are isolated from each other so one failing subscriber never
blocks the rest.
"""
import logging
from collections import deque
from typing import Any, Callable, Optional

from .commands import Command
from .errors import CommandHandlerError, EventHandlerError
from .events import Event, Message
from .handler_registry import HandlerRegistry, handler_name

logger = logging.getLogger(__name__)


class MessageBus:
    def __init__(self, registry: HandlerRegistry,
                 on_handler_error: Optional[Callable[[EventHandlerError], None]] = None):
        if not registry.frozen:
            registry.freeze()
        self.registry = registry
        self._on_handler_error = on_handler_error

    def handle(self, message: Message, uow: Any) -> None:
        """Process ``message`` and everything it causes, in FIFO order.

        ``uow`` is the unit of work owned by this call; handlers receive it
        and the bus drains ``uow.collect_new_messages()`` after each one.

        When a command fails its own follow-up messages are dropped but the
        rest of the queue is still processed; the first failure is then
        raised as ``CommandHandlerError``.
        """
        queue = deque([message])
        failure = None
        while queue:
            current = queue.popleft()
            if isinstance(current, Command):
                try:
                    self._handle_command(current, uow)
                except CommandHandlerError as e:
                    if failure is None:
                        failure = e
                    else:
                        logger.error("further command failure while draining: %s", e)
                    continue
                queue.extend(uow.collect_new_messages())
            elif isinstance(current, Event):
                queue.extend(self._handle_event(current, uow))
            else:
                raise TypeError(f"{current!r} is not a Command or Event")
        if failure is not None:
            raise failure

    def _handle_command(self, command: Command, uow: Any):
        handler = self.registry.handlers_for(type(command))[0]
        logger.debug("handling command %s with %s", command, handler_name(handler))
        try:
            handler(command, uow)
        except Exception as e:
            logger.exception("command %s failed in %s", type(command).__name__, handler_name(handler))
            # the transaction rolled back; whatever it queued is void
            uow.collect_new_messages()
            raise CommandHandlerError(command, e) from e

    def _handle_event(self, event: Event, uow: Any):
        emitted = []
        for handler in self.registry.handlers_for(type(event)):
            name = handler_name(handler)
            logger.debug("handling event %s with %s", event, name)
            try:
                handler(event, uow)
            except Exception as e:
                logger.exception("event %s handler %s failed", type(event).__name__, name)
                uow.collect_new_messages()
                if self._on_handler_error is not None:
                    self._on_handler_error(EventHandlerError(event, name, e))
                continue
            emitted.extend(uow.collect_new_messages())
        return emitted

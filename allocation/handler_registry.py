"""Message type -> handler lookup table used by the bus.

The composition root fills the registry once at startup and freezes it;
after that it is only read, so one instance can be shared by every
thread that dispatches messages.
"""
from collections import defaultdict
from functools import partial
from typing import Any, Callable, Iterable, Tuple

from .commands import Command
from .errors import ConfigurationError
from .events import Event, Message

Handler = Callable[[Message, Any], None]


def handler_name(handler: Handler) -> str:
    """Readable name for a handler, looking through partials and decorators."""
    target = handler
    while True:
        if isinstance(target, partial):
            target = target.func
        elif hasattr(target, "__wrapped__"):
            target = target.__wrapped__
        else:
            break
    return getattr(target, "__qualname__", None) or getattr(target, "__name__", None) or repr(handler)


class HandlerRegistry:
    def __init__(self):
        self._handlers = defaultdict(list)
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, message_type: type, handler: Handler):
        """Append ``handler`` to the handlers of ``message_type``.

        A command type accepts a single handler; a second registration is a
        configuration error, as is any registration once the registry is
        frozen.
        """
        if self._frozen:
            raise ConfigurationError(
                f"cannot register {handler_name(handler)}: handler registry is frozen")
        if not isinstance(message_type, type) or not issubclass(message_type, (Command, Event)):
            raise ConfigurationError(f"{message_type!r} is not a Command or Event type")
        if issubclass(message_type, Command) and self._handlers.get(message_type):
            existing = handler_name(self._handlers[message_type][0])
            raise ConfigurationError(
                f"{message_type.__name__} already handled by {existing}; "
                f"commands take exactly one handler")
        self._handlers[message_type].append(handler)

    def handlers_for(self, message_type: type) -> Tuple[Handler, ...]:
        handlers = tuple(self._handlers.get(message_type, ()))
        if issubclass(message_type, Command) and len(handlers) != 1:
            raise ConfigurationError(f"no handler registered for command {message_type.__name__}")
        return handlers

    def freeze(self, required_commands: Iterable[type] = ()):
        """Check that each required command has its handler, then lock the registry."""
        missing = [c.__name__ for c in required_commands if not self._handlers.get(c)]
        if missing:
            raise ConfigurationError(f"commands without a handler: {', '.join(sorted(missing))}")
        self._frozen = True

    def message_types(self) -> Tuple[type, ...]:
        return tuple(self._handlers)

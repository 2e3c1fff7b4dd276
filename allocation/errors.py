"""Error types raised by the message bus and its Kafka bridge."""


class AllocationError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(AllocationError):
    """Handler registration is invalid. Raised at startup."""


class CommandHandlerError(AllocationError):
    """The single handler for a command failed.

    Keeps the failing command and the original exception so callers (the
    HTTP layer, the listener) can report it.
    """

    def __init__(self, command, error: Exception):
        super().__init__(str(error))
        self.command = command
        self.error = error


class EventHandlerError(AllocationError):
    """One subscriber of an event failed. Logged by the bus, never raised."""

    def __init__(self, event, handler_name: str, error: Exception):
        super().__init__(f"{type(event).__name__} handler {handler_name} failed: {error}")
        self.event = event
        self.handler_name = handler_name
        self.error = error


class DeserializationError(AllocationError):
    """An inbound channel payload could not be turned into a command."""


class PublishError(AllocationError):
    """Sending an event to the external channel failed."""

"""Allocation service package.

Internal message bus for batch allocation plus a Kafka bridge that publishes
selected events and turns inbound channel messages into commands.
"""

__all__ = ["flask_app"]

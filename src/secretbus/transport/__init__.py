"""Bus transports used by the Secret Service client."""

from secretbus.transport.base import SignalStream, Transport

__all__ = ["SignalStream", "Transport"]

from .channels import ClosableQueue, QueueClosed, drain_any
from .driver import StreamDriver, StreamSummary

__all__ = ["ClosableQueue", "QueueClosed", "StreamDriver", "StreamSummary", "drain_any"]

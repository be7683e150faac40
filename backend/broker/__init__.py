from broker.lifecycle import LifecycleManager
from broker.router import MessageRouter
from broker.stream_writer import StreamWriter

__all__ = ["LifecycleManager", "MessageRouter", "StreamWriter"]

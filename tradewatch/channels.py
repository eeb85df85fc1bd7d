# tradewatch/channels.py
import asyncio
import logging
from typing import Any, List

from tradewatch.datastructures import AgentEvent

class EventChannel:
    """
    Fan-out of events from one producer to any number of subscriber queues.
    Each subscriber receives events in publication order.
    """
    def __init__(self, name: str):
        self.name = name
        self._subscribers: List[asyncio.Queue] = []

    def subscribe(self) -> asyncio.Queue:
        """Registers and returns a new unbounded queue for this channel."""
        queue = asyncio.Queue()
        self._subscribers.append(queue)
        logging.debug(f"CHANNEL {self.name}: subscriber added ({len(self._subscribers)} total)")
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event_type: str, payload: Any = None) -> AgentEvent:
        event = AgentEvent(type=event_type, source=self.name, payload=payload)
        for queue in list(self._subscribers):
            queue.put_nowait(event)
        return event

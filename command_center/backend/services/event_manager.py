"""Event publishing for SSE clients and in-process listeners."""

import asyncio
import inspect
import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Set

from fastapi import Request

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], Any]


class EventManager:
    """Manages Server-Sent Events connections and broadcasts.

    Besides SSE queues, any number of in-process listeners (plain or async
    callables) can subscribe. Every broadcast reaches each subscriber once.
    """

    def __init__(self):
        self.connections: Set[asyncio.Queue] = set()
        self.listeners: List[Listener] = []

    async def connect(self, request: Request) -> asyncio.Queue:
        """Add a new SSE connection."""
        queue = asyncio.Queue()
        self.connections.add(queue)
        logger.info(f"New SSE connection. Total: {len(self.connections)}")

        # Send initial connection event
        await self.broadcast(
            {
                "type": "connection",
                "message": "Connected to Command Center",
                "timestamp": datetime.utcnow().isoformat() + "Z",
            }
        )

        return queue

    async def disconnect(self, queue: asyncio.Queue):
        """Remove an SSE connection."""
        if queue in self.connections:
            self.connections.remove(queue)
            logger.info(f"SSE connection removed. Total: {len(self.connections)}")

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register an in-process listener. Returns an unsubscribe callable."""
        self.listeners.append(listener)

        def unsubscribe():
            if listener in self.listeners:
                self.listeners.remove(listener)

        return unsubscribe

    async def broadcast(self, data: Dict[str, Any]):
        """Broadcast data to all listeners and connected clients."""
        for listener in list(self.listeners):
            try:
                result = listener(data)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Event listener failed for {data.get('type')}: {e}")

        if not self.connections:
            return

        message = json.dumps(data, default=str)
        disconnected = set()

        # Create a copy to avoid "Set changed size during iteration" error
        for queue in list(self.connections):
            try:
                await asyncio.wait_for(queue.put(message), timeout=1.0)
            except asyncio.TimeoutError:
                logger.warning("SSE queue timeout, marking for removal")
                disconnected.add(queue)
            except Exception as e:
                logger.error(f"Error broadcasting to SSE client: {e}")
                disconnected.add(queue)

        # Remove disconnected clients
        for queue in disconnected:
            await self.disconnect(queue)

    async def send_command_executed(self, command_data: Dict[str, Any]):
        """Send a completed remote command."""
        await self.broadcast(
            {
                "type": "command_executed",
                "data": command_data,
                "timestamp": datetime.utcnow().isoformat() + "Z",
            }
        )

    async def send_operation_update(self, operation_data: Dict[str, Any]):
        """Send an operation status or progress change."""
        await self.broadcast(
            {
                "type": "operation_update",
                "data": operation_data,
                "timestamp": datetime.utcnow().isoformat() + "Z",
            }
        )

    async def send_connection_update(self, connection_data: Dict[str, Any]):
        """Send a connect/disconnect transition."""
        await self.broadcast(
            {
                "type": "connection_update",
                "data": connection_data,
                "timestamp": datetime.utcnow().isoformat() + "Z",
            }
        )


# Global event manager instance
event_manager = EventManager()

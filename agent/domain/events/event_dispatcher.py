from typing import Dict, Any, Optional, List, Callable, Set, Union
import asyncio
import inspect
import structlog
from pydantic import BaseModel

from domain.events.events import EventType, SystemEventPayload

logger = structlog.get_logger(__name__)

EventHandler = Callable[[EventType, Dict[str, Any]], Any]


class InternalEventDispatcher:
    """Fire-and-forget publish/subscribe for runtime telemetry.

    Handlers may be plain callables or coroutine functions. Coroutine
    handlers are scheduled on the running loop; a failing handler is
    logged and never reaches the publisher.
    """

    def __init__(self):
        self.event_handlers: Dict[EventType, List[EventHandler]] = {}
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, event_type: EventType, handler: EventHandler):
        """Register a handler for one event type"""

        if event_type not in self.event_handlers:
            self.event_handlers[event_type] = []
        self.event_handlers[event_type].append(handler)

    def subscribe_all(self, handler: EventHandler):
        """Register a handler for every event type"""

        for event_type in EventType:
            self.subscribe(event_type, handler)

    def unsubscribe(self, event_type: EventType, handler: EventHandler):
        handlers = self.event_handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event_type: EventType, payload: Union[BaseModel, Dict[str, Any], None] = None):
        """Deliver an event to its handlers without blocking the caller"""

        if isinstance(payload, BaseModel):
            data = payload.model_dump()
        else:
            data = dict(payload or {})

        for handler in list(self.event_handlers.get(event_type, [])):
            try:
                result = handler(event_type, data)
                if inspect.isawaitable(result):
                    self._schedule(event_type, result)
            except Exception as e:
                logger.error("Error in event handler",
                             event_type=event_type.value,
                             error=str(e))

    def system_info(self, message: str, details: Optional[Dict[str, Any]] = None,
                    source: Optional[str] = None, chat_id: Optional[str] = None):
        self._system(EventType.SYSTEM_INFO, "info", message, details, source, chat_id)

    def system_warning(self, message: str, details: Optional[Dict[str, Any]] = None,
                       source: Optional[str] = None, chat_id: Optional[str] = None):
        self._system(EventType.SYSTEM_WARNING, "warning", message, details, source, chat_id)

    def system_error(self, message: str, details: Optional[Dict[str, Any]] = None,
                     source: Optional[str] = None, chat_id: Optional[str] = None):
        self._system(EventType.SYSTEM_ERROR, "error", message, details, source, chat_id)

    async def drain(self):
        """Wait for scheduled coroutine handlers to finish"""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _system(self, event_type: EventType, level: str, message: str,
                details: Optional[Dict[str, Any]], source: Optional[str], chat_id: Optional[str]):
        self.publish(event_type, SystemEventPayload(
            level=level,
            message=message,
            details=details or {},
            source=source,
            chat_id=chat_id,
        ))

    def _schedule(self, event_type: EventType, awaitable):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to run it on; drop it rather than block the publisher
            logger.warning("Dropping async event handler outside an event loop",
                           event_type=event_type.value)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        task = loop.create_task(awaitable)
        self._pending.add(task)
        task.add_done_callback(lambda t: self._on_handler_done(event_type, t))

    def _on_handler_done(self, event_type: EventType, task: asyncio.Task):
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Error in event handler",
                         event_type=event_type.value,
                         error=str(exc))

"""Event subscription over the dev-incus events endpoint.

The host pushes one JSON message per config or device change on a
WebSocket. EventListener reads those messages in a loop, decodes each
into an Event and hands it to a caller-supplied handler.

Handlers are dispatched, not awaited: each one runs as its own task so
a slow handler never stalls the read loop. Handlers therefore start in
arrival order but may finish in any order, and must be safe to run
concurrently. Nothing bounds the number of handlers in flight unless
`max_pending` is set, in which case the read loop waits for a free slot.

A subscription ends when:
- the `cancel` event is set (checked before every read; clean return)
- a read fails or the host closes the stream (StreamError)
- a message cannot be decoded (DecodeError), unless `skip_invalid`

There is no reconnect and no replay; callers that want to keep
listening open a new subscription.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable

from .decoder import decode_event
from .errors import DecodeError
from .transport import GuestTransport
from .types import ConfigEvent, DeviceEvent, EventType

logger = logging.getLogger(__name__)

EVENTS_PATH = "/1.0/events"

EventHandler = Callable[[ConfigEvent | DeviceEvent], Awaitable[None] | None]


def build_events_path(event_types: Iterable[EventType | str] = ()) -> str:
    """Build the events endpoint path for the requested event types.

    Unknown types are dropped. With no valid type left the query is
    omitted and the host sends every event type.
    """
    selected: list[str] = []
    for event_type in event_types:
        if not EventType.is_valid(event_type):
            logger.debug(f"Ignoring invalid event type: {event_type!r}")
            continue
        value = EventType(event_type).value
        if value not in selected:
            selected.append(value)

    if not selected:
        return EVENTS_PATH
    return f"{EVENTS_PATH}?type={','.join(selected)}"


def _is_async_handler(handler: Callable[..., object]) -> bool:
    if inspect.iscoroutinefunction(handler):
        return True
    call = getattr(handler, "__call__", None)
    return inspect.iscoroutinefunction(call)


class EventListener:
    """Reads the events stream and dispatches decoded events to a handler.

    One listener may run several subscriptions one after another; each
    subscription owns its own connection.
    """

    def __init__(
        self,
        transport: GuestTransport,
        *,
        max_pending: int | None = None,
        skip_invalid: bool = False,
    ):
        if max_pending is not None and max_pending < 1:
            raise ValueError("max_pending must be at least 1")

        self._transport = transport
        self._skip_invalid = skip_invalid
        self._slots = asyncio.Semaphore(max_pending) if max_pending else None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        """Number of handlers still running."""
        return len(self._tasks)

    async def listen(
        self,
        handler: EventHandler,
        *event_types: EventType | str,
        cancel: asyncio.Event | None = None,
    ) -> None:
        """Subscribe and dispatch events until cancelled or the stream fails.

        Args:
            handler: Called once per event. Coroutine functions run as
                tasks, plain callables run in the default executor.
            *event_types: Event types to subscribe to (all when empty)
            cancel: Set to end the subscription. Checked before each
                read; a read already waiting is not interrupted.

        Raises:
            SocketError: If the stream could not be opened
            UnexpectedStatusError: If the host refused the subscription
            StreamError: If reading failed or the host closed the stream
            DecodeError: If a message could not be decoded
        """
        path = build_events_path(event_types)
        logger.info(f"Subscribing to events: {path}")

        async with self._transport.open_stream(path) as conn:
            while True:
                if cancel is not None and cancel.is_set():
                    logger.info("Event subscription cancelled")
                    return

                event = self._decode(await conn.recv())
                if event is None:
                    continue

                await self._dispatch(handler, event)

    async def stream(
        self, *event_types: EventType | str
    ) -> AsyncIterator[ConfigEvent | DeviceEvent]:
        """Subscribe and yield events as they arrive.

        Usage:
            async with aclosing(listener.stream(EventType.CONFIG)) as events:
                async for event in events:
                    if event.metadata.key == "user.reload":
                        break

        The stream is closed when the generator is closed. Wrap it in
        `contextlib.aclosing` to close it as soon as the loop ends;
        otherwise that waits for the generator to be finalized.
        """
        path = build_events_path(event_types)
        logger.info(f"Streaming events: {path}")

        async with self._transport.open_stream(path) as conn:
            while True:
                event = self._decode(await conn.recv())
                if event is not None:
                    yield event

    async def join(self) -> None:
        """Wait for every dispatched handler to finish."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _decode(self, message: str | bytes) -> ConfigEvent | DeviceEvent | None:
        try:
            event = decode_event(message)
        except DecodeError as e:
            if not self._skip_invalid:
                raise
            logger.warning(f"Skipping undecodable event: {e}")
            return None

        logger.debug(f"Received {event.type} event at {event.timestamp}")
        return event

    async def _dispatch(self, handler: EventHandler, event: ConfigEvent | DeviceEvent) -> None:
        if self._slots is not None:
            await self._slots.acquire()

        task = asyncio.create_task(self._run_handler(handler, event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_handler(self, handler: EventHandler, event: ConfigEvent | DeviceEvent) -> None:
        try:
            if _is_async_handler(handler):
                await handler(event)  # type: ignore[misc]
            else:
                await asyncio.to_thread(handler, event)
        except Exception:
            logger.exception(f"Event handler failed on {event.type} event")
        finally:
            if self._slots is not None:
                self._slots.release()

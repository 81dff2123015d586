"""The main loop: merges forwarded input with a periodic refresh tick."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, ContextManager, Optional, Protocol

from tmx.dispatch import handle_event
from tmx.keys import InputError, InputMessage, ResizeEvent
from tmx.state import AppState

logger = logging.getLogger(__name__)

TICK_INTERVAL = 0.25

InputSink = Callable[[Optional[InputMessage]], None]


class EventLoopError(Exception):
    """Fatal: the input channel closed or its reader failed."""


class Terminal(Protocol):
    def draw(self, state: AppState) -> None: ...

    def start_input(self, sink: InputSink) -> None:
        """Begin forwarding input messages to sink; None means the reader stopped."""

    def suspend(self) -> ContextManager[object]: ...


async def on_tick(state: AppState) -> None:
    state.clear_expired_error()
    await state.refresh_sessions()
    await state.refresh_preview(reload_windows=True)


async def run_event_loop(state: AppState, terminal: Terminal) -> None:
    """Own the loop until state.should_quit is set.

    Raises EventLoopError when input can no longer be read.
    """
    loop = asyncio.get_running_loop()
    channel: asyncio.Queue[Optional[InputMessage]] = asyncio.Queue()
    terminal.start_input(channel.put_nowait)
    state.release_terminal = terminal.suspend

    await state.refresh_sessions()
    await state.refresh_preview()
    terminal.draw(state)

    next_tick = loop.time() + TICK_INTERVAL
    pending: asyncio.Future[Optional[InputMessage]] | None = None
    try:
        while not state.should_quit:
            if pending is None:
                pending = asyncio.ensure_future(channel.get())
            timeout = max(0.0, next_tick - loop.time())
            done, _ = await asyncio.wait({pending}, timeout=timeout)

            if pending in done:
                message = pending.result()
                pending = None
                if message is None:
                    raise EventLoopError("input channel closed")
                if isinstance(message, InputError):
                    raise EventLoopError(f"failed to read input: {message.error}") from message.error
                before = state.selection_key()
                await handle_event(state, message)
                if state.selection_key() != before or isinstance(message, ResizeEvent):
                    await state.refresh_preview()
            else:
                next_tick = loop.time() + TICK_INTERVAL
                await on_tick(state)

            terminal.draw(state)
    finally:
        if pending is not None:
            pending.cancel()

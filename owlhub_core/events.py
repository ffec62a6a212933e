#  Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#  SPDX-License-Identifier: Apache-2.0
import logging
from collections.abc import Awaitable, Callable
from inspect import isawaitable
from typing import Any, Final

logger: Final = logging.getLogger(__name__)

type Listener = Callable[..., Awaitable[None] | None]


class ListenerExecutor:
    """Ordered, named hook points.

    Each event holds a list of listeners that run in registration order. A listener
    may be a plain function or a coroutine function; coroutines are awaited before the
    next listener runs. The first listener that raises stops the event and the
    exception propagates to the caller of :py:meth:`emit`.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, listener: Listener, *, prepend: bool = False) -> None:
        """Register a listener for an event.

        :param prepend: Run this listener before those already registered.
        """
        listeners = self._listeners.setdefault(event, [])
        if prepend:
            listeners.insert(0, listener)
        else:
            listeners.append(listener)

    def remove_listener(self, event: str, listener: Listener) -> None:
        """Remove the first registration of ``listener`` for ``event``, if any."""
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def listeners(self, event: str) -> list[Listener]:
        return list(self._listeners.get(event, []))

    def add_listeners(self, other: "ListenerExecutor") -> None:
        """Append every listener of ``other`` to this executor."""
        for event, listeners in other._listeners.items():
            for listener in listeners:
                self.on(event, listener)

    def copy(self) -> "ListenerExecutor":
        executor = ListenerExecutor()
        executor.add_listeners(self)
        return executor

    async def emit(self, event: str, *args: Any) -> None:
        """Run every listener for ``event`` in order, awaiting asynchronous ones."""
        for listener in self.listeners(event):
            result = listener(*args)
            if isawaitable(result):
                await result

    def __contains__(self, event: str) -> bool:
        return bool(self._listeners.get(event))

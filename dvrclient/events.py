"""Callback registry used for outbound notifications."""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

Callback = Callable[..., Any]


class EventEmitter:
    """Named events with any number of synchronous listeners.

    Listeners run in registration order.  An exception raised by one listener
    is logged and does not prevent the others from running.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Callback]] = {}

    def on(self, event: str, callback: Callback) -> None:
        """Register *callback* for *event*."""
        self._listeners.setdefault(event, []).append(callback)

    def off(self, event: str, callback: Callback) -> None:
        """Unregister *callback*; unknown callbacks are ignored."""
        listeners = self._listeners.get(event, [])
        if callback in listeners:
            listeners.remove(callback)

    def emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners.get(event, ())):
            try:
                callback(*args)
            except Exception:  # noqa: BLE001
                logger.exception("Error in %s callback", event)

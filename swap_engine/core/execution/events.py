"""
Swap lifecycle notifications.

A small typed event channel: the executor and its strategies emit, callers
subscribe. Handlers may be plain callables or coroutine functions; a
failing handler is logged and never breaks the swap it observes.
"""

import inspect
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)


class SwapEventType(str, Enum):
    """Lifecycle points observable by callers."""
    APPROVAL_START = "approval_start"          # (strategy_name, token_in)
    APPROVAL_COMPLETE = "approval_complete"    # (strategy_name, token_in, tx_hash)
    SWAP_START = "swap_start"                  # (request,)
    SWAP_COMPLETE = "swap_complete"            # (result,)
    ERROR = "error"                            # (exception,)


EventHandler = Callable[..., Any]


class SwapEvents:
    """Registry of handlers per swap event type."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._handlers: Dict[SwapEventType, List[EventHandler]] = {}
        self.logger = logger or logging.getLogger(__name__)

    def subscribe(self, event_type: SwapEventType, handler: EventHandler) -> Callable[[], None]:
        """Register a handler; returns a callable that removes it again."""
        event_type = SwapEventType(event_type)
        self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            self.unsubscribe(event_type, handler)

        return unsubscribe

    def unsubscribe(self, event_type: SwapEventType, handler: EventHandler) -> None:
        if event_type in self._handlers:
            self._handlers[event_type] = [
                h for h in self._handlers[event_type] if h is not handler
            ]

    def handler_count(self, event_type: SwapEventType) -> int:
        return len(self._handlers.get(SwapEventType(event_type), []))

    async def emit(self, event_type: SwapEventType, *args: Any) -> None:
        """Deliver an event to every handler, in registration order."""
        for handler in list(self._handlers.get(event_type, [])):
            try:
                outcome = handler(*args)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                self.logger.warning(f"Handler for {event_type.value} failed: {e}", exc_info=True)

    def clear(self) -> None:
        self._handlers.clear()

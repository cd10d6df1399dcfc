"""
Event bridge: lets the server and other observers react to board changes.

Emitted events:
  tasks_changed    (tasks=list[Task])            after any local list change
  session_changed  (state=SessionState, user=User|None)
  intent_failed    (task_id=str, error=str)      a mutation was rejected or timed out
"""
import logging
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)


class EventBridge:
    """Minimal synchronous pub/sub. Callbacks run on the emitting thread."""

    def __init__(self):
        self.subscribers: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, callback: Callable) -> Callable[[], None]:
        """Register a callback for an event type. Returns an unsubscribe function."""
        self.subscribers.setdefault(event_type, []).append(callback)

        def unsubscribe():
            callbacks = self.subscribers.get(event_type, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def emit(self, event_type: str, **kwargs) -> None:
        """Emit an event to all subscribers. A failing subscriber doesn't stop the rest."""
        for callback in list(self.subscribers.get(event_type, [])):
            try:
                callback(**kwargs)
            except Exception as e:
                logger.error(f"Error in {event_type} callback: {e}")

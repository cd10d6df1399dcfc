"""Haptic feedback at drag lifecycle points."""
import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class FeedbackEvent(Enum):
    DRAG_START = "drag_start"
    DROP_SUCCESS = "drop_success"
    DROP_FAILURE = "drop_failure"


# Vibration patterns in ms (on, off, on, ...)
VIBRATION_PATTERNS: Dict[FeedbackEvent, Tuple[int, ...]] = {
    FeedbackEvent.DRAG_START: (50,),
    FeedbackEvent.DROP_SUCCESS: (50, 50, 50),
    FeedbackEvent.DROP_FAILURE: (200,),
}

FeedbackSink = Callable[[FeedbackEvent, Tuple[int, ...]], None]


class HapticNotifier:
    """Single entry point for drag feedback; the sink decides how to render it."""

    def __init__(self, sink: Optional[FeedbackSink] = None, enabled: bool = True):
        self.sink = sink
        self.enabled = enabled
        self.history: List[FeedbackEvent] = []

    def notify(self, event: FeedbackEvent) -> None:
        if not self.enabled:
            return
        self.history.append(event)
        pattern = VIBRATION_PATTERNS[event]
        logger.debug(f"feedback {event.value} pattern={pattern}")
        if self.sink is None:
            return
        try:
            self.sink(event, pattern)
        except Exception as e:
            # A failing sink never aborts the drop
            logger.warning(f"Feedback sink failed for {event.value}: {e}")

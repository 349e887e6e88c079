"""
Tracking Events

Observer interface and synchronous dispatcher for target lifecycle
notifications.

Events:
    target_created      - new Tentative target spawned from a detection
    target_associated   - existing target matched to a detection
    target_closed       - target retired (missed too long, or finish_track)
    detection_rejected  - degenerate detection skipped

Handlers run in registration order inside the frame call that raised the
event. Registration changes made during a frame apply from the next frame.
"""

import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Any, List, Optional

if TYPE_CHECKING:
    from .tracker import TrackTarget

logger = logging.getLogger(__name__)


class EventHandlerResult(IntEnum):
    """Handler return codes."""

    NONE = 0  # Not handled, keep dispatching
    HANDLED = 1  # Handled; stops dispatch only when short-circuiting is enabled


class CloseReason(Enum):
    """Why a target was closed."""

    MISSED = "missed"  # Miss counter exceeded the retirement threshold
    FINISHED = "finished"  # Forced by finish_track


@dataclass(frozen=True)
class TargetAssociation:
    """Payload for target_created and target_associated."""

    target: "TrackTarget"
    detection: Any
    frame_index: int


@dataclass(frozen=True)
class TargetClosed:
    """Payload for target_closed."""

    target: "TrackTarget"
    frame_index: int
    reason: CloseReason


@dataclass(frozen=True)
class DetectionRejected:
    """Payload for detection_rejected."""

    detection: Any
    frame_index: int
    reason: str


class TrackingEventHandler:
    """
    Base class for tracking observers.

    Override any subset of the hooks; the defaults do nothing and return
    ``EventHandlerResult.NONE``. ``sender`` is the tracker that raised the
    event.
    """

    def on_target_created(self, sender: Any, event: TargetAssociation) -> EventHandlerResult:
        return EventHandlerResult.NONE

    def on_target_associated(self, sender: Any, event: TargetAssociation) -> EventHandlerResult:
        return EventHandlerResult.NONE

    def on_target_closed(self, sender: Any, event: TargetClosed) -> EventHandlerResult:
        return EventHandlerResult.NONE

    def on_detection_rejected(self, sender: Any, event: DetectionRejected) -> EventHandlerResult:
        return EventHandlerResult.NONE


_HOOKS = {
    "target_created": "on_target_created",
    "target_associated": "on_target_associated",
    "target_closed": "on_target_closed",
    "detection_rejected": "on_detection_rejected",
}


class EventDispatcher:
    """
    Ordered, synchronous event dispatch.

    Example:
        >>> dispatcher = EventDispatcher()
        >>> dispatcher.add_handler(handler)
        >>> dispatcher.begin_frame()
        >>> dispatcher.dispatch("target_closed", tracker, event)
    """

    def __init__(self, short_circuit: bool = False) -> None:
        """
        Args:
            short_circuit: Stop dispatching an event after the first
                           handler that returns HANDLED
        """
        self.short_circuit = short_circuit
        self._handlers: List[TrackingEventHandler] = []
        self._active: List[TrackingEventHandler] = []

    @property
    def handlers(self) -> List[TrackingEventHandler]:
        """Registered handlers (including those pending for the next frame)."""
        return list(self._handlers)

    def add_handler(self, handler: TrackingEventHandler) -> None:
        if handler in self._handlers:
            return
        self._handlers.append(handler)

    def remove_handler(self, handler: TrackingEventHandler) -> bool:
        """Deregister a handler. Returns False if it was not registered."""
        if handler not in self._handlers:
            return False
        self._handlers.remove(handler)
        return True

    def begin_frame(self) -> None:
        """Freeze the handler list for the frame about to be processed."""
        self._active = list(self._handlers)

    def dispatch(self, event_name: str, sender: Any, event: Any) -> bool:
        """
        Deliver one event to the frozen handler list.

        Returns:
            True if any handler reported HANDLED
        """
        hook = _HOOKS.get(event_name)
        if hook is None:
            raise ValueError(f"Unknown tracking event: {event_name}")

        handled = False
        for handler in self._active:
            result = getattr(handler, hook)(sender, event)
            if result == EventHandlerResult.HANDLED:
                handled = True
                if self.short_circuit:
                    break
        return handled


class EventRecorder(TrackingEventHandler):
    """
    Handler that keeps the events of the current frame.

    Call ``clear()`` between frames to drop the previous frame's events.
    """

    def __init__(self, log_events: bool = False) -> None:
        self.log_events = log_events
        self.created: List[TargetAssociation] = []
        self.associated: List[TargetAssociation] = []
        self.closed: List[TargetClosed] = []
        self.rejected: List[DetectionRejected] = []

    def on_target_created(self, sender: Any, event: TargetAssociation) -> EventHandlerResult:
        self.created.append(event)
        if self.log_events:
            logger.info("Target created: det=%s, target=%d", _det_label(event.detection), event.target.id)
        return EventHandlerResult.NONE

    def on_target_associated(self, sender: Any, event: TargetAssociation) -> EventHandlerResult:
        self.associated.append(event)
        if self.log_events:
            logger.info(
                "Target association: det=%s, target=%d", _det_label(event.detection), event.target.id
            )
        return EventHandlerResult.NONE

    def on_target_closed(self, sender: Any, event: TargetClosed) -> EventHandlerResult:
        self.closed.append(event)
        if self.log_events:
            logger.info("Target closed: target=%d (%s)", event.target.id, event.reason.value)
        return EventHandlerResult.NONE

    def on_detection_rejected(self, sender: Any, event: DetectionRejected) -> EventHandlerResult:
        self.rejected.append(event)
        return EventHandlerResult.NONE

    def clear(self) -> None:
        self.created.clear()
        self.associated.clear()
        self.closed.clear()
        self.rejected.clear()


def _det_label(detection: Any) -> Optional[Any]:
    det_id = getattr(detection, "det_id", None)
    return det_id if det_id is not None else hex(id(detection))

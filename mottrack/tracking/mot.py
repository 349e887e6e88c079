"""
Multi-Object Tracker

Public per-frame entry point. Call order:

    tracker = MultiObjectTracker(params)
    tracker.begin_track(frame, detections, 0)      # exactly once, first
    tracker.track(frame, detections, 1)            # every following frame
    ...
    tracker.finish_track()                         # last; closes all targets

Every call completes prediction, association, lifecycle update and event
dispatch before it returns. One tracker instance serves one stream; callers
serialize calls.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from .affinity import AffinityScorer
from .events import EventDispatcher, TrackingEventHandler
from .kalman import BoxKalmanFilter
from .tracker import TargetSnapshot, TrackManager


class TrackingSequenceError(RuntimeError):
    """Tracker methods called out of order."""


@dataclass
class TrackerParams:
    """
    Tracker configuration.

    Attributes:
        preferred_image_size: (width, height) of the stream; predicted boxes
                              are clipped to it. None = take it from the first
                              frame when possible
        min_iou: IoU gate for association
        max_cost: Largest accepted association cost
        appearance_weight: Weight of appearance distance vs. overlap [0, 1]
        confirm_hits: Consecutive associations to confirm a target (K)
        max_misses: Retirement threshold on the miss counter
        max_targets: Maximum concurrently open targets, 0 = unlimited
        feature_budget: Appearance descriptors kept per target
        process_noise: Kalman process noise std (pixels/frame)
        measurement_noise: Kalman measurement noise std (pixels)
        short_circuit_events: Stop event dispatch at the first HANDLED result
    """

    preferred_image_size: Optional[Tuple[int, int]] = None
    min_iou: float = 0.3
    max_cost: float = 1.0
    appearance_weight: float = 0.0
    confirm_hits: int = 3
    max_misses: int = 30
    max_targets: int = 0
    feature_budget: int = 30
    process_noise: float = 1.0
    measurement_noise: float = 4.0
    short_circuit_events: bool = False

    def set_preferred_image_size(self, width: int, height: int) -> None:
        self.preferred_image_size = (int(width), int(height))

    def validate(self) -> None:
        """
        Check parameter ranges.

        Raises:
            ValueError: On the first invalid parameter
        """
        if self.preferred_image_size is not None:
            width, height = self.preferred_image_size
            if width <= 0 or height <= 0:
                raise ValueError(f"preferred_image_size must be positive, got {self.preferred_image_size}")
        if not 0.0 < self.min_iou <= 1.0:
            raise ValueError(f"min_iou must be in (0, 1], got {self.min_iou}")
        if self.max_cost <= 0:
            raise ValueError(f"max_cost must be positive, got {self.max_cost}")
        if not 0.0 <= self.appearance_weight <= 1.0:
            raise ValueError(f"appearance_weight must be in [0, 1], got {self.appearance_weight}")
        if self.confirm_hits < 1:
            raise ValueError(f"confirm_hits must be >= 1, got {self.confirm_hits}")
        if self.max_misses < 0:
            raise ValueError(f"max_misses must be >= 0, got {self.max_misses}")
        if self.max_targets < 0:
            raise ValueError(f"max_targets must be >= 0, got {self.max_targets}")
        if self.feature_budget < 1:
            raise ValueError("feature_budget must be >= 1")
        if self.process_noise <= 0 or self.measurement_noise <= 0:
            raise ValueError("process_noise and measurement_noise must be positive")


class TrackerPhase(Enum):
    """Call-sequence state of a tracker."""

    IDLE = "idle"  # Initialized, begin_track not called yet
    TRACKING = "tracking"  # begin_track done
    FINISHED = "finished"  # finish_track done


class MultiObjectTracker:
    """
    Kalman + Hungarian multi-object tracker with lifecycle events.

    Example:
        >>> tracker = MultiObjectTracker()
        >>> params = TrackerParams()
        >>> params.set_preferred_image_size(1920, 1080)
        >>> tracker.init(params)
        >>> tracker.add_event_handler(recorder)
        >>> tracker.begin_track(frame, detections, 0)
        >>> for target_id, target in tracker.get_all_open_targets().items():
        ...     print(target_id, target.bbox)
    """

    def __init__(self, params: Optional[TrackerParams] = None) -> None:
        self.logger = logging.getLogger(__name__)
        self.dispatcher = EventDispatcher()
        self.manager = TrackManager()
        self.params = TrackerParams()
        self._phase = TrackerPhase.IDLE
        self._frame_index: Optional[int] = None
        self._open: Dict[int, TargetSnapshot] = {}

        self.init(params if params is not None else TrackerParams())

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def init(self, params: TrackerParams) -> None:
        """
        (Re)initialize the tracker for a new stream.

        Open targets are dropped without events. Target ids keep increasing
        across re-initialization. Registered handlers are kept.

        Raises:
            ValueError: If params are invalid
        """
        params.validate()
        params = replace(params)

        self.params = params
        self.dispatcher.short_circuit = params.short_circuit_events
        self.manager = self._build_manager(params, first_id=self.manager.next_id)

        self._phase = TrackerPhase.IDLE
        self._frame_index = None
        self._open = {}

    def _build_manager(self, params: TrackerParams, first_id: int) -> TrackManager:
        kf = BoxKalmanFilter(
            process_noise=params.process_noise, measurement_noise=params.measurement_noise
        )
        scorer = AffinityScorer(
            min_iou=params.min_iou,
            appearance_weight=params.appearance_weight,
            image_size=params.preferred_image_size,
        )
        return TrackManager(
            confirm_hits=params.confirm_hits,
            max_misses=params.max_misses,
            max_targets=params.max_targets,
            max_cost=params.max_cost,
            feature_budget=params.feature_budget,
            kf=kf,
            scorer=scorer,
            first_id=first_id,
        )

    def add_event_handler(self, handler: TrackingEventHandler) -> None:
        """Register an observer; it receives events from the next frame on."""
        self.dispatcher.add_handler(handler)

    def remove_event_handler(self, handler: TrackingEventHandler) -> bool:
        """Deregister an observer; takes effect from the next frame on."""
        return self.dispatcher.remove_handler(handler)

    # ------------------------------------------------------------------
    # Per-frame calls
    # ------------------------------------------------------------------

    def begin_track(self, frame: Any, detections: Iterable[Any], frame_index: int = 0) -> None:
        """
        Start tracking from a first frame.

        Every valid detection becomes a new tentative target.

        Raises:
            TrackingSequenceError: If tracking already began or finished
        """
        if self._phase != TrackerPhase.IDLE:
            raise TrackingSequenceError(
                f"begin_track called in phase '{self._phase.value}'; it must be the first call"
            )

        self._adopt_frame_size(frame)

        detections = list(detections)
        self.dispatcher.begin_frame()
        # Targets created before a failing handler stay open
        try:
            self.manager.spawn_all(detections, frame_index, self.dispatcher, sender=self)
        finally:
            self._phase = TrackerPhase.TRACKING
            self._frame_index = frame_index
            self._open = self.manager.snapshot()

        self.logger.info(
            "Tracking started at frame %d with %d targets", frame_index, len(self._open)
        )

    def track(self, frame: Any, detections: Iterable[Any], frame_index: int) -> None:
        """
        Process a subsequent frame.

        Exceptions from event handlers propagate; targets and queries then
        reflect the frame as processed up to the failing handler.

        Raises:
            TrackingSequenceError: If begin_track was not called, or after finish_track
        """
        if self._phase == TrackerPhase.IDLE:
            raise TrackingSequenceError("track called before begin_track")
        if self._phase == TrackerPhase.FINISHED:
            raise TrackingSequenceError("track called after finish_track")

        if self._frame_index is not None and frame_index <= self._frame_index:
            self.logger.warning(
                "Frame index %d does not advance past %d", frame_index, self._frame_index
            )

        detections = list(detections)
        self.dispatcher.begin_frame()
        try:
            result = self.manager.step(detections, frame_index, self.dispatcher, sender=self)
        finally:
            self._frame_index = frame_index
            self._open = self.manager.snapshot()

        self.logger.debug(
            "Frame %d: %d detections, %d matched, %d open targets",
            frame_index,
            len(detections),
            len(result.matches),
            len(self._open),
        )

    def finish_track(self) -> None:
        """
        Close all open targets, firing one closed event each.

        Raises:
            TrackingSequenceError: If called before begin_track or twice
        """
        if self._phase == TrackerPhase.IDLE:
            raise TrackingSequenceError("finish_track called before begin_track")
        if self._phase == TrackerPhase.FINISHED:
            raise TrackingSequenceError("finish_track called twice")

        frame_index = self._frame_index if self._frame_index is not None else 0
        self.dispatcher.begin_frame()
        try:
            closed = self.manager.close_all(frame_index, self.dispatcher, sender=self)
        finally:
            self._phase = TrackerPhase.FINISHED
            self._open = {}

        self.logger.info("Tracking finished at frame %d, closed %d targets", frame_index, len(closed))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_all_open_targets(self) -> Dict[int, TargetSnapshot]:
        """
        Open targets (tentative, confirmed, lost) as of the last processed frame.

        Returns:
            {target_id: TargetSnapshot}; a new dict on every call
        """
        return dict(self._open)

    @property
    def frame_index(self) -> Optional[int]:
        """Index of the last processed frame."""
        return self._frame_index

    @property
    def is_tracking(self) -> bool:
        return self._phase == TrackerPhase.TRACKING

    @property
    def is_finished(self) -> bool:
        return self._phase == TrackerPhase.FINISHED

    def _adopt_frame_size(self, frame: Any) -> None:
        """Use the frame's size when no preferred image size is configured."""
        if self.params.preferred_image_size is not None:
            return
        shape = getattr(frame, "shape", None)
        if shape is None or len(shape) < 2:
            return
        height, width = int(shape[0]), int(shape[1])
        if width <= 0 or height <= 0:
            return
        self.params.set_preferred_image_size(width, height)
        self.manager.scorer.image_size = self.params.preferred_image_size
        self.logger.debug("Using frame size %dx%d", width, height)

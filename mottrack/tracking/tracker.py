"""
Track Manager for Multi-Object Tracking

Manages tracked targets using Kalman Filters and optimal (Hungarian) data
association. Handles target initiation, maintenance, and retirement.

Target Lifecycle:
    TENTATIVE -> CONFIRMED -> LOST -> CLOSED

    TENTATIVE -> CONFIRMED   confirm_hits consecutive associated frames
    TENTATIVE/CONFIRMED -> LOST   unmatched frame (misses > 0)
    LOST -> CONFIRMED        re-matched, target was confirmed before
    LOST -> TENTATIVE        re-matched, target never confirmed (streak restarts)
    LOST -> CLOSED           misses > max_misses, or finish_track

Reference:
    - Blackman, S. "Multiple-Target Tracking with Radar Applications", 1986
    - Wojke, N. et al. "Simple Online and Realtime Tracking with a Deep
      Association Metric", ICIP 2017
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .affinity import AffinityScorer
from .assignment import AssignmentResult, solve_assignment
from .detection import (
    BoundingBox,
    detection_bbox,
    detection_confidence,
    detection_feature,
)
from .events import (
    CloseReason,
    DetectionRejected,
    EventDispatcher,
    TargetAssociation,
    TargetClosed,
)
from .kalman import BoxKalmanFilter, KalmanState

logger = logging.getLogger(__name__)


class TrackStatus(Enum):
    """Target lifecycle states."""

    TENTATIVE = "tentative"  # New target, needs confirmation
    CONFIRMED = "confirmed"  # Established target
    LOST = "lost"  # No detection, predicting only
    CLOSED = "closed"  # Retired, never reopened


@dataclass
class TrackTarget:
    """
    Single tracked target.

    Attributes:
        id: Unique target identifier
        state: Kalman filter state
        status: Lifecycle status
        hits: Total associated frames (creation included)
        hit_streak: Consecutive associated frames
        misses: Consecutive frames without a detection
        age: Frames since creation
        first_frame: Frame index of creation
        last_frame: Frame index of the last association
        was_confirmed: Target reached CONFIRMED at least once
        last_detection: Most recent associated detection
        features: Bounded appearance descriptor history
    """

    id: int
    state: KalmanState
    bbox: BoundingBox
    status: TrackStatus = TrackStatus.TENTATIVE
    hits: int = 1
    hit_streak: int = 1
    misses: int = 0
    age: int = 0
    first_frame: int = 0
    last_frame: int = 0
    was_confirmed: bool = False
    last_detection: Any = None
    features: Deque[np.ndarray] = field(default_factory=deque)

    @property
    def is_open(self) -> bool:
        return self.status != TrackStatus.CLOSED

    @property
    def velocity(self) -> Tuple[float, float]:
        """Center velocity (vx, vy) in pixels/frame."""
        return (float(self.state.x[4]), float(self.state.x[5]))

    @property
    def confidence(self) -> Optional[float]:
        """Confidence of the last associated detection."""
        if self.last_detection is None:
            return None
        return detection_confidence(self.last_detection)

    def feature_matrix(self) -> Optional[np.ndarray]:
        """Descriptor history as a (K, D) array, or None."""
        if not self.features:
            return None
        return np.stack(list(self.features), axis=0)


@dataclass(frozen=True)
class TargetSnapshot:
    """Read-only copy of a target as of the last processed frame."""

    id: int
    bbox: BoundingBox
    status: TrackStatus
    hits: int
    misses: int
    age: int
    first_frame: int
    last_frame: int
    velocity: Tuple[float, float]
    confidence: Optional[float] = None

    @classmethod
    def of(cls, target: TrackTarget) -> "TargetSnapshot":
        return cls(
            id=target.id,
            bbox=target.bbox,
            status=target.status,
            hits=target.hits,
            misses=target.misses,
            age=target.age,
            first_frame=target.first_frame,
            last_frame=target.last_frame,
            velocity=target.velocity,
            confidence=target.confidence,
        )


class TrackManager:
    """
    Multi-target track manager with optimal association.

    Features:
        - Automatic target initiation from unassigned detections
        - Hungarian association on IoU (+ appearance) cost with gating
        - Prediction-only coasting of lost targets
        - Retirement after max misses
        - Capacity limit on concurrently open targets

    Example:
        >>> manager = TrackManager(confirm_hits=3, max_misses=30)
        >>> manager.spawn_all(detections, frame_index=0, dispatcher=dispatcher)
        >>> manager.step(detections, frame_index=1, dispatcher=dispatcher)
        >>> for target in manager.targets.values():
        ...     print(f"Target {target.id}: {target.bbox}")
    """

    def __init__(
        self,
        confirm_hits: int = 3,
        max_misses: int = 30,
        max_targets: int = 0,
        max_cost: float = 1.0,
        feature_budget: int = 30,
        kf: Optional[BoxKalmanFilter] = None,
        scorer: Optional[AffinityScorer] = None,
        first_id: int = 1,
    ) -> None:
        """
        Initialize Track Manager.

        Args:
            confirm_hits: Consecutive hits needed to confirm a tentative target
            max_misses: Close a target once its miss counter exceeds this
            max_targets: Maximum open targets, 0 for unlimited
            max_cost: Largest association cost accepted as a match
            feature_budget: Descriptors kept per target
            kf: Motion model shared by all targets
            scorer: Affinity scorer
            first_id: Id given to the first target created
        """
        self.confirm_hits = confirm_hits
        self.max_misses = max_misses
        self.max_targets = max_targets
        self.max_cost = max_cost
        self.feature_budget = feature_budget

        self.kf = kf if kf is not None else BoxKalmanFilter()
        self.scorer = scorer if scorer is not None else AffinityScorer()

        # Open targets by id, in creation order
        self.targets: Dict[int, TrackTarget] = {}
        self._next_id = first_id

    @property
    def next_id(self) -> int:
        return self._next_id

    def step(
        self,
        detections: Sequence[Any],
        frame_index: int,
        dispatcher: EventDispatcher,
        sender: Any = None,
    ) -> AssignmentResult:
        """
        Process one frame of detections.

        Steps:
            1. Drop degenerate detections
            2. Predict all open targets
            3. Score and solve the association
            4. Update associated targets
            5. Age unassigned targets, close stale ones
            6. Spawn targets from unassigned detections

        Returns:
            Association result, indices into (targets in id order, valid detections)
        """
        valid = self._filter_detections(detections, frame_index, dispatcher, sender)

        # 2. Predict
        open_targets = list(self.targets.values())
        for target in open_targets:
            target.state = self.kf.predict(target.state)
            target.bbox = self.kf.to_bbox(target.state)
            target.age += 1

        # 3. Associate
        cost = self.scorer.cost_matrix(
            predicted=[t.bbox for t in open_targets],
            detection_boxes=[detection_bbox(d) for d in valid],
            target_features=[t.feature_matrix() for t in open_targets],
            detection_features=[detection_feature(d) for d in valid],
            target_sigmas=[self.kf.position_sigma(t.state) for t in open_targets],
        )
        result = solve_assignment(cost, max_cost=self.max_cost)

        # 4. Update associated targets
        for row, col in result.matches:
            target = open_targets[row]
            detection = valid[col]
            self._associate(target, detection, frame_index)
            dispatcher.dispatch(
                "target_associated", sender, TargetAssociation(target, detection, frame_index)
            )

        # 5. Coast unassigned targets
        for row in result.unmatched_rows:
            target = open_targets[row]
            self._mark_missed(target)
            if target.misses > self.max_misses:
                self._close(target, frame_index, CloseReason.MISSED, dispatcher, sender)

        # 6. Initiate new targets
        self._spawn([valid[col] for col in result.unmatched_cols], frame_index, dispatcher, sender)

        return result

    def spawn_all(
        self,
        detections: Sequence[Any],
        frame_index: int,
        dispatcher: EventDispatcher,
        sender: Any = None,
    ) -> List[TrackTarget]:
        """First-frame path: every valid detection starts a tentative target."""
        valid = self._filter_detections(detections, frame_index, dispatcher, sender)
        return self._spawn(valid, frame_index, dispatcher, sender)

    def close_all(
        self, frame_index: int, dispatcher: EventDispatcher, sender: Any = None
    ) -> List[TrackTarget]:
        """Force-close every open target, in id order."""
        closed = []
        for target in sorted(self.targets.values(), key=lambda t: t.id):
            self._close(target, frame_index, CloseReason.FINISHED, dispatcher, sender)
            closed.append(target)
        return closed

    def snapshot(self) -> Dict[int, TargetSnapshot]:
        """Value copies of all open targets keyed by id."""
        return {tid: TargetSnapshot.of(t) for tid, t in sorted(self.targets.items())}

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _filter_detections(
        self,
        detections: Sequence[Any],
        frame_index: int,
        dispatcher: EventDispatcher,
        sender: Any,
    ) -> List[Any]:
        valid = []
        for detection in detections:
            try:
                bbox = detection_bbox(detection)
            except (AttributeError, TypeError, ValueError) as exc:
                self._reject(detection, frame_index, f"unreadable bbox: {exc}", dispatcher, sender)
                continue
            if not bbox.is_valid:
                self._reject(detection, frame_index, f"degenerate bbox {bbox}", dispatcher, sender)
                continue
            try:
                score = detection_confidence(detection)
                feature = detection_feature(detection)
            except (TypeError, ValueError) as exc:
                self._reject(detection, frame_index, f"unreadable attributes: {exc}", dispatcher, sender)
                continue
            if score is not None and not np.isfinite(score):
                self._reject(detection, frame_index, f"non-finite confidence {score}", dispatcher, sender)
                continue
            if feature is not None and (feature.size == 0 or not np.all(np.isfinite(feature))):
                self._reject(detection, frame_index, "empty or non-finite feature", dispatcher, sender)
                continue
            valid.append(detection)
        return valid

    def _reject(
        self,
        detection: Any,
        frame_index: int,
        reason: str,
        dispatcher: EventDispatcher,
        sender: Any,
    ) -> None:
        logger.warning("Frame %d: skipping detection, %s", frame_index, reason)
        dispatcher.dispatch(
            "detection_rejected", sender, DetectionRejected(detection, frame_index, reason)
        )

    def _spawn(
        self,
        candidates: Sequence[Any],
        frame_index: int,
        dispatcher: EventDispatcher,
        sender: Any,
    ) -> List[TrackTarget]:
        """Create targets in priority order until capacity is reached."""
        created = []
        for detection in self._by_priority(candidates):
            if self.max_targets and len(self.targets) >= self.max_targets:
                logger.warning(
                    "Frame %d: target capacity (%d) reached, dropping detection (confidence=%s)",
                    frame_index,
                    self.max_targets,
                    detection_confidence(detection),
                )
                continue
            target = self._create_target(detection, frame_index)
            created.append(target)
            dispatcher.dispatch(
                "target_created", sender, TargetAssociation(target, detection, frame_index)
            )
        return created

    @staticmethod
    def _by_priority(candidates: Sequence[Any]) -> List[Any]:
        """Highest confidence first; missing confidence ranks last; ties keep input order."""

        def priority(item: Tuple[int, Any]) -> Tuple[float, int]:
            index, detection = item
            score = detection_confidence(detection)
            return (-score if score is not None else float("inf"), index)

        return [d for _, d in sorted(enumerate(candidates), key=priority)]

    def _create_target(self, detection: Any, frame_index: int) -> TrackTarget:
        """Create a new target from an unassigned detection."""
        bbox = detection_bbox(detection)
        state = self.kf.initialize(bbox)

        target = TrackTarget(
            id=self._next_id,
            state=state,
            bbox=self.kf.to_bbox(state),
            first_frame=frame_index,
            last_frame=frame_index,
            last_detection=detection,
            features=deque(maxlen=self.feature_budget),
        )
        self._remember_feature(target, detection_feature(detection))

        # A single required hit confirms on creation
        if self.confirm_hits <= 1:
            target.status = TrackStatus.CONFIRMED
            target.was_confirmed = True

        self.targets[target.id] = target
        self._next_id += 1

        logger.debug("Frame %d: target %d created (%s)", frame_index, target.id, target.status.value)
        return target

    def _associate(self, target: TrackTarget, detection: Any, frame_index: int) -> None:
        """Correct the target with its matched detection and advance its state."""
        previous = target.status

        target.state = self.kf.update(target.state, detection_bbox(detection))
        target.bbox = self.kf.to_bbox(target.state)
        target.hits += 1
        target.hit_streak += 1
        target.misses = 0
        target.last_frame = frame_index
        target.last_detection = detection

        self._remember_feature(target, detection_feature(detection))

        if previous == TrackStatus.LOST:
            target.status = TrackStatus.CONFIRMED if target.was_confirmed else TrackStatus.TENTATIVE

        if target.status == TrackStatus.TENTATIVE and target.hit_streak >= self.confirm_hits:
            target.status = TrackStatus.CONFIRMED
            target.was_confirmed = True

        if target.status != previous:
            logger.debug(
                "Frame %d: target %d %s -> %s",
                frame_index,
                target.id,
                previous.value,
                target.status.value,
            )

    @staticmethod
    def _remember_feature(target: TrackTarget, feature: Optional[np.ndarray]) -> None:
        if feature is None:
            return
        # Descriptors of a different length restart the history
        if target.features and target.features[-1].shape != feature.shape:
            target.features.clear()
        target.features.append(feature)

    def _mark_missed(self, target: TrackTarget) -> None:
        target.misses += 1
        target.hit_streak = 0
        if target.status in (TrackStatus.TENTATIVE, TrackStatus.CONFIRMED):
            target.status = TrackStatus.LOST

    def _close(
        self,
        target: TrackTarget,
        frame_index: int,
        reason: CloseReason,
        dispatcher: EventDispatcher,
        sender: Any,
    ) -> None:
        target.status = TrackStatus.CLOSED
        del self.targets[target.id]
        logger.debug(
            "Frame %d: target %d closed (%s, misses=%d)",
            frame_index,
            target.id,
            reason.value,
            target.misses,
        )
        dispatcher.dispatch("target_closed", sender, TargetClosed(target, frame_index, reason))

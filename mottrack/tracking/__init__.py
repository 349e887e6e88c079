"""
Tracking Module

Multi-object tracking engine for per-frame bounding box detections.

Components:
    - BoxKalmanFilter: Constant Velocity Kalman Filter over box center/size
    - AffinityScorer: IoU + appearance cost matrix with gating
    - solve_assignment: Hungarian assignment with gated-pair filtering
    - TrackManager: Target lifecycle management
    - EventDispatcher / TrackingEventHandler: Lifecycle notifications
    - MultiObjectTracker: begin_track / track / finish_track facade

Example:
    >>> from mottrack.tracking import BoundingBox, Detection, MultiObjectTracker
    >>> tracker = MultiObjectTracker()
    >>> tracker.begin_track(None, [Detection(BoundingBox(10, 10, 40, 80))], 0)
    >>> targets = tracker.get_all_open_targets()
"""

from .affinity import INFEASIBLE_COST, AffinityScorer, cosine_distance, pairwise_iou
from .assignment import AssignmentResult, solve_assignment
from .detection import BoundingBox, Detection
from .events import (
    CloseReason,
    DetectionRejected,
    EventDispatcher,
    EventHandlerResult,
    EventRecorder,
    TargetAssociation,
    TargetClosed,
    TrackingEventHandler,
)
from .kalman import BoxKalmanFilter, KalmanState
from .mot import MultiObjectTracker, TrackerParams, TrackingSequenceError
from .tracker import TargetSnapshot, TrackManager, TrackStatus, TrackTarget

__all__ = [
    "BoundingBox",
    "Detection",
    "BoxKalmanFilter",
    "KalmanState",
    "AffinityScorer",
    "INFEASIBLE_COST",
    "pairwise_iou",
    "cosine_distance",
    "AssignmentResult",
    "solve_assignment",
    "TrackManager",
    "TrackTarget",
    "TargetSnapshot",
    "TrackStatus",
    "EventDispatcher",
    "EventHandlerResult",
    "EventRecorder",
    "TrackingEventHandler",
    "TargetAssociation",
    "TargetClosed",
    "DetectionRejected",
    "CloseReason",
    "MultiObjectTracker",
    "TrackerParams",
    "TrackingSequenceError",
]

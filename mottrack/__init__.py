"""
mottrack Package

Multi-object tracking engine:
- Kalman filter motion model for bounding boxes
- IoU + appearance affinity with gating
- Hungarian assignment
- Target lifecycle with observer events
- Synthetic scenarios and headless runs for evaluation
"""

from mottrack.tracking import (
    BoundingBox,
    Detection,
    EventHandlerResult,
    EventRecorder,
    MultiObjectTracker,
    TargetSnapshot,
    TrackerParams,
    TrackingEventHandler,
    TrackingSequenceError,
    TrackStatus,
)

__version__ = "1.0.0"
__author__ = "mottrack Contributors"

__all__ = [
    # Data
    "BoundingBox",
    "Detection",
    "TargetSnapshot",
    "TrackStatus",
    # Tracker
    "MultiObjectTracker",
    "TrackerParams",
    "TrackingSequenceError",
    # Events
    "TrackingEventHandler",
    "EventHandlerResult",
    "EventRecorder",
]

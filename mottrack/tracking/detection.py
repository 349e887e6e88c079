"""
Detection Types

Per-frame observations fed into the tracker.

Box convention:
    (x, y) is the top-left corner, (width, height) the extent, in pixels.
    Internally the engine also uses [x1, y1, x2, y2] (xyxy) arrays for
    vectorised overlap computation.
"""

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned bounding box.

    Attributes:
        x: Left edge (pixels)
        y: Top edge (pixels)
        width: Box width (pixels)
        height: Box height (pixels)
    """

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float) -> "BoundingBox":
        """Create from corner coordinates."""
        return cls(float(x1), float(y1), float(x2 - x1), float(y2 - y1))

    @classmethod
    def from_center(cls, cx: float, cy: float, width: float, height: float) -> "BoundingBox":
        """Create from center point and size."""
        return cls(float(cx - width / 2), float(cy - height / 2), float(width), float(height))

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def is_valid(self) -> bool:
        """False for degenerate (non-positive or non-finite) extents."""
        return bool(
            np.isfinite([self.x, self.y, self.width, self.height]).all()
            and self.width > 0
            and self.height > 0
        )

    def to_xyxy(self) -> np.ndarray:
        return np.array(
            [self.x, self.y, self.x + self.width, self.y + self.height], dtype=np.float64
        )

    def clip(self, image_width: float, image_height: float) -> "BoundingBox":
        """Clip the box to the image rectangle [0, W] x [0, H]."""
        x1, y1, x2, y2 = self.to_xyxy()
        x1 = min(max(x1, 0.0), image_width)
        x2 = min(max(x2, 0.0), image_width)
        y1 = min(max(y1, 0.0), image_height)
        y2 = min(max(y2, 0.0), image_height)
        return BoundingBox.from_xyxy(x1, y1, x2, y2)

    def iou(self, other: "BoundingBox") -> float:
        """Intersection over Union with another box."""
        ax1, ay1, ax2, ay2 = self.to_xyxy()
        bx1, by1, bx2, by2 = other.to_xyxy()

        inter_w = min(ax2, bx2) - max(ax1, bx1)
        inter_h = min(ay2, by2) - max(ay1, by1)
        if inter_w <= 0 or inter_h <= 0:
            return 0.0

        intersection = inter_w * inter_h
        union = self.area + other.area - intersection
        return intersection / union if union > 0 else 0.0


@dataclass(frozen=True, eq=False)
class Detection:
    """
    One observed object in one frame.

    Detections compare and hash by identity so they can key per-frame maps
    (detection -> target) without colliding when two boxes are equal.

    Attributes:
        bbox: Observed bounding box
        confidence: Detector score in [0, 1] (optional)
        feature: Appearance descriptor, fixed-length vector (optional)
        frame_index: Frame the detection belongs to
        det_id: Caller-side identifier, only used for logging
    """

    bbox: BoundingBox
    confidence: Optional[float] = None
    feature: Optional[np.ndarray] = None
    frame_index: int = 0
    det_id: Optional[int] = None


def as_bbox(value: Any) -> BoundingBox:
    """Coerce a BoundingBox or an (x, y, w, h) sequence to BoundingBox."""
    if isinstance(value, BoundingBox):
        return value
    x, y, w, h = (float(v) for v in value)
    return BoundingBox(x, y, w, h)


def detection_bbox(detection: Any) -> BoundingBox:
    """Bounding box of any detection-like object exposing ``bbox``."""
    return as_bbox(detection.bbox)


def detection_confidence(detection: Any) -> Optional[float]:
    score = getattr(detection, "confidence", None)
    return None if score is None else float(score)


def detection_feature(detection: Any) -> Optional[np.ndarray]:
    feature = getattr(detection, "feature", None)
    if feature is None:
        return None
    return np.asarray(feature, dtype=np.float64).ravel()


def boxes_to_xyxy(boxes: Sequence[BoundingBox]) -> np.ndarray:
    """Stack boxes into an (N, 4) xyxy array."""
    if not boxes:
        return np.zeros((0, 4), dtype=np.float64)
    return np.stack([b.to_xyxy() for b in boxes], axis=0)

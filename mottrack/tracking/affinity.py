"""
Affinity Scoring

Builds the target x detection cost matrix used for association.
Lower cost is better.

    cost = (1 - w_app) * (1 - IoU) + w_app * d_app    (both sides have descriptors)
    cost = 1 - IoU                                     (otherwise)

Pairs whose overlap is below the gate get INFEASIBLE_COST no matter how
similar their appearance is.
"""

from typing import List, Optional, Sequence, Tuple

import numpy as np

from .detection import BoundingBox, boxes_to_xyxy

# Cost assigned to gated-out pairs; never selected by the solver
INFEASIBLE_COST = 1e5


def pairwise_iou(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    IoU between every box in ``a`` and every box in ``b``.

    Args:
        a: (N, 4) xyxy boxes
        b: (M, 4) xyxy boxes

    Returns:
        (N, M) IoU matrix in [0, 1]
    """
    if a.size == 0 or b.size == 0:
        return np.zeros((a.shape[0], b.shape[0]), dtype=np.float64)

    a = a[:, None, :]
    b = b[None, :, :]
    x1 = np.maximum(a[..., 0], b[..., 0])
    y1 = np.maximum(a[..., 1], b[..., 1])
    x2 = np.minimum(a[..., 2], b[..., 2])
    y2 = np.minimum(a[..., 3], b[..., 3])
    inter = np.maximum(0.0, x2 - x1) * np.maximum(0.0, y2 - y1)
    area_a = (a[..., 2] - a[..., 0]) * (a[..., 3] - a[..., 1])
    area_b = (b[..., 2] - b[..., 0]) * (b[..., 3] - b[..., 1])
    union = area_a + area_b - inter
    return np.where(union > 0, inter / np.where(union > 0, union, 1.0), 0.0)


def cosine_distance(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    Cosine distance between rows of ``a`` (K, D) and ``b`` (M, D).

    Returns:
        (K, M) matrix in [0, 2]
    """
    if a.size == 0 or b.size == 0:
        return np.zeros((a.shape[0], b.shape[0]), dtype=np.float64)
    a_norm = a / (np.linalg.norm(a, axis=1, keepdims=True) + 1e-12)
    b_norm = b / (np.linalg.norm(b, axis=1, keepdims=True) + 1e-12)
    return np.clip(1.0 - a_norm @ b_norm.T, 0.0, 2.0)


class AffinityScorer:
    """
    Pairwise cost between predicted target boxes and new detections.

    Gating widens with target uncertainty: the IoU threshold applied to a
    target is ``min_iou / (1 + sigma / scale)`` where ``sigma`` is the
    target's positional standard deviation and ``scale`` the square root of
    its predicted box area. Zero overlap is always infeasible.
    """

    def __init__(
        self,
        min_iou: float = 0.3,
        appearance_weight: float = 0.0,
        image_size: Optional[Tuple[int, int]] = None,
    ) -> None:
        """
        Args:
            min_iou: IoU gate for a target with no extra uncertainty
            appearance_weight: Weight of the appearance term in [0, 1]
            image_size: (width, height); predicted boxes are clipped to it
        """
        self.min_iou = min_iou
        self.appearance_weight = appearance_weight
        self.image_size = image_size

    def gate_thresholds(
        self, predicted: Sequence[BoundingBox], sigmas: Sequence[float]
    ) -> np.ndarray:
        """Effective IoU gate per target."""
        gates = np.full(len(predicted), self.min_iou, dtype=np.float64)
        for i, (box, sigma) in enumerate(zip(predicted, sigmas)):
            scale = np.sqrt(max(box.area, 1.0))
            gates[i] = self.min_iou / (1.0 + max(sigma, 0.0) / scale)
        return gates

    def cost_matrix(
        self,
        predicted: Sequence[BoundingBox],
        detection_boxes: Sequence[BoundingBox],
        target_features: Optional[Sequence[Optional[np.ndarray]]] = None,
        detection_features: Optional[Sequence[Optional[np.ndarray]]] = None,
        target_sigmas: Optional[Sequence[float]] = None,
    ) -> np.ndarray:
        """
        Build the (N targets, M detections) cost matrix.

        Args:
            predicted: Predicted box per target
            detection_boxes: Box per detection
            target_features: Per target, a (K, D) descriptor history or None
            detection_features: Per detection, a (D,) descriptor or None
            target_sigmas: Per target positional std (pixels)

        Returns:
            (N, M) cost matrix; gated pairs hold INFEASIBLE_COST
        """
        n, m = len(predicted), len(detection_boxes)
        if n == 0 or m == 0:
            return np.zeros((n, m), dtype=np.float64)

        if self.image_size is not None:
            width, height = self.image_size
            predicted = [box.clip(width, height) for box in predicted]

        iou = pairwise_iou(boxes_to_xyxy(list(predicted)), boxes_to_xyxy(list(detection_boxes)))
        cost = 1.0 - iou

        if self.appearance_weight > 0 and target_features and detection_features:
            cost = self._blend_appearance(cost, target_features, detection_features)

        sigmas = target_sigmas if target_sigmas is not None else [0.0] * n
        gates = self.gate_thresholds(predicted, sigmas)
        gated = (iou < gates[:, None]) | (iou <= 0.0)
        cost[gated] = INFEASIBLE_COST

        return cost

    def _blend_appearance(
        self,
        motion_cost: np.ndarray,
        target_features: Sequence[Optional[np.ndarray]],
        detection_features: Sequence[Optional[np.ndarray]],
    ) -> np.ndarray:
        """Mix in the appearance term where both sides carry descriptors."""
        cost = motion_cost.copy()
        w = self.appearance_weight

        det_idx: List[int] = [j for j, f in enumerate(detection_features) if f is not None]
        if not det_idx:
            return cost

        for i, history in enumerate(target_features):
            if history is None or len(history) == 0:
                continue
            history = np.atleast_2d(history)
            # Only descriptors of the same length are comparable
            cols = [j for j in det_idx if detection_features[j].shape[-1] == history.shape[1]]
            if not cols:
                continue
            det_matrix = np.stack([detection_features[j] for j in cols], axis=0)
            # Nearest neighbour over the target's descriptor history
            d_app = cosine_distance(history, det_matrix).min(axis=0)
            cost[i, cols] = (1.0 - w) * motion_cost[i, cols] + w * d_app

        return cost

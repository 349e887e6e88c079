"""
Synthetic Detection Scenario

Generates a per-frame detection stream from simulated moving objects, so the
tracker can be exercised without a video source or a detector.

Object model:
    - Constant velocity in pixels/frame, reflected at the frame edges
    - Fixed box size per object
    - Optional per-object appearance descriptor (unit vector)

Detector model:
    - Gaussian jitter on box position and size
    - Independent drop-out per object and frame (missed detection)
    - Poisson number of clutter boxes per frame (false alarms)
    - Confidence ~ U(0.5, 1.0) for true objects, U(0.1, 0.6) for clutter

Usage:
    config = ScenarioConfig(n_objects=5, n_frames=200, seed=42)
    for frame in SyntheticScenario(config).frames():
        tracker.track(None, frame.detections, frame.frame_index)
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

import numpy as np

from mottrack.tracking.detection import BoundingBox, Detection


@dataclass
class ScenarioConfig:
    """
    Configuration of a synthetic scenario.

    Attributes:
        image_size: (width, height) of the virtual frame [px]
        n_objects: Number of simulated objects
        n_frames: Number of frames to generate
        box_size_range: (min, max) box side length [px]
        speed_range: (min, max) object speed [px/frame]
        position_noise: Std of detection jitter [px]
        miss_probability: Probability an object is not detected in a frame
        clutter_rate: Mean number of false alarms per frame
        feature_dim: Appearance descriptor length, 0 to disable
        feature_noise: Std of descriptor noise
        seed: Random seed for reproducibility
    """

    image_size: Tuple[int, int] = (1280, 720)
    n_objects: int = 5
    n_frames: int = 200
    box_size_range: Tuple[float, float] = (40.0, 120.0)
    speed_range: Tuple[float, float] = (0.5, 4.0)
    position_noise: float = 2.0
    miss_probability: float = 0.05
    clutter_rate: float = 0.2
    feature_dim: int = 0
    feature_noise: float = 0.1
    seed: Optional[int] = None


@dataclass
class SimulatedObject:
    """Ground-truth object state."""

    truth_id: int
    center: np.ndarray  # [cx, cy]
    velocity: np.ndarray  # [vx, vy] px/frame
    size: np.ndarray  # [w, h]
    feature: Optional[np.ndarray] = None

    def step(self, image_size: Tuple[int, int]) -> None:
        """Advance one frame, bouncing off the frame edges."""
        self.center = self.center + self.velocity
        half = self.size / 2
        limits = np.array(image_size, dtype=np.float64)
        for axis in range(2):
            if self.center[axis] - half[axis] < 0:
                self.center[axis] = half[axis]
                self.velocity[axis] = abs(self.velocity[axis])
            elif self.center[axis] + half[axis] > limits[axis]:
                self.center[axis] = limits[axis] - half[axis]
                self.velocity[axis] = -abs(self.velocity[axis])

    @property
    def bbox(self) -> BoundingBox:
        return BoundingBox.from_center(self.center[0], self.center[1], self.size[0], self.size[1])


@dataclass
class FrameDetections:
    """
    Detections of one frame.

    Attributes:
        frame_index: Frame number
        detections: Detections in detector output order
        truth_ids: Ground-truth object per detection, None for clutter
    """

    frame_index: int
    detections: List[Detection] = field(default_factory=list)
    truth_ids: List[Optional[int]] = field(default_factory=list)


class SyntheticScenario:
    """
    Detection stream generator.

    Example:
        >>> scenario = SyntheticScenario(ScenarioConfig(n_objects=3, seed=1))
        >>> frames = list(scenario.frames())
        >>> len(frames)
        200
    """

    def __init__(self, config: ScenarioConfig):
        """
        Initialize scenario.

        Args:
            config: Scenario configuration
        """
        self.config = config
        self.rng = np.random.default_rng(config.seed)
        self.objects: List[SimulatedObject] = [
            self._spawn_object(i + 1) for i in range(config.n_objects)
        ]
        self._next_det_id = 0

    def _spawn_object(self, truth_id: int) -> SimulatedObject:
        cfg = self.config
        width, height = cfg.image_size
        size = self.rng.uniform(cfg.box_size_range[0], cfg.box_size_range[1], size=2)
        center = np.array(
            [
                self.rng.uniform(size[0] / 2, width - size[0] / 2),
                self.rng.uniform(size[1] / 2, height - size[1] / 2),
            ]
        )
        speed = self.rng.uniform(cfg.speed_range[0], cfg.speed_range[1])
        heading = self.rng.uniform(0, 2 * np.pi)
        velocity = speed * np.array([np.cos(heading), np.sin(heading)])

        feature = None
        if cfg.feature_dim > 0:
            feature = self.rng.normal(size=cfg.feature_dim)
            feature /= np.linalg.norm(feature)

        return SimulatedObject(
            truth_id=truth_id, center=center, velocity=velocity, size=size, feature=feature
        )

    def frames(self) -> Iterator[FrameDetections]:
        """Yield detections for every frame of the scenario."""
        for frame_index in range(self.config.n_frames):
            if frame_index > 0:
                for obj in self.objects:
                    obj.step(self.config.image_size)
            yield self._observe(frame_index)

    def _observe(self, frame_index: int) -> FrameDetections:
        cfg = self.config
        frame = FrameDetections(frame_index=frame_index)

        for obj in self.objects:
            if self.rng.random() < cfg.miss_probability:
                continue
            jitter = self.rng.normal(0, cfg.position_noise, size=4)
            cx, cy = obj.center + jitter[:2]
            w, h = np.maximum(obj.size + jitter[2:], 2.0)
            frame.detections.append(
                self._detection(
                    BoundingBox.from_center(cx, cy, w, h),
                    confidence=self.rng.uniform(0.5, 1.0),
                    feature=self._observe_feature(obj.feature),
                    frame_index=frame_index,
                )
            )
            frame.truth_ids.append(obj.truth_id)

        for _ in range(self.rng.poisson(cfg.clutter_rate)):
            frame.detections.append(
                self._detection(
                    self._clutter_box(),
                    confidence=self.rng.uniform(0.1, 0.6),
                    feature=self._observe_feature(self._random_feature()),
                    frame_index=frame_index,
                )
            )
            frame.truth_ids.append(None)

        return frame

    def _detection(
        self,
        bbox: BoundingBox,
        confidence: float,
        feature: Optional[np.ndarray],
        frame_index: int,
    ) -> Detection:
        det = Detection(
            bbox=bbox,
            confidence=float(confidence),
            feature=feature,
            frame_index=frame_index,
            det_id=self._next_det_id,
        )
        self._next_det_id += 1
        return det

    def _clutter_box(self) -> BoundingBox:
        cfg = self.config
        width, height = cfg.image_size
        w, h = self.rng.uniform(cfg.box_size_range[0], cfg.box_size_range[1], size=2)
        return BoundingBox(
            self.rng.uniform(0, max(width - w, 1.0)), self.rng.uniform(0, max(height - h, 1.0)), w, h
        )

    def _random_feature(self) -> Optional[np.ndarray]:
        if self.config.feature_dim <= 0:
            return None
        feature = self.rng.normal(size=self.config.feature_dim)
        return feature / np.linalg.norm(feature)

    def _observe_feature(self, feature: Optional[np.ndarray]) -> Optional[np.ndarray]:
        if feature is None:
            return None
        noisy = feature + self.rng.normal(0, self.config.feature_noise, size=feature.shape)
        return noisy / np.linalg.norm(noisy)

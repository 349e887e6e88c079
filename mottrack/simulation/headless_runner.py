"""
Headless Tracking Runner

Runs the tracker over a synthetic scenario without any video or display,
for batch processing and parameter sweeps.

Features:
    - No video/GUI dependencies
    - Full begin_track / track / finish_track cycle
    - Event counting through an observer
    - Identity purity against ground truth

Usage:
    runner = HeadlessRunner(ScenarioConfig(seed=1), TrackerParams())
    result = runner.run()
"""

import time
from collections import Counter, defaultdict
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from mottrack.tracking.events import (
    DetectionRejected,
    EventHandlerResult,
    TargetAssociation,
    TargetClosed,
    TrackingEventHandler,
)
from mottrack.tracking.mot import MultiObjectTracker, TrackerParams

from .scenario import ScenarioConfig, SyntheticScenario


class EventCounter(TrackingEventHandler):
    """Observer accumulating event counts and detection -> target links."""

    def __init__(self) -> None:
        self.n_created = 0
        self.n_associated = 0
        self.n_closed = 0
        self.n_rejected = 0
        self.links: Dict[Any, int] = {}

    def on_target_created(self, sender: Any, event: TargetAssociation) -> EventHandlerResult:
        self.n_created += 1
        self.links[event.detection] = event.target.id
        return EventHandlerResult.NONE

    def on_target_associated(self, sender: Any, event: TargetAssociation) -> EventHandlerResult:
        self.n_associated += 1
        self.links[event.detection] = event.target.id
        return EventHandlerResult.NONE

    def on_target_closed(self, sender: Any, event: TargetClosed) -> EventHandlerResult:
        self.n_closed += 1
        return EventHandlerResult.NONE

    def on_detection_rejected(self, sender: Any, event: DetectionRejected) -> EventHandlerResult:
        self.n_rejected += 1
        return EventHandlerResult.NONE


@dataclass
class RunResult:
    """
    Results from a headless tracking run.

    Attributes:
        scenario: Scenario configuration
        params: Tracker parameters
        n_frames: Frames processed
        n_detections: Detections fed to the tracker
        n_targets_created: Created events
        n_associations: Associated events
        n_targets_closed: Closed events (finish_track included)
        n_rejected: Rejected detections
        mean_open_targets: Average open target count per frame
        max_open_targets: Peak open target count
        identity_purity: Mean share of each truth object's detections that
                         went to its majority target (1.0 = no id switches)
        runtime_s: Wall-clock execution time
    """

    scenario: ScenarioConfig
    params: TrackerParams
    n_frames: int = 0
    n_detections: int = 0
    n_targets_created: int = 0
    n_associations: int = 0
    n_targets_closed: int = 0
    n_rejected: int = 0
    mean_open_targets: float = 0.0
    max_open_targets: int = 0
    identity_purity: float = 0.0
    runtime_s: float = 0.0
    open_history: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for CSV/JSON export."""
        return {
            "n_objects": self.scenario.n_objects,
            "miss_probability": self.scenario.miss_probability,
            "position_noise": self.scenario.position_noise,
            "clutter_rate": self.scenario.clutter_rate,
            "seed": self.scenario.seed,
            "min_iou": self.params.min_iou,
            "appearance_weight": self.params.appearance_weight,
            "confirm_hits": self.params.confirm_hits,
            "max_misses": self.params.max_misses,
            "n_frames": self.n_frames,
            "n_detections": self.n_detections,
            "n_targets_created": self.n_targets_created,
            "n_associations": self.n_associations,
            "n_targets_closed": self.n_targets_closed,
            "n_rejected": self.n_rejected,
            "mean_open_targets": self.mean_open_targets,
            "max_open_targets": self.max_open_targets,
            "identity_purity": self.identity_purity,
            "runtime_s": self.runtime_s,
        }


class HeadlessRunner:
    """
    Headless tracking runner.

    Feeds a synthetic scenario through a MultiObjectTracker and collects
    lifecycle statistics.
    """

    def __init__(self, scenario: ScenarioConfig, params: Optional[TrackerParams] = None):
        """
        Initialize headless runner.

        Args:
            scenario: Scenario configuration
            params: Tracker parameters (defaults if None)
        """
        self.scenario = scenario
        self.params = params if params is not None else TrackerParams()

    def run(self) -> RunResult:
        """
        Execute one tracking run.

        Returns:
            RunResult with event statistics
        """
        start_time = time.perf_counter()

        params = self.params
        if params.preferred_image_size is None:
            params = replace(params, preferred_image_size=self.scenario.image_size)

        tracker = MultiObjectTracker(params)
        counter = EventCounter()
        tracker.add_event_handler(counter)

        truth_by_detection: Dict[Any, int] = {}
        open_history: List[int] = []
        n_detections = 0
        n_frames = 0

        for frame in SyntheticScenario(self.scenario).frames():
            for det, truth_id in zip(frame.detections, frame.truth_ids):
                if truth_id is not None:
                    truth_by_detection[det] = truth_id

            if n_frames == 0:
                tracker.begin_track(None, frame.detections, frame.frame_index)
            else:
                tracker.track(None, frame.detections, frame.frame_index)

            n_frames += 1
            n_detections += len(frame.detections)
            open_history.append(len(tracker.get_all_open_targets()))

        if n_frames > 0:
            tracker.finish_track()

        runtime = time.perf_counter() - start_time

        return RunResult(
            scenario=self.scenario,
            params=self.params,
            n_frames=n_frames,
            n_detections=n_detections,
            n_targets_created=counter.n_created,
            n_associations=counter.n_associated,
            n_targets_closed=counter.n_closed,
            n_rejected=counter.n_rejected,
            mean_open_targets=float(np.mean(open_history)) if open_history else 0.0,
            max_open_targets=max(open_history) if open_history else 0,
            identity_purity=identity_purity(truth_by_detection, counter.links),
            runtime_s=runtime,
            open_history=open_history,
        )


def identity_purity(truth_by_detection: Dict[Any, int], links: Dict[Any, int]) -> float:
    """
    Mean over truth objects of the share of their linked detections that went
    to their most frequent target. Objects never linked are ignored.
    """
    per_truth: Dict[int, Counter] = defaultdict(Counter)
    for det, truth_id in truth_by_detection.items():
        target_id = links.get(det)
        if target_id is not None:
            per_truth[truth_id][target_id] += 1

    if not per_truth:
        return 0.0

    shares = [max(c.values()) / sum(c.values()) for c in per_truth.values()]
    return float(np.mean(shares))


def run_single(config: Tuple[ScenarioConfig, TrackerParams]) -> RunResult:
    """
    Convenience function for multiprocessing.

    Args:
        config: (scenario, tracker params) pair

    Returns:
        Run result
    """
    scenario, params = config
    return HeadlessRunner(scenario, params).run()

"""
mottrack API Examples

Usage examples demonstrating the tracking API.
"""

import os
import sys

import numpy as np

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def example_basic_tracking():
    """
    Example 1: Basic Tracking

    Track two boxes moving in opposite directions and print the
    lifecycle events.
    """
    from mottrack import BoundingBox, Detection, EventRecorder, MultiObjectTracker, TrackerParams

    params = TrackerParams(confirm_hits=3, max_misses=5)
    params.set_preferred_image_size(640, 480)

    tracker = MultiObjectTracker(params)
    recorder = EventRecorder(log_events=False)
    tracker.add_event_handler(recorder)

    print("=== Basic Tracking Example ===")
    for frame_index in range(10):
        detections = [
            Detection(BoundingBox(50 + 5 * frame_index, 100, 40, 80), confidence=0.9),
            Detection(BoundingBox(500 - 5 * frame_index, 300, 40, 80), confidence=0.8),
        ]
        if frame_index == 0:
            tracker.begin_track(None, detections, frame_index)
        else:
            tracker.track(None, detections, frame_index)

    for target_id, target in tracker.get_all_open_targets().items():
        vx, vy = target.velocity
        print(f"Target {target_id}: {target.status.value}, v=({vx:+.1f}, {vy:+.1f}) px/frame")

    tracker.finish_track()
    print(f"Created: {len(recorder.created)}, closed: {len(recorder.closed)}")


def example_custom_handler():
    """
    Example 2: Custom Event Handler

    Count frames per target through the observer interface.
    """
    from mottrack import (
        BoundingBox,
        Detection,
        EventHandlerResult,
        MultiObjectTracker,
        TrackingEventHandler,
    )

    class Trails(TrackingEventHandler):
        def __init__(self):
            self.frames = {}

        def on_target_created(self, sender, event):
            self.frames[event.target.id] = 1
            return EventHandlerResult.NONE

        def on_target_associated(self, sender, event):
            self.frames[event.target.id] += 1
            return EventHandlerResult.NONE

    print("\n=== Custom Handler Example ===")
    tracker = MultiObjectTracker()
    trails = Trails()
    tracker.add_event_handler(trails)

    tracker.begin_track(None, [Detection(BoundingBox(0, 0, 50, 50))], 0)
    for frame_index in range(1, 6):
        tracker.track(None, [Detection(BoundingBox(2 * frame_index, 0, 50, 50))], frame_index)
    tracker.finish_track()

    for target_id, n_frames in trails.frames.items():
        print(f"Target {target_id}: {n_frames} frames")


def example_appearance():
    """
    Example 3: Appearance-Assisted Association

    Two overlapping boxes swap positions; descriptors keep identities apart.
    """
    from mottrack import BoundingBox, Detection, MultiObjectTracker, TrackerParams

    print("\n=== Appearance Example ===")
    red = np.array([1.0, 0.0, 0.0])
    blue = np.array([0.0, 0.0, 1.0])

    tracker = MultiObjectTracker(TrackerParams(appearance_weight=0.5))
    tracker.begin_track(
        None,
        [
            Detection(BoundingBox(100, 100, 60, 60), feature=red),
            Detection(BoundingBox(130, 100, 60, 60), feature=blue),
        ],
        0,
    )
    tracker.track(
        None,
        [
            Detection(BoundingBox(128, 100, 60, 60), feature=blue),
            Detection(BoundingBox(102, 100, 60, 60), feature=red),
        ],
        1,
    )

    for target_id, target in tracker.get_all_open_targets().items():
        print(f"Target {target_id}: x={target.bbox.x:.1f}")


def example_headless_run():
    """
    Example 4: Headless Synthetic Run

    Run a seeded synthetic scenario and print summary metrics.
    """
    from mottrack.simulation import HeadlessRunner, ScenarioConfig
    from mottrack.tracking import TrackerParams

    print("\n=== Headless Run Example ===")
    scenario = ScenarioConfig(n_objects=8, n_frames=150, miss_probability=0.1, seed=42)
    result = HeadlessRunner(scenario, TrackerParams(max_misses=10)).run()

    print(f"Targets created: {result.n_targets_created}")
    print(f"Identity purity: {result.identity_purity:.3f}")
    print(f"Mean open targets: {result.mean_open_targets:.1f}")
    print(f"Runtime: {result.runtime_s * 1000:.1f} ms")


def example_config_file():
    """
    Example 5: YAML Configuration

    Load tracker parameters from the bundled default configuration.
    """
    from mottrack.io import TrackingConfigLoader

    print("\n=== Config File Example ===")
    path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "configs", "default.yaml")
    loader = TrackingConfigLoader(path)
    params = loader.get_params()

    print(f"Image size: {params.preferred_image_size}")
    print(f"IoU gate: {params.min_iou}, appearance weight: {params.appearance_weight}")


if __name__ == "__main__":
    print("mottrack API Examples")
    print("=" * 60)

    example_basic_tracking()
    example_custom_handler()
    example_appearance()
    example_headless_run()
    example_config_file()

    print("\n" + "=" * 60)
    print("All examples completed successfully!")

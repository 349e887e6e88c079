"""
mottrack Tracker Facade Test Suite

End-to-end tests of MultiObjectTracker through its public call sequence.

Test ID | Description                                  | Expected
--------|----------------------------------------------|----------------------------
1       | begin_track with two detections              | two tentative targets
2       | Target unmatched past max_misses             | one closed event, removed
3       | Detections far from every target             | new tentative targets
4       | finish_track with N open targets             | N closed events, then {}
5       | Calls out of order                           | TrackingSequenceError
6       | Queries without a new frame                  | equal results
7       | One target per detection per frame           | bijection on synthetic run
8       | Generator input, unreadable confidence       | consumed once, rejected
9       | Event handler raises mid-call                | phase and queries current
"""

import logging
import os
import sys
from collections import Counter

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from mottrack.simulation.scenario import ScenarioConfig, SyntheticScenario
from mottrack.tracking.detection import BoundingBox, Detection
from mottrack.tracking.events import (
    CloseReason,
    EventHandlerResult,
    EventRecorder,
    TrackingEventHandler,
)
from mottrack.tracking.mot import MultiObjectTracker, TrackerParams, TrackingSequenceError
from mottrack.tracking.tracker import TrackStatus


def det(x, y, w=40, h=40, confidence=0.9):
    return Detection(BoundingBox(x, y, w, h), confidence=confidence)


@pytest.fixture
def recorder():
    return EventRecorder()


def make_tracker(recorder, **kwargs):
    tracker = MultiObjectTracker(TrackerParams(**kwargs))
    tracker.add_event_handler(recorder)
    return tracker


# =============================================================================
# TEST 1: Basic scenarios
# =============================================================================


class TestScenarios:
    """Public call sequence behaviour."""

    def test_begin_track_two_detections(self, recorder):
        tracker = make_tracker(recorder)
        tracker.begin_track(None, [det(0, 0), det(300, 300)], 0)

        targets = tracker.get_all_open_targets()
        assert len(targets) == 2
        assert len(set(targets)) == 2
        assert all(t.status == TrackStatus.TENTATIVE for t in targets.values())
        assert len(recorder.created) == 2
        assert recorder.associated == []

    def test_created_and_associated_are_separate(self, recorder):
        tracker = make_tracker(recorder)
        tracker.begin_track(None, [det(0, 0), det(300, 300)], 0)
        recorder.clear()

        tracker.track(None, [det(0, 0), det(300, 300)], 1)

        assert recorder.created == []
        assert len(recorder.associated) == 2

    def test_retirement_after_max_misses(self, recorder):
        tracker = make_tracker(recorder, max_misses=3)
        tracker.begin_track(None, [det(100, 100)], 0)

        for frame in range(1, 4):
            tracker.track(None, [], frame)
            assert 1 in tracker.get_all_open_targets()
            assert tracker.get_all_open_targets()[1].misses == frame

        tracker.track(None, [], 4)

        assert tracker.get_all_open_targets() == {}
        assert len(recorder.closed) == 1
        assert recorder.closed[0].target.id == 1
        assert recorder.closed[0].reason == CloseReason.MISSED

    def test_low_overlap_detections_spawn_targets(self, recorder):
        tracker = make_tracker(recorder)
        tracker.begin_track(None, [det(0, 0), det(100, 0)], 0)
        recorder.clear()

        tracker.track(None, [det(400, 400), det(600, 400)], 1)

        targets = tracker.get_all_open_targets()
        assert len(recorder.created) == 2
        assert {e.target.id for e in recorder.created} == {3, 4}
        assert targets[3].status == TrackStatus.TENTATIVE
        assert targets[1].status == TrackStatus.LOST

    def test_finish_track_closes_everything(self, recorder):
        tracker = make_tracker(recorder)
        tracker.begin_track(None, [det(0, 0), det(200, 0), det(400, 0)], 0)
        tracker.track(None, [det(0, 0), det(200, 0), det(400, 0)], 1)

        tracker.finish_track()

        assert len(recorder.closed) == 3
        assert all(e.reason == CloseReason.FINISHED for e in recorder.closed)
        assert tracker.get_all_open_targets() == {}
        assert tracker.is_finished

    def test_confirmed_after_three_frames(self, recorder):
        tracker = make_tracker(recorder, confirm_hits=3)
        tracker.begin_track(None, [det(50, 50)], 0)
        tracker.track(None, [det(52, 50)], 1)
        tracker.track(None, [det(54, 50)], 2)

        assert tracker.get_all_open_targets()[1].status == TrackStatus.CONFIRMED

    def test_queries_are_idempotent(self, recorder):
        tracker = make_tracker(recorder)
        tracker.begin_track(None, [det(0, 0), det(300, 300)], 0)
        tracker.track(None, [det(2, 1)], 1)

        first = tracker.get_all_open_targets()
        second = tracker.get_all_open_targets()

        assert first == second
        assert first is not second

    def test_degenerate_detection_skipped(self, recorder, caplog):
        tracker = make_tracker(recorder)
        with caplog.at_level(logging.WARNING):
            tracker.begin_track(None, [det(0, 0, w=-1), det(100, 100)], 0)

        assert len(tracker.get_all_open_targets()) == 1
        assert len(recorder.rejected) == 1
        assert "degenerate" in caplog.text

    def test_generator_detections_accepted(self, recorder):
        tracker = make_tracker(recorder)
        tracker.begin_track(None, (det(x, 0) for x in (0, 300)), 0)
        tracker.track(None, (det(x, 0) for x in (0, 300, 600)), 1)

        assert list(tracker.get_all_open_targets()) == [1, 2, 3]
        assert len(recorder.associated) == 2

    def test_unreadable_confidence_skipped_mid_stream(self, recorder):
        tracker = make_tracker(recorder)
        tracker.begin_track(None, [det(0, 0), det(300, 0)], 0)
        bad = Detection(BoundingBox(600, 0, 40, 40), confidence="n/a")

        tracker.track(None, [det(0, 0), bad, det(300, 0)], 1)

        targets = tracker.get_all_open_targets()
        assert [e.detection for e in recorder.rejected] == [bad]
        assert tracker.frame_index == 1
        assert list(targets) == [1, 2]
        assert [t.hits for t in targets.values()] == [2, 2]
        assert targets == tracker.manager.snapshot()


# =============================================================================
# TEST 2: Call sequence enforcement
# =============================================================================


class TestCallSequence:
    """TrackingSequenceError on misuse."""

    def test_track_before_begin(self, recorder):
        tracker = make_tracker(recorder)
        with pytest.raises(TrackingSequenceError):
            tracker.track(None, [det(0, 0)], 1)

        assert tracker.frame_index is None
        assert tracker.get_all_open_targets() == {}
        assert recorder.created == []

    def test_finish_before_begin(self, recorder):
        with pytest.raises(TrackingSequenceError):
            make_tracker(recorder).finish_track()

    def test_begin_twice(self, recorder):
        tracker = make_tracker(recorder)
        tracker.begin_track(None, [det(0, 0)], 0)
        with pytest.raises(TrackingSequenceError):
            tracker.begin_track(None, [det(0, 0)], 1)

        assert len(tracker.get_all_open_targets()) == 1

    def test_calls_after_finish(self, recorder):
        tracker = make_tracker(recorder)
        tracker.begin_track(None, [det(0, 0)], 0)
        tracker.finish_track()

        with pytest.raises(TrackingSequenceError):
            tracker.track(None, [det(0, 0)], 1)
        with pytest.raises(TrackingSequenceError):
            tracker.finish_track()
        with pytest.raises(TrackingSequenceError):
            tracker.begin_track(None, [], 0)

        assert len(recorder.closed) == 1
        assert tracker.get_all_open_targets() == {}

    def test_sequence_error_is_runtime_error(self):
        assert issubclass(TrackingSequenceError, RuntimeError)

    def test_non_advancing_frame_index_warns(self, recorder, caplog):
        tracker = make_tracker(recorder)
        tracker.begin_track(None, [det(0, 0)], 5)

        with caplog.at_level(logging.WARNING, logger="mottrack.tracking.mot"):
            tracker.track(None, [det(0, 0)], 5)

        assert "does not advance" in caplog.text
        assert tracker.frame_index == 5

    def test_reinit_keeps_ids_increasing(self, recorder):
        tracker = make_tracker(recorder)
        tracker.begin_track(None, [det(0, 0), det(200, 0)], 0)
        tracker.finish_track()

        tracker.init(TrackerParams())
        tracker.begin_track(None, [det(0, 0)], 0)

        assert list(tracker.get_all_open_targets()) == [3]
        assert tracker.is_tracking


# =============================================================================
# TEST 3: Configuration
# =============================================================================


class TestConfiguration:
    """Parameters and image size."""

    def test_invalid_params_rejected(self):
        with pytest.raises(ValueError):
            MultiObjectTracker(TrackerParams(min_iou=0.0))
        with pytest.raises(ValueError):
            MultiObjectTracker(TrackerParams(confirm_hits=0))
        with pytest.raises(ValueError):
            MultiObjectTracker(TrackerParams(preferred_image_size=(0, 480)))

    def test_params_copied_on_init(self):
        params = TrackerParams()
        tracker = MultiObjectTracker(params)
        params.min_iou = 0.9

        assert tracker.params.min_iou == 0.3

    def test_preferred_image_size(self):
        params = TrackerParams()
        params.set_preferred_image_size(1920, 1080)
        tracker = MultiObjectTracker(params)

        assert tracker.manager.scorer.image_size == (1920, 1080)

    def test_frame_shape_adopted(self):
        tracker = MultiObjectTracker()
        tracker.begin_track(np.zeros((720, 1280, 3), dtype=np.uint8), [], 0)

        assert tracker.params.preferred_image_size == (1280, 720)
        assert tracker.manager.scorer.image_size == (1280, 720)

    def test_configured_size_wins_over_frame(self):
        tracker = MultiObjectTracker(TrackerParams(preferred_image_size=(640, 480)))
        tracker.begin_track(np.zeros((720, 1280, 3), dtype=np.uint8), [], 0)

        assert tracker.params.preferred_image_size == (640, 480)

    def test_max_targets_limits_open_targets(self, recorder):
        tracker = make_tracker(recorder, max_targets=2)
        tracker.begin_track(
            None,
            [det(0, 0, confidence=0.2), det(200, 0, confidence=0.8), det(400, 0, confidence=0.6)],
            0,
        )

        targets = tracker.get_all_open_targets()
        assert len(targets) == 2
        assert sorted(t.confidence for t in targets.values()) == [0.6, 0.8]


# =============================================================================
# TEST 4: Handlers
# =============================================================================


class _LateRegistrar(TrackingEventHandler):
    """Registers another handler from inside a callback."""

    def __init__(self, tracker, late):
        self.tracker = tracker
        self.late = late

    def on_target_created(self, sender, event):
        self.tracker.add_event_handler(self.late)
        return EventHandlerResult.NONE


class _HandlerFailure(Exception):
    pass


class _FailingHandler(TrackingEventHandler):
    """Raises from the n-th created, associated or closed callback."""

    def __init__(self, fail_on_call):
        self.fail_on_call = fail_on_call
        self.calls = 0

    def _count(self):
        self.calls += 1
        if self.calls == self.fail_on_call:
            raise _HandlerFailure(f"callback {self.calls}")
        return EventHandlerResult.NONE

    def on_target_created(self, sender, event):
        return self._count()

    def on_target_associated(self, sender, event):
        return self._count()

    def on_target_closed(self, sender, event):
        return self._count()


class TestHandlers:
    """Handler registration through the facade."""

    def test_sender_is_tracker(self, recorder):
        seen = []

        class Capture(TrackingEventHandler):
            def on_target_created(self, sender, event):
                seen.append(sender)
                return EventHandlerResult.NONE

        tracker = MultiObjectTracker()
        tracker.add_event_handler(Capture())
        tracker.begin_track(None, [det(0, 0)], 0)

        assert seen == [tracker]

    def test_handler_added_in_callback_applies_next_frame(self):
        tracker = MultiObjectTracker()
        late = EventRecorder()
        tracker.add_event_handler(_LateRegistrar(tracker, late))

        tracker.begin_track(None, [det(0, 0)], 0)
        assert late.created == []

        tracker.track(None, [det(0, 0)], 1)
        assert len(late.associated) == 1

    def test_removed_handler_stops_receiving(self, recorder):
        tracker = make_tracker(recorder)
        tracker.begin_track(None, [det(0, 0)], 0)

        assert tracker.remove_event_handler(recorder) is True
        tracker.track(None, [det(0, 0)], 1)

        assert recorder.associated == []

    def test_failing_handler_during_begin_track(self):
        tracker = MultiObjectTracker()
        failing = _FailingHandler(fail_on_call=2)
        tracker.add_event_handler(failing)

        with pytest.raises(_HandlerFailure):
            tracker.begin_track(None, [det(0, 0), det(200, 0), det(400, 0)], 0)

        assert tracker.is_tracking
        assert tracker.frame_index == 0
        assert list(tracker.get_all_open_targets()) == [1, 2]

        with pytest.raises(TrackingSequenceError):
            tracker.begin_track(None, [det(0, 0), det(200, 0), det(400, 0)], 0)
        assert list(tracker.get_all_open_targets()) == [1, 2]

        tracker.remove_event_handler(failing)
        tracker.track(None, [det(0, 0), det(200, 0), det(400, 0)], 1)
        assert list(tracker.get_all_open_targets()) == [1, 2, 3]

    def test_failing_handler_during_track(self):
        tracker = MultiObjectTracker()
        tracker.begin_track(None, [det(0, 0), det(200, 0)], 0)
        failing = _FailingHandler(fail_on_call=1)
        tracker.add_event_handler(failing)

        with pytest.raises(_HandlerFailure):
            tracker.track(None, [det(0, 0), det(200, 0)], 1)

        assert tracker.frame_index == 1
        assert tracker.get_all_open_targets() == tracker.manager.snapshot()

        tracker.remove_event_handler(failing)
        tracker.track(None, [det(0, 0), det(200, 0)], 2)
        assert tracker.frame_index == 2
        assert list(tracker.get_all_open_targets()) == [1, 2]

    def test_failing_handler_during_finish_track(self):
        tracker = MultiObjectTracker()
        tracker.begin_track(None, [det(0, 0), det(200, 0)], 0)
        tracker.add_event_handler(_FailingHandler(fail_on_call=1))

        with pytest.raises(_HandlerFailure):
            tracker.finish_track()

        assert tracker.get_all_open_targets() == {}
        with pytest.raises(TrackingSequenceError):
            tracker.finish_track()


# =============================================================================
# TEST 5: Synthetic stream invariants
# =============================================================================


class TestSyntheticStream:
    """Per-frame invariants over a noisy scenario."""

    def test_one_to_one_association_per_frame(self):
        tracker = MultiObjectTracker(TrackerParams(preferred_image_size=(640, 480)))
        recorder = EventRecorder()
        tracker.add_event_handler(recorder)
        config = ScenarioConfig(
            image_size=(640, 480), n_objects=6, n_frames=60, clutter_rate=1.0, seed=5
        )

        seen_ids = set()
        for frame in SyntheticScenario(config).frames():
            recorder.clear()
            if frame.frame_index == 0:
                tracker.begin_track(None, frame.detections, frame.frame_index)
            else:
                tracker.track(None, frame.detections, frame.frame_index)

            linked = recorder.created + recorder.associated
            target_counts = Counter(e.target.id for e in linked)
            detection_counts = Counter(id(e.detection) for e in linked)
            assert all(n == 1 for n in target_counts.values())
            assert all(n == 1 for n in detection_counts.values())
            assert len(linked) <= len(frame.detections)

            for event in recorder.created:
                assert event.target.id not in seen_ids
                seen_ids.add(event.target.id)

        open_before = len(tracker.get_all_open_targets())
        recorder.clear()
        tracker.finish_track()
        assert len(recorder.closed) == open_before

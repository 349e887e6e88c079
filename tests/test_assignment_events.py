"""
mottrack Assignment and Event Dispatch Test Suite

Test ID | Description                              | Reference
--------|------------------------------------------|---------------------------
1       | Optimal (not greedy) matching            | Hungarian algorithm
2       | Infeasible / over-cost pairs dropped     | INFEASIBLE_COST, max_cost
3       | Matching is a partial bijection          | |matches| <= min(N, M)
4       | First optimum in target order on ties    | brute force
5       | Handlers run in registration order       | observer pattern
6       | Short-circuit on HANDLED                 | opt-in
7       | Registration changes apply next frame    | frozen handler list
"""

import os
import sys
from itertools import permutations

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from mottrack.tracking.affinity import INFEASIBLE_COST
from mottrack.tracking.assignment import first_optimal_assignment, solve_assignment
from mottrack.tracking.events import (
    EventDispatcher,
    EventHandlerResult,
    EventRecorder,
    TrackingEventHandler,
)

# =============================================================================
# TEST 1: Assignment solver
# =============================================================================


class TestSolveAssignment:
    """Hungarian matching with post-filtering."""

    def test_diagonal(self):
        cost = np.array([[0.1, 0.9], [0.9, 0.1]])
        result = solve_assignment(cost)

        assert result.matches == [(0, 0), (1, 1)]
        assert result.unmatched_rows == []
        assert result.unmatched_cols == []

    def test_optimal_beats_greedy(self):
        """Greedy would take (0,0)=0.1 then (1,1)=0.9; optimum totals 0.35"""
        cost = np.array([[0.1, 0.2], [0.15, 0.9]])
        result = solve_assignment(cost)

        assert result.matches == [(0, 1), (1, 0)]

    def test_infeasible_pairs_dropped(self):
        cost = np.array([[INFEASIBLE_COST, INFEASIBLE_COST], [0.2, INFEASIBLE_COST]])
        result = solve_assignment(cost)

        assert result.matches == [(1, 0)]
        assert result.unmatched_rows == [0]
        assert result.unmatched_cols == [1]

    def test_max_cost_filter(self):
        result = solve_assignment(np.array([[0.8]]), max_cost=0.5)

        assert result.matches == []
        assert result.unmatched_rows == [0]
        assert result.unmatched_cols == [0]

    @pytest.mark.parametrize("shape", [(0, 3), (3, 0), (0, 0)])
    def test_empty_sides(self, shape):
        result = solve_assignment(np.zeros(shape))

        assert result.matches == []
        assert result.unmatched_rows == list(range(shape[0]))
        assert result.unmatched_cols == list(range(shape[1]))

    def test_rectangular_random_is_partial_bijection(self):
        rng = np.random.default_rng(3)
        for _ in range(20):
            n, m = rng.integers(1, 8, size=2)
            cost = rng.uniform(0, 1.5, size=(n, m))
            cost[rng.uniform(size=(n, m)) < 0.3] = INFEASIBLE_COST

            result = solve_assignment(cost, max_cost=1.0)
            rows = [r for r, _ in result.matches]
            cols = [c for _, c in result.matches]

            assert len(result.matches) <= min(n, m)
            assert len(set(rows)) == len(rows)
            assert len(set(cols)) == len(cols)
            assert all(cost[r, c] <= 1.0 for r, c in result.matches)
            assert sorted(rows + result.unmatched_rows) == list(range(n))
            assert sorted(cols + result.unmatched_cols) == list(range(m))

    def test_deterministic(self):
        rng = np.random.default_rng(11)
        cost = rng.uniform(0, 1, size=(6, 5))

        assert solve_assignment(cost) == solve_assignment(cost.copy())

    def test_over_cost_pairs_excluded_before_solving(self):
        """Unfiltered optimum (0,1)+(1,0) would yield no match at all"""
        cost = np.array([[0.1, 2.0], [2.0, 5.0]])
        result = solve_assignment(cost, max_cost=1.0)

        assert result.matches == [(0, 0)]
        assert result.unmatched_rows == [1]
        assert result.unmatched_cols == [1]

    def test_ties_prefer_lowest_indices(self):
        cost = np.array([[0, 0, 0, 0], [0, 0, 0, 0], [0, 0.5, 0.5, 0.5]])
        result = solve_assignment(cost)

        assert result.matches == [(0, 1), (1, 2), (2, 0)]
        assert result.unmatched_cols == [3]

    def test_all_zero_matrix_is_diagonal(self):
        assert solve_assignment(np.zeros((3, 3))).matches == [(0, 0), (1, 1), (2, 2)]

    @pytest.mark.parametrize("shape", [(3, 4), (4, 3), (3, 3)])
    def test_tied_matrices_match_brute_force(self, shape):
        """First-in-order optimum over all assignments of the zero-padded square"""
        rng = np.random.default_rng(17)
        n, m = shape
        size = max(n, m)
        for _ in range(100):
            cost = rng.choice([0.0, 0.5, 1.0, INFEASIBLE_COST], size=shape)
            square = np.zeros((size, size))
            square[:n, :m] = cost

            best = min(
                permutations(range(size)),
                key=lambda p: (sum(square[r, c] for r, c in enumerate(p)), p[:n]),
            )
            expected = [(r, c) for r, c in enumerate(best[:n]) if c < m and cost[r, c] < INFEASIBLE_COST]

            assert list(first_optimal_assignment(cost)) == list(best[:n])
            assert solve_assignment(cost).matches == expected


# =============================================================================
# TEST 2: Event dispatcher
# =============================================================================


class _NamedHandler(TrackingEventHandler):
    """Appends its name to a shared log on every closed event."""

    def __init__(self, name, log, result=EventHandlerResult.NONE):
        self.name = name
        self.log = log
        self.result = result

    def on_target_closed(self, sender, event):
        self.log.append(self.name)
        return self.result


class TestEventDispatcher:
    """Ordering, short-circuit and registration timing."""

    def test_registration_order(self):
        log = []
        dispatcher = EventDispatcher()
        for name in ("a", "b", "c"):
            dispatcher.add_handler(_NamedHandler(name, log))
        dispatcher.begin_frame()

        dispatcher.dispatch("target_closed", None, object())

        assert log == ["a", "b", "c"]

    def test_duplicate_registration_ignored(self):
        log = []
        handler = _NamedHandler("a", log)
        dispatcher = EventDispatcher()
        dispatcher.add_handler(handler)
        dispatcher.add_handler(handler)
        dispatcher.begin_frame()

        dispatcher.dispatch("target_closed", None, object())

        assert log == ["a"]

    def test_handled_does_not_stop_by_default(self):
        log = []
        dispatcher = EventDispatcher()
        dispatcher.add_handler(_NamedHandler("a", log, EventHandlerResult.HANDLED))
        dispatcher.add_handler(_NamedHandler("b", log))
        dispatcher.begin_frame()

        handled = dispatcher.dispatch("target_closed", None, object())

        assert handled is True
        assert log == ["a", "b"]

    def test_short_circuit(self):
        log = []
        dispatcher = EventDispatcher(short_circuit=True)
        dispatcher.add_handler(_NamedHandler("a", log, EventHandlerResult.HANDLED))
        dispatcher.add_handler(_NamedHandler("b", log))
        dispatcher.begin_frame()

        dispatcher.dispatch("target_closed", None, object())

        assert log == ["a"]

    def test_unhandled_returns_false(self):
        dispatcher = EventDispatcher()
        dispatcher.add_handler(EventRecorder())
        dispatcher.begin_frame()

        assert dispatcher.dispatch("target_created", None, object()) is False

    def test_changes_apply_from_next_frame(self):
        log = []
        first = _NamedHandler("first", log)
        late = _NamedHandler("late", log)
        dispatcher = EventDispatcher()
        dispatcher.add_handler(first)
        dispatcher.begin_frame()

        dispatcher.add_handler(late)
        dispatcher.remove_handler(first)
        dispatcher.dispatch("target_closed", None, object())
        assert log == ["first"]

        dispatcher.begin_frame()
        dispatcher.dispatch("target_closed", None, object())
        assert log == ["first", "late"]

    def test_remove_unknown_handler(self):
        assert EventDispatcher().remove_handler(EventRecorder()) is False

    def test_unknown_event_name(self):
        dispatcher = EventDispatcher()
        dispatcher.begin_frame()
        with pytest.raises(ValueError):
            dispatcher.dispatch("target_exploded", None, object())

    def test_default_hooks_are_noops(self):
        dispatcher = EventDispatcher()
        dispatcher.add_handler(TrackingEventHandler())
        dispatcher.begin_frame()

        for name in ("target_created", "target_associated", "target_closed", "detection_rejected"):
            assert dispatcher.dispatch(name, None, object()) is False

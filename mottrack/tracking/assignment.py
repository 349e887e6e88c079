"""
Assignment Solver

Optimal bipartite matching (Hungarian / Jonker-Volgenant via
scipy.optimize.linear_sum_assignment) with gating of infeasible pairs.

Among equally cheap assignments the first one in target order is returned:
target 0 takes the lowest detection index any optimal assignment allows, then
target 1, and so on.
"""

from dataclasses import dataclass, field
from typing import List, Tuple

import numpy as np
from scipy.optimize import linear_sum_assignment

from .affinity import INFEASIBLE_COST

# Absolute slack when comparing assignment totals
TIE_TOLERANCE = 1e-9


@dataclass
class AssignmentResult:
    """
    Frame-scoped association result.

    Attributes:
        matches: (row, col) pairs, sorted by row
        unmatched_rows: Row (target) indices without a match, ascending
        unmatched_cols: Column (detection) indices without a match, ascending
    """

    matches: List[Tuple[int, int]] = field(default_factory=list)
    unmatched_rows: List[int] = field(default_factory=list)
    unmatched_cols: List[int] = field(default_factory=list)


def solve_assignment(cost: np.ndarray, max_cost: float = 1.0) -> AssignmentResult:
    """
    Minimum-cost matching between rows and columns.

    Pairs costing more than ``max_cost`` are treated as infeasible before
    solving. Selected pairs at ``INFEASIBLE_COST`` are dropped and both sides
    reported unmatched.

    Args:
        cost: (N, M) cost matrix
        max_cost: Largest cost accepted as a match

    Returns:
        AssignmentResult
    """
    cost = np.asarray(cost, dtype=np.float64)
    n_rows, n_cols = cost.shape
    if n_rows == 0 or n_cols == 0:
        return AssignmentResult(
            matches=[], unmatched_rows=list(range(n_rows)), unmatched_cols=list(range(n_cols))
        )

    feasible = np.where(cost > max_cost, INFEASIBLE_COST, cost)
    assignment = first_optimal_assignment(feasible)

    matches = [
        (row, int(col))
        for row, col in enumerate(assignment)
        if col < n_cols and feasible[row, col] < INFEASIBLE_COST
    ]

    matched_rows = {r for r, _ in matches}
    matched_cols = {c for _, c in matches}

    return AssignmentResult(
        matches=matches,
        unmatched_rows=[r for r in range(n_rows) if r not in matched_rows],
        unmatched_cols=[c for c in range(n_cols) if c not in matched_cols],
    )


def first_optimal_assignment(cost: np.ndarray) -> np.ndarray:
    """
    Row-lexicographically first minimum-cost assignment.

    The matrix is padded to square with zero-cost dummy rows/columns, solved
    once for the optimum, then each row in turn is moved to the lowest free
    column that still admits an optimal completion.

    Args:
        cost: (N, M) cost matrix

    Returns:
        Column per row, shape (N,); values >= M mean the row is unassigned
    """
    n_rows, n_cols = cost.shape
    size = max(n_rows, n_cols)
    square = np.zeros((size, size), dtype=np.float64)
    square[:n_rows, :n_cols] = cost

    rows, cols = linear_sum_assignment(square)
    assignment = np.empty(size, dtype=int)
    assignment[rows] = cols
    optimum = float(square[rows, cols].sum())
    tolerance = TIE_TOLERANCE + size * np.finfo(np.float64).eps * abs(optimum)

    fixed_total = 0.0
    free_cols = list(range(size))
    for row in range(n_rows):
        later = np.arange(row + 1, size)
        for col in free_cols:
            if col >= assignment[row]:
                break
            rest = np.array([c for c in free_cols if c != col], dtype=int)
            total = fixed_total + square[row, col]
            if later.size == 0:
                if total <= optimum + tolerance:
                    assignment[row] = col
                    break
                continue

            sub = square[np.ix_(later, rest)]
            # Row minima bound the completion from below
            if total + sub.min(axis=1).sum() > optimum + tolerance:
                continue
            sub_rows, sub_cols = linear_sum_assignment(sub)
            if total + sub[sub_rows, sub_cols].sum() <= optimum + tolerance:
                assignment[row] = col
                assignment[later[sub_rows]] = rest[sub_cols]
                break

        fixed_total += square[row, assignment[row]]
        free_cols.remove(assignment[row])

    return assignment[:n_rows]

"""
Scenario Generator

Generates (scenario, tracker parameter) pairs from parameter ranges for
batch evaluation.

Features:
    - Cartesian product of parameter values
    - Several seeded runs per configuration
    - Quick sweep over the IoU gate

Usage:
    space = ParameterSpace(
        n_objects=[5, 10],
        miss_probabilities=[0.0, 0.1],
    )
    configs = ScenarioGenerator.generate(space)
"""

from dataclasses import dataclass, field, replace
from itertools import product
from typing import Iterator, List, Tuple

import numpy as np

from mottrack.tracking.mot import TrackerParams

from .scenario import ScenarioConfig

RunConfig = Tuple[ScenarioConfig, TrackerParams]


@dataclass
class ParameterSpace:
    """
    Parameter space definition for a batch sweep.

    Attributes:
        n_objects: Object counts per scenario
        miss_probabilities: Detector miss probabilities
        position_noises: Detection jitter std values [px]
        min_ious: Tracker IoU gates
        n_runs_per_config: Seeded runs per configuration
    """

    n_objects: List[int] = field(default_factory=lambda: [5, 10, 20])
    miss_probabilities: List[float] = field(default_factory=lambda: [0.0, 0.05, 0.2])
    position_noises: List[float] = field(default_factory=lambda: [1.0, 4.0])
    min_ious: List[float] = field(default_factory=lambda: [0.3])
    n_runs_per_config: int = 5

    # Fixed parameters
    n_frames: int = 200
    base_params: TrackerParams = field(default_factory=TrackerParams)

    @property
    def total_configs(self) -> int:
        """Total number of configurations."""
        return (
            len(self.n_objects)
            * len(self.miss_probabilities)
            * len(self.position_noises)
            * len(self.min_ious)
        )

    @property
    def total_runs(self) -> int:
        """Total number of tracking runs."""
        return self.total_configs * self.n_runs_per_config


class ScenarioGenerator:
    """
    Generates run configurations from a parameter space.
    """

    @staticmethod
    def generate(space: ParameterSpace) -> List[RunConfig]:
        """
        Generate all configurations from parameter space.

        Args:
            space: Parameter space definition

        Returns:
            List of (ScenarioConfig, TrackerParams) pairs
        """
        return list(ScenarioGenerator.generate_iterator(space))

    @staticmethod
    def generate_iterator(space: ParameterSpace) -> Iterator[RunConfig]:
        """
        Generate configurations as iterator (memory efficient).

        Yields:
            (ScenarioConfig, TrackerParams) pairs; every (n_objects, miss, noise)
            combination gets its own block of seeds, shared by all IoU gates
        """
        scenarios = product(space.n_objects, space.miss_probabilities, space.position_noises)
        for scenario_idx, (n_objects, miss, noise) in enumerate(scenarios):
            for min_iou in space.min_ious:
                params = replace(space.base_params, min_iou=min_iou)
                for run_idx in range(space.n_runs_per_config):
                    scenario = ScenarioConfig(
                        n_objects=n_objects,
                        n_frames=space.n_frames,
                        miss_probability=miss,
                        position_noise=noise,
                        seed=scenario_idx * space.n_runs_per_config + run_idx,
                    )
                    yield scenario, params

    @staticmethod
    def quick_sweep(
        min_iou_low: float = 0.1,
        min_iou_high: float = 0.7,
        n_values: int = 7,
        n_objects: int = 10,
        n_runs: int = 3,
    ) -> List[RunConfig]:
        """
        Quick IoU gate sweep for a purity vs. gate curve.

        Returns:
            List of (ScenarioConfig, TrackerParams) pairs
        """
        configs = []
        for min_iou in np.linspace(min_iou_low, min_iou_high, n_values):
            params = TrackerParams(min_iou=float(min_iou))
            for run_idx in range(n_runs):
                configs.append(
                    (ScenarioConfig(n_objects=n_objects, seed=run_idx), params)
                )
        return configs

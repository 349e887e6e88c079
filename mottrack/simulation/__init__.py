"""
mottrack Simulation Package

Synthetic detection streams, headless runners and batch sweep tools.
"""

from .headless_runner import EventCounter, HeadlessRunner, RunResult, run_single
from .scenario import FrameDetections, ScenarioConfig, SyntheticScenario
from .scenario_generator import ParameterSpace, ScenarioGenerator

__all__ = [
    "HeadlessRunner",
    "RunResult",
    "EventCounter",
    "run_single",
    "ScenarioConfig",
    "SyntheticScenario",
    "FrameDetections",
    "ScenarioGenerator",
    "ParameterSpace",
]

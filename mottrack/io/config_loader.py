"""
Tracking Config Loader

YAML-based configuration parser for mottrack.

Loads tracker parameters and, optionally, a synthetic scenario definition
used by the headless runner.

File layout:
    tracker:
      preferred_image_size: [1920, 1080]
      min_iou: 0.3
      appearance_weight: 0.2
      confirm_hits: 3
      max_misses: 30
      max_targets: 0
    scenario:
      n_objects: 8
      n_frames: 300
      miss_probability: 0.05
      seed: 7

Usage:
    loader = TrackingConfigLoader('configs/crowd.yaml')
    params = loader.get_params()
    scenario = loader.get_scenario()
"""

import os
from typing import Any, Dict, Optional, Tuple

import yaml

from mottrack.simulation.scenario import ScenarioConfig
from mottrack.tracking.mot import TrackerParams


class TrackingConfigLoader:
    """
    Loads tracker and scenario configuration from YAML files.

    Missing keys fall back to the dataclass defaults; unknown keys are
    rejected so typos do not pass silently.
    """

    def __init__(self, filepath: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            filepath: Path to YAML config file (optional)
        """
        self.filepath = filepath
        self.data: Dict[str, Any] = {}
        self._params: Optional[TrackerParams] = None
        self._scenario: Optional[ScenarioConfig] = None

        if filepath:
            self.load(filepath)

    def load(self, filepath: str) -> bool:
        """
        Load configuration from YAML file.

        Returns:
            True if loaded successfully

        Raises:
            FileNotFoundError: If file doesn't exist
            yaml.YAMLError: If YAML parsing fails
            ValueError: If values are malformed or out of range
        """
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"Config file not found: {filepath}")

        self.filepath = filepath

        with open(filepath, "r", encoding="utf-8") as f:
            self.data = yaml.safe_load(f) or {}

        return self.load_dict(self.data)

    def load_dict(self, data: Dict[str, Any]) -> bool:
        """Parse an already-loaded mapping (same layout as the YAML file)."""
        if not isinstance(data, dict):
            raise ValueError("Config root must be a mapping")
        self.data = data
        self._params = self._parse_tracker()
        self._scenario = self._parse_scenario()
        return True

    def _parse_tracker(self) -> TrackerParams:
        """Parse tracker section."""
        section = self._section("tracker")
        _reject_unknown("tracker", section, TrackerParams.__dataclass_fields__)

        params = TrackerParams()
        size = section.get("preferred_image_size")
        if size is not None:
            params.preferred_image_size = _pair("tracker.preferred_image_size", size, int)

        for key in ("min_iou", "max_cost", "appearance_weight", "process_noise", "measurement_noise"):
            if key in section:
                setattr(params, key, float(section[key]))
        for key in ("confirm_hits", "max_misses", "max_targets", "feature_budget"):
            if key in section:
                setattr(params, key, int(section[key]))
        if "short_circuit_events" in section:
            params.short_circuit_events = bool(section["short_circuit_events"])

        params.validate()
        return params

    def _parse_scenario(self) -> Optional[ScenarioConfig]:
        """Parse scenario section; None if absent."""
        if "scenario" not in self.data:
            return None
        section = self._section("scenario")
        _reject_unknown("scenario", section, ScenarioConfig.__dataclass_fields__)

        config = ScenarioConfig()
        if "image_size" in section:
            config.image_size = _pair("scenario.image_size", section["image_size"], int)
        if "box_size_range" in section:
            config.box_size_range = _pair("scenario.box_size_range", section["box_size_range"], float)
        if "speed_range" in section:
            config.speed_range = _pair("scenario.speed_range", section["speed_range"], float)

        for key in ("position_noise", "miss_probability", "clutter_rate", "feature_noise"):
            if key in section:
                setattr(config, key, float(section[key]))
        for key in ("n_objects", "n_frames", "feature_dim"):
            if key in section:
                setattr(config, key, int(section[key]))
        if section.get("seed") is not None:
            config.seed = int(section["seed"])

        return config

    def _section(self, name: str) -> Dict[str, Any]:
        section = self.data.get(name) or {}
        if not isinstance(section, dict):
            raise ValueError(f"Section '{name}' must be a mapping")
        return section

    def get_params(self) -> TrackerParams:
        """
        Get parsed tracker parameters.

        Returns:
            TrackerParams (defaults if nothing loaded)
        """
        return self._params if self._params is not None else TrackerParams()

    def get_scenario(self) -> Optional[ScenarioConfig]:
        """Get parsed scenario configuration, or None."""
        return self._scenario


def _reject_unknown(section: str, values: Dict[str, Any], known) -> None:
    unknown = sorted(set(values) - set(known))
    if unknown:
        raise ValueError(f"Unknown {section} option(s): {', '.join(unknown)}")


def _pair(name: str, value: Any, cast) -> Tuple:
    if isinstance(value, dict):
        value = [value.get("width"), value.get("height")]
    if not isinstance(value, (list, tuple)) or len(value) != 2 or None in value:
        raise ValueError(f"{name} must be a pair, got {value!r}")
    return (cast(value[0]), cast(value[1]))


def load_tracker_params(filepath: str) -> TrackerParams:
    """
    Convenience function to load tracker parameters.

    Args:
        filepath: Path to YAML config file

    Returns:
        TrackerParams instance
    """
    return TrackingConfigLoader(filepath).get_params()

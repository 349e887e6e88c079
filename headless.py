#!/usr/bin/env python3
"""
Headless Tracking CLI

Run the tracker over one synthetic scenario without video or display.

Usage:
    python headless.py                            # Default scenario
    python headless.py --objects 10 --miss 0.1    # Custom scenario
    python headless.py --config configs/default.yaml

Examples:
    # Crowded scene, strict gate
    python headless.py --objects 30 --min-iou 0.5 --frames 500

    # Appearance-assisted association
    python headless.py --feature-dim 64 --appearance-weight 0.3
"""

import argparse
import logging
import os
import sys
from dataclasses import replace

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from mottrack.io.config_loader import TrackingConfigLoader
from mottrack.simulation.headless_runner import HeadlessRunner
from mottrack.simulation.scenario import ScenarioConfig
from mottrack.tracking.mot import TrackerParams


def main():
    parser = argparse.ArgumentParser(description="Run headless multi-object tracking")

    # Config file
    parser.add_argument("--config", type=str, default=None, help="YAML configuration file")

    # Scenario parameters
    parser.add_argument("--objects", type=int, default=5, help="Number of objects (default: 5)")
    parser.add_argument("--frames", type=int, default=200, help="Number of frames (default: 200)")
    parser.add_argument(
        "--miss", type=float, default=0.05, help="Detection miss probability (default: 0.05)"
    )
    parser.add_argument(
        "--noise", type=float, default=2.0, help="Detection jitter std in px (default: 2)"
    )
    parser.add_argument(
        "--clutter", type=float, default=0.2, help="False alarms per frame (default: 0.2)"
    )
    parser.add_argument(
        "--feature-dim", type=int, default=0, help="Appearance descriptor length (default: 0)"
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed")

    # Tracker parameters
    parser.add_argument("--min-iou", type=float, default=0.3, help="IoU gate (default: 0.3)")
    parser.add_argument(
        "--appearance-weight", type=float, default=0.0, help="Appearance weight (default: 0)"
    )
    parser.add_argument(
        "--confirm-hits", type=int, default=3, help="Hits to confirm a target (default: 3)"
    )
    parser.add_argument(
        "--max-misses", type=int, default=30, help="Retirement threshold (default: 30)"
    )
    parser.add_argument(
        "--max-targets", type=int, default=0, help="Open target cap, 0 = none (default: 0)"
    )

    # Options
    parser.add_argument("--quiet", action="store_true", help="Suppress output")
    parser.add_argument("--verbose", action="store_true", help="Log lifecycle transitions")

    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else (logging.ERROR if args.quiet else logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    # Load config
    if args.config:
        if not os.path.exists(args.config):
            print(f"Error: Config file not found: {args.config}")
            return 1
        try:
            loader = TrackingConfigLoader(args.config)
        except ValueError as exc:
            print(f"Error: Invalid config: {exc}")
            return 1
        params = loader.get_params()
        scenario = loader.get_scenario() or ScenarioConfig()
        if args.seed is not None:
            scenario = replace(scenario, seed=args.seed)
    else:
        scenario = ScenarioConfig(
            n_objects=args.objects,
            n_frames=args.frames,
            miss_probability=args.miss,
            position_noise=args.noise,
            clutter_rate=args.clutter,
            feature_dim=args.feature_dim,
            seed=args.seed,
        )
        params = TrackerParams(
            min_iou=args.min_iou,
            appearance_weight=args.appearance_weight,
            confirm_hits=args.confirm_hits,
            max_misses=args.max_misses,
            max_targets=args.max_targets,
        )
        try:
            params.validate()
        except ValueError as exc:
            print(f"Error: {exc}")
            return 1

    if not args.quiet:
        print("=" * 60)
        print("mottrack Headless Mode")
        print("=" * 60)
        print(f"Objects: {scenario.n_objects}")
        print(f"Frames: {scenario.n_frames}")
        print(f"Miss probability: {scenario.miss_probability:.2f}")
        print(f"Jitter: {scenario.position_noise:.1f} px")
        print(f"Clutter: {scenario.clutter_rate:.2f} / frame")
        print(f"IoU gate: {params.min_iou:.2f}")
        print(f"Confirm hits / max misses: {params.confirm_hits} / {params.max_misses}")
        print("=" * 60)

    # Run tracker
    runner = HeadlessRunner(scenario, params)
    result = runner.run()

    if not args.quiet:
        print("\n--- RESULTS ---")
        print(f"Detections: {result.n_detections:,}")
        print(f"Targets created: {result.n_targets_created:,}")
        print(f"Associations: {result.n_associations:,}")
        print(f"Targets closed: {result.n_targets_closed:,}")
        print(f"Open targets (mean/max): {result.mean_open_targets:.1f} / {result.max_open_targets}")
        print(f"Identity purity: {result.identity_purity:.3f}")
        print(f"Runtime: {result.runtime_s * 1000:.1f} ms")
        print("=" * 60)
    else:
        # Machine-readable output
        print(f"{result.identity_purity:.4f}")

    return 0


if __name__ == "__main__":
    sys.exit(main())

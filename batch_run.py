#!/usr/bin/env python3
"""
Batch Run Script - Tracking Parameter Sweep

Runs many headless tracking runs in parallel using multiprocessing.
Outputs results to CSV for analysis.

Usage:
    python batch_run.py                    # Run default sweep
    python batch_run.py --configs 100      # Run first 100 configurations
    python batch_run.py --quick            # IoU gate sweep
    python batch_run.py --output results.csv
"""

import argparse
import csv
import logging
import os
import sys
import time
from datetime import datetime
from multiprocessing import Pool, cpu_count
from typing import List, Optional

from tqdm import tqdm

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from mottrack.simulation.headless_runner import RunResult, run_single
from mottrack.simulation.scenario_generator import ParameterSpace, RunConfig, ScenarioGenerator


def run_batch(
    configs: List[RunConfig],
    n_workers: Optional[int] = None,
    output_file: str = "output/batch_results.csv",
) -> List[RunResult]:
    """
    Run batch of tracking runs in parallel.

    Args:
        configs: (scenario, tracker params) pairs
        n_workers: Number of parallel workers (default: CPU count - 1)
        output_file: Output CSV file path

    Returns:
        List of run results
    """
    if n_workers is None:
        n_workers = max(1, cpu_count() - 1)

    print("=" * 60)
    print("mottrack Batch Processor")
    print("=" * 60)
    print(f"Configurations: {len(configs)}")
    print(f"Workers: {n_workers}")
    print(f"Output: {output_file}")
    print("=" * 60)

    start_time = time.perf_counter()

    # Create output directory
    output_dir = os.path.dirname(output_file)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    results = []
    with Pool(n_workers) as pool:
        iterator = pool.imap_unordered(run_single, configs)
        for result in tqdm(iterator, total=len(configs), desc="Tracking"):
            results.append(result)

    total_time = time.perf_counter() - start_time

    _save_results_csv(results, output_file)
    _print_summary(results, total_time)

    return results


def _save_results_csv(results: List[RunResult], filepath: str) -> None:
    """Save results to CSV file."""
    if not results:
        return

    fieldnames = list(results[0].to_dict().keys())

    with open(filepath, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        for result in results:
            writer.writerow(result.to_dict())

    print(f"\nResults saved to: {filepath}")


def _print_summary(results: List[RunResult], total_time: float) -> None:
    """Print batch run summary."""
    if not results:
        print("No results to summarize")
        return

    total_frames = sum(r.n_frames for r in results)
    total_created = sum(r.n_targets_created for r in results)
    avg_purity = sum(r.identity_purity for r in results) / len(results)

    print("\n" + "=" * 60)
    print("BATCH COMPLETE")
    print("=" * 60)
    print(f"Total runs: {len(results)}")
    print(f"Total frames: {total_frames:,}")
    print(f"Targets created: {total_created:,}")
    print(f"Average identity purity: {avg_purity:.3f}")
    print(f"Total time: {total_time:.2f}s")
    print(f"Frames/second: {total_frames / total_time:.1f}")
    print("=" * 60)


def main():
    parser = argparse.ArgumentParser(description="Run tracking parameter sweeps")
    parser.add_argument(
        "--configs", type=int, default=None, help="Number of configurations (default: all)"
    )
    parser.add_argument(
        "--runs", type=int, default=5, help="Seeded runs per configuration (default: 5)"
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of parallel workers (default: CPU count - 1)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output CSV file (default: output/batch_YYYYMMDD_HHMMSS.csv)",
    )
    parser.add_argument("--quick", action="store_true", help="Run quick IoU gate sweep")

    args = parser.parse_args()

    logging.basicConfig(level=logging.ERROR)

    if args.output is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        args.output = f"output/batch_{timestamp}.csv"

    if args.quick:
        print("Running quick IoU gate sweep...")
        configs = ScenarioGenerator.quick_sweep(n_runs=args.runs)
    else:
        space = ParameterSpace(n_runs_per_config=args.runs)
        configs = ScenarioGenerator.generate(space)

    if args.configs and len(configs) > args.configs:
        configs = configs[: args.configs]

    run_batch(configs=configs, n_workers=args.workers, output_file=args.output)

    return 0


if __name__ == "__main__":
    sys.exit(main())

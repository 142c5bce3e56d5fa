#!/usr/bin/env python3
"""
Run a grasper-geometry sweep from a configuration file.

Usage:
    python scripts/run_grasper_sweep.py sweep.yaml
"""

import argparse
import sys
from pathlib import Path

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from feedcube.config import load_config
from feedcube.sweep import run_sweep, get_sweep_summary
from feedcube.io import create_run_folder, save_results


def main():
    parser = argparse.ArgumentParser(description="Run a grasper-geometry sweep.")
    parser.add_argument("config", type=Path, help="Path to YAML configuration file.")
    parser.add_argument(
        "--output-dir",
        "-o",
        type=Path,
        default=None,
        help="Override output directory from config.",
    )
    parser.add_argument(
        "--quiet", "-q", action="store_true", help="Suppress progress output."
    )

    args = parser.parse_args()

    # Load configuration
    if not args.quiet:
        print(f"Loading config: {args.config}")
    config = load_config(args.config)

    # Override output directory if specified
    if args.output_dir is not None:
        config.run.out_dir = str(args.output_dir)

    total_points = config.sweep.n_angle * config.sweep.n_thresh

    def report(current, total):
        print(f"  point {current}/{total}", end="\r", flush=True)

    if not args.quiet:
        print(
            f"Sweep: {config.sweep.n_angle} angles x {config.sweep.n_thresh} thresholds "
            f"= {total_points} points"
        )
        print(f"Simulation: T={config.sweep.horizon}, force={config.sweep.force}")

    result = run_sweep(config, progress_callback=None if args.quiet else report)

    # Create run folder and save results
    run_path = create_run_folder(config, result.timestamp)
    save_results(result, run_path)

    if not args.quiet:
        print()
        print(f"Results saved to: {run_path}")

        summary = get_sweep_summary(result)
        print(f"Feeding points: {summary['feeding_points']}/{summary['total_points']}")
        print(f"Failed points: {summary['failed_points']}")
        print(f"Max intake rate: {summary['intake_rate_max']:.4g}")
        if summary["best_geometry"] is not None:
            best = summary["best_geometry"]
            print(f"Best geometry: angle={best['angle']:.4f}, threshold={best['threshold']:.4f}")
        print(f"Elapsed: {summary['elapsed_seconds']:.1f}s")


if __name__ == "__main__":
    main()

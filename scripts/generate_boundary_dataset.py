"""
Generate Boundary Mapping Dataset.

This script generates synthetic multi-lap boundary runs: a robot follows a
closed polygonal boundary several times while its odometry slowly drifts
(distance scale error, heading drift and white noise). The resulting
dataset is the input of the boundary mapping pipeline.

Key Learning Objectives:
    - See how heading drift rotates and stretches successive laps
    - Provide repeatable inputs for loop closure detection and calibration
    - Compare estimated maps against a known boundary polygon

Files written:
    - odometry_path.txt: Odometry positions x, y (m), the mapping input
    - ground_truth_path.txt: True positions x, y (m)
    - boundary_polygon.txt: Vertices of the true boundary
    - config.json: Generation parameters
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Dict, Optional

import numpy as np

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from boundary_mapping.sim import GARDEN_POLYGON, BoundaryPath, generate_boundary_path


PRESETS: Dict[str, Dict] = {
    "baseline": {
        "description": "Garden boundary, 3 laps, moderate drift",
        "n_laps": 3.0,
        "scale_error": 0.01,
        "heading_drift": 0.001,
        "distance_noise_std": 0.0,
        "heading_noise_std": 0.0,
        "output_dir": "data/sim/boundary_garden",
    },
    "high_drift": {
        "description": "Garden boundary, 3 laps, strong heading drift",
        "n_laps": 3.0,
        "scale_error": 0.02,
        "heading_drift": 0.004,
        "distance_noise_std": 0.0,
        "heading_noise_std": 0.0,
        "output_dir": "data/sim/boundary_garden_high_drift",
    },
    "noisy": {
        "description": "Garden boundary, 4 laps, drift plus per-step noise",
        "n_laps": 4.0,
        "scale_error": 0.01,
        "heading_drift": 0.001,
        "distance_noise_std": 0.002,
        "heading_noise_std": 0.002,
        "output_dir": "data/sim/boundary_garden_noisy",
    },
}


def save_dataset(output_dir: Path, run: BoundaryPath, config: Dict) -> None:
    """Save a boundary run to disk."""
    output_dir.mkdir(parents=True, exist_ok=True)

    np.savetxt(
        output_dir / "odometry_path.txt",
        run.odometry,
        fmt="%.6f",
        header="x (m), y (m) - odometry with cumulative drift",
    )
    np.savetxt(
        output_dir / "ground_truth_path.txt",
        run.truth,
        fmt="%.6f",
        header="x (m), y (m)",
    )
    np.savetxt(
        output_dir / "boundary_polygon.txt",
        run.polygon,
        fmt="%.6f",
        header="x (m), y (m) - open vertex list, counter-clockwise",
    )

    with open(output_dir / "config.json", "w") as f:
        json.dump(config, f, indent=2)

    drift_error = np.linalg.norm(run.odometry[-1] - run.truth[-1])

    print(f"\n  Saved dataset to: {output_dir}")
    print(f"    Files: 4 files (odometry, truth, polygon, config)")
    print(f"    Samples: {len(run.truth)}")
    print(f"    Circumference: {run.circumference:.3f}m")
    print(f"    Final drift: {drift_error:.2f}m")


def generate_dataset(
    output_dir: Optional[str] = None,
    preset: Optional[str] = None,
    n_laps: float = 3.0,
    step: float = 0.05,
    scale_error: float = 0.01,
    heading_drift: float = 0.001,
    distance_noise_std: float = 0.0,
    heading_noise_std: float = 0.0,
    seed: int = 42,
) -> BoundaryPath:
    """
    Generate a boundary mapping dataset.

    Args:
        output_dir: Output directory path; a preset supplies one when omitted.
        preset: Preset configuration name (overrides the noise parameters).
        n_laps: Number of laps.
        step: Distance between recorded positions (m).
        scale_error: Odometry distance scale error.
        heading_drift: Odometry heading drift (rad/m).
        distance_noise_std: Per-step distance noise std (m).
        heading_noise_std: Per-step heading noise std (rad).
        seed: Random seed.

    Returns:
        The generated run.
    """
    if preset is not None:
        if preset not in PRESETS:
            raise ValueError(f"Unknown preset '{preset}'. Choose from {list(PRESETS)}")
        params = PRESETS[preset]
        n_laps = params["n_laps"]
        scale_error = params["scale_error"]
        heading_drift = params["heading_drift"]
        distance_noise_std = params["distance_noise_std"]
        heading_noise_std = params["heading_noise_std"]
        if output_dir is None:
            output_dir = params["output_dir"]
    if output_dir is None:
        output_dir = PRESETS["baseline"]["output_dir"]

    print("\n" + "=" * 70)
    print(f"Generating Boundary Mapping Dataset: {Path(output_dir).name}")
    print("=" * 70)

    print("\nStep 1: Simulating boundary run...")
    run = generate_boundary_path(
        polygon=GARDEN_POLYGON,
        n_laps=n_laps,
        step=step,
        scale_error=scale_error,
        heading_drift=heading_drift,
        distance_noise_std=distance_noise_std,
        heading_noise_std=heading_noise_std,
        seed=seed,
    )
    print(f"  Laps: {n_laps}")
    print(f"  Step: {step}m")
    print(f"  Scale error: {scale_error * 100:.1f}%")
    print(f"  Heading drift: {heading_drift:.4f}rad/m")

    config = {
        "dataset": "boundary_mapping",
        "preset": preset,
        "boundary": {
            "polygon": GARDEN_POLYGON.tolist(),
            "circumference_m": run.circumference,
        },
        "path": {
            "n_laps": n_laps,
            "step_m": step,
            "n_samples": int(len(run.truth)),
        },
        "odometry": {
            "scale_error": scale_error,
            "heading_drift_rad_per_m": heading_drift,
            "distance_noise_std_m": distance_noise_std,
            "heading_noise_std_rad": heading_noise_std,
        },
        "seed": seed,
    }

    print("\nStep 2: Saving dataset...")
    save_dataset(Path(output_dir), run, config)

    print("\n" + "=" * 70)
    print("Dataset generation complete!")
    print("=" * 70)
    return run


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Generate Boundary Mapping Dataset",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Presets:
  baseline      Garden boundary, 3 laps, moderate drift
  high_drift    Garden boundary, 3 laps, strong heading drift
  noisy         Garden boundary, 4 laps, drift plus per-step noise

Examples:
  # Generate baseline dataset
  python scripts/generate_boundary_dataset.py --preset baseline

  # Generate with custom parameters
  python scripts/generate_boundary_dataset.py \\
      --output data/sim/my_boundary \\
      --n-laps 5 \\
      --heading-drift 0.002
        """,
    )

    parser.add_argument(
        "--preset",
        type=str,
        choices=list(PRESETS),
        help="Use preset configuration (overrides noise parameters)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output directory (default: preset directory or data/sim/boundary_garden)",
    )

    path_group = parser.add_argument_group("Path Parameters")
    path_group.add_argument(
        "--n-laps", type=float, default=3.0, help="Number of laps (default: 3)"
    )
    path_group.add_argument(
        "--step", type=float, default=0.05, help="Sample spacing in meters (default: 0.05)"
    )

    noise_group = parser.add_argument_group("Odometry Parameters")
    noise_group.add_argument(
        "--scale-error", type=float, default=0.01, help="Distance scale error (default: 0.01)"
    )
    noise_group.add_argument(
        "--heading-drift", type=float, default=0.001, help="Heading drift in rad/m (default: 0.001)"
    )
    noise_group.add_argument(
        "--distance-noise", type=float, default=0.0, help="Per-step distance noise std (m) (default: 0)"
    )
    noise_group.add_argument(
        "--heading-noise", type=float, default=0.0, help="Per-step heading noise std (rad) (default: 0)"
    )

    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")

    args = parser.parse_args()

    generate_dataset(
        output_dir=args.output,
        preset=args.preset,
        n_laps=args.n_laps,
        step=args.step,
        scale_error=args.scale_error,
        heading_drift=args.heading_drift,
        distance_noise_std=args.distance_noise,
        heading_noise_std=args.heading_noise,
        seed=args.seed,
    )


if __name__ == "__main__":
    main()

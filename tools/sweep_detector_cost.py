"""Sweep the loop-closure detector cost over a parameter grid.

Evaluates the detector self-consistency cost for every combination of
neighbourhood length l_nh and dissimilarity threshold c_max on one recorded
path. The grid shows where the calibration optimum lies and how flat the
cost surface is around it.

Usage:
    python tools/sweep_detector_cost.py data/sim/boundary_garden

    python tools/sweep_detector_cost.py data/sim/boundary_garden \
        --l-nh 5 15 11 --c-max 0.001 0.1 25 --workers 4 \
        --output results/detector_sweep
"""

import argparse
import json
import sys
from pathlib import Path

import numpy as np
from tqdm import tqdm

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from boundary_mapping.calibration import PRESETS, get_preset, sweep_detector_cost
from boundary_mapping.calibration.calibrator import INFEASIBLE_COST
from boundary_mapping.slam import DETECTION_MODES, build_model_polyline, simplify_path


def run_sweep(
    dataset_path: Path,
    l_nh_range: tuple,
    c_max_range: tuple,
    preset: str = "small_boundary",
    mode: str = "correlation",
    n_workers: int = 1,
) -> dict:
    """Compute the detector cost grid of one dataset.

    Args:
        dataset_path: Dataset directory containing odometry_path.txt.
        l_nh_range: (start, stop, count) of the neighbourhood lengths.
        c_max_range: (start, stop, count) of the dissimilarity thresholds.
        preset: Hyperparameter preset for the remaining parameters.
        mode: Detection mode.
        n_workers: Worker processes per grid row.

    Returns:
        Dictionary with 'l_nh', 'c_max' and 'costs' arrays.
    """
    path = np.loadtxt(dataset_path / "odometry_path.txt")
    hyperparameters = get_preset(preset)
    dominant_points = simplify_path(
        path,
        max_deviation=hyperparameters.max_deviation,
        min_segment_length=hyperparameters.min_segment_length,
    )
    model = None
    if mode == "icp":
        model = build_model_polyline(
            dominant_points.points, hyperparameters.model_step_size
        )

    l_nhs = np.linspace(l_nh_range[0], l_nh_range[1], int(l_nh_range[2]))
    c_maxs = np.linspace(c_max_range[0], c_max_range[1], int(c_max_range[2]))

    rows = []
    for l_nh in tqdm(l_nhs, desc="Sweeping l_nh", unit="row"):
        rows.append(
            sweep_detector_cost(
                dominant_points.points,
                [l_nh],
                c_maxs,
                hyperparameters=hyperparameters,
                mode=mode,
                model=model,
                n_workers=n_workers,
            )[0]
        )

    return {"l_nh": l_nhs, "c_max": c_maxs, "costs": np.array(rows)}


def save_sweep(sweep: dict, output_dir: Path, config: dict) -> None:
    """Write the cost grid and the sweep settings."""
    output_dir.mkdir(parents=True, exist_ok=True)
    np.savetxt(
        output_dir / "detector_costs.txt",
        sweep["costs"],
        fmt="%.6f",
        header="rows: l_nh, columns: c_max",
    )
    np.savetxt(output_dir / "l_nh.txt", sweep["l_nh"], fmt="%.6f", header="l_nh (m)")
    np.savetxt(output_dir / "c_max.txt", sweep["c_max"], fmt="%.6f", header="c_max")
    with open(output_dir / "config.json", "w") as f:
        json.dump(config, f, indent=2)


def main():
    parser = argparse.ArgumentParser(
        description="Sweep the loop-closure detector cost over (l_nh, c_max)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("dataset", type=str, help="Dataset directory")
    parser.add_argument(
        "--l-nh", type=float, nargs=3, default=[5.0, 15.0, 11],
        metavar=("START", "STOP", "COUNT"),
        help="Neighbourhood lengths (default: 5 15 11)",
    )
    parser.add_argument(
        "--c-max", type=float, nargs=3, default=[0.001, 0.1, 25],
        metavar=("START", "STOP", "COUNT"),
        help="Dissimilarity thresholds (default: 0.001 0.1 25)",
    )
    parser.add_argument(
        "--preset", type=str, default="small_boundary", choices=list(PRESETS),
        help="Hyperparameter preset (default: small_boundary)",
    )
    parser.add_argument(
        "--mode", type=str, default="correlation", choices=DETECTION_MODES,
        help="Detection mode (default: correlation)",
    )
    parser.add_argument(
        "--workers", type=int, default=1, help="Worker processes (default: 1)"
    )
    parser.add_argument(
        "--output", type=str, default=None,
        help="Output directory (default: print the optimum only)",
    )

    args = parser.parse_args()

    dataset_path = Path(args.dataset)
    if not dataset_path.exists():
        print(f"Error: Dataset not found at '{dataset_path}'")
        sys.exit(1)

    sweep = run_sweep(
        dataset_path,
        tuple(args.l_nh),
        tuple(args.c_max),
        preset=args.preset,
        mode=args.mode,
        n_workers=args.workers,
    )

    costs = sweep["costs"]
    feasible = np.count_nonzero(costs < INFEASIBLE_COST)
    row, col = np.unravel_index(np.argmin(costs), costs.shape)
    print(f"\nFeasible cells: {feasible}/{costs.size}")
    print(f"Best cost: {costs[row, col]:.4f} "
          f"at l_nh = {sweep['l_nh'][row]:.3f}, c_max = {sweep['c_max'][col]:.4f}")

    if args.output:
        config = {
            "dataset": str(dataset_path),
            "preset": args.preset,
            "mode": args.mode,
            "l_nh": list(args.l_nh),
            "c_max": list(args.c_max),
        }
        save_sweep(sweep, Path(args.output), config)
        print(f"Saved sweep to: {args.output}")


if __name__ == "__main__":
    main()

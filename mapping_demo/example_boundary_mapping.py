"""Complete Boundary Mapping Example.

This example demonstrates the full boundary mapping pipeline:
    1. Simulate a multi-lap boundary run with drifting odometry
       (or load a recorded path)
    2. Simplify the path into dominant points
    3. Detect loop closures between laps
    4. Estimate the boundary circumference from the closure arc lengths
    5. Optimize the pose graph
    6. Evaluate the resulting map polygon

Can run with:
    - Inline simulation (default): python -m mapping_demo.example_boundary_mapping
    - Pre-generated dataset: python -m mapping_demo.example_boundary_mapping --data boundary_garden
    - ICP detection: python -m mapping_demo.example_boundary_mapping --detection icp --measurement icp
    - Calibration: python -m mapping_demo.example_boundary_mapping --calibrate-detector --solver-calibration gamma
"""

import argparse
import json
from pathlib import Path
from typing import Dict, Optional

import numpy as np

from boundary_mapping.calibration import PRESETS, SOLVER_LEVELS, get_preset
from boundary_mapping.eval import (
    boundary_distances,
    circumference_error,
    error_summary,
    node_position_errors,
    polygon_area,
)
from boundary_mapping.sim import generate_boundary_path, polygon_perimeter
from boundary_mapping.slam import DETECTION_MODES, MEASUREMENT_MODES, NOISE_MODELS
from boundary_mapping.slam.mapping import generate_map


# Detector search domains scaled to short boundaries
SMALL_DETECTOR_DOMAINS = {
    "neighborhood_length": (5.0, 15.0, "uniform"),
    "max_dissimilarity": (0.001, 0.1, "uniform"),
    "cycle_angle": (np.pi / 2, np.pi, "uniform"),
}


def load_boundary_dataset(data_dir: str) -> Dict:
    """Load a dataset written by scripts/generate_boundary_dataset.py.

    Args:
        data_dir: Path to dataset directory (e.g., 'data/sim/boundary_garden')

    Returns:
        Dictionary with odometry path, ground truth, polygon and config
    """
    path = Path(data_dir)
    data = {
        "odometry": np.loadtxt(path / "odometry_path.txt"),
        "truth": None,
        "polygon": None,
        "config": {},
    }
    if (path / "ground_truth_path.txt").exists():
        data["truth"] = np.loadtxt(path / "ground_truth_path.txt")
    if (path / "boundary_polygon.txt").exists():
        data["polygon"] = np.loadtxt(path / "boundary_polygon.txt")
    if (path / "config.json").exists():
        with open(path / "config.json") as f:
            data["config"] = json.load(f)
    return data


def run_mapping(
    odometry: np.ndarray,
    truth: Optional[np.ndarray],
    polygon: Optional[np.ndarray],
    preset: str,
    detection_mode: str,
    measurement_mode: str,
    noise_model: str,
    calibrate_detector: bool,
    solver_calibration: str,
    budget: int,
    seed: int,
) -> None:
    """Run the mapping pipeline on one path and print the results."""
    hyperparameters = get_preset(preset)
    detector_domains = SMALL_DETECTOR_DOMAINS if preset == "small_boundary" else None

    print(f"Path Info:")
    print(f"  Samples: {len(odometry)}")
    path_length = float(np.sum(np.linalg.norm(np.diff(odometry, axis=0), axis=1)))
    print(f"  Length: {path_length:.2f} m")
    if truth is not None:
        final_drift = np.linalg.norm(odometry[-1] - truth[-1])
        print(f"  Final drift (without SLAM): {final_drift:.3f} m")

    print("\n" + "-" * 70)
    print("Configuration:")
    print(f"  Preset: {preset}")
    print(f"  Detection mode: {detection_mode}")
    print(f"  Measurement mode: {measurement_mode}")
    print(f"  Noise model: {noise_model}")
    print(f"  Detector calibration: {'on' if calibrate_detector else 'off'}")
    print(f"  Solver calibration: {solver_calibration}")

    print("\n" + "-" * 70)
    print("Running mapping pipeline...")
    result = generate_map(
        odometry,
        hyperparameters,
        detection_mode=detection_mode,
        measurement_mode=measurement_mode,
        noise_model=noise_model,
        calibrate_detector=calibrate_detector,
        solver_calibration=solver_calibration,
        detector_domains=detector_domains,
        budget=budget,
        seed=seed,
    )

    closures = result.loop_closures
    print(f"  Dominant points: {len(result.dominant_points)}")
    print(f"  Loop closures: {len(closures)}")
    for (i, j), arc in list(zip(closures.pairs, closures.arc_lengths))[:5]:
        print(f"    {i} <-> {j}: arc length {arc:.2f} m")
    if len(closures) > 5:
        print(f"    ... ({len(closures) - 5} more)")

    estimate = result.pose_graph.circumference
    if estimate.is_sufficient:
        print(f"  Circumference estimate: {estimate.circumference:.3f} m "
              f"({estimate.n_components} mixture components)")
    else:
        print("  Circumference estimate: insufficient loop closures")

    print(f"  Solver iterations: {result.pose_graph.iterations}")
    print(f"  Converged: {result.pose_graph.converged}")

    if calibrate_detector or solver_calibration != "none":
        print("\n" + "-" * 70)
        print("Calibrated hyperparameters:")
        hp = result.hyperparameters
        print(f"  l_nh = {hp.neighborhood_length:.3f}, c_max = {hp.max_dissimilarity:.4f}, "
              f"phi_cycle = {hp.cycle_angle:.3f}")
        print(f"  gamma1 = {hp.gamma1:.4g}, gamma2 = {hp.gamma2:.4g}, "
              f"icp_divisor = {hp.icp_divisor:.3f}")

    print("\n" + "-" * 70)
    print("Results:")
    map_polygon = result.map_polygon
    print(f"  Map vertices: {len(map_polygon)}")
    print(f"  Map perimeter: {polygon_perimeter(map_polygon[:-1]):.3f} m")
    print(f"  Map area: {polygon_area(map_polygon):.2f} m^2")

    if truth is not None:
        indices = result.dominant_points.indices
        raw_errors = node_position_errors(
            np.column_stack([odometry[indices[:-1]], np.zeros(len(indices) - 1)]),
            truth,
            indices,
        )
        opt_errors = node_position_errors(result.poses, truth, indices)
        raw_stats = error_summary(raw_errors)
        opt_stats = error_summary(opt_errors)
        print(f"  Odometry node RMSE: {raw_stats['rmse']:.4f} m")
        print(f"  Optimized node RMSE: {opt_stats['rmse']:.4f} m")

    if polygon is not None:
        true_circumference = polygon_perimeter(polygon)
        print(f"  True circumference: {true_circumference:.3f} m")
        print(f"  Circumference error: "
              f"{circumference_error(result.circumference, true_circumference) * 100:.2f}%")
        distances = boundary_distances(map_polygon, polygon)
        print(f"  Map-to-boundary distance: mean {np.mean(distances):.3f} m, "
              f"max {np.max(distances):.3f} m")

    print()
    print("=" * 70)
    print("BOUNDARY MAPPING COMPLETE!")
    print("=" * 70)


def main():
    """Main entry point with CLI argument parsing."""
    parser = argparse.ArgumentParser(
        description="Boundary Mapping Example",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with inline simulated data (default)
  python -m mapping_demo.example_boundary_mapping

  # Run with pre-generated dataset
  python -m mapping_demo.example_boundary_mapping --data boundary_garden

  # ICP-based detection and measurements
  python -m mapping_demo.example_boundary_mapping --detection icp --measurement icp

  # Calibrate detector and loop-closure noise
  python -m mapping_demo.example_boundary_mapping --calibrate-detector --solver-calibration gamma
        """,
    )
    parser.add_argument(
        "--data", type=str, default=None,
        help="Dataset name or path (e.g., 'boundary_garden' or full path)",
    )
    parser.add_argument(
        "--preset", type=str, default="small_boundary", choices=list(PRESETS),
        help="Hyperparameter preset (default: small_boundary)",
    )
    parser.add_argument(
        "--detection", type=str, default="correlation", choices=DETECTION_MODES,
        help="Loop closure detection mode (default: correlation)",
    )
    parser.add_argument(
        "--measurement", type=str, default="zero", choices=MEASUREMENT_MODES,
        help="Loop closure measurement mode (default: zero)",
    )
    parser.add_argument(
        "--noise-model", type=str, default="direct", choices=NOISE_MODELS,
        help="Odometry noise model (default: direct)",
    )
    parser.add_argument(
        "--calibrate-detector", action="store_true",
        help="Calibrate loop closure detector parameters",
    )
    parser.add_argument(
        "--solver-calibration", type=str, default="none", choices=SOLVER_LEVELS,
        help="Solver calibration level (default: none)",
    )
    parser.add_argument(
        "--budget", type=int, default=30,
        help="Evaluations per calibration (default: 30)",
    )
    parser.add_argument(
        "--n-laps", type=float, default=3.0,
        help="Laps of the inline simulation (default: 3)",
    )
    parser.add_argument("--seed", type=int, default=0, help="Random seed (default: 0)")

    args = parser.parse_args()

    print("=" * 70)
    print("BOUNDARY MAPPING EXAMPLE")

    if args.data:
        data_path = Path(args.data)
        if not data_path.exists():
            data_path = Path("data/sim") / args.data
        if not data_path.exists():
            print("=" * 70)
            print(f"Error: Dataset not found at '{args.data}' or 'data/sim/{args.data}'")
            print("\nAvailable datasets:")
            sim_dir = Path("data/sim")
            if sim_dir.exists():
                for d in sorted(sim_dir.iterdir()):
                    if d.is_dir() and d.name.startswith("boundary"):
                        print(f"  - {d.name}")
            return
        print(f"Using dataset: {data_path}")
        print("=" * 70)
        print()
        data = load_boundary_dataset(str(data_path))
        odometry, truth, polygon = data["odometry"], data["truth"], data["polygon"]
    else:
        print("Using inline simulated garden boundary")
        print("=" * 70)
        print()
        run = generate_boundary_path(n_laps=args.n_laps, seed=args.seed)
        odometry, truth, polygon = run.odometry, run.truth, run.polygon

    run_mapping(
        odometry,
        truth,
        polygon,
        preset=args.preset,
        detection_mode=args.detection,
        measurement_mode=args.measurement,
        noise_model=args.noise_model,
        calibrate_detector=args.calibrate_detector,
        solver_calibration=args.solver_calibration,
        budget=args.budget,
        seed=args.seed,
    )


if __name__ == "__main__":
    main()

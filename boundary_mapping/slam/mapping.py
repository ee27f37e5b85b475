"""One complete boundary mapping run.

Pipeline:
    1. simplify the raw path into dominant points
    2. generate odometry measurements between them
    3. densify the model polyline (ICP strategies)
    4. detect loop closures (optionally calibrating the detector)
    5. build and solve the pose graph (optionally calibrating the solver)
    6. extract the map polygon from the optimized poses
"""

from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

from ..calibration.calibrator import calibrate_detector as _calibrate_detector
from ..calibration.calibrator import Domain, calibrate_solver
from ..calibration.config import HyperparameterSet
from .circumference import estimate_circumference
from .loop_closure import LoopClosureDetector
from .measurements import (
    build_model_polyline,
    generate_measurements,
    initial_pose,
)
from .pose_graph import optimize_pose_graph
from .simplification import simplify_path
from .types import DominantPoints, LoopClosureSet, PoseGraphResult


@dataclass
class MappingResult:
    """
    Artifacts of one mapping run.

    Attributes:
        dominant_points: Simplified path.
        measurements: Odometry measurements between nodes, shape (N, 3).
        loop_closures: Detected loop closures.
        pose_graph: Optimized pose graph with circumference estimate.
        map_polygon: Boundary map, shape (P, 2).
        hyperparameters: Hyperparameters used (updated by calibration).
    """

    dominant_points: DominantPoints
    measurements: np.ndarray
    loop_closures: LoopClosureSet
    pose_graph: PoseGraphResult
    map_polygon: np.ndarray
    hyperparameters: HyperparameterSet

    @property
    def poses(self) -> np.ndarray:
        return self.pose_graph.poses

    @property
    def circumference(self) -> Optional[float]:
        return self.pose_graph.circumference.circumference


def map_polygon(
    poses: np.ndarray,
    closures: LoopClosureSet,
    circumference: Optional[float] = None,
) -> np.ndarray:
    """
    Boundary polygon from optimized poses.

    The nodes between the endpoints of one loop closure cover one lap; the
    polygon is closed by repeating its first vertex. The closure whose arc
    length is closest to ``circumference`` is used, or the shortest one when
    no circumference is known. Without loop closures the open trajectory is
    returned.

    Args:
        poses: Optimized node poses, shape (N + 1, 3).
        closures: Loop closures of the run.
        circumference: Estimated lap length (m), if sufficient.

    Returns:
        Polygon vertices, shape (P, 2).
    """
    positions = np.asarray(poses)[:, :2]
    if len(closures) == 0:
        return positions.copy()

    if circumference is None:
        k = int(np.argmin(closures.arc_lengths))
    else:
        k = int(np.argmin(np.abs(closures.arc_lengths - circumference)))
    i, j = closures.pairs[k]
    lap = positions[i:j]
    return np.vstack([lap, lap[:1]])


def generate_map(
    path: np.ndarray,
    hyperparameters: Optional[HyperparameterSet] = None,
    detection_mode: str = "correlation",
    measurement_mode: str = "zero",
    noise_model: str = "direct",
    calibrate_detector: bool = False,
    solver_calibration: str = "none",
    detector_domains: Optional[Dict[str, Domain]] = None,
    budget: int = 30,
    seed: int = 0,
) -> MappingResult:
    """
    Generate a boundary map from a raw odometry path.

    Args:
        path: Raw positions, shape (N, 2).
        hyperparameters: Parameters of the run; defaults to HyperparameterSet().
        detection_mode: Loop-closure detection, "correlation" or "icp".
        measurement_mode: Loop-closure measurements, "zero" or "icp".
        noise_model: Odometry noise model, "direct" or "trigonometric".
        calibrate_detector: Tune l_nh, c_max and φ_cycle before detection.
        solver_calibration: "none", "gamma", "gamma_icp" or "all".
        detector_domains: Search domains of the detector calibration;
            defaults to the calibrator's DETECTOR_DOMAINS.
        budget: Evaluation budget of each calibration.
        seed: Calibration seed.

    Returns:
        MappingResult including the (possibly updated) hyperparameters.

    Raises:
        ValueError: If the path is invalid, simplification leaves fewer
            than 3 dominant points, or a mode is unknown.

    Example:
        >>> path = generate_boundary_path(n_laps=3, seed=0).odometry
        >>> result = generate_map(path, get_preset("small_boundary"))
        >>> print(result.circumference)
    """
    if hyperparameters is None:
        hyperparameters = HyperparameterSet()

    dominant_points = simplify_path(
        path,
        max_deviation=hyperparameters.max_deviation,
        min_segment_length=hyperparameters.min_segment_length,
    )
    dp = dominant_points.points
    measurements = generate_measurements(dp)
    x0 = initial_pose(dp)

    model = None
    if detection_mode == "icp" or measurement_mode == "icp":
        model = build_model_polyline(dp, hyperparameters.model_step_size)

    if calibrate_detector:
        hyperparameters = _calibrate_detector(
            dp,
            hyperparameters,
            mode=detection_mode,
            model=model,
            domains=detector_domains,
            budget=budget,
            seed=seed,
        ).hyperparameters

    detector = LoopClosureDetector.from_hyperparameters(
        hyperparameters, mode=detection_mode
    )
    closures = detector.detect(dp, model)
    circumference = estimate_circumference(closures.arc_lengths)

    if solver_calibration != "none":
        hyperparameters = calibrate_solver(
            measurements,
            closures,
            hyperparameters,
            circumference,
            level=solver_calibration,
            measurement_mode=measurement_mode,
            noise_model=noise_model,
            model=model,
            x0=x0,
            budget=budget,
            seed=seed,
        ).hyperparameters

    result = optimize_pose_graph(
        measurements,
        closures,
        hyperparameters,
        measurement_mode=measurement_mode,
        noise_model=noise_model,
        model=model,
        x0=x0,
        circumference=circumference,
    )

    return MappingResult(
        dominant_points=dominant_points,
        measurements=measurements,
        loop_closures=closures,
        pose_graph=result,
        map_polygon=map_polygon(
            result.poses, closures, result.circumference.circumference
        ),
        hyperparameters=hyperparameters,
    )

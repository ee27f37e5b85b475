"""Pose-graph SLAM building blocks for closed-boundary trajectories.

Main components:
    - simplify_path: Douglas-Peucker dominant points
    - generate_measurements, integrate_measurements: relative poses <-> poses
    - LoopClosureDetector: heading-profile or ICP loop-closure detection
    - estimate_circumference: mixture clustering of loop-closure separations
    - optimize_pose_graph: Gauss-Newton pose graph optimization
    - se2_compose, se2_relative, se2_apply: SE(2) operations

The end-to-end pipeline lives in ``boundary_mapping.slam.mapping``
(``generate_map``); it is not imported here because it depends on the
calibration package, which in turn depends on this one.

Example usage:
    >>> from boundary_mapping.slam import simplify_path, generate_measurements
    >>> dp = simplify_path(path, max_deviation=0.01, min_segment_length=0.2)
    >>> xi = generate_measurements(dp.points)

Author: Navigation Engineer
Date: 2026
"""

from .circumference import estimate_circumference, fit_mixture
from .loop_closure import (
    DETECTION_MODES,
    LoopClosureDetector,
    PathProfile,
    heading_profiles,
    icp_window_points,
    loop_closure_measurements,
    path_profile,
)
from .measurements import (
    build_model_polyline,
    generate_measurements,
    initial_pose,
    integrate_measurements,
    measurements_from_poses,
    segment_headings,
)
from .pose_graph import (
    CONVERGENCE_TOLERANCE,
    INFORMATION_FLOOR,
    JACOBIAN_STEP,
    MAX_ITERATIONS,
    MEASUREMENT_MODES,
    NOISE_MODELS,
    PoseGraphSolver,
    SolverDivergenceWarning,
    build_incidence_matrix,
    build_pose_graph,
    edge_error,
    edge_jacobians,
    loop_closure_information,
    odometry_information,
    optimize_pose_graph,
    traversed_lengths,
)
from .scan_matching import (
    align_svd,
    icp_point_to_point,
    mean_point_distance,
    nearest_neighbors,
)
from .se2 import rotation_matrix, se2_apply, se2_compose, se2_inverse, se2_relative
from .simplification import simplify_path, validate_path
from .types import (
    CircumferenceEstimate,
    DominantPoints,
    LoopClosureSet,
    ModelPolyline,
    PoseGraph,
    PoseGraphResult,
)

__all__ = [
    # Core types
    "DominantPoints",
    "ModelPolyline",
    "LoopClosureSet",
    "PoseGraph",
    "PoseGraphResult",
    "CircumferenceEstimate",
    # SE(2) operations
    "rotation_matrix",
    "se2_compose",
    "se2_inverse",
    "se2_relative",
    "se2_apply",
    # Simplification and measurements
    "validate_path",
    "simplify_path",
    "segment_headings",
    "generate_measurements",
    "integrate_measurements",
    "measurements_from_poses",
    "initial_pose",
    "build_model_polyline",
    # ICP
    "nearest_neighbors",
    "mean_point_distance",
    "align_svd",
    "icp_point_to_point",
    # Loop closure
    "DETECTION_MODES",
    "PathProfile",
    "path_profile",
    "heading_profiles",
    "LoopClosureDetector",
    "icp_window_points",
    "loop_closure_measurements",
    # Circumference
    "fit_mixture",
    "estimate_circumference",
    # Pose graph
    "JACOBIAN_STEP",
    "INFORMATION_FLOOR",
    "CONVERGENCE_TOLERANCE",
    "MAX_ITERATIONS",
    "MEASUREMENT_MODES",
    "NOISE_MODELS",
    "SolverDivergenceWarning",
    "build_incidence_matrix",
    "edge_error",
    "edge_jacobians",
    "odometry_information",
    "loop_closure_information",
    "build_pose_graph",
    "PoseGraphSolver",
    "optimize_pose_graph",
    "traversed_lengths",
]

"""Pose graph construction and optimization.

The graph has one node per dominant point (except the last) and two kinds
of edges:

    - odometry edges k -> k+1 carrying the generated measurements, weighted
      by an odometry noise model driven by beta1..beta4;
    - loop-closure edges i -> j carrying either a zero measurement ("same
      place, same heading") or an ICP measurement, weighted by
      gamma1/gamma2 and the detector score.

Edges are stored as columns of an incidence matrix A (-1 at the source
node, +1 at the target node). The graph is solved by Gauss-Newton with the
first node anchored.

Author: Navigation Engineer
Date: 2026
"""

from typing import Optional, Sequence, Tuple

import numpy as np

from ..estimators.factor_graph import Factor, FactorGraph, SolverDivergenceWarning
from ..utils.angles import wrap_angle, wrap_angle_array
from .circumference import estimate_circumference
from .loop_closure import loop_closure_measurements
from .measurements import integrate_measurements
from .se2 import se2_relative
from .types import (
    CircumferenceEstimate,
    LoopClosureSet,
    ModelPolyline,
    PoseGraph,
    PoseGraphResult,
)


# Forward-difference step of the numerical edge Jacobians
JACOBIAN_STEP = 1e-9

# Lower bound on variances and loop-closure scores before inversion
INFORMATION_FLOOR = 1e-6

# Gauss-Newton stops when ||Δx|| falls below this value
CONVERGENCE_TOLERANCE = 1e-3

# Gauss-Newton iteration cap
MAX_ITERATIONS = 100

MEASUREMENT_MODES = ("zero", "icp")
NOISE_MODELS = ("direct", "trigonometric")

__all__ = [
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


def build_incidence_matrix(n_edges: int, closures: LoopClosureSet) -> np.ndarray:
    """
    Incidence matrix of odometry chain plus loop closures.

    Args:
        n_edges: Number N of odometry edges (nodes are 0..N).
        closures: Loop closures over the N + 1 nodes.

    Returns:
        Integer matrix A of shape (N + 1, N + K). Columns 0..N-1 are the
        odometry edges k -> k+1, followed by one column per loop closure
        in row-major (i, then j) order.

    Raises:
        ValueError: If the loop-closure adjacency is not (N + 1) x (N + 1).

    Examples:
        >>> A = build_incidence_matrix(2, LoopClosureSet(n_nodes=3))
        >>> A
        array([[-1,  0],
               [ 1, -1],
               [ 0,  1]])
    """
    n_nodes = n_edges + 1
    if closures.n_nodes != n_nodes:
        raise ValueError(
            f"Loop-closure adjacency must be {n_nodes}x{n_nodes} for "
            f"{n_edges} odometry edges, got {closures.n_nodes}x{closures.n_nodes}"
        )

    A = np.zeros((n_nodes, n_edges + len(closures)), dtype=int)
    k = np.arange(n_edges)
    A[k, k] = -1
    A[k + 1, k] = 1

    columns = n_edges + np.arange(len(closures))
    A[closures.pairs[:, 0], columns] = -1
    A[closures.pairs[:, 1], columns] = 1
    return A


def edge_error(z: np.ndarray, xi: np.ndarray, xj: np.ndarray) -> np.ndarray:
    """
    Error of edge i -> j: e = z - [R(θ_i)ᵀ(t_j - t_i), θ_j - θ_i].

    The rotational component is wrapped to (-π, π].
    """
    e = np.asarray(z, dtype=np.float64) - se2_relative(xi, xj)
    e[2] = wrap_angle(e[2])
    return e


def edge_jacobians(
    z: np.ndarray,
    xi: np.ndarray,
    xj: np.ndarray,
    step: float = JACOBIAN_STEP,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Forward-difference Jacobians of :func:`edge_error`.

    The error does not depend on the absolute position, so both poses are
    shifted to put x_i at the origin before differencing.

    Returns:
        Tuple (A, B) with A = ∂e/∂x_i and B = ∂e/∂x_j, both (3, 3).
    """
    xi = np.array(xi, dtype=np.float64)
    xj = np.array(xj, dtype=np.float64)
    xj[:2] -= xi[:2]
    xi[:2] = 0.0
    e = edge_error(z, xi, xj)

    A = np.zeros((3, 3))
    B = np.zeros((3, 3))
    for k in range(3):
        xi_step = xi.copy()
        xi_step[k] += step
        xj_step = xj.copy()
        xj_step[k] += step
        A[:, k] = (edge_error(z, xi_step, xj) - e) / step
        B[:, k] = (edge_error(z, xi, xj_step) - e) / step
    return A, B


def _direct_variances(xi: np.ndarray, beta: np.ndarray) -> np.ndarray:
    dx, dy, dtheta = np.abs(xi[:, 0]), np.abs(xi[:, 1]), np.abs(xi[:, 2])
    return np.stack(
        [
            beta[0] * dx + beta[1] * dtheta,
            beta[0] * dy + beta[1] * dtheta,
            beta[2] * dtheta + beta[3] * (dx + dy),
        ],
        axis=1,
    )


def _trigonometric_variances(xi: np.ndarray, alpha: np.ndarray) -> np.ndarray:
    # rot1 / trans / rot2 odometry motion model
    rot1 = np.arctan2(xi[:, 1], xi[:, 0])
    trans = np.hypot(xi[:, 0], xi[:, 1])
    rot2 = wrap_angle_array(xi[:, 2] - rot1)

    var_rot1 = alpha[0] * rot1**2 + alpha[1] * trans**2
    var_trans = alpha[2] * trans**2 + alpha[3] * (rot1**2 + rot2**2)
    var_rot2 = alpha[0] * rot2**2 + alpha[1] * trans**2

    c2 = np.cos(rot1) ** 2
    s2 = np.sin(rot1) ** 2
    return np.stack(
        [
            c2 * var_trans + trans**2 * s2 * var_rot1,
            s2 * var_trans + trans**2 * c2 * var_rot1,
            var_rot1 + var_rot2,
        ],
        axis=1,
    )


def odometry_information(
    measurements: np.ndarray,
    beta: Sequence[float],
    noise_model: str = "direct",
) -> np.ndarray:
    """
    Diagonal information matrices of the odometry edges.

    Two noise models are available:

    - "direct": per-axis variances, Ω = diag(1/σ_x, 1/σ_y, 1/σ_θ) with
          σ_x = β1|dx| + β2|dθ|
          σ_y = β1|dy| + β2|dθ|
          σ_θ = β3|dθ| + β4(|dx| + |dy|)
    - "trigonometric": the rot1/trans/rot2 odometry motion model with
      coefficients α1..α4 = β1..β4, propagated into the node frame.

    Every diagonal entry is floored at ``INFORMATION_FLOOR`` before
    inversion, so straight or zero-length edges never produce infinite
    precision.

    Args:
        measurements: Odometry measurements, shape (N, 3).
        beta: Four noise coefficients.
        noise_model: "direct" or "trigonometric".

    Returns:
        Information matrices, shape (N, 3, 3).

    Raises:
        ValueError: If the noise model is unknown or beta has the wrong length.
    """
    xi = np.asarray(measurements, dtype=np.float64).reshape(-1, 3)
    beta = np.asarray(beta, dtype=np.float64)
    if beta.shape != (4,):
        raise ValueError(f"beta must have 4 coefficients, got {beta.shape}")

    if noise_model == "direct":
        variances = _direct_variances(xi, beta)
    elif noise_model == "trigonometric":
        variances = _trigonometric_variances(xi, beta)
    else:
        raise ValueError(
            f"Unknown noise model '{noise_model}'. Choose from {NOISE_MODELS}"
        )

    variances = np.maximum(variances, INFORMATION_FLOOR)
    information = np.zeros((xi.shape[0], 3, 3))
    idx = np.arange(3)
    information[:, idx, idx] = 1.0 / variances
    return information


def loop_closure_information(
    scores: np.ndarray, gamma1: float, gamma2: float
) -> np.ndarray:
    """
    Information matrices of the loop-closure edges.

    Ω = diag(1/γ1, 1/γ1, 1/γ2) / score, with every score floored at
    ``INFORMATION_FLOOR`` so a perfect match does not divide by zero.

    Returns:
        Information matrices, shape (K, 3, 3).
    """
    scores = np.maximum(np.asarray(scores, dtype=np.float64).ravel(), INFORMATION_FLOOR)
    base = np.diag([1.0 / gamma1, 1.0 / gamma1, 1.0 / gamma2])
    return base[None, :, :] / scores[:, None, None]


def build_pose_graph(
    measurements: np.ndarray,
    closures: LoopClosureSet,
    hyperparameters,
    measurement_mode: str = "zero",
    noise_model: str = "direct",
    model: Optional[ModelPolyline] = None,
    x0: Optional[np.ndarray] = None,
) -> PoseGraph:
    """
    Assemble incidence matrix, edge measurements and information matrices.

    Args:
        measurements: Odometry measurements, shape (N, 3).
        closures: Loop closures over the N + 1 nodes.
        hyperparameters: HyperparameterSet providing beta, gamma and ICP radius.
        measurement_mode: "zero" or "icp".
        noise_model: Odometry noise model, "direct" or "trigonometric".
        model: Model polyline; required in "icp" mode.
        x0: Pose of the first node. Defaults to the origin.

    Raises:
        ValueError: If the mode is unknown or sizes do not match.
    """
    if measurement_mode not in MEASUREMENT_MODES:
        raise ValueError(
            f"Unknown measurement mode '{measurement_mode}'. "
            f"Choose from {MEASUREMENT_MODES}"
        )

    xi = np.asarray(measurements, dtype=np.float64)
    n_edges = xi.shape[0]
    incidence = build_incidence_matrix(n_edges, closures)

    if measurement_mode == "zero":
        lc_measurements = np.zeros((len(closures), 3))
    else:
        if model is None:
            raise ValueError("A model polyline is required in 'icp' mode")
        lc_measurements, _ = loop_closure_measurements(
            closures,
            model,
            hyperparameters.neighborhood_length,
            hyperparameters.icp_divisor,
        )

    information = np.concatenate(
        [
            odometry_information(xi, hyperparameters.beta, noise_model),
            loop_closure_information(
                closures.scores, hyperparameters.gamma1, hyperparameters.gamma2
            ),
        ]
    )

    return PoseGraph(
        incidence=incidence,
        measurements=np.vstack([xi, lc_measurements]),
        information=information,
        initial_poses=integrate_measurements(xi, x0),
        n_odometry=n_edges,
    )


def _wrap_pose(pose: np.ndarray) -> np.ndarray:
    pose[2] = wrap_angle(pose[2])
    return pose


class PoseGraphSolver:
    """Gauss-Newton solver for incidence-matrix pose graphs.

    The first node is anchored by adding identity to its Hessian block;
    headings are wrapped after every update.

    Attributes:
        max_iterations: Iteration cap.
        tolerance: Stopping threshold on the increment norm.
    """

    def __init__(
        self,
        max_iterations: int = MAX_ITERATIONS,
        tolerance: float = CONVERGENCE_TOLERANCE,
    ):
        self.max_iterations = max_iterations
        self.tolerance = tolerance

    def to_factor_graph(self, graph: PoseGraph) -> FactorGraph:
        """Translate every incidence column into a two-node factor."""
        factor_graph = FactorGraph(retraction=_wrap_pose)
        for node, pose in enumerate(graph.initial_poses):
            factor_graph.add_variable(node, pose)
        factor_graph.anchor(0)

        for k in range(graph.incidence.shape[1]):
            i, j = graph.edge_endpoints(k)
            z = graph.measurements[k]

            def residual_func(x_vars, z=z):
                return edge_error(z, x_vars[0], x_vars[1])

            def jacobian_func(x_vars, z=z):
                return list(edge_jacobians(z, x_vars[0], x_vars[1]))

            factor_graph.add_factor(
                Factor([i, j], residual_func, jacobian_func, graph.information[k])
            )
        return factor_graph

    def solve(self, graph: PoseGraph) -> Tuple[np.ndarray, list, bool]:
        """
        Optimize the node poses of a pose graph.

        Returns:
            Tuple of (poses (N + 1, 3), increment norms, converged flag).
        """
        factor_graph = self.to_factor_graph(graph)
        variables, increment_norms, converged = factor_graph.optimize(
            max_iterations=self.max_iterations, tol=self.tolerance
        )
        poses = np.array([variables[node] for node in range(graph.n_nodes)])
        return poses, increment_norms, converged


def optimize_pose_graph(
    measurements: np.ndarray,
    closures: LoopClosureSet,
    hyperparameters,
    measurement_mode: str = "zero",
    noise_model: str = "direct",
    model: Optional[ModelPolyline] = None,
    x0: Optional[np.ndarray] = None,
    circumference: Optional[CircumferenceEstimate] = None,
    solver: Optional[PoseGraphSolver] = None,
) -> PoseGraphResult:
    """
    Build and solve the pose graph of one mapping run.

    Args:
        measurements: Odometry measurements, shape (N, 3).
        closures: Loop closures over the N + 1 nodes.
        hyperparameters: HyperparameterSet with beta, gamma and ICP radius.
        measurement_mode: Loop-closure measurement mode, "zero" or "icp".
        noise_model: Odometry noise model, "direct" or "trigonometric".
        model: Model polyline; required in "icp" mode.
        x0: Pose of the first node. Defaults to the origin.
        circumference: Precomputed circumference estimate. Computed from
            the loop-closure arc lengths when omitted.
        solver: Solver instance; defaults to PoseGraphSolver().

    Returns:
        PoseGraphResult with optimized poses, incidence matrix and
        circumference estimate.

    Examples:
        >>> result = optimize_pose_graph(xi, closures, HyperparameterSet())
        >>> result.poses.shape == (xi.shape[0] + 1, 3)
        True
    """
    graph = build_pose_graph(
        measurements,
        closures,
        hyperparameters,
        measurement_mode=measurement_mode,
        noise_model=noise_model,
        model=model,
        x0=x0,
    )
    if circumference is None:
        circumference = estimate_circumference(closures.arc_lengths)
    if solver is None:
        solver = PoseGraphSolver()

    poses, increment_norms, converged = solver.solve(graph)
    return PoseGraphResult(
        poses=poses,
        incidence=graph.incidence,
        circumference=circumference,
        iterations=len(increment_norms),
        converged=converged,
        increment_norms=increment_norms,
        graph=graph,
    )


def traversed_lengths(poses: np.ndarray, pairs: np.ndarray) -> np.ndarray:
    """
    Arc length travelled along the pose sequence between each node pair.

    Args:
        poses: Node poses, shape (N + 1, 3).
        pairs: Node pairs (i, j) with i < j, shape (K, 2).

    Returns:
        Path length from node i to node j for every pair, shape (K,).
    """
    steps = np.linalg.norm(np.diff(np.asarray(poses)[:, :2], axis=0), axis=1)
    cumulative = np.concatenate([[0.0], np.cumsum(steps)])
    pairs = np.asarray(pairs, dtype=int).reshape(-1, 2)
    return cumulative[pairs[:, 1]] - cumulative[pairs[:, 0]]

"""Relative-pose measurements between dominant points.

Each dominant point DP[k] (except the last) becomes a pose graph node whose
heading is the direction of the segment DP[k] -> DP[k+1]. Consecutive nodes
are linked by odometry measurements: the pose of node k+1 expressed in the
frame of node k.

Key functions:
    - segment_headings: Heading of every DP segment
    - generate_measurements: DPs -> relative measurements (M - 2 edges)
    - integrate_measurements: Measurements -> poses (forward integration)
    - measurements_from_poses: Poses -> measurements (inverse of the above)
    - build_model_polyline: Fixed-step densification for ICP windows
"""

from typing import Optional

import numpy as np

from ..utils.angles import wrap_angle_array
from .se2 import rotation_matrix
from .types import ModelPolyline


def segment_headings(points: np.ndarray) -> np.ndarray:
    """Heading of every segment points[k] -> points[k + 1], shape (M - 1,)."""
    deltas = np.diff(points, axis=0)
    return np.arctan2(deltas[:, 1], deltas[:, 0])


def generate_measurements(dominant_points: np.ndarray) -> np.ndarray:
    """
    Generate odometry measurements from dominant points.

    The heading of node k is θ_k = atan2 of segment DP[k] -> DP[k+1]. For
    k = 0..M-3 the measurement is

        xi_k = [R(θ_k)ᵀ (DP[k+1] - DP[k]),  wrap(θ_{k+1} - θ_k)]

    Args:
        dominant_points: Dominant points, shape (M, 2) with M >= 3.

    Returns:
        Relative-pose measurements, shape (M - 2, 3). The pose graph
        built from them has M - 1 nodes.

    Raises:
        ValueError: If fewer than 3 dominant points are given.

    Examples:
        >>> dp = np.array([[0, 0], [1, 0], [1, 1], [0, 1]])
        >>> np.allclose(generate_measurements(dp), [[1, 0, np.pi/2], [1, 0, np.pi/2]])
        True
    """
    dp = np.asarray(dominant_points, dtype=np.float64)
    if dp.ndim != 2 or dp.shape[1] != 2:
        raise ValueError(
            f"dominant_points must have shape (M, 2), got {dp.shape}"
        )
    if dp.shape[0] < 3:
        raise ValueError(
            f"Need at least 3 dominant points to build measurements, "
            f"got {dp.shape[0]}"
        )

    theta = segment_headings(dp)
    deltas = np.diff(dp, axis=0)[:-1]

    c = np.cos(theta[:-1])
    s = np.sin(theta[:-1])
    xi = np.empty((dp.shape[0] - 2, 3))
    # R(θ)ᵀ applied row-wise
    xi[:, 0] = c * deltas[:, 0] + s * deltas[:, 1]
    xi[:, 1] = -s * deltas[:, 0] + c * deltas[:, 1]
    xi[:, 2] = wrap_angle_array(np.diff(theta))
    return xi


def integrate_measurements(
    measurements: np.ndarray, x0: Optional[np.ndarray] = None
) -> np.ndarray:
    """
    Forward-integrate relative measurements into absolute poses.

    Args:
        measurements: Relative poses, shape (N, 3).
        x0: Starting pose [x, y, θ]. Defaults to the origin.

    Returns:
        Poses, shape (N + 1, 3), headings wrapped to (-π, π].
    """
    xi = np.asarray(measurements, dtype=np.float64)
    if xi.ndim != 2 or xi.shape[1] != 3:
        raise ValueError(f"measurements must have shape (N, 3), got {xi.shape}")

    X = np.zeros((xi.shape[0] + 1, 3))
    if x0 is not None:
        X[0] = x0
    X[0, 2] = wrap_angle_array(X[0, 2])

    for k in range(xi.shape[0]):
        X[k + 1, :2] = X[k, :2] + rotation_matrix(X[k, 2]) @ xi[k, :2]
        X[k + 1, 2] = wrap_angle_array(X[k, 2] + xi[k, 2])
    return X


def measurements_from_poses(poses: np.ndarray) -> np.ndarray:
    """
    Relative measurements between consecutive poses.

    Inverse of :func:`integrate_measurements` (up to the starting pose).

    Args:
        poses: Absolute poses, shape (N + 1, 3).

    Returns:
        Relative poses, shape (N, 3).
    """
    X = np.asarray(poses, dtype=np.float64)
    if X.ndim != 2 or X.shape[1] != 3:
        raise ValueError(f"poses must have shape (N, 3), got {X.shape}")

    deltas = np.diff(X[:, :2], axis=0)
    c = np.cos(X[:-1, 2])
    s = np.sin(X[:-1, 2])
    xi = np.empty((X.shape[0] - 1, 3))
    xi[:, 0] = c * deltas[:, 0] + s * deltas[:, 1]
    xi[:, 1] = -s * deltas[:, 0] + c * deltas[:, 1]
    xi[:, 2] = wrap_angle_array(np.diff(X[:, 2]))
    return xi


def initial_pose(dominant_points: np.ndarray) -> np.ndarray:
    """Pose of the first node: position DP[0], heading of the first segment."""
    dp = np.asarray(dominant_points, dtype=np.float64)
    theta0 = segment_headings(dp[:2])[0]
    return np.array([dp[0, 0], dp[0, 1], theta0])


def build_model_polyline(
    dominant_points: np.ndarray, step_size: float
) -> ModelPolyline:
    """
    Densify the dominant-point polyline at a fixed arc-length step.

    Every segment contributes points at multiples of ``step_size`` from its
    start plus its exact end point, so dominant points are always part of
    the polyline.

    Args:
        dominant_points: Dominant points, shape (M, 2).
        step_size: Sampling step in meters.

    Returns:
        ModelPolyline with one vertex index per dominant point.

    Raises:
        ValueError: If step_size is not positive.
    """
    if step_size <= 0:
        raise ValueError(f"step_size must be positive, got {step_size}")

    dp = np.asarray(dominant_points, dtype=np.float64)
    chunks = [dp[:1]]
    vertex_indices = [0]
    count = 1

    for start, end in zip(dp[:-1], dp[1:]):
        direction = end - start
        length = float(np.linalg.norm(direction))
        if length > 0:
            s = np.arange(step_size, length, step_size)
            inner = start + np.outer(s / length, direction)
        else:
            inner = np.empty((0, 2))
        chunk = np.vstack([inner, end[None, :]])
        chunks.append(chunk)
        count += chunk.shape[0]
        vertex_indices.append(count - 1)

    return ModelPolyline(
        points=np.vstack(chunks),
        vertex_indices=np.asarray(vertex_indices, dtype=int),
        step_size=float(step_size),
    )

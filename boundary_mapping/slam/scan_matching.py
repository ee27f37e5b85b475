"""Rigid alignment of model-polyline windows.

The ICP loop-closure strategy cuts two equally spaced windows out of the
model polyline, one around each node of a candidate pair, and aligns the
test window onto the model window with point-to-point ICP. The aligned
windows give both the pair's dissimilarity and, for accepted pairs, the
relative-pose measurement of the loop closure.

Windows are (N, 2) arrays centred on their node, so the identity is always
a reasonable starting pose.

Author: Navigation Engineer
Date: October 2026
"""

from typing import Tuple

import numpy as np
from scipy.spatial import KDTree

from .se2 import se2_apply, se2_compose


def _as_window(points: np.ndarray, name: str) -> np.ndarray:
    points = np.asarray(points, dtype=np.float64)
    if points.ndim != 2 or points.shape[1] != 2 or points.shape[0] == 0:
        raise ValueError(f"{name} must be a non-empty (N, 2) array, got {points.shape}")
    return points


def nearest_neighbors(
    source: np.ndarray, tree: KDTree, target: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """Closest target point of every source point and its distance."""
    distances, indices = tree.query(source, k=1)
    return target[indices], distances


def align_svd(source: np.ndarray, target: np.ndarray) -> np.ndarray:
    """
    Closed-form rigid transform mapping paired source points onto targets.

    Both sets are centred, the rotation comes from the SVD of their
    cross-covariance (reflections flipped back to rotations) and the
    translation aligns the centroids.

    Args:
        source: Source points, shape (N, 2).
        target: Paired target points, shape (N, 2).

    Returns:
        Pose [x, y, θ] with target ≈ R(θ) source + [x, y].

    Raises:
        ValueError: If the sets differ in shape or hold fewer than 2 pairs.
    """
    if source.shape != target.shape:
        raise ValueError(
            f"Paired point sets differ in shape: {source.shape} vs {target.shape}"
        )
    if source.shape[0] < 2:
        raise ValueError(f"Need at least 2 point pairs, got {source.shape[0]}")

    source_mean = source.mean(axis=0)
    target_mean = target.mean(axis=0)
    cross = (source - source_mean).T @ (target - target_mean)
    U, _, Vt = np.linalg.svd(cross)
    if np.linalg.det(Vt.T @ U.T) < 0:
        Vt[-1] *= -1
    R = Vt.T @ U.T

    t = target_mean - R @ source_mean
    return np.array([t[0], t[1], np.arctan2(R[1, 0], R[0, 0])])


def icp_point_to_point(
    source: np.ndarray,
    target: np.ndarray,
    max_iterations: int = 50,
    tolerance: float = 1e-6,
) -> Tuple[np.ndarray, int, float, bool]:
    """
    Align a test window onto a model window.

    Starting from the identity, nearest-neighbour pairing and SVD alignment
    alternate until the pose increment is below ``tolerance``.

    Args:
        source: Test window, shape (N, 2).
        target: Model window, shape (M, 2).
        max_iterations: Iteration cap.
        tolerance: Threshold on ||Δpose||.

    Returns:
        Tuple of (pose, iterations, rms_distance, converged). ``pose`` maps
        the test window onto the model window; ``rms_distance`` is the RMS
        nearest-neighbour distance after the last pairing.

    Example:
        >>> window = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0]])
        >>> pose, _, rms, _ = icp_point_to_point(window, window + [0.2, 0.1])
        >>> np.allclose(pose, [0.2, 0.1, 0.0])
        True
    """
    source = _as_window(source, "source")
    target = _as_window(target, "target")
    tree = KDTree(target)

    pose = np.zeros(3)
    rms = np.inf
    for iteration in range(1, max_iterations + 1):
        moved = se2_apply(pose, source)
        paired, distances = nearest_neighbors(moved, tree, target)
        rms = float(np.sqrt(np.mean(distances**2)))
        if moved.shape[0] < 2:
            return pose, iteration, rms, False

        delta = align_svd(moved, paired)
        pose = se2_compose(delta, pose)
        if np.linalg.norm(delta) < tolerance:
            return pose, iteration, rms, True

    return pose, max_iterations, rms, False


def mean_point_distance(source: np.ndarray, target: np.ndarray) -> float:
    """
    Mean distance between index-corresponding points of two windows.

    The k-th source point is always compared with the k-th target point, so
    a window shifted along a straight edge is still penalised, unlike the
    nearest-neighbour residual of ICP.
    """
    if source.shape != target.shape:
        raise ValueError(
            f"Windows differ in shape: {source.shape} vs {target.shape}"
        )
    if source.shape[0] == 0:
        return 0.0
    return float(np.mean(np.linalg.norm(source - target, axis=1)))

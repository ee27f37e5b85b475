"""
Map quality metrics against ground truth.

Used when a true boundary is known (simulation, surveyed boundaries):
node position errors of the optimized pose graph, distance of map vertices
to the true boundary, and circumference and area errors.
"""

from typing import Dict, Optional

import numpy as np

from ..slam.simplification import point_segment_distances


def error_summary(errors: np.ndarray) -> Dict[str, float]:
    """
    Summary statistics of 2D error vectors.

    Args:
        errors: Error vectors (N, 2) or distances (N,).

    Returns:
        Dictionary with 'mean', 'median', 'rmse', 'p95' and 'max' of the
        error magnitudes in meters.
    """
    errors = np.asarray(errors, dtype=float)
    magnitudes = np.linalg.norm(errors, axis=1) if errors.ndim > 1 else np.abs(errors)
    return {
        "mean": float(magnitudes.mean()),
        "median": float(np.median(magnitudes)),
        "rmse": float(np.sqrt(np.mean(magnitudes**2))),
        "p95": float(np.percentile(magnitudes, 95)),
        "max": float(magnitudes.max()),
    }


def node_position_errors(
    poses: np.ndarray, truth: np.ndarray, indices: np.ndarray
) -> np.ndarray:
    """
    Errors of pose graph nodes against the true path.

    Node k corresponds to raw-path sample ``indices[k]`` (the dominant
    point it was built from).

    Args:
        poses: Node poses, shape (N + 1, 3).
        truth: True raw path, shape (T, 2).
        indices: Raw-path index of every dominant point, shape (N + 2,).

    Returns:
        Error vectors, shape (N + 1, 2).
    """
    poses = np.asarray(poses)
    indices = np.asarray(indices)[: poses.shape[0]]
    if indices.shape[0] != poses.shape[0]:
        raise ValueError(
            f"Need one raw-path index per node, got {indices.shape[0]} for "
            f"{poses.shape[0]} nodes"
        )
    return poses[:, :2] - np.asarray(truth)[indices]


def boundary_distances(points: np.ndarray, polygon: np.ndarray) -> np.ndarray:
    """
    Distance of every point to a closed boundary polygon.

    Args:
        points: Query points, shape (K, 2).
        polygon: Open vertex list of the boundary, shape (V, 2).

    Returns:
        Distance to the nearest boundary edge, shape (K,).
    """
    points = np.asarray(points, dtype=float)
    polygon = np.asarray(polygon, dtype=float)
    closed = np.vstack([polygon, polygon[:1]])
    distances = np.stack(
        [
            point_segment_distances(points, start, end)
            for start, end in zip(closed[:-1], closed[1:])
        ],
        axis=1,
    )
    return distances.min(axis=1)


def polygon_area(polygon: np.ndarray) -> float:
    """Absolute area of a polygon (shoelace formula); closing vertex optional."""
    polygon = np.asarray(polygon, dtype=float)
    x, y = polygon[:, 0], polygon[:, 1]
    return float(0.5 * abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))))


def circumference_error(
    estimated: Optional[float], true_circumference: float
) -> float:
    """Relative circumference error; NaN when no estimate exists."""
    if estimated is None:
        return float("nan")
    return float(abs(estimated - true_circumference) / true_circumference)

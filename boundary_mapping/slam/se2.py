"""SE(2) operations for planar pose graphs (Special Euclidean Group in 2D).

This module implements the rigid-transformation helpers used by the
measurement generator, the pose graph edge error and the ICP aligner.

Key functions:
    - rotation_matrix: 2x2 rotation R(θ)
    - se2_compose: Compose two SE(2) poses (p1 ⊕ p2)
    - se2_inverse: Invert an SE(2) pose (p⁻¹)
    - se2_relative: Pose of p_to expressed in the frame of p_from
    - se2_apply: Transform points by an SE(2) pose

SE(2) representation: poses are NumPy arrays [x, y, θ] of shape (3,),
with θ kept in (-π, π].

Author: Navigation Engineer
Date: 2026
"""

import numpy as np

from ..utils.angles import wrap_angle


def rotation_matrix(theta: float) -> np.ndarray:
    """
    Build the 2D rotation matrix R(θ).

    Args:
        theta: Rotation angle in radians.

    Returns:
        Array [[cos θ, -sin θ], [sin θ, cos θ]] of shape (2, 2).
    """
    c = np.cos(theta)
    s = np.sin(theta)
    return np.array([[c, -s], [s, c]], dtype=np.float64)


def _as_pose(p: np.ndarray, name: str) -> np.ndarray:
    p = np.asarray(p, dtype=np.float64)
    if p.shape != (3,):
        raise ValueError(f"{name} must have shape (3,), got {p.shape}")
    return p


def se2_compose(p1: np.ndarray, p2: np.ndarray) -> np.ndarray:
    """
    Compose two SE(2) poses: p_result = p1 ⊕ p2.

    The composition formula for SE(2):
        x = x1 + x2*cos(θ1) - y2*sin(θ1)
        y = y1 + x2*sin(θ1) + y2*cos(θ1)
        θ = θ1 + θ2  (wrapped to (-π, π])

    Args:
        p1: First pose [x1, y1, θ1].
        p2: Second pose [x2, y2, θ2], expressed in the frame of p1.

    Returns:
        Composed pose as array [x, y, θ] of shape (3,).

    Raises:
        ValueError: If poses do not have shape (3,).

    Examples:
        >>> p1 = np.array([0, 0, np.pi/2])  # 90° rotation
        >>> p2 = np.array([1, 0, 0])  # 1m forward
        >>> np.allclose(se2_compose(p1, p2), [0, 1, np.pi/2])
        True
    """
    p1 = _as_pose(p1, "p1")
    p2 = _as_pose(p2, "p2")

    t = p1[:2] + rotation_matrix(p1[2]) @ p2[:2]
    return np.array([t[0], t[1], wrap_angle(p1[2] + p2[2])], dtype=np.float64)


def se2_inverse(p: np.ndarray) -> np.ndarray:
    """
    Compute the inverse of an SE(2) pose: p_inv = p⁻¹.

    The inverse formula for SE(2):
        x_inv = -(x*cos(θ) + y*sin(θ))
        y_inv = -(-x*sin(θ) + y*cos(θ))
        θ_inv = -θ  (wrapped to (-π, π])

    Args:
        p: Pose to invert, array [x, y, θ].

    Returns:
        Inverted pose as array [x, y, θ] of shape (3,).

    Raises:
        ValueError: If pose does not have shape (3,).
    """
    p = _as_pose(p, "p")

    t = -rotation_matrix(p[2]).T @ p[:2]
    return np.array([t[0], t[1], wrap_angle(-p[2])], dtype=np.float64)


def se2_relative(p_from: np.ndarray, p_to: np.ndarray) -> np.ndarray:
    """
    Compute relative pose between two global poses.

    Given two poses in the same global frame, compute the pose of p_to
    expressed in the frame of p_from:
        p_relative = p_from⁻¹ ⊕ p_to
                   = [R(θ_from)ᵀ (t_to - t_from), θ_to - θ_from]

    This is the predicted measurement of a pose graph edge.

    Args:
        p_from: Starting pose [x, y, θ].
        p_to: Target pose [x, y, θ].

    Returns:
        Relative pose as array [x, y, θ] of shape (3,).

    Examples:
        >>> p1 = np.array([0, 0, 0])
        >>> p2 = np.array([1, 1, np.pi/2])
        >>> np.allclose(se2_relative(p1, p2), [1, 1, np.pi/2])
        True
    """
    p_from = _as_pose(p_from, "p_from")
    p_to = _as_pose(p_to, "p_to")

    t = rotation_matrix(p_from[2]).T @ (p_to[:2] - p_from[:2])
    return np.array([t[0], t[1], wrap_angle(p_to[2] - p_from[2])], dtype=np.float64)


def se2_apply(p: np.ndarray, points: np.ndarray) -> np.ndarray:
    """
    Transform 2D points by an SE(2) pose.

    Applies points_transformed = R(θ) * points + [x, y].

    Args:
        p: Pose [x, y, θ] defining the transformation.
        points: Points to transform, array of shape (N, 2).

    Returns:
        Transformed points, array of shape (N, 2).

    Raises:
        ValueError: If points does not have shape (N, 2).
    """
    p = _as_pose(p, "p")

    points = np.asarray(points, dtype=np.float64)
    if points.ndim != 2 or points.shape[1] != 2:
        raise ValueError(
            f"points must have shape (N, 2), got {points.shape}"
        )

    return (rotation_matrix(p[2]) @ points.T).T + p[:2]

"""
Synthetic boundary trajectories with drifting odometry.

Generates a robot path that follows a closed polygonal boundary for several
laps, together with the odometry estimate of that path. The odometry
integrates the true step lengths and heading changes corrupted by a
distance scale error, a heading drift per meter and white noise, so the
estimated laps slowly rotate and stretch away from the truth.

Used by the examples, the dataset script and the tests; real runs feed
recorded odometry instead.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..utils.angles import wrap_angle_array


# Rectangular garden with a notch (counter-clockwise, meters, 48 m
# perimeter). Distinct edge lengths and the one right turn keep every corner
# distinguishable.
GARDEN_POLYGON = np.array(
    [
        [0.0, 0.0],
        [14.0, 0.0],
        [14.0, 6.0],
        [8.0, 6.0],
        [8.0, 10.0],
        [0.0, 10.0],
    ]
)


@dataclass
class BoundaryPath:
    """
    A simulated boundary run.

    Attributes:
        truth: True positions, shape (N, 2).
        odometry: Odometry-estimated positions, shape (N, 2).
        polygon: Boundary polygon (open, counter-clockwise), shape (V, 2).
        circumference: Perimeter of the polygon in meters.
    """

    truth: np.ndarray
    odometry: np.ndarray
    polygon: np.ndarray
    circumference: float


def polygon_perimeter(polygon: np.ndarray) -> float:
    """Perimeter of a closed polygon given by its open vertex list."""
    closed = np.vstack([polygon, polygon[:1]])
    return float(np.sum(np.linalg.norm(np.diff(closed, axis=0), axis=1)))


def sample_boundary(
    polygon: np.ndarray, n_laps: float, step: float
) -> np.ndarray:
    """
    Sample positions along a closed polygon at a fixed arc-length step.

    Args:
        polygon: Open vertex list, shape (V, 2).
        n_laps: Number of laps (may be fractional).
        step: Arc-length spacing in meters.

    Returns:
        Positions, shape (N, 2), starting at the first vertex.
    """
    closed = np.vstack([polygon, polygon[:1]])
    edge_lengths = np.linalg.norm(np.diff(closed, axis=0), axis=1)
    vertex_arc = np.concatenate([[0.0], np.cumsum(edge_lengths)])
    perimeter = vertex_arc[-1]

    s = np.arange(0.0, n_laps * perimeter + 0.5 * step, step)
    s_lap = np.mod(s, perimeter)
    x = np.interp(s_lap, vertex_arc, closed[:, 0])
    y = np.interp(s_lap, vertex_arc, closed[:, 1])
    return np.column_stack([x, y])


def simulate_odometry(
    truth: np.ndarray,
    scale_error: float = 0.01,
    heading_drift: float = 0.001,
    distance_noise_std: float = 0.0,
    heading_noise_std: float = 0.0,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    Dead-reckon a true path with systematic and random odometry errors.

    Args:
        truth: True positions, shape (N, 2).
        scale_error: Relative error of every step length.
        heading_drift: Heading error accumulated per meter travelled (rad/m).
        distance_noise_std: Std of the per-step length noise (m).
        heading_noise_std: Std of the per-step heading noise (rad).
        rng: Random generator; required only when noise is enabled.

    Returns:
        Estimated positions, shape (N, 2), starting at the true start.
    """
    if rng is None:
        rng = np.random.default_rng()

    steps = np.diff(truth, axis=0)
    lengths = np.linalg.norm(steps, axis=1)
    headings = np.arctan2(steps[:, 1], steps[:, 0])
    turns = np.concatenate([[headings[0]], wrap_angle_array(np.diff(headings))])

    n = lengths.shape[0]
    est_lengths = lengths * (1.0 + scale_error)
    est_turns = turns + heading_drift * lengths
    if distance_noise_std > 0:
        est_lengths = est_lengths + rng.normal(0.0, distance_noise_std, n)
    if heading_noise_std > 0:
        est_turns = est_turns + rng.normal(0.0, heading_noise_std, n)

    est_headings = np.cumsum(est_turns)
    est_steps = est_lengths[:, None] * np.column_stack(
        [np.cos(est_headings), np.sin(est_headings)]
    )
    return np.vstack([truth[:1], truth[0] + np.cumsum(est_steps, axis=0)])


def generate_boundary_path(
    polygon: Optional[np.ndarray] = None,
    n_laps: float = 3.0,
    step: float = 0.05,
    scale_error: float = 0.01,
    heading_drift: float = 0.001,
    distance_noise_std: float = 0.0,
    heading_noise_std: float = 0.0,
    seed: Optional[int] = None,
) -> BoundaryPath:
    """
    Simulate a multi-lap boundary run.

    Args:
        polygon: Boundary polygon; defaults to ``GARDEN_POLYGON``.
        n_laps: Number of laps.
        step: Distance between recorded positions (m).
        scale_error: Odometry distance scale error.
        heading_drift: Odometry heading drift (rad/m).
        distance_noise_std: Per-step distance noise std (m).
        heading_noise_std: Per-step heading noise std (rad).
        seed: Random seed for the noise.

    Returns:
        BoundaryPath with truth and odometry positions.

    Example:
        >>> run = generate_boundary_path(n_laps=3, seed=0)
        >>> run.odometry.shape == run.truth.shape
        True
    """
    if polygon is None:
        polygon = GARDEN_POLYGON
    polygon = np.asarray(polygon, dtype=float)
    if polygon.ndim != 2 or polygon.shape[1] != 2 or polygon.shape[0] < 3:
        raise ValueError(
            f"polygon must have shape (V, 2) with V >= 3, got {polygon.shape}"
        )
    if n_laps <= 0:
        raise ValueError(f"n_laps must be positive, got {n_laps}")
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")

    rng = np.random.default_rng(seed)
    truth = sample_boundary(polygon, n_laps, step)
    odometry = simulate_odometry(
        truth,
        scale_error=scale_error,
        heading_drift=heading_drift,
        distance_noise_std=distance_noise_std,
        heading_noise_std=heading_noise_std,
        rng=rng,
    )
    return BoundaryPath(
        truth=truth,
        odometry=odometry,
        polygon=polygon,
        circumference=polygon_perimeter(polygon),
    )

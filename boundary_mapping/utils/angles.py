"""
Angle wrapping and manipulation utilities.

Provides functions for keeping headings inside the half-open interval
(-π, π]. Every rotational component stored by the mapping pipeline
(relative measurements, node headings, edge errors) goes through these
helpers, so +π and -π always collapse onto the same representative (+π).

Critical for:
- Relative heading measurements between dominant points
- Edge errors in pose graph optimization
- Cumulative heading profiles used by the loop-closure detector

Author: Navigation Engineer
Date: 2026
"""

import numpy as np
from typing import Union


def wrap_angle(angle: float) -> float:
    """
    Wrap angle to the half-open range (-π, π].

    Unlike the atan2 trick, which keeps both -π and +π, this mapping is
    exact at the boundary: -π and +π are the same heading and both map
    to +π.

    Args:
        angle: Angle in radians (can be any value)

    Returns:
        Wrapped angle in range (-π, π]

    Example:
        >>> wrap_angle(3.5 * np.pi)  # 630° -> -90°
        -1.5707963267948966
        >>> wrap_angle(-np.pi)
        3.141592653589793
    """
    return float(wrap_angle_array(np.asarray(angle, dtype=float)))


def wrap_angle_array(angles: np.ndarray) -> np.ndarray:
    """
    Wrap array of angles to the half-open range (-π, π].

    Vectorized version of wrap_angle().

    Args:
        angles: Array of angles in radians

    Returns:
        Array of wrapped angles in range (-π, π]

    Example:
        >>> wrap_angle_array(np.array([0, np.pi, -np.pi, 3*np.pi]))
        array([0.        , 3.14159265, 3.14159265, 3.14159265])
    """
    angles = np.asarray(angles, dtype=float)
    wrapped = np.pi - np.mod(np.pi - angles, 2.0 * np.pi)
    # mod() rounding can land exactly on -π for inputs just below +π
    return np.where(wrapped <= -np.pi, wrapped + 2.0 * np.pi, wrapped)


def angle_diff(angle1: Union[float, np.ndarray],
               angle2: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
    """
    Compute the shortest angular difference between two angles.

    Returns angle1 - angle2, wrapped to (-π, π].

    Args:
        angle1: First angle in radians
        angle2: Second angle in radians

    Returns:
        Shortest signed difference angle1 - angle2 in (-π, π]

    Example:
        >>> angle_diff(np.pi - 0.1, -np.pi + 0.1)  # Nearly opposite
        -0.2
    """
    if isinstance(angle1, np.ndarray) or isinstance(angle2, np.ndarray):
        return wrap_angle_array(np.asarray(angle1) - np.asarray(angle2))
    else:
        return wrap_angle(angle1 - angle2)


def unwrap_increments(headings: np.ndarray) -> np.ndarray:
    """
    Accumulate a heading sequence into a continuous (unwrapped) profile.

    Each step contributes its wrapped increment, so a closed lap adds
    exactly ±2π to the profile instead of jumping at the ±π seam.

    Args:
        headings: Sequence of headings in radians, shape (N,)

    Returns:
        Cumulative heading relative to the first entry, shape (N,),
        starting at 0.
    """
    headings = np.asarray(headings, dtype=float)
    if headings.size == 0:
        return headings.copy()
    increments = wrap_angle_array(np.diff(headings))
    return np.concatenate([[0.0], np.cumsum(increments)])

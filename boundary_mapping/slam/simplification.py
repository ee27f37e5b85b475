"""Path simplification into dominant points.

A boundary run records thousands of nearly collinear positions. Before a
pose graph is built, the path is reduced to its dominant points (DPs):
Douglas-Peucker splitting keeps every vertex needed to stay within
``max_deviation`` of the raw path, then a merge pass removes vertices that
are closer than ``min_segment_length`` to their predecessor.
"""

import numpy as np

from .types import DominantPoints


def validate_path(path: np.ndarray) -> np.ndarray:
    """
    Check a raw path and return it as a float array.

    Args:
        path: Robot positions over time, shape (N, 2).

    Returns:
        The path as a float64 array of shape (N, 2).

    Raises:
        ValueError: If the path is not (N, 2), has fewer than 3 points or
            contains non-finite values.
    """
    path = np.asarray(path, dtype=np.float64)
    if path.ndim != 2 or path.shape[1] != 2:
        raise ValueError(f"path must have shape (N, 2), got {path.shape}")
    if path.shape[0] < 3:
        raise ValueError(
            f"path must contain at least 3 points, got {path.shape[0]}"
        )
    if not np.all(np.isfinite(path)):
        raise ValueError("path contains non-finite values")
    return path


def point_segment_distances(
    points: np.ndarray, start: np.ndarray, end: np.ndarray
) -> np.ndarray:
    """
    Distance of every point to the segment start-end.

    A degenerate segment (start == end, e.g. a closed lap) falls back to
    the point-to-point distance.

    Args:
        points: Query points, shape (K, 2).
        start: Segment start, shape (2,).
        end: Segment end, shape (2,).

    Returns:
        Distances, shape (K,).
    """
    direction = end - start
    length_sq = float(direction @ direction)
    if length_sq == 0.0:
        return np.linalg.norm(points - start, axis=1)

    t = np.clip((points - start) @ direction / length_sq, 0.0, 1.0)
    projection = start + t[:, None] * direction
    return np.linalg.norm(points - projection, axis=1)


def douglas_peucker(path: np.ndarray, max_deviation: float) -> np.ndarray:
    """
    Indices retained by Douglas-Peucker simplification.

    Every discarded point lies within ``max_deviation`` of the retained
    segment that spans it. Runs on an explicit stack so long paths do not
    hit the recursion limit.

    Args:
        path: Raw path, shape (N, 2).
        max_deviation: Maximum allowed deviation in meters.

    Returns:
        Sorted indices into ``path``, always including 0 and N - 1.
    """
    n = path.shape[0]
    keep = np.zeros(n, dtype=bool)
    keep[0] = keep[-1] = True

    stack = [(0, n - 1)]
    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue
        distances = point_segment_distances(
            path[first + 1:last], path[first], path[last]
        )
        k = int(np.argmax(distances))
        if distances[k] > max_deviation:
            split = first + 1 + k
            keep[split] = True
            stack.append((first, split))
            stack.append((split, last))

    return np.flatnonzero(keep)


def merge_short_segments(
    path: np.ndarray, indices: np.ndarray, min_segment_length: float
) -> np.ndarray:
    """
    Drop vertices closer than ``min_segment_length`` to their predecessor.

    The first and last vertices are always kept. Retained vertices too
    close to the path end are dropped instead of the end.
    """
    kept = [int(indices[0])]
    for index in indices[1:-1]:
        if np.linalg.norm(path[index] - path[kept[-1]]) >= min_segment_length:
            kept.append(int(index))

    last = int(indices[-1])
    while (
        len(kept) > 1
        and np.linalg.norm(path[last] - path[kept[-1]]) < min_segment_length
    ):
        kept.pop()
    kept.append(last)
    return np.asarray(kept, dtype=int)


def simplify_path(
    path: np.ndarray,
    max_deviation: float,
    min_segment_length: float,
) -> DominantPoints:
    """
    Reduce a raw path to its dominant points.

    Args:
        path: Raw path, shape (N, 2).
        max_deviation: Douglas-Peucker tolerance in meters (e_max).
        min_segment_length: Minimum distance between consecutive dominant
            points in meters (l_min).

    Returns:
        DominantPoints with back-references into ``path``.

    Raises:
        ValueError: If the path is invalid or a tolerance is negative.

    Examples:
        >>> path = np.array([[0, 0], [1, 0.0001], [2, 0], [2, 1]])
        >>> dp = simplify_path(path, max_deviation=0.01, min_segment_length=0.1)
        >>> dp.indices
        array([0, 2, 3])
    """
    path = validate_path(path)
    if max_deviation < 0:
        raise ValueError(f"max_deviation must be >= 0, got {max_deviation}")
    if min_segment_length < 0:
        raise ValueError(
            f"min_segment_length must be >= 0, got {min_segment_length}"
        )

    indices = douglas_peucker(path, max_deviation)
    indices = merge_short_segments(path, indices, min_segment_length)
    return DominantPoints(points=path[indices], indices=indices)

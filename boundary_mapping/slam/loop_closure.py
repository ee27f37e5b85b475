"""Loop closure detection on a simplified boundary path.

A robot following a closed boundary passes the same places once per lap.
Two pose graph nodes form a loop closure when the shape of the path around
them is nearly identical. Two strategies measure that dissimilarity:

    - "correlation": compare the cumulative heading profiles of both nodes,
      sampled over ±neighborhood_length of arc length;
    - "icp": compare the model-polyline windows around both nodes after
      rotating them onto each other and refining with ICP.

Both strategies share the same pair selection: local minima of each row of
the dissimilarity matrix that fall below ``max_dissimilarity``, filtered by
heading separation and arc-length separation.

Author: Navigation Engineer
Date: October 2026
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from scipy.signal import find_peaks
from scipy.spatial.distance import cdist

from ..utils.angles import unwrap_increments, wrap_angle
from .measurements import segment_headings
from .scan_matching import icp_point_to_point, mean_point_distance
from .se2 import rotation_matrix, se2_apply
from .types import LoopClosureSet, ModelPolyline


DETECTION_MODES = ("correlation", "icp")


@dataclass
class PathProfile:
    """
    Per-node geometry of the dominant-point path.

    Attributes:
        headings: Segment heading θ_k of every node, shape (n,).
        arc_length: Cumulative arc length ℓ_k at every node (ℓ_0 = 0).
        cumulative_heading: Unwrapped heading φ_k at every node (φ_0 = 0).
    """

    headings: np.ndarray
    arc_length: np.ndarray
    cumulative_heading: np.ndarray

    @property
    def n_nodes(self) -> int:
        return self.headings.shape[0]

    @property
    def total_length(self) -> float:
        return float(self.arc_length[-1])


def path_profile(dominant_points: np.ndarray) -> PathProfile:
    """
    Compute headings, arc length and unwrapped heading of every node.

    Nodes are the dominant points DP[0..M-2]; the last dominant point only
    terminates the last segment.

    Raises:
        ValueError: If fewer than 3 dominant points are given.
    """
    dp = np.asarray(dominant_points, dtype=np.float64)
    if dp.ndim != 2 or dp.shape[1] != 2 or dp.shape[0] < 3:
        raise ValueError(
            f"Need dominant points of shape (M, 2) with M >= 3, got {dp.shape}"
        )

    headings = segment_headings(dp)
    lengths = np.linalg.norm(np.diff(dp, axis=0), axis=1)
    arc_length = np.concatenate([[0.0], np.cumsum(lengths[:-1])])
    return PathProfile(
        headings=headings,
        arc_length=arc_length,
        cumulative_heading=unwrap_increments(headings),
    )


def heading_profiles(
    profile: PathProfile, neighborhood_length: float, n_samples: int
) -> np.ndarray:
    """
    Sample the heading profile around every node.

    Row i holds φ(ℓ_i + s) - φ_i for s in linspace(-l_nh, l_nh, m), using
    linear interpolation (clamped at the path ends).

    Returns:
        Profiles, shape (n_nodes, n_samples).
    """
    offsets = np.linspace(-neighborhood_length, neighborhood_length, n_samples)
    ell = profile.arc_length
    phi = profile.cumulative_heading
    samples = np.interp(ell[:, None] + offsets[None, :], ell, phi)
    return samples - phi[:, None]


class LoopClosureDetector:
    """Loop closure detector for closed-boundary trajectories.

    Attributes:
        neighborhood_length: Half-width l_nh of the compared neighbourhood
            in meters. Also the minimum distance to both path ends and half
            the minimum arc-length separation of a pair.
        max_dissimilarity: Acceptance threshold c_max; pairs must score
            strictly below it.
        cycle_angle: Heading-separation gate φ_cycle in radians.
        n_samples: Number m of profile samples (correlation mode).
        mode: "correlation" or "icp".

    Example:
        >>> detector = LoopClosureDetector(neighborhood_length=20.0)
        >>> closures = detector.detect(dominant_points)
        >>> print(f"Found {len(closures)} loop closures")
    """

    def __init__(
        self,
        neighborhood_length: float = 50.0,
        max_dissimilarity: float = 0.21,
        cycle_angle: float = 1.5,
        n_samples: int = 100,
        mode: str = "correlation",
        icp_max_iterations: int = 20,
        icp_tolerance: float = 1e-6,
    ):
        if mode not in DETECTION_MODES:
            raise ValueError(
                f"Unknown detection mode '{mode}'. Choose from {DETECTION_MODES}"
            )
        if neighborhood_length <= 0:
            raise ValueError(
                f"neighborhood_length must be positive, got {neighborhood_length}"
            )
        if n_samples < 2:
            raise ValueError(f"n_samples must be >= 2, got {n_samples}")

        self.neighborhood_length = float(neighborhood_length)
        self.max_dissimilarity = float(max_dissimilarity)
        self.cycle_angle = float(cycle_angle)
        self.n_samples = int(n_samples)
        self.mode = mode
        self.icp_max_iterations = icp_max_iterations
        self.icp_tolerance = icp_tolerance

    @classmethod
    def from_hyperparameters(cls, hyperparameters, mode: str = "correlation"):
        """Build a detector from a HyperparameterSet."""
        return cls(
            neighborhood_length=hyperparameters.neighborhood_length,
            max_dissimilarity=hyperparameters.max_dissimilarity,
            cycle_angle=hyperparameters.cycle_angle,
            n_samples=hyperparameters.n_samples,
            mode=mode,
        )

    def detect(
        self,
        dominant_points: np.ndarray,
        model: Optional[ModelPolyline] = None,
    ) -> LoopClosureSet:
        """
        Detect loop closures among the nodes of a dominant-point path.

        Args:
            dominant_points: Dominant points, shape (M, 2).
            model: Model polyline; required in "icp" mode.

        Returns:
            Accepted loop closures over the M - 1 nodes.
        """
        profile = path_profile(dominant_points)
        dissimilarity = self.dissimilarity_matrix(profile, model)
        row_ends = None
        if self.mode == "icp":
            row_ends = self._icp_row_ends(profile, model)
        return self.select_pairs(dissimilarity, profile, row_ends)

    def dissimilarity_matrix(
        self, profile: PathProfile, model: Optional[ModelPolyline] = None
    ) -> np.ndarray:
        """
        Pairwise dissimilarity of all nodes.

        Only the upper triangle (i <= j) is meaningful; the lower triangle
        is zero. In "icp" mode, pairs whose windows leave the polyline are
        left at zero and never searched.
        """
        if self.mode == "correlation":
            profiles = heading_profiles(
                profile, self.neighborhood_length, self.n_samples
            )
            corr = cdist(profiles, profiles, metric="sqeuclidean") / self.n_samples
            return np.triu(corr)

        if model is None:
            raise ValueError("A model polyline is required in 'icp' mode")
        return self._icp_dissimilarity(profile, model)

    def _window_radius(self, model: ModelPolyline) -> int:
        return int(round(self.neighborhood_length / model.step_size))

    def _icp_row_ends(
        self, profile: PathProfile, model: ModelPolyline
    ) -> np.ndarray:
        """Exclusive end column of every row whose windows fit the polyline."""
        radius = self._window_radius(model)
        vertices = model.vertex_indices[:profile.n_nodes]
        n_valid = int(np.count_nonzero(vertices < model.vertex_indices[-1] - radius))
        return np.maximum(np.arange(profile.n_nodes), n_valid)

    def _icp_dissimilarity(
        self, profile: PathProfile, model: ModelPolyline
    ) -> np.ndarray:
        n = profile.n_nodes
        radius = self._window_radius(model)
        vertices = model.vertex_indices
        last = vertices[-1]
        row_ends = self._icp_row_ends(profile, model)
        corr = np.zeros((n, n))

        for i in range(n):
            if not radius < vertices[i] < last - radius:
                continue
            j_end = row_ends[i]
            v_i = vertices[i]
            model_set = model.points[v_i - radius:v_i + radius + 1] - model.points[v_i]
            for j in range(i, j_end):
                v_j = vertices[j]
                test_set = model.points[v_j - radius:v_j + radius + 1] - model.points[v_j]
                dphi = profile.headings[i] - profile.headings[j]
                test_set = test_set @ rotation_matrix(dphi).T
                pose, _, _, _ = icp_point_to_point(
                    test_set,
                    model_set,
                    max_iterations=self.icp_max_iterations,
                    tolerance=self.icp_tolerance,
                )
                corr[i, j] = mean_point_distance(se2_apply(pose, test_set), model_set)
        return corr

    def select_pairs(
        self,
        dissimilarity: np.ndarray,
        profile: PathProfile,
        row_ends: Optional[np.ndarray] = None,
    ) -> LoopClosureSet:
        """
        Select loop-closing pairs from a dissimilarity matrix.

        For every candidate row i (l_nh < ℓ_i < ℓ_last - l_nh), local minima
        over columns j >= i below ``max_dissimilarity`` are accepted unless
        the heading separation is near a reversal or the pair is closer
        than 2·l_nh along the path.

        Args:
            dissimilarity: Pairwise dissimilarity, shape (n, n).
            profile: Node geometry of the same path.
            row_ends: Optional exclusive end column per row; columns past it
                were not evaluated and are not searched.
        """
        n = profile.n_nodes
        l_nh = self.neighborhood_length
        ell = profile.arc_length
        phi = profile.cumulative_heading
        l_max = profile.total_length - l_nh

        pairs, arc_lengths, heading_separations, scores = [], [], [], []
        for i in range(n):
            if not (l_nh < ell[i] < l_max):
                continue

            j_end = n if row_ends is None else int(row_ends[i])
            row = dissimilarity[i, i:j_end]
            locs, _ = find_peaks(-row)

            for loc in locs:
                score = row[loc]
                if not score < self.max_dissimilarity:
                    continue
                j = i + int(loc)
                arc = abs(ell[i] - ell[j])
                separation = abs(phi[i] - phi[j])
                if abs(np.pi - np.fmod(separation, 2.0 * np.pi)) <= self.cycle_angle:
                    continue
                if arc <= 2.0 * l_nh:
                    continue
                pairs.append((i, j))
                arc_lengths.append(arc)
                heading_separations.append(separation)
                scores.append(score)

        return LoopClosureSet.from_lists(
            n, pairs, arc_lengths, heading_separations, scores
        )


def icp_window_points(neighborhood_length: float, icp_divisor: float) -> int:
    """Points on each side of a vertex in an ICP measurement window."""
    return max(1, int(np.floor(neighborhood_length / icp_divisor)))


def loop_closure_measurements(
    closures: LoopClosureSet,
    model: ModelPolyline,
    neighborhood_length: float,
    icp_divisor: float,
    max_iterations: int = 50,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Relative-pose measurement of every loop closure from ICP.

    For pair (i, j), windows of floor(l_nh / icp_divisor) points on each
    side of both vertices are centred on their vertex, the test window
    (node j) is pre-rotated so that both forward tangents coincide, and ICP
    refines the alignment. The measurement is the pose of the aligned test
    vertex in the tangent frame of the model vertex. Windows are shrunk at
    the polyline bounds, always keeping at least one forward point for the
    tangent.

    Args:
        closures: Accepted loop closures.
        model: Model polyline of the dominant points.
        neighborhood_length: Loop-closure neighbourhood half-width l_nh (m).
        icp_divisor: Divisor of l_nh giving the window size in points.
        max_iterations: ICP iteration cap.

    Returns:
        Tuple of (measurements (K, 3), residuals (K,)).
    """
    radius = icp_window_points(neighborhood_length, icp_divisor)
    n_points = model.points.shape[0]
    vertices = model.vertex_indices

    measurements = np.zeros((len(closures), 3))
    residuals = np.zeros(len(closures))

    for k, (i, j) in enumerate(closures.pairs):
        v_i, v_j = vertices[i], vertices[j]
        back = min(radius, v_i, v_j)
        forward = max(1, min(radius, n_points - 1 - v_i, n_points - 1 - v_j))

        model_set = model.points[v_i - back:v_i + forward + 1] - model.points[v_i]
        test_set = model.points[v_j - back:v_j + forward + 1] - model.points[v_j]

        model_vec = model_set[back + 1] - model_set[back]
        model_phi = np.arctan2(model_vec[1], model_vec[0])
        test_vec = test_set[back + 1] - test_set[back]
        test_phi = np.arctan2(test_vec[1], test_vec[0])
        test_set = test_set @ rotation_matrix(model_phi - test_phi).T

        if test_set.shape[0] >= 3:
            pose, _, residual, _ = icp_point_to_point(
                test_set, model_set, max_iterations=max_iterations
            )
            test_set = se2_apply(pose, test_set)
        else:
            residual = mean_point_distance(test_set, model_set)

        test_vec = test_set[back + 1] - test_set[back]
        test_phi = np.arctan2(test_vec[1], test_vec[0])
        offset = rotation_matrix(model_phi).T @ (test_set[back] - model_set[back])

        measurements[k] = [offset[0], offset[1], wrap_angle(test_phi - model_phi)]
        residuals[k] = residual

    return measurements, residuals

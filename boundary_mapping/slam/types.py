"""Type definitions and data structures for boundary pose-graph mapping.

Key types:
    - DominantPoints: simplified path with back-references into the raw path
    - ModelPolyline: fixed-step densification of the dominant-point polyline
    - LoopClosureSet: accepted loop-closing node pairs with their separations
    - PoseGraph: incidence matrix, edge measurements and information matrices
    - PoseGraphResult: optimized poses and solver diagnostics
    - CircumferenceEstimate: clustered lap length (or an insufficient-data marker)
"""

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
from scipy import sparse


# Type aliases for clarity and documentation
RawPath = np.ndarray  # Shape (N, 2), robot positions over time (meters)
Measurements = np.ndarray  # Shape (N, 3), relative poses [dx, dy, dθ]
Poses = np.ndarray  # Shape (N + 1, 3), node poses [x, y, θ]


@dataclass
class DominantPoints:
    """
    Dominant points retained by path simplification.

    Attributes:
        points: Retained vertices, shape (M, 2) in meters.
        indices: Index of every retained vertex in the raw path, shape (M,).
    """

    points: np.ndarray
    indices: np.ndarray

    def __post_init__(self) -> None:
        """Validate that points and indices are parallel."""
        self.points = np.asarray(self.points, dtype=np.float64)
        self.indices = np.asarray(self.indices, dtype=int)
        if self.points.ndim != 2 or self.points.shape[1] != 2:
            raise ValueError(
                f"points must have shape (M, 2), got {self.points.shape}"
            )
        if self.indices.shape != (self.points.shape[0],):
            raise ValueError(
                f"indices must have shape ({self.points.shape[0]},), "
                f"got {self.indices.shape}"
            )

    def __len__(self) -> int:
        return self.points.shape[0]


@dataclass
class ModelPolyline:
    """
    Fixed-step densification of the dominant-point polyline.

    Used only by the ICP-based loop-closure strategy, which compares
    equally spaced point windows around two dominant points.

    Attributes:
        points: Densified polyline points, shape (P, 2).
        vertex_indices: Index into ``points`` of every dominant point, shape (M,).
        step_size: Sampling step along the polyline (meters).
    """

    points: np.ndarray
    vertex_indices: np.ndarray
    step_size: float


@dataclass
class LoopClosureSet:
    """
    Accepted loop closures between pose graph nodes.

    Pairs are stored in row-major order (by i, then j) with i < j; this is
    also the order of the loop-closure columns of the incidence matrix.

    Attributes:
        n_nodes: Number of pose graph nodes the pairs refer to.
        pairs: Node index pairs (i, j), shape (K, 2).
        arc_lengths: Arc length travelled between i and j (L), shape (K,).
        heading_separations: Absolute cumulative heading change between
            i and j (Phi), shape (K,).
        scores: Detector dissimilarity of each pair, shape (K,).
    """

    n_nodes: int
    pairs: np.ndarray = field(default_factory=lambda: np.zeros((0, 2), dtype=int))
    arc_lengths: np.ndarray = field(default_factory=lambda: np.zeros(0))
    heading_separations: np.ndarray = field(default_factory=lambda: np.zeros(0))
    scores: np.ndarray = field(default_factory=lambda: np.zeros(0))

    def __len__(self) -> int:
        return self.pairs.shape[0]

    @property
    def adjacency(self) -> sparse.csr_matrix:
        """Sparse boolean adjacency over node pairs (upper triangle only)."""
        k = len(self)
        return sparse.csr_matrix(
            (np.ones(k, dtype=bool), (self.pairs[:, 0], self.pairs[:, 1])),
            shape=(self.n_nodes, self.n_nodes),
        )

    @classmethod
    def from_lists(
        cls,
        n_nodes: int,
        pairs: List[tuple],
        arc_lengths: List[float],
        heading_separations: List[float],
        scores: List[float],
    ) -> "LoopClosureSet":
        """Build a set from the growable lists filled during pair search."""
        order = sorted(range(len(pairs)), key=lambda k: pairs[k])
        return cls(
            n_nodes=n_nodes,
            pairs=np.array([pairs[k] for k in order], dtype=int).reshape(-1, 2),
            arc_lengths=np.array([arc_lengths[k] for k in order], dtype=float),
            heading_separations=np.array(
                [heading_separations[k] for k in order], dtype=float
            ),
            scores=np.array([scores[k] for k in order], dtype=float),
        )


@dataclass
class PoseGraph:
    """
    Pose graph in incidence-matrix form.

    Attributes:
        incidence: Incidence matrix A, shape (N + 1, N + M). Column k has a
            -1 at its source node and a +1 at its target node.
        measurements: Edge measurements [dx, dy, dθ], shape (N + M, 3).
        information: Edge information matrices, shape (N + M, 3, 3).
        initial_poses: Odometry-integrated initial guess, shape (N + 1, 3).
        n_odometry: Number of sequential odometry edges N.
    """

    incidence: np.ndarray
    measurements: np.ndarray
    information: np.ndarray
    initial_poses: np.ndarray
    n_odometry: int

    @property
    def n_nodes(self) -> int:
        return self.incidence.shape[0]

    @property
    def n_loop_closures(self) -> int:
        return self.incidence.shape[1] - self.n_odometry

    def edge_endpoints(self, k: int) -> tuple:
        """Return the (source, target) node indices of edge k."""
        column = self.incidence[:, k]
        return int(np.argmin(column)), int(np.argmax(column))


@dataclass
class CircumferenceEstimate:
    """
    Lap length estimated by mixture clustering of loop-closure separations.

    Attributes:
        circumference: Smallest component mean (meters), or None when there
            were too few samples for a stable estimate.
        n_components: Number of mixture components of the accepted fit
            (0 when insufficient).
        means: Component means of the accepted fit.
        negative_log_likelihood: Total negative log-likelihood of the fit.
        n_samples: Number of loop-closure separations that were clustered.
    """

    circumference: Optional[float]
    n_components: int = 0
    means: np.ndarray = field(default_factory=lambda: np.zeros(0))
    negative_log_likelihood: float = float("inf")
    n_samples: int = 0

    @property
    def is_sufficient(self) -> bool:
        return self.circumference is not None


@dataclass
class PoseGraphResult:
    """
    Result container for pose graph optimization.

    Attributes:
        poses: Optimized node poses X, shape (N + 1, 3).
        incidence: Incidence matrix A of the solved graph.
        circumference: Circumference estimate for this graph.
        iterations: Number of Gauss-Newton iterations performed.
        converged: Whether the increment norm fell below tolerance.
        increment_norms: Norm of every pose increment, in order.
        graph: The solved pose graph.
    """

    poses: np.ndarray
    incidence: np.ndarray
    circumference: CircumferenceEstimate
    iterations: int
    converged: bool
    increment_norms: List[float]
    graph: PoseGraph

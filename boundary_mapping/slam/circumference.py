"""Circumference estimation by Gaussian-mixture clustering.

Every loop closure links two passes over the same place, so the arc length
between its nodes is a multiple of the lap length. Clustering these
separations with a 1D Gaussian mixture and taking the smallest component
mean gives an unsupervised estimate of the boundary circumference.

The number of components grows from one until adding a component improves
the total negative log-likelihood by less than ``MIN_IMPROVEMENT``.
"""

from typing import Optional, Tuple

import numpy as np
from sklearn.mixture import GaussianMixture

from .types import CircumferenceEstimate


# Mixture covariance regularization (variance added to the diagonal)
MIXTURE_REGULARIZATION = 0.1

# Minimum decrease of the negative log-likelihood to accept one more component
MIN_IMPROVEMENT = 1.0


def fit_mixture(
    samples: np.ndarray,
    n_components: int,
    regularization: float = MIXTURE_REGULARIZATION,
    random_state: int = 0,
) -> Tuple[np.ndarray, float]:
    """
    Fit a 1D Gaussian mixture.

    Args:
        samples: 1D samples, shape (K,).
        n_components: Number of mixture components (1 <= n_components <= K).
        regularization: Variance added to every component covariance.
        random_state: Seed for the k-means initialisation.

    Returns:
        Tuple of (component means sorted ascending, total negative
        log-likelihood of the samples).

    Raises:
        ValueError: If there are fewer samples than components.
    """
    samples = np.asarray(samples, dtype=np.float64).reshape(-1, 1)
    if n_components < 1:
        raise ValueError(f"n_components must be >= 1, got {n_components}")
    if samples.shape[0] < n_components:
        raise ValueError(
            f"Need at least {n_components} samples, got {samples.shape[0]}"
        )

    model = GaussianMixture(
        n_components=n_components,
        reg_covar=regularization,
        random_state=random_state,
    )
    model.fit(samples)
    nll = -float(model.score(samples)) * samples.shape[0]
    return np.sort(model.means_.ravel()), nll


def estimate_circumference(
    arc_lengths: np.ndarray,
    regularization: float = MIXTURE_REGULARIZATION,
    max_components: Optional[int] = None,
) -> CircumferenceEstimate:
    """
    Estimate the lap length from loop-closure arc lengths.

    Fits k = 1, 2, ... components (at most len(L) - 1) and keeps the last
    fit that improved the negative log-likelihood by at least
    ``MIN_IMPROVEMENT``.

    Args:
        arc_lengths: Arc length L of every loop closure, shape (K,).
        regularization: Mixture covariance regularization.
        max_components: Optional extra cap on the number of components.

    Returns:
        CircumferenceEstimate. Fewer than two samples give an insufficient
        estimate (``circumference is None``).

    Examples:
        >>> laps = np.array([99.8, 100.1, 100.0, 199.9, 200.2])
        >>> estimate = estimate_circumference(laps)
        >>> estimate.is_sufficient
        True
    """
    if max_components is not None and max_components < 1:
        raise ValueError(f"max_components must be >= 1, got {max_components}")

    samples = np.asarray(arc_lengths, dtype=np.float64).ravel()
    n = samples.shape[0]
    if n < 2:
        return CircumferenceEstimate(circumference=None, n_samples=n)

    k_max = n - 1
    if max_components is not None:
        k_max = min(k_max, max_components)

    best = None
    best_nll = np.inf
    for k in range(1, k_max + 1):
        means, nll = fit_mixture(samples, k, regularization)
        if best_nll - nll < MIN_IMPROVEMENT:
            break
        best, best_nll = (k, means), nll

    n_components, means = best
    return CircumferenceEstimate(
        circumference=float(means[0]),
        n_components=n_components,
        means=means,
        negative_log_likelihood=best_nll,
        n_samples=n,
    )

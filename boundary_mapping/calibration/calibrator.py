"""Black-box calibration of detector and solver hyperparameters.

No ground truth is available while mapping, so both stages are tuned
against self-consistency costs:

    - Detector cost: loop-closure arc lengths of a good detection cluster
      tightly around multiples of the circumference. The cost is the
      per-sample negative log-likelihood of the best Gaussian mixture minus
      log(K), which rewards compact clusters and many closures.
    - Solver cost: after optimization, the path length actually travelled
      between the nodes of each loop closure should again cluster at the
      circumference estimated before optimization. The cost is the absolute
      difference of both circumferences.

Both costs are minimized with Gaussian-process Bayesian optimization
(scikit-optimize) under a fixed evaluation budget and seed.
"""

import warnings
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from skopt import gp_minimize
from skopt.space import Real

from ..slam.circumference import fit_mixture, MIN_IMPROVEMENT
from ..slam.loop_closure import LoopClosureDetector
from ..slam.pose_graph import optimize_pose_graph, traversed_lengths
from ..slam.types import CircumferenceEstimate, LoopClosureSet, ModelPolyline
from .config import HyperparameterSet


# Cost assigned to parameter sets that produce too few loop closures
INFEASIBLE_COST = 1e3

# (low, high, prior) per parameter
Domain = Tuple[float, float, str]

DETECTOR_DOMAINS: Dict[str, Domain] = {
    "neighborhood_length": (20.0, 40.0, "uniform"),
    "max_dissimilarity": (0.01, 1.0, "uniform"),
    "cycle_angle": (np.pi / 2, np.pi, "uniform"),
}

GAMMA_DOMAINS: Dict[str, Domain] = {
    "gamma1": (1e-3, 1e3, "log-uniform"),
    "gamma2": (1e-3, 1e3, "log-uniform"),
}

BETA_DOMAINS: Dict[str, Domain] = {
    "beta1": (1e-6, 1.0, "log-uniform"),
    "beta2": (1e-6, 1.0, "log-uniform"),
    "beta3": (1e-6, 1.0, "log-uniform"),
    "beta4": (1e-6, 1.0, "log-uniform"),
}

SOLVER_LEVELS = ("none", "gamma", "gamma_icp", "all")


@dataclass
class CalibrationResult:
    """
    Outcome of one calibration.

    Attributes:
        hyperparameters: Updated hyperparameter set.
        cost: Best cost found (None when calibration was skipped).
        parameters: Names of the calibrated parameters.
        costs: Cost of every evaluation, in order.
    """

    hyperparameters: HyperparameterSet
    cost: Optional[float] = None
    parameters: Tuple[str, ...] = ()
    costs: List[float] = field(default_factory=list)


def icp_divisor_domain(model_step_size: float) -> Dict[str, Domain]:
    """ICP window divisor domain, 5 to 100 model steps."""
    return {"icp_divisor": (5 * model_step_size, 100 * model_step_size, "uniform")}


def solver_domains(level: str, model_step_size: float) -> Dict[str, Domain]:
    """
    Search domains of a solver calibration level.

    Levels:
        - "none": nothing is calibrated
        - "gamma": gamma1, gamma2
        - "gamma_icp": gamma1, gamma2, icp_divisor
        - "all": gamma1, gamma2, icp_divisor, beta1..beta4

    Raises:
        ValueError: If the level is unknown.
    """
    if level not in SOLVER_LEVELS:
        raise ValueError(
            f"Unknown solver calibration level '{level}'. Choose from {SOLVER_LEVELS}"
        )
    domains: Dict[str, Domain] = {}
    if level in ("gamma", "gamma_icp", "all"):
        domains.update(GAMMA_DOMAINS)
    if level in ("gamma_icp", "all"):
        domains.update(icp_divisor_domain(model_step_size))
    if level == "all":
        domains.update(BETA_DOMAINS)
    return domains


def detector_cost(arc_lengths: np.ndarray) -> float:
    """
    Self-consistency cost of a set of loop-closure arc lengths.

    Mixtures with k = 1, 2, ... components are fitted until the per-sample
    negative log-likelihood improves by less than one; the cost is the last
    accepted per-sample NLL minus log(K).

    Returns:
        Cost, or ``INFEASIBLE_COST`` when fewer than two loop closures exist.
    """
    samples = np.asarray(arc_lengths, dtype=np.float64).ravel()
    n = samples.shape[0]
    if n < 2:
        return INFEASIBLE_COST

    best = np.inf
    for k in range(1, n):
        _, nll = fit_mixture(samples, k)
        cost = nll / n
        if best - cost < MIN_IMPROVEMENT:
            break
        best = cost
    return float(best - np.log(n))


def evaluate_detector(
    dominant_points: np.ndarray,
    hyperparameters: HyperparameterSet,
    mode: str = "correlation",
    model: Optional[ModelPolyline] = None,
) -> float:
    """Detect loop closures with the given parameters and return the detector cost."""
    detector = LoopClosureDetector.from_hyperparameters(hyperparameters, mode=mode)
    closures = detector.detect(dominant_points, model)
    return detector_cost(closures.arc_lengths)


def solver_cost(
    measurements: np.ndarray,
    closures: LoopClosureSet,
    hyperparameters: HyperparameterSet,
    circumference: CircumferenceEstimate,
    measurement_mode: str = "zero",
    noise_model: str = "direct",
    model: Optional[ModelPolyline] = None,
    x0: Optional[np.ndarray] = None,
) -> float:
    """
    Circumference consistency of the optimized pose graph.

    The graph is optimized with the given parameters; the path length
    between the nodes of every loop closure is re-clustered with the
    component count of ``circumference`` (capped at the sample count) and
    the smallest mean is compared with the circumference.

    Returns:
        |circumference - smallest mean|, or ``INFEASIBLE_COST`` when the
        circumference estimate is insufficient or the result is not finite.
    """
    if not circumference.is_sufficient:
        return INFEASIBLE_COST

    result = optimize_pose_graph(
        measurements,
        closures,
        hyperparameters,
        measurement_mode=measurement_mode,
        noise_model=noise_model,
        model=model,
        x0=x0,
        circumference=circumference,
    )
    lengths = traversed_lengths(result.poses, closures.pairs)
    lengths = lengths[np.isfinite(lengths)]

    if lengths.shape[0] >= 2:
        n_components = min(circumference.n_components, lengths.shape[0])
        means, _ = fit_mixture(lengths, n_components)
        estimate = means[0]
    elif lengths.shape[0] == 1:
        estimate = lengths[0]
    else:
        return INFEASIBLE_COST

    return float(abs(circumference.circumference - estimate))


def _dimensions(domains: Dict[str, Domain]) -> List[Real]:
    return [
        Real(low, high, prior=prior, name=name)
        for name, (low, high, prior) in domains.items()
    ]


def _minimize(objective, domains: Dict[str, Domain], budget: int, seed: int):
    if budget < 1:
        raise ValueError(f"budget must be >= 1, got {budget}")
    return gp_minimize(
        objective,
        _dimensions(domains),
        n_calls=budget,
        n_initial_points=min(10, budget),
        random_state=seed,
    )


def calibrate_detector(
    dominant_points: np.ndarray,
    hyperparameters: HyperparameterSet,
    mode: str = "correlation",
    model: Optional[ModelPolyline] = None,
    domains: Optional[Dict[str, Domain]] = None,
    budget: int = 30,
    seed: int = 0,
) -> CalibrationResult:
    """
    Tune the loop-closure detector parameters.

    Args:
        dominant_points: Dominant points of the run, shape (M, 2).
        hyperparameters: Starting hyperparameters; non-calibrated values
            are kept.
        mode: Detection mode, "correlation" or "icp".
        model: Model polyline; required in "icp" mode.
        domains: Search domains; defaults to ``DETECTOR_DOMAINS``.
        budget: Number of cost evaluations.
        seed: Optimizer seed.

    Returns:
        CalibrationResult with the best detector parameters.
    """
    domains = dict(DETECTOR_DOMAINS if domains is None else domains)
    names = tuple(domains)

    def objective(values):
        candidate = hyperparameters.update(**dict(zip(names, map(float, values))))
        return evaluate_detector(dominant_points, candidate, mode, model)

    result = _minimize(objective, domains, budget, seed)
    best = hyperparameters.update(**dict(zip(names, map(float, result.x))))

    if result.fun >= INFEASIBLE_COST:
        warnings.warn(
            "Detector calibration found no parameters with at least two loop closures",
            UserWarning,
            stacklevel=2,
        )

    return CalibrationResult(
        hyperparameters=best,
        cost=float(result.fun),
        parameters=names,
        costs=[float(c) for c in result.func_vals],
    )


def calibrate_solver(
    measurements: np.ndarray,
    closures: LoopClosureSet,
    hyperparameters: HyperparameterSet,
    circumference: CircumferenceEstimate,
    level: str = "gamma",
    measurement_mode: str = "zero",
    noise_model: str = "direct",
    model: Optional[ModelPolyline] = None,
    x0: Optional[np.ndarray] = None,
    domains: Optional[Dict[str, Domain]] = None,
    budget: int = 30,
    seed: int = 0,
) -> CalibrationResult:
    """
    Tune the pose graph noise parameters.

    Args:
        measurements: Odometry measurements, shape (N, 3).
        closures: Loop closures of the run.
        hyperparameters: Starting hyperparameters.
        circumference: Circumference estimated from the detected closures.
        level: "none", "gamma", "gamma_icp" or "all".
        measurement_mode: Loop-closure measurement mode.
        noise_model: Odometry noise model.
        model: Model polyline; required in "icp" measurement mode.
        x0: Pose of the first node.
        domains: Optional overrides of the level's search domains.
        budget: Number of cost evaluations.
        seed: Optimizer seed.

    Returns:
        CalibrationResult. Calibration is skipped (with a UserWarning) when
        the circumference estimate is insufficient.
    """
    level_domains = solver_domains(level, hyperparameters.model_step_size)
    if domains:
        level_domains.update(
            {k: v for k, v in domains.items() if k in level_domains}
        )
    if not level_domains:
        return CalibrationResult(hyperparameters=hyperparameters)

    if not circumference.is_sufficient:
        warnings.warn(
            "Solver calibration skipped: fewer than two loop closures",
            UserWarning,
            stacklevel=2,
        )
        return CalibrationResult(hyperparameters=hyperparameters)

    names = tuple(level_domains)

    def objective(values):
        candidate = hyperparameters.update(**dict(zip(names, map(float, values))))
        return solver_cost(
            measurements,
            closures,
            candidate,
            circumference,
            measurement_mode=measurement_mode,
            noise_model=noise_model,
            model=model,
            x0=x0,
        )

    result = _minimize(objective, level_domains, budget, seed)
    best = hyperparameters.update(**dict(zip(names, map(float, result.x))))
    return CalibrationResult(
        hyperparameters=best,
        cost=float(result.fun),
        parameters=names,
        costs=[float(c) for c in result.func_vals],
    )


def _sweep_cell(args) -> float:
    dominant_points, hyperparameters, mode, model = args
    return evaluate_detector(dominant_points, hyperparameters, mode, model)


def sweep_detector_cost(
    dominant_points: np.ndarray,
    neighborhood_lengths: Sequence[float],
    max_dissimilarities: Sequence[float],
    hyperparameters: Optional[HyperparameterSet] = None,
    mode: str = "correlation",
    model: Optional[ModelPolyline] = None,
    n_workers: Optional[int] = None,
) -> np.ndarray:
    """
    Detector cost over an (l_nh x c_max) grid.

    Every cell is independent. With ``n_workers`` > 1 the cells run in a
    process pool.

    Returns:
        Costs, shape (len(neighborhood_lengths), len(max_dissimilarities)).
    """
    if hyperparameters is None:
        hyperparameters = HyperparameterSet()

    cells = [
        (
            dominant_points,
            hyperparameters.update(
                neighborhood_length=float(l_nh), max_dissimilarity=float(c_max)
            ),
            mode,
            model,
        )
        for l_nh in neighborhood_lengths
        for c_max in max_dissimilarities
    ]

    if n_workers is not None and n_workers > 1:
        with ProcessPoolExecutor(max_workers=n_workers) as executor:
            costs = list(executor.map(_sweep_cell, cells))
    else:
        costs = [_sweep_cell(cell) for cell in cells]

    return np.array(costs).reshape(len(neighborhood_lengths), len(max_dissimilarities))

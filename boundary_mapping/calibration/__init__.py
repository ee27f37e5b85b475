"""
Hyperparameters and their calibration.

Modules:
    config: HyperparameterSet, presets and JSON persistence
    calibrator: Bayesian-optimization calibration of detector and solver
"""

from .calibrator import (
    DETECTOR_DOMAINS,
    INFEASIBLE_COST,
    SOLVER_LEVELS,
    CalibrationResult,
    calibrate_detector,
    calibrate_solver,
    detector_cost,
    evaluate_detector,
    solver_cost,
    solver_domains,
    sweep_detector_cost,
)
from .config import (
    PRESETS,
    HyperparameterSet,
    get_preset,
    load_hyperparameters,
    save_hyperparameters,
)

__all__ = [
    # Configuration
    "HyperparameterSet",
    "PRESETS",
    "get_preset",
    "save_hyperparameters",
    "load_hyperparameters",
    # Calibration
    "INFEASIBLE_COST",
    "DETECTOR_DOMAINS",
    "SOLVER_LEVELS",
    "CalibrationResult",
    "detector_cost",
    "evaluate_detector",
    "solver_cost",
    "solver_domains",
    "calibrate_detector",
    "calibrate_solver",
    "sweep_detector_cost",
]

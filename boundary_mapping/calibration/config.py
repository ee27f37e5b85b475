"""Hyperparameter sets for boundary mapping.

A HyperparameterSet bundles every tunable scalar of one mapping run:
simplification tolerances, loop-closure detector settings, odometry and
loop-closure noise coefficients, and the ICP window divisor. Sets are
immutable; calibration returns an updated copy.

Presets:
    - "mapping": default configuration of the mapping pipeline
    - "odometry_model": same detector settings, noise coefficients of the
      rot1/trans/rot2 odometry motion model (for noise_model="trigonometric")
    - "small_boundary": shorter neighbourhood for short demo boundaries
"""

import json
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Tuple, Union

import numpy as np


@dataclass(frozen=True)
class HyperparameterSet:
    """
    Tunable parameters of one mapping run.

    Attributes:
        min_segment_length: Minimum distance between dominant points l_min (m).
        max_deviation: Douglas-Peucker tolerance e_max (m).
        neighborhood_length: Loop-closure neighbourhood half-width l_nh (m).
        max_dissimilarity: Loop-closure acceptance threshold c_max.
        cycle_angle: Heading-separation gate φ_cycle (rad).
        n_samples: Number of heading-profile samples m.
        gamma1: Loop-closure translational variance scale.
        gamma2: Loop-closure rotational variance scale.
        beta1..beta4: Odometry noise coefficients.
        icp_divisor: ICP loop-closure windows hold floor(l_nh / icp_divisor)
            points on each side of their vertex.
        model_step_size: Sampling step of the model polyline (m).
    """

    min_segment_length: float = 0.1
    max_deviation: float = 0.001
    neighborhood_length: float = 50.0
    max_dissimilarity: float = 0.21
    cycle_angle: float = 1.5
    n_samples: int = 100
    gamma1: float = 0.001
    gamma2: float = 100.0
    beta1: float = 0.0002874
    beta2: float = 0.00008569
    beta3: float = 0.0022
    beta4: float = 0.0013
    icp_divisor: float = 0.1
    model_step_size: float = 0.01

    def __post_init__(self) -> None:
        """Validate parameter ranges."""
        positive = (
            "neighborhood_length",
            "n_samples",
            "gamma1",
            "gamma2",
            "icp_divisor",
            "model_step_size",
        )
        for name in positive:
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        for name in ("min_segment_length", "max_deviation", "beta1", "beta2", "beta3", "beta4"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")

    @property
    def beta(self) -> np.ndarray:
        """Odometry noise coefficients [β1, β2, β3, β4]."""
        return np.array([self.beta1, self.beta2, self.beta3, self.beta4])

    @property
    def gamma(self) -> Tuple[float, float]:
        return self.gamma1, self.gamma2

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HyperparameterSet":
        """
        Build a set from a dictionary, using defaults for missing keys.

        Raises:
            ValueError: If the dictionary contains unknown keys.
        """
        names = {f.name for f in fields(cls)}
        unknown = set(data) - names
        if unknown:
            raise ValueError(f"Unknown hyperparameters: {sorted(unknown)}")
        return cls(**data)

    def update(self, **changes: Any) -> "HyperparameterSet":
        """Return a copy with the given parameters replaced."""
        return replace(self, **changes)


PRESETS: Dict[str, Dict[str, Any]] = {
    "mapping": {
        "description": "Default mapping configuration",
    },
    "odometry_model": {
        "description": "Odometry motion-model noise for the trigonometric noise model",
        "beta1": 0.002361,
        "beta2": 0.000346,
        "beta3": 0.000223,
        "beta4": 0.000069,
    },
    "small_boundary": {
        "description": "Short boundaries (tens of meters per lap)",
        "min_segment_length": 0.2,
        "max_deviation": 0.05,
        "neighborhood_length": 10.0,
        "max_dissimilarity": 0.02,
    },
}


def get_preset(name: str) -> HyperparameterSet:
    """
    Hyperparameter set of a named preset.

    Raises:
        ValueError: If the preset does not exist.
    """
    if name not in PRESETS:
        raise ValueError(
            f"Unknown preset '{name}'. Available presets: {list(PRESETS)}"
        )
    values = {k: v for k, v in PRESETS[name].items() if k != "description"}
    return HyperparameterSet(**values)


def save_hyperparameters(
    hyperparameters: HyperparameterSet, path: Union[str, Path]
) -> None:
    """Write a hyperparameter set to a JSON file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(hyperparameters.to_dict(), f, indent=2)


def load_hyperparameters(path: Union[str, Path]) -> HyperparameterSet:
    """Read a hyperparameter set written by :func:`save_hyperparameters`."""
    with open(path, "r") as f:
        data = json.load(f)
    return HyperparameterSet.from_dict(data)

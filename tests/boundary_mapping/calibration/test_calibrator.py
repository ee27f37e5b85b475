"""Unit tests for detector and solver calibration."""

import numpy as np
import pytest

from boundary_mapping.calibration.calibrator import (
    BETA_DOMAINS,
    GAMMA_DOMAINS,
    INFEASIBLE_COST,
    calibrate_detector,
    calibrate_solver,
    detector_cost,
    evaluate_detector,
    solver_cost,
    solver_domains,
    sweep_detector_cost,
)
from boundary_mapping.calibration.config import get_preset
from boundary_mapping.sim import generate_boundary_path
from boundary_mapping.slam.circumference import estimate_circumference
from boundary_mapping.slam.loop_closure import LoopClosureDetector
from boundary_mapping.slam.measurements import (
    build_model_polyline,
    generate_measurements,
    initial_pose,
)
from boundary_mapping.slam.simplification import simplify_path
from boundary_mapping.slam.types import CircumferenceEstimate, LoopClosureSet


SMALL_DETECTOR_DOMAINS = {
    "neighborhood_length": (5.0, 15.0, "uniform"),
    "max_dissimilarity": (0.001, 0.1, "uniform"),
    "cycle_angle": (np.pi / 2, np.pi, "uniform"),
}


@pytest.fixture(scope="module")
def garden():
    hp = get_preset("small_boundary")
    run = generate_boundary_path(n_laps=3, seed=0)
    dp = simplify_path(run.odometry, hp.max_deviation, hp.min_segment_length).points
    closures = LoopClosureDetector.from_hyperparameters(hp).detect(dp)
    return dp, hp, closures


class TestDetectorCost:
    """Test suite for detector_cost."""

    @pytest.mark.parametrize("arc_lengths", [[], [50.0]])
    def test_too_few_closures_infeasible(self, arc_lengths):
        assert detector_cost(np.array(arc_lengths)) == INFEASIBLE_COST

    def test_compact_clusters_cost_less(self):
        compact = detector_cost(np.array([48.0, 48.1, 47.9, 96.0, 96.1]))
        spread = detector_cost(np.array([40.0, 55.0, 48.0, 90.0, 100.0]))

        assert compact < spread
        assert compact < INFEASIBLE_COST

    def test_more_closures_cost_less(self):
        few = detector_cost(np.array([48.0, 48.0]))
        many = detector_cost(np.array([48.0] * 8))
        assert many < few

    def test_evaluate_detector_on_garden(self, garden):
        dp, hp, _ = garden
        assert evaluate_detector(dp, hp) < INFEASIBLE_COST
        assert evaluate_detector(dp, hp.update(max_dissimilarity=0.0)) == INFEASIBLE_COST


class TestSolverDomains:
    """Test suite for solver_domains."""

    def test_none(self):
        assert solver_domains("none", 0.01) == {}

    def test_gamma(self):
        assert set(solver_domains("gamma", 0.01)) == set(GAMMA_DOMAINS)

    def test_gamma_icp(self):
        domains = solver_domains("gamma_icp", 0.01)
        assert set(domains) == set(GAMMA_DOMAINS) | {"icp_divisor"}
        low, high, _ = domains["icp_divisor"]
        assert low == pytest.approx(0.05)
        assert high == pytest.approx(1.0)

    def test_all(self):
        domains = solver_domains("all", 0.01)
        assert set(domains) == set(GAMMA_DOMAINS) | set(BETA_DOMAINS) | {"icp_divisor"}

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="calibration level"):
            solver_domains("everything", 0.01)


class TestSolverCost:
    """Test suite for solver_cost."""

    def test_insufficient_circumference(self):
        cost = solver_cost(
            np.ones((3, 3)),
            LoopClosureSet(n_nodes=4),
            get_preset("mapping"),
            CircumferenceEstimate(circumference=None),
        )
        assert cost == INFEASIBLE_COST

    def test_garden_is_consistent(self, garden):
        dp, hp, closures = garden
        circumference = estimate_circumference(closures.arc_lengths)

        cost = solver_cost(
            generate_measurements(dp), closures, hp, circumference, x0=initial_pose(dp)
        )

        assert 0.0 <= cost < 1.0


class TestCalibrateDetector:
    """Bayesian optimization of the detector parameters."""

    def test_small_budget(self, garden):
        dp, hp, _ = garden
        result = calibrate_detector(
            dp, hp, domains=SMALL_DETECTOR_DOMAINS, budget=3, seed=1
        )

        assert len(result.costs) == 3
        assert result.cost == min(result.costs)
        assert result.parameters == tuple(SMALL_DETECTOR_DOMAINS)
        for name, (low, high, _) in SMALL_DETECTOR_DOMAINS.items():
            assert low <= getattr(result.hyperparameters, name) <= high
        assert result.hyperparameters.gamma1 == hp.gamma1

    def test_invalid_budget(self, garden):
        dp, hp, _ = garden
        with pytest.raises(ValueError, match="budget"):
            calibrate_detector(dp, hp, domains=SMALL_DETECTOR_DOMAINS, budget=0)


class TestCalibrateSolver:
    """Solver calibration entry points."""

    def test_level_none_is_noop(self):
        hp = get_preset("mapping")
        result = calibrate_solver(
            np.ones((3, 3)),
            LoopClosureSet(n_nodes=4),
            hp,
            CircumferenceEstimate(circumference=None),
            level="none",
        )
        assert result.hyperparameters is hp
        assert result.cost is None

    def test_insufficient_circumference_skips(self):
        hp = get_preset("mapping")
        with pytest.warns(UserWarning, match="skipped"):
            result = calibrate_solver(
                np.ones((3, 3)),
                LoopClosureSet(n_nodes=4),
                hp,
                CircumferenceEstimate(circumference=None),
                level="gamma",
            )
        assert result.hyperparameters is hp
        assert result.costs == []

    def test_all_levels_search(self, garden):
        dp, hp, closures = garden
        circumference = estimate_circumference(closures.arc_lengths)

        result = calibrate_solver(
            generate_measurements(dp),
            closures,
            hp,
            circumference,
            level="all",
            x0=initial_pose(dp),
            budget=12,
            seed=0,
        )

        assert len(result.costs) == 12
        assert result.cost == min(result.costs)
        assert set(result.parameters) == set(solver_domains("all", hp.model_step_size))
        assert result.hyperparameters != hp
        assert result.hyperparameters.neighborhood_length == hp.neighborhood_length
        for name, (low, high, _) in solver_domains("all", hp.model_step_size).items():
            assert low <= getattr(result.hyperparameters, name) <= high

    def test_gamma_icp_search(self, garden):
        dp, hp, closures = garden
        hp = hp.update(model_step_size=0.05)
        model = build_model_polyline(dp, hp.model_step_size)
        circumference = estimate_circumference(closures.arc_lengths)

        result = calibrate_solver(
            generate_measurements(dp),
            closures,
            hp,
            circumference,
            level="gamma_icp",
            measurement_mode="icp",
            model=model,
            x0=initial_pose(dp),
            budget=12,
            seed=0,
        )

        assert result.parameters == ("gamma1", "gamma2", "icp_divisor")
        assert result.hyperparameters != hp
        assert result.cost < INFEASIBLE_COST
        assert result.hyperparameters.beta1 == hp.beta1


class TestSweepDetectorCost:
    """Test suite for sweep_detector_cost."""

    def test_grid_shape(self, garden):
        dp, hp, _ = garden
        costs = sweep_detector_cost(dp, [8.0, 10.0], [0.0, 0.02], hp)

        assert costs.shape == (2, 2)
        np.testing.assert_array_equal(costs[:, 0], INFEASIBLE_COST)
        assert np.all(np.isfinite(costs))

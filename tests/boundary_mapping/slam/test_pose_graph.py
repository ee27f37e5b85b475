"""Unit tests for pose graph construction and Gauss-Newton optimization."""

import numpy as np
import pytest

from boundary_mapping.calibration.config import HyperparameterSet
from boundary_mapping.slam.measurements import integrate_measurements
from boundary_mapping.slam.pose_graph import (
    INFORMATION_FLOOR,
    PoseGraphSolver,
    build_incidence_matrix,
    build_pose_graph,
    edge_error,
    edge_jacobians,
    loop_closure_information,
    odometry_information,
    optimize_pose_graph,
    traversed_lengths,
)
from boundary_mapping.slam.se2 import rotation_matrix
from boundary_mapping.slam.types import LoopClosureSet


def square_loop_measurements(noise=0.0, seed=0):
    """Four unit-square edges returning to the start (5 nodes)."""
    xi = np.tile([1.0, 0.0, np.pi / 2], (4, 1))
    if noise > 0:
        rng = np.random.default_rng(seed)
        xi = xi + rng.normal(0.0, noise, xi.shape)
    return xi


def closing_pair(n_nodes, i=0, j=None, score=0.01):
    j = n_nodes - 1 if j is None else j
    return LoopClosureSet.from_lists(n_nodes, [(i, j)], [4.0], [2 * np.pi], [score])


class TestIncidenceMatrix:
    """Test suite for build_incidence_matrix."""

    def test_odometry_chain(self):
        A = build_incidence_matrix(2, LoopClosureSet(n_nodes=3))
        np.testing.assert_array_equal(A, [[-1, 0], [1, -1], [0, 1]])

    def test_columns_sum_to_zero(self):
        closures = LoopClosureSet.from_lists(
            6, [(3, 5), (0, 4), (1, 5)], [1.0, 1.0, 1.0], [0.0] * 3, [0.1] * 3
        )
        A = build_incidence_matrix(5, closures)

        assert A.shape == (6, 8)
        np.testing.assert_array_equal(A.sum(axis=0), 0)
        np.testing.assert_array_equal(np.abs(A).sum(axis=0), 2)

    def test_loop_columns_in_row_major_order(self):
        closures = LoopClosureSet.from_lists(
            6, [(3, 5), (0, 4), (1, 5)], [1.0, 1.0, 1.0], [0.0] * 3, [0.1] * 3
        )
        A = build_incidence_matrix(5, closures)
        sources = [int(np.argmin(A[:, k])) for k in range(5, 8)]
        targets = [int(np.argmax(A[:, k])) for k in range(5, 8)]
        assert list(zip(sources, targets)) == [(0, 4), (1, 5), (3, 5)]

    def test_size_mismatch(self):
        with pytest.raises(ValueError, match="adjacency"):
            build_incidence_matrix(4, LoopClosureSet(n_nodes=4))


class TestEdgeError:
    """Test suite for edge_error and edge_jacobians."""

    def test_consistent_edge_has_zero_error(self):
        xi = np.array([1.0, 2.0, 0.3])
        z = np.array([0.5, -0.2, 0.4])
        xj = np.concatenate([xi[:2] + rotation_matrix(xi[2]) @ z[:2], [xi[2] + z[2]]])
        np.testing.assert_allclose(edge_error(z, xi, xj), 0.0, atol=1e-12)

    def test_rotation_error_wrapped(self):
        e = edge_error(np.zeros(3), np.array([0, 0, np.pi - 0.1]), np.array([0, 0, -np.pi + 0.1]))
        assert np.isclose(e[2], -0.2)

    def test_jacobians_match_analytic_translation_terms(self):
        xi = np.array([3.0, -1.0, 0.6])
        xj = np.array([4.0, 0.5, 1.1])
        z = np.array([1.0, 1.0, 0.5])

        A, B = edge_jacobians(z, xi, xj)
        Rt = rotation_matrix(xi[2]).T

        np.testing.assert_allclose(A[:2, :2], Rt, atol=1e-5)
        np.testing.assert_allclose(B[:2, :2], -Rt, atol=1e-5)
        np.testing.assert_allclose(A[2], [0.0, 0.0, 1.0], atol=1e-5)
        np.testing.assert_allclose(B[2], [0.0, 0.0, -1.0], atol=1e-5)


class TestInformation:
    """Odometry and loop-closure precision."""

    def test_direct_precision_decreases_with_distance(self):
        xi = np.column_stack([np.linspace(0.5, 10.0, 20), np.zeros(20), np.full(20, 0.2)])
        info = odometry_information(xi, HyperparameterSet().beta, "direct")

        assert info.shape == (20, 3, 3)
        assert np.all(np.diff(info[:, 0, 0]) < 0)
        assert np.all(np.diff(info[:, 2, 2]) < 0)

    def test_trigonometric_precision_non_increasing(self):
        xi = np.column_stack([np.linspace(0.5, 10.0, 20), np.zeros(20), np.full(20, 0.2)])
        info = odometry_information(xi, HyperparameterSet().beta, "trigonometric")

        assert np.all(np.isfinite(info))
        assert np.all(np.diff(info[:, 0, 0]) <= 0)
        assert np.any(np.diff(info[:, 0, 0]) < 0)

    @pytest.mark.parametrize("noise_model", ["direct", "trigonometric"])
    def test_precision_decreases_with_noise_coefficients(self, noise_model):
        xi = np.column_stack([np.linspace(1.0, 5.0, 10), np.full(10, 0.1), np.full(10, 0.3)])
        beta = HyperparameterSet().beta

        low_noise = odometry_information(xi, beta, noise_model)
        high_noise = odometry_information(xi, 10.0 * beta, noise_model)

        idx = np.arange(3)
        assert np.all(high_noise[:, idx, idx] < low_noise[:, idx, idx])

    def test_information_is_diagonal(self):
        info = odometry_information(np.array([[1.0, 0.2, 0.3]]), HyperparameterSet().beta)
        np.testing.assert_array_equal(info[0], np.diag(np.diag(info[0])))

    def test_zero_motion_is_floored(self):
        info = odometry_information(np.zeros((1, 3)), HyperparameterSet().beta)
        np.testing.assert_allclose(np.diag(info[0]), 1.0 / INFORMATION_FLOOR)

    def test_unknown_noise_model(self):
        with pytest.raises(ValueError, match="noise model"):
            odometry_information(np.ones((1, 3)), HyperparameterSet().beta, "laser")

    def test_wrong_beta_length(self):
        with pytest.raises(ValueError, match="beta"):
            odometry_information(np.ones((1, 3)), [0.1, 0.1])

    def test_loop_closure_information_scaled_by_score(self):
        info = loop_closure_information(np.array([0.1, 0.2, 0.0]), 0.01, 100.0)
        np.testing.assert_allclose(np.diag(info[0]), [1000.0, 1000.0, 0.1])
        np.testing.assert_allclose(np.diag(info[1]), [500.0, 500.0, 0.05])
        np.testing.assert_allclose(info[2, 0, 0], 100.0 / INFORMATION_FLOOR)


class TestBuildPoseGraph:
    """Test suite for build_pose_graph."""

    def test_shapes(self):
        xi = square_loop_measurements()
        graph = build_pose_graph(xi, closing_pair(5), HyperparameterSet())

        assert graph.n_nodes == 5
        assert graph.n_loop_closures == 1
        assert graph.measurements.shape == (5, 3)
        assert graph.information.shape == (5, 3, 3)
        np.testing.assert_allclose(graph.measurements[4], 0.0)
        assert graph.edge_endpoints(4) == (0, 4)

    def test_initial_poses_start_at_x0(self):
        x0 = np.array([2.0, 1.0, 0.5])
        graph = build_pose_graph(square_loop_measurements(), closing_pair(5), HyperparameterSet(), x0=x0)
        np.testing.assert_allclose(graph.initial_poses[0], x0)

    def test_unknown_measurement_mode(self):
        with pytest.raises(ValueError, match="measurement mode"):
            build_pose_graph(square_loop_measurements(), closing_pair(5), HyperparameterSet(), "odometry")

    def test_icp_mode_requires_model(self):
        with pytest.raises(ValueError, match="model polyline"):
            build_pose_graph(square_loop_measurements(), closing_pair(5), HyperparameterSet(), "icp")


class TestPoseGraphSolver:
    """Gauss-Newton optimization of small loops."""

    def test_closed_square_converges_with_anchor(self):
        """A perfectly closed loop is already optimal; node 0 stays put."""
        xi = square_loop_measurements()
        result = optimize_pose_graph(xi, closing_pair(5), HyperparameterSet())

        assert result.converged
        assert result.iterations <= PoseGraphSolver().max_iterations
        np.testing.assert_allclose(result.poses[0], [0.0, 0.0, 0.0], atol=1e-9)
        np.testing.assert_allclose(result.poses, integrate_measurements(xi), atol=1e-6)

    def test_noisy_square_is_closed(self):
        xi = square_loop_measurements(noise=0.02, seed=3)
        initial = integrate_measurements(xi)
        initial_gap = np.linalg.norm(initial[4, :2] - initial[0, :2])

        result = optimize_pose_graph(xi, closing_pair(5), HyperparameterSet())

        final_gap = np.linalg.norm(result.poses[4, :2] - result.poses[0, :2])
        assert result.converged
        assert final_gap < initial_gap
        assert final_gap < 0.01
        np.testing.assert_allclose(result.poses[0], [0.0, 0.0, 0.0], atol=1e-2)
        assert np.all(result.poses[:, 2] > -np.pi)
        assert np.all(result.poses[:, 2] <= np.pi)

    def test_without_closures_keeps_odometry(self):
        xi = square_loop_measurements(noise=0.02, seed=4)
        result = optimize_pose_graph(xi, LoopClosureSet(n_nodes=5), HyperparameterSet())

        assert result.converged
        assert not result.circumference.is_sufficient
        np.testing.assert_allclose(result.poses, integrate_measurements(xi), atol=1e-6)

    def test_trigonometric_noise_model(self):
        xi = square_loop_measurements(noise=0.02, seed=5)
        result = optimize_pose_graph(
            xi, closing_pair(5), HyperparameterSet(), noise_model="trigonometric"
        )
        assert np.all(np.isfinite(result.poses))
        assert result.poses.shape == (5, 3)


class TestTraversedLengths:
    """Test suite for traversed_lengths."""

    def test_straight_line(self):
        poses = np.column_stack([np.arange(6.0), np.zeros(6), np.zeros(6)])
        lengths = traversed_lengths(poses, np.array([[0, 5], [1, 3]]))
        np.testing.assert_allclose(lengths, [5.0, 2.0])

    def test_empty_pairs(self):
        poses = np.zeros((3, 3))
        assert traversed_lengths(poses, np.zeros((0, 2), dtype=int)).shape == (0,)

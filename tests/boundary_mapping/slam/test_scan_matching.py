"""Unit tests for window alignment."""

import numpy as np
import pytest

from boundary_mapping.slam.scan_matching import (
    align_svd,
    icp_point_to_point,
    mean_point_distance,
)
from boundary_mapping.slam.se2 import se2_apply


def corner_window(step=0.05, radius=20):
    """Two perpendicular arms meeting at the origin, like a window at a corner."""
    arm = np.arange(1, radius + 1) * step
    incoming = np.column_stack([-arm[::-1], np.zeros(radius)])
    outgoing = np.column_stack([np.zeros(radius), arm])
    return np.vstack([incoming, [[0.0, 0.0]], outgoing])


class TestAlignSvd:
    """Test suite for align_svd."""

    def test_recovers_rigid_transform(self):
        source = corner_window()
        pose = np.array([0.3, -0.2, 0.4])

        estimate = align_svd(source, se2_apply(pose, source))

        np.testing.assert_allclose(estimate, pose, atol=1e-9)

    def test_shape_mismatch(self):
        with pytest.raises(ValueError, match="differ in shape"):
            align_svd(np.zeros((3, 2)), np.zeros((4, 2)))

    def test_too_few_pairs(self):
        with pytest.raises(ValueError, match="at least 2"):
            align_svd(np.zeros((1, 2)), np.zeros((1, 2)))


class TestIcp:
    """Test suite for icp_point_to_point."""

    def test_small_offset_converges(self):
        model = corner_window()
        test = se2_apply(np.array([0.02, -0.01, 0.02]), model)

        pose, iterations, rms, converged = icp_point_to_point(test, model)

        assert converged
        assert iterations <= 50
        assert rms < 1e-3
        np.testing.assert_allclose(se2_apply(pose, test), model, atol=1e-3)

    def test_identical_windows(self):
        model = corner_window()
        pose, iterations, rms, converged = icp_point_to_point(model, model.copy())

        assert converged
        assert iterations == 1
        assert rms == 0.0
        np.testing.assert_allclose(pose, 0.0, atol=1e-12)

    def test_empty_window(self):
        with pytest.raises(ValueError, match="non-empty"):
            icp_point_to_point(np.zeros((0, 2)), corner_window())


class TestMeanPointDistance:
    """Index-corresponding distance."""

    def test_shift_along_edge_is_penalised(self):
        edge = np.column_stack([np.arange(10) * 0.1, np.zeros(10)])
        assert mean_point_distance(edge + [0.1, 0.0], edge) == pytest.approx(0.1)

    def test_shape_mismatch(self):
        with pytest.raises(ValueError, match="differ in shape"):
            mean_point_distance(np.zeros((3, 2)), np.zeros((2, 2)))

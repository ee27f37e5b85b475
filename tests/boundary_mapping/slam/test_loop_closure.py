"""Unit tests for loop closure detection on dominant-point paths."""

import numpy as np
import pytest

from boundary_mapping.calibration.config import get_preset
from boundary_mapping.sim import generate_boundary_path
from boundary_mapping.slam.loop_closure import (
    LoopClosureDetector,
    PathProfile,
    heading_profiles,
    icp_window_points,
    loop_closure_measurements,
    path_profile,
)
from boundary_mapping.slam.measurements import build_model_polyline
from boundary_mapping.slam.simplification import simplify_path
from boundary_mapping.slam.types import LoopClosureSet


@pytest.fixture(scope="module")
def garden_dominant_points():
    """Dominant points of three simulated laps around the garden (48 m)."""
    hp = get_preset("small_boundary")
    run = generate_boundary_path(n_laps=3, seed=0)
    return simplify_path(run.odometry, hp.max_deviation, hp.min_segment_length).points


def line_profile(n=40, turn_per_node=2 * np.pi / 20):
    """Synthetic profile: 1 m between nodes, constant turning."""
    return PathProfile(
        headings=np.zeros(n),
        arc_length=np.arange(n, dtype=float),
        cumulative_heading=turn_per_node * np.arange(n),
    )


def rectangle_laps(n_laps, width=6, height=2):
    """Noise-free laps around a rectangle, one dominant point per meter."""
    corners = np.array([[0, 0], [width, 0], [width, height], [0, height]], dtype=float)
    lap = []
    for start, end in zip(corners, np.roll(corners, -1, axis=0)):
        n = int(np.linalg.norm(end - start))
        lap.extend(start + (end - start) * k / n for k in range(n))
    return np.vstack(lap * n_laps + [corners[:1]])


def single_minimum_matrix(n, i, j, value=0.01):
    dissimilarity = np.triu(np.ones((n, n)), k=1)
    dissimilarity[i, j] = value
    return dissimilarity


class TestPathProfile:
    """Test suite for path_profile and heading_profiles."""

    def test_square_profile(self):
        dp = np.array([[0, 0], [2, 0], [2, 2], [0, 2], [0, 0]], dtype=float)
        profile = path_profile(dp)

        assert profile.n_nodes == 4
        np.testing.assert_allclose(profile.arc_length, [0, 2, 4, 6])
        np.testing.assert_allclose(profile.cumulative_heading, [0, np.pi / 2, np.pi, 3 * np.pi / 2])
        assert profile.total_length == 6.0

    def test_too_few_points(self):
        with pytest.raises(ValueError, match="M >= 3"):
            path_profile(np.zeros((2, 2)))

    def test_profiles_are_relative_to_node(self):
        profile = line_profile()
        samples = heading_profiles(profile, neighborhood_length=3.0, n_samples=7)

        assert samples.shape == (40, 7)
        np.testing.assert_allclose(samples[:, 3], 0.0, atol=1e-12)
        np.testing.assert_allclose(samples[10], samples[20], atol=1e-12)


class TestDetectorConfiguration:
    """Test suite for detector construction."""

    def test_unknown_mode(self):
        with pytest.raises(ValueError, match="detection mode"):
            LoopClosureDetector(mode="lidar")

    def test_invalid_neighborhood(self):
        with pytest.raises(ValueError, match="neighborhood_length"):
            LoopClosureDetector(neighborhood_length=0.0)

    def test_from_hyperparameters(self):
        hp = get_preset("small_boundary")
        detector = LoopClosureDetector.from_hyperparameters(hp, mode="icp")

        assert detector.neighborhood_length == hp.neighborhood_length
        assert detector.max_dissimilarity == hp.max_dissimilarity
        assert detector.cycle_angle == hp.cycle_angle
        assert detector.mode == "icp"

    def test_icp_mode_requires_model(self, garden_dominant_points):
        detector = LoopClosureDetector(neighborhood_length=10.0, mode="icp")
        with pytest.raises(ValueError, match="model polyline"):
            detector.detect(garden_dominant_points)


class TestSelectPairs:
    """Pair selection gates on a synthetic dissimilarity matrix."""

    def test_accepts_full_turn(self):
        detector = LoopClosureDetector(neighborhood_length=5.0, max_dissimilarity=0.1)
        closures = detector.select_pairs(single_minimum_matrix(40, 10, 30), line_profile())

        np.testing.assert_array_equal(closures.pairs, [[10, 30]])
        np.testing.assert_allclose(closures.arc_lengths, [20.0])
        np.testing.assert_allclose(closures.heading_separations, [2 * np.pi])
        np.testing.assert_allclose(closures.scores, [0.01])

    def test_rejects_heading_reversal(self):
        detector = LoopClosureDetector(neighborhood_length=5.0, max_dissimilarity=0.1)
        profile = line_profile(turn_per_node=np.pi / 20)
        closures = detector.select_pairs(single_minimum_matrix(40, 10, 30), profile)
        assert len(closures) == 0

    def test_rejects_short_separation(self):
        detector = LoopClosureDetector(neighborhood_length=5.0, max_dissimilarity=0.1)
        closures = detector.select_pairs(single_minimum_matrix(40, 10, 15), line_profile())
        assert len(closures) == 0

    def test_score_must_be_below_threshold(self):
        detector = LoopClosureDetector(neighborhood_length=5.0, max_dissimilarity=0.01)
        closures = detector.select_pairs(single_minimum_matrix(40, 10, 30), line_profile())
        assert len(closures) == 0

    def test_rows_near_path_ends_skipped(self):
        detector = LoopClosureDetector(neighborhood_length=5.0, max_dissimilarity=0.1)
        closures = detector.select_pairs(single_minimum_matrix(40, 3, 30), line_profile())
        assert len(closures) == 0

    def test_row_ends_limit_search(self):
        detector = LoopClosureDetector(neighborhood_length=5.0, max_dissimilarity=0.1)
        row_ends = np.full(40, 25)
        closures = detector.select_pairs(
            single_minimum_matrix(40, 10, 30), line_profile(), row_ends
        )
        assert len(closures) == 0


class TestCorrelationDetection:
    """Heading-profile detection on a simulated multi-lap run."""

    def test_zero_threshold_finds_nothing(self, garden_dominant_points):
        detector = LoopClosureDetector(neighborhood_length=10.0, max_dissimilarity=0.0)
        closures = detector.detect(garden_dominant_points)

        assert len(closures) == 0
        assert closures.pairs.shape == (0, 2)
        assert closures.adjacency.nnz == 0

    def test_closures_are_lap_multiples(self, garden_dominant_points):
        hp = get_preset("small_boundary")
        detector = LoopClosureDetector.from_hyperparameters(hp)
        closures = detector.detect(garden_dominant_points)

        lap = 48.0 * 1.01
        assert len(closures) >= 5
        laps = closures.arc_lengths / lap
        np.testing.assert_allclose(laps, np.round(laps), atol=0.05)
        assert np.all(closures.pairs[:, 0] < closures.pairs[:, 1])
        assert np.all(closures.scores < hp.max_dissimilarity)
        assert closures.n_nodes == len(garden_dominant_points) - 1

    def test_adjacency_matches_pairs(self, garden_dominant_points):
        detector = LoopClosureDetector.from_hyperparameters(get_preset("small_boundary"))
        closures = detector.detect(garden_dominant_points)
        rows, cols = closures.adjacency.nonzero()

        assert closures.adjacency.shape == (closures.n_nodes, closures.n_nodes)
        assert sorted(zip(rows, cols)) == [tuple(p) for p in closures.pairs]


class TestNoiseFreeDetection:
    """Exact repeats of a closed boundary are found at every lap."""

    def test_rectangle_closures(self):
        dp = rectangle_laps(3)
        detector = LoopClosureDetector(neighborhood_length=3.0, max_dissimilarity=0.05)

        closures = detector.detect(dp)

        # 16 m laps; rows need 3 m of path on both sides of both nodes
        expected = [(i, i + 16) for i in range(4, 29)] + [(i, i + 32) for i in range(4, 13)]
        assert [tuple(p) for p in closures.pairs] == sorted(expected)
        laps = closures.arc_lengths / 16.0
        np.testing.assert_allclose(laps, np.round(laps), atol=1e-9)
        np.testing.assert_allclose(closures.heading_separations, 2 * np.pi * laps, atol=1e-9)

    def test_half_turn_symmetry_rejected(self):
        dp = rectangle_laps(2)
        detector = LoopClosureDetector(neighborhood_length=3.0, max_dissimilarity=0.05)

        closures = detector.detect(dp)

        assert len(closures) > 0
        np.testing.assert_allclose(closures.arc_lengths, 16.0)


class TestIcpDetection:
    """Window-alignment detection on the same run."""

    def test_closures_are_lap_multiples(self, garden_dominant_points):
        hp = get_preset("small_boundary").update(model_step_size=0.05)
        model = build_model_polyline(garden_dominant_points, hp.model_step_size)
        detector = LoopClosureDetector.from_hyperparameters(hp, mode="icp")

        closures = detector.detect(garden_dominant_points, model)

        lap = 48.0 * 1.01
        assert len(closures) >= 1
        laps = closures.arc_lengths / lap
        np.testing.assert_allclose(laps, np.round(laps), atol=0.05)


class TestLoopClosureMeasurements:
    """ICP measurements between matching windows."""

    def test_identical_windows_give_zero_measurement(self):
        lap = np.array([[0, 0], [4, 0], [4, 4], [0, 4]], dtype=float)
        dp = np.vstack([lap, lap + [0.3, 0.2]])
        model = build_model_polyline(dp, 0.05)
        closures = LoopClosureSet.from_lists(7, [(1, 5)], [16.0], [2 * np.pi], [0.01])

        measurements, residuals = loop_closure_measurements(
            closures, model, neighborhood_length=2.0, icp_divisor=1.0
        )

        assert measurements.shape == (1, 3)
        np.testing.assert_allclose(measurements[0], 0.0, atol=1e-6)
        assert residuals[0] < 1e-6

    def test_empty_closures(self):
        dp = np.array([[0, 0], [4, 0], [4, 4], [0, 4]], dtype=float)
        model = build_model_polyline(dp, 0.05)
        measurements, residuals = loop_closure_measurements(
            LoopClosureSet(n_nodes=3), model, neighborhood_length=2.0, icp_divisor=1.0
        )
        assert measurements.shape == (0, 3)
        assert residuals.shape == (0,)

    def test_window_size_from_divisor(self):
        assert icp_window_points(50.0, 0.1) == 500
        assert icp_window_points(10.0, 3.0) == 3
        assert icp_window_points(2.0, 3.0) == 1

    def test_larger_divisor_shortens_window(self):
        # both laps leave (4, 0) upwards, the second turns right after 0.5 m
        dp = np.array(
            [[0, 0], [4, 0], [4, 1], [0, 1], [0, 0], [4, 0], [4, 0.5], [8, 0.5]], dtype=float
        )
        model = build_model_polyline(dp, 0.05)
        closures = LoopClosureSet.from_lists(7, [(1, 5)], [10.0], [2 * np.pi], [0.01])

        _, narrow = loop_closure_measurements(closures, model, 2.0, icp_divisor=1.0)
        _, wide = loop_closure_measurements(closures, model, 2.0, icp_divisor=0.1)

        assert narrow[0] < 1e-6
        assert wide[0] > 1e-3

"""Simulation utilities for synthetic boundary runs."""

from .boundary_path import (
    GARDEN_POLYGON,
    BoundaryPath,
    generate_boundary_path,
    polygon_perimeter,
    sample_boundary,
    simulate_odometry,
)

__all__ = [
    "GARDEN_POLYGON",
    "BoundaryPath",
    "generate_boundary_path",
    "polygon_perimeter",
    "sample_boundary",
    "simulate_odometry",
]

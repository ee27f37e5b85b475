"""
Evaluation Module.

This module provides map quality metrics for simulated or surveyed runs.

Modules:
    metrics: Node errors, boundary distances, circumference and area errors
"""

from .metrics import (
    boundary_distances,
    circumference_error,
    error_summary,
    node_position_errors,
    polygon_area,
)

__all__ = [
    "error_summary",
    "node_position_errors",
    "boundary_distances",
    "polygon_area",
    "circumference_error",
]

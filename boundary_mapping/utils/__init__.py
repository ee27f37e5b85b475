"""
Utility functions for the mapping algorithms.

This module provides common angle operations used across the codebase.
"""

from .angles import angle_diff, unwrap_increments, wrap_angle, wrap_angle_array

__all__ = [
    'wrap_angle',
    'wrap_angle_array',
    'angle_diff',
    'unwrap_increments',
]

"""Pose-graph mapping of closed boundary trajectories.

This package turns a drifting odometry trajectory recorded while a robot
follows a closed boundary (e.g. a lawn edge) into a consistent 2D map:
- slam: path simplification, loop-closure detection, pose graph optimization
- estimators: Gauss-Newton graph solver
- calibration: hyperparameter set and black-box calibration
- eval: map quality metrics
- sim: synthetic boundary trajectories for demos and tests
"""

__version__ = "0.1.0"

"""Boundary Mapping Examples.

Runnable examples of the boundary mapping pipeline on simulated or recorded
odometry paths.

Examples:
    - example_boundary_mapping.py: Complete mapping run with evaluation

Key Concepts Demonstrated:
    - Path simplification: Dominant points from a dense odometry path
    - Loop closure detection: Heading-profile correlation and ICP matching
    - Circumference estimation: Gaussian mixtures on closure arc lengths
    - Pose graph optimization: Gauss-Newton on SE(2) poses
    - Calibration: Bayesian optimization of detector and solver parameters

Dependencies:
    - boundary_mapping.slam: Mapping pipeline
    - boundary_mapping.calibration: Hyperparameter presets and calibration
    - boundary_mapping.sim, boundary_mapping.eval: Simulation and metrics
"""

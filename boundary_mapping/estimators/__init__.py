"""
Batch estimation for pose graphs.

Available estimators:
    - Factor Graph Optimization (Gauss-Newton, anchored variables)
"""

from .factor_graph import Factor, FactorGraph, SolverDivergenceWarning

__all__ = [
    "Factor",
    "FactorGraph",
    "SolverDivergenceWarning",
]

"""
Gauss-Newton factor graph for pose graph optimization.

Variables are pose graph nodes, factors are relative-pose constraints
between them. Each iteration linearizes every factor, accumulates the
normal equations in information form

    H = Σ JᵀΛJ,   b = -Σ JᵀΛr,

solves H δx = b and adds δx to all variables. Anchored variables get an
identity block on their diagonal of H, which fixes the gauge freedom of
purely relative constraints without removing them from the state.

Iteration stops when ||δx|| drops below a tolerance or after a fixed number
of iterations. A non-finite system or increment stops the loop early, keeps
the last finite estimate and is reported as a SolverDivergenceWarning.

Author: Navigation Engineer
Date: 2026
"""

import warnings
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np


ResidualFunc = Callable[[List[np.ndarray]], np.ndarray]
JacobianFunc = Callable[[List[np.ndarray]], List[np.ndarray]]


class SolverDivergenceWarning(RuntimeWarning):
    """Issued when an iterative solver produces non-finite steps."""


@dataclass
class Factor:
    """
    Gaussian constraint on a few variables.

    Attributes:
        variable_ids: Variables the residual depends on, in argument order.
        residual_func: r(x_vars) for the listed variables.
        jacobian_func: [∂r/∂x_1, ∂r/∂x_2, ...] for the listed variables.
        information: Information matrix Λ of the residual.
    """

    variable_ids: List[int]
    residual_func: ResidualFunc
    jacobian_func: JacobianFunc
    information: np.ndarray

    def _values(self, variables: Dict[int, np.ndarray]) -> List[np.ndarray]:
        return [variables[vid] for vid in self.variable_ids]

    def compute_error(self, variables: Dict[int, np.ndarray]) -> float:
        """Weighted squared residual rᵀΛr."""
        r = self.residual_func(self._values(variables))
        return float(r @ self.information @ r)

    def linearize(
        self, variables: Dict[int, np.ndarray]
    ) -> Tuple[np.ndarray, List[np.ndarray]]:
        """Residual and per-variable Jacobians at the current values."""
        values = self._values(variables)
        return self.residual_func(values), self.jacobian_func(values)


class FactorGraph:
    """
    Batch least-squares problem over a set of vector variables.

    Args:
        retraction: Optional map applied to every variable after an update,
            e.g. heading wrapping for SE(2) poses.

    Example:
        >>> graph = FactorGraph()
        >>> graph.add_variable(0, np.zeros(3))
        >>> graph.anchor(0)
        >>> values, norms, converged = graph.optimize()
    """

    def __init__(self, retraction: Optional[Callable[[np.ndarray], np.ndarray]] = None):
        self.variables: Dict[int, np.ndarray] = {}
        self.factors: List[Factor] = []
        self.anchors: List[int] = []
        self.retraction = retraction

    def add_variable(self, var_id: int, initial_value: np.ndarray) -> None:
        self.variables[var_id] = np.array(initial_value, dtype=float)

    def _require(self, var_id: int) -> None:
        if var_id not in self.variables:
            raise ValueError(f"Variable {var_id} not in graph")

    def add_factor(self, factor: Factor) -> None:
        """
        Add a factor.

        Raises:
            ValueError: If the factor refers to an unknown variable.
        """
        for vid in factor.variable_ids:
            self._require(vid)
        self.factors.append(factor)

    def anchor(self, var_id: int) -> None:
        """
        Softly fix a variable by adding identity to its Hessian block.

        Raises:
            ValueError: If the variable is unknown.
        """
        self._require(var_id)
        self.anchors.append(var_id)

    def compute_error(self) -> float:
        """Total weighted squared error over all factors."""
        return sum(factor.compute_error(self.variables) for factor in self.factors)

    def optimize(
        self,
        max_iterations: int = 100,
        tol: float = 1e-3,
    ) -> Tuple[Dict[int, np.ndarray], List[float], bool]:
        """
        Run Gauss-Newton until ||δx|| < tol.

        Args:
            max_iterations: Iteration cap.
            tol: Convergence threshold on the increment norm.

        Returns:
            Tuple of (variables, increment_norms, converged).
        """
        blocks = self._blocks()
        increment_norms: List[float] = []
        converged = False

        for iteration in range(1, max_iterations + 1):
            H, b = self._normal_equations(blocks)
            delta = self._solve(H, b)

            if delta is None:
                warnings.warn(
                    f"Non-finite Gauss-Newton increment at iteration "
                    f"{iteration}; keeping the last finite estimate",
                    SolverDivergenceWarning,
                    stacklevel=2,
                )
                break

            self._apply(delta, blocks)
            norm = float(np.linalg.norm(delta))
            increment_norms.append(norm)
            if norm < tol:
                converged = True
                break

        return dict(self.variables), increment_norms, converged

    def _blocks(self) -> Dict[int, slice]:
        """Slice of every variable in the stacked state, ordered by ID."""
        blocks = {}
        offset = 0
        for vid in sorted(self.variables):
            size = self.variables[vid].shape[0]
            blocks[vid] = slice(offset, offset + size)
            offset += size
        return blocks

    def _normal_equations(
        self, blocks: Dict[int, slice]
    ) -> Tuple[np.ndarray, np.ndarray]:
        n = sum(block.stop - block.start for block in blocks.values())
        H = np.zeros((n, n))
        b = np.zeros(n)

        for factor in self.factors:
            r, jacobians = factor.linearize(self.variables)
            weighted = [J.T @ factor.information for J in jacobians]
            for vid_a, J_a_w in zip(factor.variable_ids, weighted):
                rows = blocks[vid_a]
                b[rows] -= J_a_w @ r
                for vid_b, J_b in zip(factor.variable_ids, jacobians):
                    H[rows, blocks[vid_b]] += J_a_w @ J_b

        for vid in self.anchors:
            block = blocks[vid]
            H[block, block] += np.eye(block.stop - block.start)

        return H, b

    @staticmethod
    def _solve(H: np.ndarray, b: np.ndarray) -> Optional[np.ndarray]:
        """Increment of H δx = b, or None when the system or result is not finite."""
        if not (np.all(np.isfinite(H)) and np.all(np.isfinite(b))):
            return None
        try:
            delta = np.linalg.solve(H, b)
        except np.linalg.LinAlgError:
            delta = np.linalg.lstsq(H, b, rcond=None)[0]
        if not np.all(np.isfinite(delta)):
            return None
        return delta

    def _apply(self, delta: np.ndarray, blocks: Dict[int, slice]) -> None:
        for vid, block in blocks.items():
            value = self.variables[vid] + delta[block]
            if self.retraction is not None:
                value = self.retraction(value)
            self.variables[vid] = value

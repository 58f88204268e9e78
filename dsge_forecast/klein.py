"""
Klein Algorithm - Klein (2000)
==============================

Solves linear rational expectations models written as

    A·E_t x_{t+1} = B·x_t,     x_t = [k_t; u_t]

where k_t are the n_k predetermined variables and u_t the jump variables.
The complex generalized Schur decomposition of the pencil (A, B) is ordered
so that stable roots come first. A unique stable solution exists when the
number of stable roots equals n_k, giving

    u_t     = F·k_t        (TTT_jump)
    k_{t+1} = P·k_t        (TTT_state)

Citation:
Klein, P. (2000). Using the generalized Schur form to solve a multivariate
linear rational expectations model. Journal of Economic Dynamics and
Control, 24(10), 1405-1423.
"""

from typing import Tuple

import numpy as np
from scipy import linalg

from .errors import SolverError


def klein(A: np.ndarray, B: np.ndarray, n_backward: int,
          div: float = 1.0 + 1e-6, realsmall: float = 1e-6) -> Tuple[np.ndarray, np.ndarray]:
    """
    Solve A·E_t x_{t+1} = B·x_t for the decision and law-of-motion matrices.

    Args:
        A: Coefficient matrix on E_t x_{t+1} (n x n)
        B: Coefficient matrix on x_t (n x n)
        n_backward: Number of predetermined variables (ordered first in x)
        div: Roots with modulus below div are stable
        realsmall: Numerical tolerance for zero

    Returns:
        TTT_jump: Jumps as a function of predetermined variables (n - n_k x n_k)
        TTT_state: Law of motion of predetermined variables (n_k x n_k)

    Raises:
        SolverError: Decomposition failure, coincident zeros, wrong number of
            stable roots, or a non-invertible Z11 block.
    """
    A = np.asarray(A, dtype=float)
    B = np.asarray(B, dtype=float)
    n = A.shape[0]
    nk = int(n_backward)

    # Root λ = t_ii / s_ii is stable when |t_ii| < div * |s_ii|
    try:
        S, T, _, _, _, Z = linalg.ordqz(
            A, B, sort=lambda alpha, beta: np.abs(beta) < div * np.abs(alpha),
            output='complex')
    except (linalg.LinAlgError, ValueError) as e:
        raise SolverError(f"QZ decomposition failed: {e}", eu=(-3, -3))

    diag_s = np.diag(S)
    diag_t = np.diag(T)
    if np.any((np.abs(diag_s) < realsmall) & (np.abs(diag_t) < realsmall)):
        raise SolverError("Coincident zeros. Indeterminacy and/or nonexistence.",
                          eu=(-2, -2))

    n_stable = int(np.sum(np.abs(diag_t) < div * np.abs(diag_s)))
    if n_stable > nk:
        raise SolverError(f"Indeterminacy: {n_stable} stable roots for {nk} "
                          "predetermined variables", eu=(1, 0))
    if n_stable < nk:
        raise SolverError(f"No stable solution: {n_stable} stable roots for {nk} "
                          "predetermined variables", eu=(0, 0))

    if nk == 0:
        return np.zeros((n, 0)), np.zeros((0, 0))

    Z11 = Z[:nk, :nk]
    Z21 = Z[nk:, :nk]

    # Z11 must have full rank for the jumps to be pinned down by k
    if np.linalg.matrix_rank(Z11) < nk:
        raise SolverError("Invertibility condition violated: Z11 is singular",
                          eu=(1, 0))

    Z11_inv = linalg.inv(Z11)
    S11 = S[:nk, :nk]
    T11 = T[:nk, :nk]

    try:
        dyn = linalg.solve_triangular(S11, T11)
    except linalg.LinAlgError:
        raise SolverError("Singular S11 block in Klein solution", eu=(-3, -3))

    TTT_state = np.real(Z11 @ dyn @ Z11_inv)
    TTT_jump = np.real(Z21 @ Z11_inv)

    return TTT_jump, TTT_state

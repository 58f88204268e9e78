"""
Gensys Algorithm - Sims (2002)
================================

Pure Python implementation of Christopher Sims' gensys algorithm for solving
linear rational expectations models.

Citation:
Sims, C. A. (2002). Solving linear rational expectations models.
Computational economics, 20(1-2), 1-20.

Canonical form:
    Γ0·y_t = Γ1·y_{t-1} + c + Ψ·z_t + Π·η_t

Where:
    y_t: endogenous variables
    z_t: exogenous shocks
    η_t: expectational errors (one-step-ahead forecast errors)

Solution:
    y_t = G1·y_{t-1} + C + impact·z_t
"""

import warnings
from typing import Tuple

import numpy as np
from scipy import linalg

from .errors import SolverError


def _significant_svd(x: np.ndarray, realsmall: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Thin SVD keeping only singular values above realsmall.

    Returns:
        u: Left singular vectors (m x k)
        d: Singular values (k,)
        v: Right singular vectors (ncol x k), not conjugated
    """
    m, ncol = x.shape
    if m == 0 or ncol == 0:
        return (np.zeros((m, 0), dtype=complex), np.zeros(0),
                np.zeros((ncol, 0), dtype=complex))

    u, d, vh = linalg.svd(x, full_matrices=False)
    big = d > realsmall
    return u[:, big], d[big], vh[big, :].conj().T


def gensys(g0: np.ndarray, g1: np.ndarray, c: np.ndarray, psi: np.ndarray,
           pi: np.ndarray, div: float = 1.0 + 1e-6, realsmall: float = 1e-6,
           return_everything: bool = False) -> Tuple:
    """
    Solve linear rational expectations model using the complex QZ decomposition.

    Args:
        g0: Coefficient matrix on y_t (n x n)
        g1: Coefficient matrix on y_{t-1} (n x n)
        c: Constant vector (n,)
        psi: Coefficient matrix on shocks z_t (n x n_eps)
        pi: Coefficient matrix on expectational errors η_t (n x n_eta)
        div: Generalized eigenvalues with modulus above div are explosive
        realsmall: Numerical tolerance for zero
        return_everything: Also return the generalized eigenvalue pairs

    Returns:
        G1: State transition matrix (n x n)
        C: Constant vector (n,)
        impact: Shock impact matrix (n x n_eps)
        eu: (existence, uniqueness), always (1, 1) on return
        gev: (n x 2) diagonals of the ordered (a, b) pair, if return_everything

    Raises:
        SolverError: Decomposition failure, coincident zeros, nonexistence
            or indeterminacy. The error carries the eu flags.
    """
    g0 = np.asarray(g0, dtype=float)
    g1 = np.asarray(g1, dtype=float)
    c = np.asarray(c, dtype=float).reshape(-1)
    psi = np.asarray(psi, dtype=float)
    pi = np.asarray(pi, dtype=float)

    n = g0.shape[0]

    def _stable(alpha, beta):
        # Root b_ii/a_ii is stable when |b_ii| <= div * |a_ii|
        return np.abs(beta) <= div * np.abs(alpha)

    # QZ decomposition with stable roots ordered first:
    #   g0 = q·a·z',  g1 = q·b·z'
    try:
        a, b, _, _, q, z = linalg.ordqz(g0, g1, sort=_stable, output='complex')
    except (linalg.LinAlgError, ValueError) as e:
        raise SolverError(f"QZ decomposition failed: {e}", eu=(-3, -3))

    diag_a = np.diag(a)
    diag_b = np.diag(b)

    if np.any((np.abs(diag_a) < realsmall) & (np.abs(diag_b) < realsmall)):
        raise SolverError("Coincident zeros. Indeterminacy and/or nonexistence.",
                          eu=(-2, -2))

    nunstab = int(np.sum(np.abs(diag_b) > div * np.abs(diag_a)))
    nstab = n - nunstab

    qt = q.conj().T
    qt1 = qt[:nstab, :]
    qt2 = qt[nstab:, :]

    # Existence: explosive block must absorb the expectational errors
    ueta, deta, veta = _significant_svd(qt2 @ pi, realsmall)
    existence = len(deta) >= nunstab

    # Uniqueness: no loose expectational errors in the stable block
    ueta1, deta1, veta1 = _significant_svd(qt1 @ pi, realsmall)
    if veta1.shape[1] == 0:
        unique = True
    else:
        loose = veta1 - veta @ (veta.conj().T @ veta1)
        dl = linalg.svd(loose, compute_uv=False)
        unique = int(np.sum(np.abs(dl) > realsmall * n)) == 0

    eu = (int(existence), int(unique))
    if not existence:
        raise SolverError(f"Nonexistence: rank(Q2·Π) = {len(deta)} < {nunstab} "
                          "explosive roots", eu=eu)
    if not unique:
        raise SolverError("Indeterminacy: loose endogenous errors in the "
                          "stable block", eu=eu)

    # Project the explosive-block expectational errors out of the stable rows
    proj = (ueta @ (veta.conj().T / deta[:, None])) @ veta1 @ (deta1[:, None] * ueta1.conj().T)
    tmat = np.hstack([np.eye(nstab), -proj.conj().T])

    G0 = np.vstack([tmat @ a,
                    np.hstack([np.zeros((nunstab, nstab)), np.eye(nunstab)])])
    G1 = np.vstack([tmat @ b, np.zeros((nunstab, n))])

    try:
        G0I = linalg.inv(G0)
    except linalg.LinAlgError:
        raise SolverError("Singular transformed Γ0 in gensys", eu=(-3, -3))

    G1 = G0I @ G1

    if nunstab > 0:
        usix = slice(nstab, n)
        try:
            c_unstab = linalg.solve(a[usix, usix] - b[usix, usix], qt2 @ c)
        except linalg.LinAlgError:
            raise SolverError("Constant term undefined: unit root in the "
                              "explosive block", eu=(-3, -3))
    else:
        c_unstab = np.zeros(0, dtype=complex)

    C = G0I @ np.concatenate([tmat @ qt @ c, c_unstab])
    impact = G0I @ np.vstack([tmat @ qt @ psi, np.zeros((nunstab, psi.shape[1]))])

    G1 = z @ G1 @ z.conj().T
    C = z @ C
    impact = z @ impact

    imag_residue = max(np.max(np.abs(G1.imag), initial=0.0),
                       np.max(np.abs(impact.imag), initial=0.0),
                       np.max(np.abs(C.imag), initial=0.0))
    if imag_residue > 1e-6:
        warnings.warn(f"gensys solution has imaginary residue {imag_residue:.2e}")

    if return_everything:
        gev = np.column_stack([diag_a, diag_b])
        return np.real(G1), np.real(C), np.real(impact), eu, gev

    return np.real(G1), np.real(C), np.real(impact), eu


if __name__ == '__main__':
    print("Testing gensys with a forward-looking AR(1) model...")

    # z_t = ρ z_{t-1} + ε_t
    # y_t = a E_t y_{t+1} + z_t     ->   y_t = z_t / (1 - aρ)
    rho, a_coef = 0.8, 0.9

    # Variables: [z, y, Ey]
    Gamma0 = np.array([[1.0, 0.0, 0.0],
                       [-1.0, 1.0, -a_coef],
                       [0.0, 1.0, 0.0]])
    Gamma1 = np.array([[rho, 0.0, 0.0],
                       [0.0, 0.0, 0.0],
                       [0.0, 0.0, 1.0]])
    Psi = np.array([[1.0], [0.0], [0.0]])
    Pi = np.array([[0.0], [0.0], [1.0]])

    G1, C, impact, eu = gensys(Gamma0, Gamma1, np.zeros(3), Psi, Pi)

    print(f"eu = {eu}")
    print(f"Impact of ε on y: {impact[1, 0]:.4f} (closed form {1 / (1 - a_coef * rho):.4f})")

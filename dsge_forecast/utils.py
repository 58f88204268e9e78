"""
Utility Functions
=================

Numerical helpers shared by the filter, smoothers and forecast engine:
- Matrix checks (positive semidefiniteness, stability)
- Discrete Lyapunov equation
- Draws from possibly degenerate multivariate normals
- Shock standardization
- Verbosity-gated progress printing
"""

import warnings
from typing import Tuple

import numpy as np
from scipy import linalg


VERBOSITY = {'none': 0, 'low': 1, 'high': 2}


def info_print(verbose: str, level: str, msg: str) -> None:
    """
    Print msg if the requested verbosity is at least level.

    Args:
        verbose: Verbosity of the caller ('none', 'low', 'high')
        level: Minimum verbosity at which msg is printed
        msg: Message
    """
    if VERBOSITY[verbose] >= VERBOSITY[level]:
        print(msg)


def symmetrize(matrix: np.ndarray) -> np.ndarray:
    """Return 0.5 * (A + A')."""
    return 0.5 * (matrix + matrix.T)


def is_positive_semidefinite(matrix: np.ndarray, tol: float = 1e-8) -> bool:
    """
    Check if a symmetric matrix is positive semidefinite.

    The smallest eigenvalue may be negative by at most tol times the largest
    absolute eigenvalue (roundoff from repeated matrix products).

    Args:
        matrix: Square matrix to check
        tol: Relative tolerance on negative eigenvalues

    Returns:
        True if matrix is positive semidefinite
    """
    if matrix.size == 0:
        return True
    if not np.all(np.isfinite(matrix)):
        return False

    eigenvalues = linalg.eigvalsh(symmetrize(matrix))
    scale = max(1.0, np.max(np.abs(eigenvalues)))
    return bool(eigenvalues[0] >= -tol * scale)


def check_stability(T: np.ndarray) -> Tuple[bool, float]:
    """
    Check if a transition matrix is stable (eigenvalues inside unit circle).

    Args:
        T: State transition matrix

    Returns:
        (is_stable, max_eigenvalue_modulus)
    """
    if T.size == 0:
        return True, 0.0
    max_modulus = float(np.max(np.abs(np.linalg.eigvals(T))))
    return max_modulus < 1.0, max_modulus


def solve_lyapunov(A: np.ndarray, Q: np.ndarray) -> np.ndarray:
    """
    Solve discrete-time Lyapunov equation: X = A @ X @ A.T + Q

    Args:
        A: Stable transition matrix (n x n)
        Q: Innovation covariance matrix (n x n)

    Returns:
        Solution matrix X (n x n)
    """
    try:
        X = linalg.solve_discrete_lyapunov(A, Q)
    except (linalg.LinAlgError, ValueError):
        # Doubling iteration as fallback
        X = Q.copy()
        A_k = A.copy()
        for _ in range(100):
            X_new = X + A_k @ X @ A_k.T
            A_k = A_k @ A_k
            if np.max(np.abs(X_new - X)) < 1e-12:
                X = X_new
                break
            X = X_new
        else:
            warnings.warn("Lyapunov equation did not converge")

    return symmetrize(np.real(X))


def sqrt_factor(cov: np.ndarray) -> np.ndarray:
    """
    Square-root factor U*sqrt(S) of a (possibly singular) covariance matrix.

    Uses the SVD so that degenerate covariances (zero-variance directions)
    are handled without a Cholesky failure.

    Args:
        cov: Symmetric positive semidefinite matrix (n x n)

    Returns:
        Factor L (n x n) with L @ L.T = cov
    """
    if cov.size == 0:
        return np.zeros_like(cov)
    U, singular_values, _ = linalg.svd(symmetrize(cov))
    return U * np.sqrt(np.maximum(singular_values, 0.0))


def draw_degenerate_normal(mean: np.ndarray, cov: np.ndarray,
                           rng: np.random.Generator) -> np.ndarray:
    """
    Draw from N(mean, cov) where cov may be singular.

    Args:
        mean: Mean vector (n,)
        cov: Covariance matrix (n x n)
        rng: Random number generator

    Returns:
        Draw (n,)
    """
    factor = sqrt_factor(cov)
    return mean + factor @ rng.standard_normal(len(mean))


def draw_shocks(QQ: np.ndarray, n_periods: int,
                rng: np.random.Generator) -> np.ndarray:
    """
    Draw a shock matrix with rows eps_t ~ N(0, QQ).

    Args:
        QQ: Shock covariance (n_shocks x n_shocks)
        n_periods: Number of periods
        rng: Random number generator

    Returns:
        Shocks (n_periods x n_shocks)
    """
    factor = sqrt_factor(QQ)
    return rng.standard_normal((n_periods, QQ.shape[0])) @ factor.T


def standardize_shocks(shocks: np.ndarray, QQ: np.ndarray) -> np.ndarray:
    """
    Whiten shocks using the Cholesky factor of QQ.

    Shocks with zero variance are reported as zero.

    Args:
        shocks: Shocks (T x n_shocks)
        QQ: Shock covariance (n_shocks x n_shocks)

    Returns:
        Standardized shocks (T x n_shocks)
    """
    std_shocks = np.zeros_like(shocks)
    active = np.diag(QQ) > 0
    if not np.any(active):
        return std_shocks

    chol = linalg.cholesky(QQ[np.ix_(active, active)], lower=True)
    std_shocks[:, active] = linalg.solve_triangular(chol, shocks[:, active].T, lower=True).T
    return std_shocks


def pseudo_logdet_and_inverse(F: np.ndarray, tol: float = 1e-10) -> Tuple[float, np.ndarray, int]:
    """
    Log pseudo-determinant and pseudo-inverse of a symmetric PSD matrix.

    Args:
        F: Symmetric positive semidefinite matrix
        tol: Relative threshold below which eigenvalues count as zero

    Returns:
        (log_pseudo_determinant, pseudo_inverse, rank)
    """
    eigenvalues, eigenvectors = linalg.eigh(symmetrize(F))
    scale = max(1.0, np.max(np.abs(eigenvalues))) if eigenvalues.size else 1.0
    keep = eigenvalues > tol * scale

    logdet = float(np.sum(np.log(eigenvalues[keep])))
    V = eigenvectors[:, keep]
    F_inv = (V / eigenvalues[keep]) @ V.T
    return logdet, F_inv, int(np.sum(keep))

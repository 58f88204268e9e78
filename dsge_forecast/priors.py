"""
Parameter Priors
================

Priors are only sampled here: prior forecasts draw whole parameter vectors
and keep those for which the model solves. Each prior is a frozen
scipy.stats distribution restricted to [lower, upper].

Draws take an explicit numpy Generator so that each forecast draw is
reproducible from its own seed.
"""

from typing import Optional

import numpy as np
from scipy import stats


class Prior:
    """
    A frozen scipy distribution truncated to [lower, upper] by rejection.

    Args:
        dist: Frozen scipy.stats distribution
        lower: Lower bound of support
        upper: Upper bound of support
    """

    max_rejections = 1000
    batch_size = 16

    def __init__(self, dist, lower: float = -np.inf, upper: float = np.inf):
        if lower >= upper:
            raise ValueError(f"Empty prior support [{lower}, {upper}]")
        self.dist = dist
        self.lower = lower
        self.upper = upper

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(mean={self.dist.mean():.4g}, "
                f"std={self.dist.std():.4g}, support=[{self.lower}, {self.upper}])")

    def in_support(self, x: float) -> bool:
        return self.lower <= x <= self.upper

    def draw(self, rng: np.random.Generator) -> float:
        """
        One draw inside [lower, upper].

        Candidates are drawn in batches; the first admissible one is kept.

        Raises:
            ValueError: No admissible candidate after max_rejections tries
        """
        tried = 0
        while tried < self.max_rejections:
            n = min(self.batch_size, self.max_rejections - tried)
            candidates = np.atleast_1d(self.dist.rvs(size=n, random_state=rng))
            inside = (candidates >= self.lower) & (candidates <= self.upper)
            if inside.any():
                return float(candidates[np.argmax(inside)])
            tried += n
        raise ValueError(f"{type(self).__name__}: no draw inside "
                         f"[{self.lower}, {self.upper}] after {self.max_rejections} tries")


class BetaPrior(Prior):
    """Beta prior given its mean and standard deviation."""

    def __init__(self, mean: float, std: float, lower: float = 0.0, upper: float = 1.0):
        # mean = α/(α+β), var = αβ/[(α+β)²(α+β+1)]
        concentration = mean * (1 - mean) / std ** 2 - 1
        if concentration <= 0:
            raise ValueError(f"Beta prior: std {std} too large for mean {mean}")
        self.alpha = mean * concentration
        self.beta = (1 - mean) * concentration
        super().__init__(stats.beta(self.alpha, self.beta), lower, upper)


class GammaPrior(Prior):
    """Gamma prior given its mean and standard deviation."""

    def __init__(self, mean: float, std: float, lower: float = 0.0, upper: float = np.inf):
        self.shape = (mean / std) ** 2
        self.scale = std ** 2 / mean
        super().__init__(stats.gamma(self.shape, scale=self.scale), lower, upper)


class NormalPrior(Prior):
    """Normal prior."""

    def __init__(self, mean: float, std: float, lower: float = -np.inf, upper: float = np.inf):
        super().__init__(stats.norm(loc=mean, scale=std), lower, upper)


class InverseGammaPrior(Prior):
    """
    Inverse-gamma prior in the IG(s, ν) parameterization.

    Args:
        s: Scale parameter
        nu: Degrees of freedom
        lower: Lower bound (default 0)
        upper: Upper bound (default infinity)
    """

    def __init__(self, s: float, nu: float, lower: float = 0.0, upper: float = np.inf):
        self.s = s
        self.nu = nu
        # scipy invgamma(a, scale) with a = ν/2, scale = sν/2
        super().__init__(stats.invgamma(nu / 2, scale=s * nu / 2), lower, upper)


PRIOR_TYPES = {
    'beta': BetaPrior,
    'gamma': GammaPrior,
    'normal': NormalPrior,
    'invgamma': InverseGammaPrior,
    'inv_gamma': InverseGammaPrior,
}


def create_prior(prior_type: str, *args, **kwargs) -> Optional[Prior]:
    """
    Build a prior by name.

    Args:
        prior_type: 'beta', 'gamma', 'normal', 'invgamma', or 'fixed' for
            a calibrated parameter
        *args, **kwargs: Passed to the prior class

    Returns:
        Prior, or None for fixed parameters

    Example:
        >>> prior = create_prior('beta', mean=0.5, std=0.2)
        >>> prior = create_prior('invgamma', s=0.1, nu=2)
    """
    prior_type = prior_type.lower()
    if prior_type == 'fixed':
        return None
    if prior_type not in PRIOR_TYPES:
        raise ValueError(f"Unknown prior type: {prior_type}. "
                         f"Available: {list(PRIOR_TYPES)}")
    return PRIOR_TYPES[prior_type](*args, **kwargs)

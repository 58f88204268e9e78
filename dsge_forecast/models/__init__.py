"""
Example Models
==============

Small models used by the tests and the command-line demos:

- AR1Model: univariate AR(1) with one lagged auxiliary state
- PresentValueModel: forward-looking present-value relation, solvable with
  gensys or Klein
- NKModel: three-equation New Keynesian model with anticipated policy
  shocks and a floor on the observed nominal rate
"""

from .ar1 import AR1Model
from .nk import NKModel, strict_taylor_eqcond
from .present_value import PresentValueModel

__all__ = ['AR1Model', 'NKModel', 'PresentValueModel', 'strict_taylor_eqcond']

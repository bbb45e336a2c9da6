"""procrustes_allometry: allometry analysis of Procrustes shape data.

Procrustes ANOVA of shape on a single size covariate with residual
(RRPP) or raw randomisation, a permutation test of the homogeneity of
allometric slopes among groups, and the common allometric component,
regression score and predicted-line projections used to plot
allometry.  The permutation loop runs on NumPy (optionally in joblib
threads) or on JAX via ``vmap``.

Public API:
    .. autosummary::
        procd_allometry
        AllometryAnalysis
        AllometryOptions
        PermutationTester
        AllometryProjector
        ModelSpec
        Term
        allometry_models
        decide
        print_allometry_summary
        print_anova_table
        print_hos_table
        allometry_plot_data
        arrayspecs
        two_d_array
        empirical_p_value
        effect_size
        generate_unique_permutations
        get_backend
        set_backend
        AllometryResult
        AnovaResult
        HomogeneityOfSlopesResult
        PermutationResult
"""

from ._config import get_backend, set_backend
from ._results import (
    AllometryResult,
    AnovaResult,
    HomogeneityOfSlopesResult,
    PermutationResult,
)
from .core import AllometryAnalysis, AllometryOptions, procd_allometry
from .design import ModelSpec, Term, allometry_models
from .display import (
    allometry_plot_data,
    print_allometry_summary,
    print_anova_table,
    print_hos_table,
)
from .exceptions import (
    AllometryError,
    DegenerateAllometricDirection,
    DimensionMismatch,
    InvalidIterationCount,
    InvalidModel,
    NonFactorGrouping,
    NonPositiveSize,
    RankDeficientDesign,
    SingleCovariateRequired,
)
from .landmarks import arrayspecs, two_d_array
from .permutations import generate_unique_permutations
from .projections import AllometryProjector
from .pvalues import effect_size, empirical_p_value
from .slopes import decide
from .tester import PermutationTester

__all__ = [
    "AllometryResult",
    "AnovaResult",
    "HomogeneityOfSlopesResult",
    "PermutationResult",
    "procd_allometry",
    "AllometryAnalysis",
    "AllometryOptions",
    "PermutationTester",
    "AllometryProjector",
    "ModelSpec",
    "Term",
    "allometry_models",
    "decide",
    "print_allometry_summary",
    "print_anova_table",
    "print_hos_table",
    "allometry_plot_data",
    "arrayspecs",
    "two_d_array",
    "empirical_p_value",
    "effect_size",
    "generate_unique_permutations",
    "get_backend",
    "set_backend",
    "AllometryError",
    "DegenerateAllometricDirection",
    "DimensionMismatch",
    "InvalidIterationCount",
    "InvalidModel",
    "NonFactorGrouping",
    "NonPositiveSize",
    "RankDeficientDesign",
    "SingleCovariateRequired",
]

__version__ = "0.1.0"

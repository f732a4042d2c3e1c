"""
Observation Uncertainty

Three-sigma error models and the variances derived from them.
"""

from .error_models import (
    ErrorModel,
    clim_taper_3sd,
    pct_plus_quantile_3sd,
    sample_quantile,
)
from .variance import derive_variance

__all__ = [
    'ErrorModel',
    'clim_taper_3sd',
    'pct_plus_quantile_3sd',
    'sample_quantile',
    'derive_variance',
]

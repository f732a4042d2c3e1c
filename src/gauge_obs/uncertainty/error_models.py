"""
Three-Sigma Observation Error Models

Streamflow observation errors are specified subjectively. Assuming
zero-mean Gaussian errors, each model estimates the three-sigma error
(the interval holding ~99.7% of errors) for a discharge value, in the
same units as the discharge. One sigma is derived downstream by
dividing by three.

Available models:
- Percent plus quantile: a fixed percent of the observation on top of a
  low quantile of the historical record
- Climatological taper: smallest near a climatological quantile (e.g. the
  median) and growing linearly away from it, never exceeding the flat
  percent error

Design Principles:
- Pure functions: same sample and values give the same errors
- Quantiles use linear interpolation (type 7) for reproducibility
- An undefined quantile is an error, never a silent zero
- Errors are clipped at zero: a negative quantile or value never yields a
  negative three-sigma error
"""

from typing import Optional, Sequence, Union

import numpy as np
from pydantic import BaseModel, Field, validator

from gauge_obs.errors import InsufficientData
from gauge_obs.normalize.schemas import ErrorModelKind


ArrayLike = Union[Sequence[float], np.ndarray]


# Default parameters per model
DEFAULT_PARAMETERS = {
    ErrorModelKind.PCT_PLUS_QUANTILE: {
        'q_intercept': 0.005,
        'pct_err': 0.10,
    },
    ErrorModelKind.CLIM_TAPER: {
        'q_intercept': 0.05,
        'q_clim': 0.5,
        'pct_err': 0.15,
    },
}


def sample_quantile(sample: ArrayLike, q: float) -> float:
    """
    Continuous empirical quantile of a historical sample.

    NaNs are ignored.

    Raises:
        InsufficientData: If fewer than two distinct finite values remain
    """
    values = np.asarray(sample, dtype=float)
    values = values[np.isfinite(values)]
    if np.unique(values).size < 2:
        raise InsufficientData(
            f"Quantile undefined: sample has {np.unique(values).size} distinct finite "
            f"value(s), need at least 2"
        )
    return float(np.quantile(values, q, method='linear'))


def pct_plus_quantile_3sd(
    sample: ArrayLike,
    values: ArrayLike,
    q_intercept: float = 0.005,
    pct_err: float = 0.10
) -> np.ndarray:
    """
    Three-sigma error as percent of observed plus a historical quantile.

    error = Q(sample, q_intercept) + pct_err * value

    Examples:
        >>> pct_plus_quantile_3sd([0.0, 100.0], [50.0], q_intercept=0.5, pct_err=0.1)
        array([55.])
    """
    intercept = sample_quantile(sample, q_intercept)
    values = np.asarray(values, dtype=float)
    return np.maximum(intercept + pct_err * values, 0.0)


def clim_taper_3sd(
    sample: ArrayLike,
    values: ArrayLike,
    q_intercept: float = 0.05,
    q_clim: float = 0.5,
    pct_err: float = 0.15
) -> np.ndarray:
    """
    Three-sigma error tapering to a minimum at the climatological quantile.

    error = Q(sample, q_intercept)
            + min(pct_err * value, pct_err * |value - Q(sample, q_clim)|)

    The taper term never exceeds the flat percent error. Results are
    clipped at zero.
    """
    intercept = sample_quantile(sample, q_intercept)
    clim = sample_quantile(sample, q_clim)
    values = np.asarray(values, dtype=float)
    taper = np.minimum(pct_err * values, pct_err * np.abs(values - clim))
    return np.maximum(intercept + taper, 0.0)


class ErrorModel(BaseModel):
    """
    A parameterized three-sigma error model, dispatched by kind.

    Use `ErrorModel.for_kind()` to fill in the per-model defaults.
    """
    kind: ErrorModelKind
    q_intercept: float = Field(..., ge=0.0, le=1.0)
    q_clim: Optional[float] = Field(None, ge=0.0, le=1.0)
    pct_err: float = Field(..., ge=0.0)

    @validator('q_clim', always=True)
    def q_clim_required_for_taper(cls, v, values):
        """Climatological taper needs its reference quantile"""
        if values.get('kind') == ErrorModelKind.CLIM_TAPER and v is None:
            raise ValueError("q_clim is required for the clim_taper model")
        return v

    class Config:
        """Pydantic config"""
        frozen = True

    @classmethod
    def for_kind(cls, kind: Union[str, ErrorModelKind], **overrides) -> 'ErrorModel':
        """
        Build a model with its default parameters, optionally overridden.

        Args:
            kind: 'pct_plus_quantile' or 'clim_taper'
            **overrides: q_intercept, q_clim, pct_err

        Raises:
            ValueError: If kind is unknown or an override does not apply
        """
        kind = ErrorModelKind(kind)
        params = dict(DEFAULT_PARAMETERS[kind])
        for key, value in overrides.items():
            if value is None:
                continue
            if key not in params:
                raise ValueError(f"Parameter '{key}' does not apply to the {kind.value} model")
            params[key] = value
        return cls(kind=kind, **params)

    @property
    def tag(self) -> str:
        """Short identifier used in column and file names."""
        return self.kind.value

    def estimate(self, sample: ArrayLike, values: ArrayLike) -> np.ndarray:
        """
        Three-sigma errors for `values` given a historical `sample`.

        Args:
            sample: Historical observations defining the quantiles
            values: Observations to estimate errors for (NaN gives NaN)

        Returns:
            Array of three-sigma errors, same units as `values`

        Raises:
            InsufficientData: If the sample has fewer than two distinct values
        """
        if self.kind == ErrorModelKind.PCT_PLUS_QUANTILE:
            return pct_plus_quantile_3sd(
                sample, values, q_intercept=self.q_intercept, pct_err=self.pct_err
            )
        elif self.kind == ErrorModelKind.CLIM_TAPER:
            return clim_taper_3sd(
                sample, values,
                q_intercept=self.q_intercept, q_clim=self.q_clim, pct_err=self.pct_err
            )
        else:
            raise ValueError(f"Unhandled error model: {self.kind}")

    def estimate_one(self, sample: ArrayLike, value: float) -> float:
        """Three-sigma error for a single value."""
        return float(self.estimate(sample, [value])[0])

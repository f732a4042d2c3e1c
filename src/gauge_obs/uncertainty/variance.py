"""
Discharge Variance Derivation

Applies three-sigma error models to a discharge observation table,
divides by three, and appends either the one-sigma error (st.dev.) or
its square (variance) as a new column per model.
"""

import logging
from typing import Optional, Sequence, Union

import numpy as np

from gauge_obs.errors import WrongObservationKind
from gauge_obs.normalize.schemas import (
    DISCHARGE,
    ErrorColumn,
    ErrorStatistic,
    ObservationKind,
    ObservationTable,
    error_column_name,
)
from gauge_obs.uncertainty.error_models import ArrayLike, ErrorModel

logger = logging.getLogger(__name__)


def derive_variance(
    table: ObservationTable,
    models: Union[ErrorModel, Sequence[ErrorModel]],
    as_variance: bool = True,
    sample: Optional[ArrayLike] = None
) -> ObservationTable:
    """
    Append derived error columns to a discharge table.

    Args:
        table: Discharge observation table
        models: One error model or several (one column each)
        as_variance: Return (err3sd/3)**2 if True, else err3sd/3
        sample: Historical sample for the quantiles; defaults to the
            table's own finite, positive discharge values

    Returns:
        New table with the error columns appended and recorded in
        `error_columns`

    Raises:
        WrongObservationKind: If the table is not discharge observations
        InsufficientData: If the sample cannot define a quantile
        ValueError: If two models would produce the same column
    """
    if table.kind != ObservationKind.DISCHARGE or DISCHARGE not in table.columns:
        raise WrongObservationKind(
            f"derive_variance only applies to discharge observations, got {table!r}"
        )

    if isinstance(models, ErrorModel):
        models = [models]

    statistic = ErrorStatistic.VARIANCE if as_variance else ErrorStatistic.STDEV
    frame = table.to_frame()
    values = frame[DISCHARGE].to_numpy(dtype=float)
    if sample is None:
        # zero, negative and sentinel discharge would skew the quantiles
        sample = values[np.isfinite(values) & (values > 0)]

    new_columns = []
    for model in models:
        name = error_column_name(model.kind, statistic, table.discharge_unit)
        if name in frame.columns:
            raise ValueError(f"Error column '{name}' already present")

        sigma = model.estimate(sample, values) / 3.0
        frame[name] = np.power(sigma, statistic.exponent)
        new_columns.append(
            ErrorColumn(
                name=name,
                model=model.kind,
                statistic=statistic,
                unit=table.discharge_unit
            )
        )
        logger.info(f"Derived '{name}' for {len(frame)} observations")

    return table.with_frame(
        frame,
        error_columns=list(table.error_columns.values()) + new_columns
    )

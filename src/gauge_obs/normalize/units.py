"""
Discharge Unit Conversion

The only process-wide constant is the cfs -> cms factor, which is exact:
one foot is 0.3048 m by definition, so one cubic foot is 0.3048**3 m³.
"""

import logging

from gauge_obs.normalize.schemas import (
    DISCHARGE,
    DischargeUnit,
    ErrorColumn,
    ObservationTable,
    error_column_name,
)

logger = logging.getLogger(__name__)


# Conversion factor: CFS to CMS (cubic meters per second)
CFS_TO_CMS = 0.028316846592

_FACTORS = {
    (DischargeUnit.CFS, DischargeUnit.CMS): CFS_TO_CMS,
    (DischargeUnit.CMS, DischargeUnit.CFS): 1.0 / CFS_TO_CMS,
}


def conversion_factor(from_unit: DischargeUnit, to_unit: DischargeUnit) -> float:
    """Multiplicative factor taking discharge from `from_unit` to `to_unit`."""
    if from_unit == to_unit:
        return 1.0
    return _FACTORS[(DischargeUnit(from_unit), DischargeUnit(to_unit))]


def convert_discharge(table: ObservationTable, to_unit: DischargeUnit) -> ObservationTable:
    """
    Convert a table's discharge and derived error columns to `to_unit`.

    Error columns scale by factor**exponent of their statistic, so a
    variance in cfs² becomes a variance in cms².

    Args:
        table: Observation table
        to_unit: Target discharge unit

    Returns:
        New table in `to_unit` (the same table when already there)
    """
    to_unit = DischargeUnit(to_unit)
    if table.discharge_unit == to_unit:
        return table

    factor = conversion_factor(table.discharge_unit, to_unit)
    frame = table.to_frame()
    frame[DISCHARGE] = frame[DISCHARGE] * factor

    converted = []
    renames = {}
    for col in table.error_columns.values():
        frame[col.name] = frame[col.name] * factor ** col.statistic.exponent
        name = error_column_name(col.model, col.statistic, to_unit)
        renames[col.name] = name
        converted.append(
            ErrorColumn(name=name, model=col.model, statistic=col.statistic, unit=to_unit)
        )
    frame = frame.rename(columns=renames)

    logger.debug(
        f"Converted {len(frame)} rows from {table.discharge_unit.value} to {to_unit.value}"
    )
    return table.with_frame(frame, discharge_unit=to_unit, error_columns=converted)

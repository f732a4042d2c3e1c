"""
Canonical schemas, units and time rounding for gauge observations.
"""

from .schemas import (
    DischargeUnit,
    ErrorColumn,
    ErrorModelKind,
    ErrorStatistic,
    Observation,
    ObservationKind,
    ObservationTable,
    ObsSeqRecord,
    SiteLocation,
)
from .time_rounding import round_series, round_to_nearest_minutes, stamp_slice_time
from .units import CFS_TO_CMS, convert_discharge

__all__ = [
    'DischargeUnit',
    'ErrorColumn',
    'ErrorModelKind',
    'ErrorStatistic',
    'Observation',
    'ObservationKind',
    'ObservationTable',
    'ObsSeqRecord',
    'SiteLocation',
    'round_series',
    'round_to_nearest_minutes',
    'stamp_slice_time',
    'CFS_TO_CMS',
    'convert_discharge',
]

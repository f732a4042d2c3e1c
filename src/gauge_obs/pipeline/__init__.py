"""
Batch drivers and per-group parallel execution.
"""

from .drivers import (
    ObsSeqBatchReport,
    SliceWriteReport,
    make_time_slices,
    prepare_obs_seq,
    time_slice_files_to_obs_seq,
)
from .parallel import GroupResult, run_groups

__all__ = [
    'ObsSeqBatchReport',
    'SliceWriteReport',
    'make_time_slices',
    'prepare_obs_seq',
    'time_slice_files_to_obs_seq',
    'GroupResult',
    'run_groups',
]

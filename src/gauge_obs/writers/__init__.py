"""
Artifact writers: create_obs_sequence input and USGS time slices.
"""

from .obs_seq import ObsSeqWriteResult, check_obs_seq_layout, write_obs_seq
from .time_slice import read_time_slice, time_slice_file_name, write_time_slice

__all__ = [
    'ObsSeqWriteResult',
    'check_obs_seq_layout',
    'write_obs_seq',
    'read_time_slice',
    'time_slice_file_name',
    'write_time_slice',
]

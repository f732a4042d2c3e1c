"""
Time slicing of rounded observations.
"""

from .time_slicer import TimeSlice, partition_by_site, slice_by_time

__all__ = [
    'TimeSlice',
    'partition_by_site',
    'slice_by_time',
]

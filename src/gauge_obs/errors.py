"""
Error and Warning Taxonomy for Gauge Observation Preparation

Design Principles:
- Schema and configuration errors abort the affected batch before any output
- I/O failures are isolated to the group that raised them
- Recoverable exclusions (join misses, missing discharge) are warnings, always counted
"""


class ObsPrepError(Exception):
    """Base class for all observation preparation errors"""
    pass


class InsufficientData(ObsPrepError):
    """Raised when a quantile is undefined for the historical sample"""
    pass


class WrongObservationKind(ObsPrepError):
    """Raised when a table is not a discharge observation table"""
    pass


class InvalidGranularity(ObsPrepError):
    """Raised when a rounding granularity does not evenly divide 60 minutes"""

    def __init__(self, nearest_minutes):
        self.nearest_minutes = nearest_minutes
        super().__init__(
            f"nearest_minutes must be a positive integer dividing 60, got {nearest_minutes!r}"
        )


class MissingRequiredColumn(ObsPrepError):
    """Raised when a table lacks columns a writer or slicer needs"""

    def __init__(self, missing, context: str = ""):
        self.missing = sorted(missing)
        where = f" for {context}" if context else ""
        super().__init__(f"Missing required column(s){where}: {self.missing}")


class DuplicateSiteObservations(ObsPrepError):
    """Raised when a time slice holds more than one observation for a site"""

    def __init__(self, slice_time, sites):
        self.slice_time = slice_time
        self.sites = list(sites)
        super().__init__(
            f"Time slice {slice_time} has duplicate observations for sites: {self.sites}"
        )


class MissingLocation(ObsPrepError):
    """Raised when observations to be written have no lon, lat or elevation"""

    def __init__(self, sites):
        self.sites = list(sites)
        super().__init__(f"Observations without location for sites: {self.sites}")


class IoFailure(ObsPrepError):
    """Raised when an output artifact could not be written"""

    def __init__(self, path, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to write {path}: {cause}")


class ObsPrepWarning(UserWarning):
    """Base class for recoverable data-quality conditions"""
    pass


class JoinMiss(ObsPrepWarning):
    """Sites without location metadata were excluded by the join"""
    pass


class MissingDischarge(ObsPrepWarning):
    """Missing discharge values were retained in written output"""
    pass


class DuplicateSiteObservation(ObsPrepWarning):
    """A time slice holds more than one observation for a site"""
    pass

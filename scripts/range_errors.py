"""
Species Range Errors

Exceptions raised by the species range pipeline. Each stage raises its own
error type so a failed run says exactly where it stopped.
"""


class SpeciesRangeError(Exception):
    """Base class for all species range pipeline failures"""


class RangeConfigError(SpeciesRangeError):
    """Invalid configuration value or unsupported option"""


class OccurrenceTableError(SpeciesRangeError):
    """Occurrence download could not be parsed into records"""


class RegionNotFoundError(SpeciesRangeError):
    """No boundary feature matches the requested region name"""


class AmbiguousRegionError(SpeciesRangeError):
    """More than one boundary feature matches the requested region name"""


class EmptyInputError(SpeciesRangeError):
    """No occurrence records survived filtering"""


class InvalidGeometryError(SpeciesRangeError):
    """Geometry could not be repaired into a valid polygon"""


class SimplificationError(SpeciesRangeError):
    """Simplification produced an invalid or empty geometry"""


class EmptyResultError(SpeciesRangeError):
    """Clipping the range to the boundary left nothing"""


class CRSMismatchError(SpeciesRangeError):
    """Coordinate reference systems could not be reconciled"""


class DestinationExistsError(SpeciesRangeError):
    """Export destination exists and overwrite was not requested"""

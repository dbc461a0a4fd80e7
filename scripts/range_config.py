"""
Species Range Configuration

Default parameters for building a species range polygon, plus a loader for
JSON config files. Values are carried in a RangeConfig and passed explicitly
into each pipeline step.
"""

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path

from range_errors import RangeConfigError

# Record filtering
MIN_YEAR = 1900
EXCLUDED_BASES = ('FOSSIL_SPECIMEN',)
MAX_UNCERTAINTY_M = 10000          # Records must be located better than 10km

# Range geometry
BUFFER_RADIUS_M = 5000             # 5km disk around each occurrence
SIMPLIFY_TOLERANCE_M = 100         # ~100m vertex reduction
BUFFER_RESOLUTION = 16             # Segments per quarter circle
UNION_CHUNK_SIZE = 2000            # Buffers per union chunk
WORKERS = 1

# Boundary and output
NAME_FIELD = 'region_name'
TARGET_CRS = 'EPSG:4326'
METRIC_CRS = None                  # None = azimuthal equidistant centred on the records
OVERWRITE = False
COORDINATE_PRECISION = None        # Decimal places, None keeps full precision


@dataclass(frozen=True)
class RangeConfig:
    min_year: int = MIN_YEAR
    excluded_bases: tuple = EXCLUDED_BASES
    max_uncertainty_m: float = MAX_UNCERTAINTY_M
    buffer_radius_m: float = BUFFER_RADIUS_M
    simplify_tolerance_m: float = SIMPLIFY_TOLERANCE_M
    overwrite: bool = OVERWRITE
    name_field: str = NAME_FIELD
    target_crs: str = TARGET_CRS
    metric_crs: str = METRIC_CRS
    buffer_resolution: int = BUFFER_RESOLUTION
    union_chunk_size: int = UNION_CHUNK_SIZE
    workers: int = WORKERS
    dissolve_matches: bool = False
    coordinate_precision: int = COORDINATE_PRECISION

    def __post_init__(self):
        # JSON gives lists, a set is also accepted; a bare string is one basis
        excluded_bases = self.excluded_bases
        if isinstance(excluded_bases, str):
            excluded_bases = (excluded_bases,)
        object.__setattr__(self, 'excluded_bases', tuple(excluded_bases))
        validate_config(self)

    def with_overrides(self, **overrides):
        """Return a copy with every non-None override applied"""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    def to_dict(self):
        return {f.name: getattr(self, f.name) for f in fields(self)}


def validate_config(config):
    """Reject values no pipeline step can work with"""
    if config.max_uncertainty_m <= 0:
        raise RangeConfigError(f"max_uncertainty_m must be positive, got {config.max_uncertainty_m}")
    if config.buffer_radius_m <= 0:
        raise RangeConfigError(f"buffer_radius_m must be positive, got {config.buffer_radius_m}")
    if config.simplify_tolerance_m < 0:
        raise RangeConfigError(f"simplify_tolerance_m cannot be negative, got {config.simplify_tolerance_m}")
    if config.buffer_resolution < 1:
        raise RangeConfigError(f"buffer_resolution must be at least 1, got {config.buffer_resolution}")
    if config.union_chunk_size < 1:
        raise RangeConfigError(f"union_chunk_size must be at least 1, got {config.union_chunk_size}")
    if config.workers < 1:
        raise RangeConfigError(f"workers must be at least 1, got {config.workers}")
    if config.coordinate_precision is not None and config.coordinate_precision < 0:
        raise RangeConfigError(f"coordinate_precision cannot be negative, got {config.coordinate_precision}")


def load_range_config(config_path):
    """
    Load a RangeConfig from a JSON file

    Args:
        config_path: Path to a JSON object whose keys are RangeConfig fields

    Returns:
        RangeConfig with file values layered over the defaults
    """
    config_path = Path(config_path)
    with open(config_path, 'r') as f:
        try:
            values = json.load(f)
        except json.JSONDecodeError as e:
            raise RangeConfigError(f"{config_path.name} is not valid JSON: {e}") from e

    if not isinstance(values, dict):
        raise RangeConfigError(f"{config_path.name} must contain a JSON object")

    known = {f.name for f in fields(RangeConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise RangeConfigError(f"Unknown config keys in {config_path.name}: {unknown}")

    try:
        return RangeConfig(**values)
    except TypeError as e:
        raise RangeConfigError(f"Bad config value in {config_path.name}: {e}") from e

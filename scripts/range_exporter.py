"""
Range Export

Writes a clipped range polygon to a single-feature vector file (GeoJSON,
GeoPackage or Shapefile) for the vulnerability assessment tool, and reads
exported ranges back.

Writes are all-or-nothing: the file is written into a temporary directory
beside the destination and moved into place only once it is complete.
"""

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import geopandas as gpd
import shapely
from pyogrio.errors import DataLayerError, DataSourceError
from shapely.ops import unary_union

from boundary_clipper import ClippedRangePolygon
from range_errors import DestinationExistsError, InvalidGeometryError, RangeConfigError
from range_geometry_utils import area_sqkm, polygon_parts, repair_geometry, to_crs_object

DRIVERS = {
    '.geojson': 'GeoJSON',
    '.json': 'GeoJSON',
    '.gpkg': 'GPKG',
    '.shp': 'ESRI Shapefile',
}
SHAPEFILE_SIDECARS = ('.shp', '.shx', '.dbf', '.prj', '.cpg')


@dataclass(frozen=True)
class ExportedRange:
    path: Path
    driver: str
    crs: object
    attributes: dict


def driver_for_path(destination):
    driver = DRIVERS.get(Path(destination).suffix.lower())
    if driver is None:
        raise RangeConfigError(
            f"Unsupported export format '{Path(destination).suffix}' (use one of {sorted(DRIVERS)})"
        )
    return driver


def existing_outputs(destination):
    """Files an export to destination would replace, Shapefile sidecars included"""
    destination = Path(destination)
    if destination.suffix.lower() == '.shp':
        candidates = [destination.with_suffix(suffix) for suffix in SHAPEFILE_SIDECARS]
    else:
        candidates = [destination]
    return [path for path in candidates if path.exists()]


def get_essential_properties(polygon, geometry, extra_attributes=None):
    """Minimal attribute record; names fit the 10 character Shapefile limit"""
    properties = {
        'region': polygon.region_name,
        'n_records': polygon.record_count,
        'area_sqkm': round(area_sqkm(geometry, polygon.crs), 3),
        'created': datetime.now().isoformat(timespec='seconds'),
    }
    properties.update(extra_attributes or {})
    # Remove None values
    return {k: v for k, v in properties.items() if v is not None}


def snap_coordinates(geom, precision):
    """Round coordinates to `precision` decimal places, keeping the polygon valid"""
    snapped = polygon_parts(shapely.set_precision(geom, 10 ** -precision))
    if snapped.is_empty:
        raise InvalidGeometryError(f"Range collapsed when rounded to {precision} decimal places")
    return repair_geometry(snapped)


def export_range(polygon, destination, overwrite=False, extra_attributes=None,
                 coordinate_precision=None):
    """
    Save a ClippedRangePolygon as a one-feature vector file

    Args:
        polygon: ClippedRangePolygon to write
        destination: Output path, format chosen by suffix
        overwrite: Replace an existing file instead of raising
        extra_attributes: Additional attribute columns
        coordinate_precision: Decimal places to round coordinates to

    Returns:
        ExportedRange describing the written file
    """
    destination = Path(destination)
    driver = driver_for_path(destination)

    existing = existing_outputs(destination)
    if existing and not overwrite:
        raise DestinationExistsError(
            f"{existing[0]} already exists (pass overwrite to replace it)"
        )

    geometry = polygon.geometry
    if coordinate_precision is not None:
        geometry = snap_coordinates(geometry, coordinate_precision)

    attributes = get_essential_properties(polygon, geometry, extra_attributes)
    crs = to_crs_object(polygon.crs)
    range_gdf = gpd.GeoDataFrame([attributes], geometry=[geometry], crs=crs)

    print(f"  💾 Saving range to {destination.name} ({driver})...")
    destination.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.TemporaryDirectory(prefix=f".{destination.stem}-", dir=destination.parent) as tmp_dir:
        tmp_path = Path(tmp_dir) / destination.name
        try:
            range_gdf.to_file(tmp_path, driver=driver)
        except (DataSourceError, DataLayerError) as e:
            raise OSError(f"Could not write {destination.name}: {e}") from e

        # Shapefile sidecars go first so the .shp never points at stale files
        produced = sorted(Path(tmp_dir).iterdir(), key=lambda p: p.name == tmp_path.name)
        for path in produced:
            os.replace(path, destination.parent / path.name)

    print(f"  ✅ Saved {destination}")
    return ExportedRange(path=destination, driver=driver, crs=crs, attributes=attributes)


def read_exported_range(path):
    """Load an exported range back into a ClippedRangePolygon"""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Exported range not found: {path}")

    try:
        range_gdf = gpd.read_file(path)
    except (DataSourceError, DataLayerError) as e:
        raise OSError(f"Could not read exported range {path.name}: {e}") from e

    geometries = [g for g in range_gdf.geometry if g is not None and not g.is_empty]
    if not geometries:
        raise InvalidGeometryError(f"{path.name} contains no range geometry")

    geometry = geometries[0] if len(geometries) == 1 else unary_union(geometries)
    first = range_gdf.iloc[0]

    return ClippedRangePolygon(
        geometry=repair_geometry(geometry),
        crs=to_crs_object(range_gdf.crs) if range_gdf.crs is not None else None,
        region_name=first['region'] if 'region' in range_gdf.columns else None,
        record_count=int(first['n_records']) if 'n_records' in range_gdf.columns else 0,
    )

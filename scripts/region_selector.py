"""
Region Boundary Selection

Loads a boundary dataset (Shapefile, GeoPackage, GeoJSON...) and pulls out
one named region, repaired and reprojected to the target CRS.
"""

from dataclasses import dataclass
from pathlib import Path

import geopandas as gpd
from pyogrio.errors import DataLayerError, DataSourceError
from shapely.ops import unary_union

from range_config import TARGET_CRS
from range_errors import (
    AmbiguousRegionError, CRSMismatchError, InvalidGeometryError, RegionNotFoundError,
)
from range_geometry_utils import (
    area_sqkm, part_count, repair_geometry, reproject_geometry, to_crs_object,
)


@dataclass(frozen=True)
class RegionBoundary:
    name: str
    geometry: object
    crs: object


def select_region(boundary_path, name_field, region_name,
                  target_crs=TARGET_CRS, dissolve_matches=False):
    """
    Select one named region from a boundary dataset

    Args:
        boundary_path: Vector file with region polygons
        name_field: Attribute column holding region names
        region_name: Value of name_field to select
        target_crs: CRS of the returned boundary
        dissolve_matches: Merge several features sharing region_name into
            one boundary instead of raising AmbiguousRegionError

    Returns:
        RegionBoundary in target_crs
    """
    boundary_path = Path(boundary_path)
    if not boundary_path.exists():
        raise FileNotFoundError(f"Boundary dataset not found: {boundary_path}")

    print(f"📍 Loading boundary dataset {boundary_path.name}...")
    try:
        boundary_gdf = gpd.read_file(boundary_path)
    except (DataSourceError, DataLayerError) as e:
        raise OSError(f"Could not read boundary dataset {boundary_path.name}: {e}") from e
    print(f"   Loaded {len(boundary_gdf)} features, CRS: {boundary_gdf.crs}")

    if name_field not in boundary_gdf.columns:
        columns = [col for col in boundary_gdf.columns if col != 'geometry']
        raise RegionNotFoundError(
            f"{boundary_path.name} has no '{name_field}' field (fields: {columns})"
        )

    matches = boundary_gdf[boundary_gdf[name_field] == region_name]

    if len(matches) == 0:
        raise RegionNotFoundError(f"No region named '{region_name}' in {boundary_path.name}")

    if len(matches) > 1 and not dissolve_matches:
        raise AmbiguousRegionError(
            f"{len(matches)} features named '{region_name}' in {boundary_path.name}; "
            f"enable dissolve_matches to merge them"
        )

    if boundary_gdf.crs is None:
        raise CRSMismatchError(f"{boundary_path.name} has no CRS, cannot reproject to {target_crs}")

    geometries = [g for g in matches.geometry if g is not None and not g.is_empty]
    if not geometries:
        raise InvalidGeometryError(f"Region '{region_name}' has no geometry")

    # Fix any invalid geometries before merging
    geometries = [repair_geometry(g) for g in geometries]
    if len(geometries) > 1:
        print(f"   🔗 Merging {len(geometries)} features named '{region_name}'")
        region_geom = repair_geometry(unary_union(geometries))
    else:
        region_geom = geometries[0]

    native_crs = to_crs_object(boundary_gdf.crs)
    target_crs = to_crs_object(target_crs)
    if not native_crs.equals(target_crs, ignore_axis_order=True):
        print(f"   Converting boundary from {native_crs.to_string()} to {target_crs.to_string()}")
        region_geom = repair_geometry(reproject_geometry(region_geom, native_crs, target_crs))

    print(f"   ✅ Selected '{region_name}': {part_count(region_geom)} part(s), "
          f"{area_sqkm(region_geom, target_crs):,.1f} km²")

    return RegionBoundary(name=region_name, geometry=region_geom, crs=target_crs)

"""
Clip a species range polygon to a region boundary.

The boundary is always brought into the range's CRS, never the other way
round, so every clip in a run happens in the range CRS.
"""

from dataclasses import dataclass

from range_errors import EmptyResultError
from range_geometry_utils import (
    area_sqkm, polygon_parts, repair_geometry, reproject_geometry, same_crs,
)


@dataclass(frozen=True)
class ClippedRangePolygon:
    geometry: object
    crs: object
    region_name: str
    record_count: int = 0


def clip_range(range_polygon, boundary):
    """
    Intersect a RangePolygon with a RegionBoundary

    Raises:
        EmptyResultError: range and boundary do not overlap
        CRSMismatchError: boundary could not be reprojected
    """
    print(f"  ✂️  Clipping range to '{boundary.name}'...")

    boundary_geom = boundary.geometry
    if not same_crs(boundary.crs, range_polygon.crs):
        boundary_geom = reproject_geometry(boundary_geom, boundary.crs, range_polygon.crs)
    boundary_geom = repair_geometry(boundary_geom)

    # Edges that only touch leave lines/points, which carry no area
    clipped_geom = polygon_parts(range_polygon.geometry.intersection(boundary_geom))

    if clipped_geom.is_empty:
        raise EmptyResultError(f"Range does not overlap region '{boundary.name}'")

    clipped_geom = repair_geometry(clipped_geom)

    original_area = area_sqkm(range_polygon.geometry, range_polygon.crs)
    clipped_area = area_sqkm(clipped_geom, range_polygon.crs)
    kept_pct = (clipped_area / original_area * 100) if original_area > 0 else 0
    print(f"    🏞️  Area: {original_area:,.1f} km² → {clipped_area:,.1f} km² ({kept_pct:.1f}% kept)")

    return ClippedRangePolygon(
        geometry=clipped_geom,
        crs=range_polygon.crs,
        region_name=boundary.name,
        record_count=range_polygon.record_count,
    )

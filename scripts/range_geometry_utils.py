"""
Range Geometry Utilities

Builds a species range polygon from filtered occurrence records:

1. Points from record longitude/latitude (EPSG:4326)
2. Buffers in a metric CRS so the radius really is metres
3. Union of overlapping buffers into continuous areas
4. Repair to a valid polygon
5. Douglas-Peucker simplification, re-validated afterwards

Also holds the geometry helpers (repair, reprojection, area, vertex counts)
shared by the region selector, clipper and exporter.
"""

import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import geopandas as gpd
import numpy as np
from pyproj import CRS
from pyproj.exceptions import CRSError, ProjError
from shapely.geometry import Polygon, MultiPolygon
from shapely.ops import unary_union
from shapely.validation import make_valid, explain_validity
from tqdm import tqdm

from range_config import (
    BUFFER_RADIUS_M, SIMPLIFY_TOLERANCE_M, BUFFER_RESOLUTION,
    UNION_CHUNK_SIZE, WORKERS, TARGET_CRS,
)
from range_errors import (
    CRSMismatchError, EmptyInputError, InvalidGeometryError,
    RangeConfigError, SimplificationError,
)

GEOGRAPHIC_CRS = 'EPSG:4326'
EQUAL_AREA_CRS = 'EPSG:6933'   # WGS 84 / NSIDC EASE-Grid 2.0 Global, equal area
POLYGON_TYPES = ('Polygon', 'MultiPolygon')


@dataclass(frozen=True)
class RangePolygon:
    geometry: object
    crs: object
    record_count: int = 0


def polygon_parts(geom):
    """
    Keep only the polygonal part of a geometry

    make_valid and intersection can return GeometryCollections mixing
    polygons with lines or points; the lines and points carry no area.
    """
    if geom is None or geom.is_empty:
        return Polygon()
    if geom.geom_type in POLYGON_TYPES:
        return geom
    if hasattr(geom, 'geoms'):
        polygons = [polygon_parts(g) for g in geom.geoms]
        polygons = [g for g in polygons if not g.is_empty]
        if not polygons:
            return Polygon()
        if len(polygons) == 1:
            return polygons[0]
        return unary_union(polygons)
    return Polygon()


def is_valid_polygon(geom):
    return (
        geom is not None
        and not geom.is_empty
        and geom.geom_type in POLYGON_TYPES
        and geom.is_valid
    )


def repair_geometry(geom):
    """
    Return a valid Polygon/MultiPolygon for geom

    Valid input comes back unchanged. Invalid input goes through make_valid
    and keeps its polygonal parts.

    Raises:
        InvalidGeometryError: nothing valid and polygonal could be recovered
    """
    if geom is None or geom.is_empty:
        raise InvalidGeometryError("Cannot repair an empty geometry")

    if is_valid_polygon(geom):
        return geom

    reason = explain_validity(geom) if not geom.is_valid else f"{geom.geom_type} has no area"
    fixed_geom = polygon_parts(make_valid(geom))

    if not is_valid_polygon(fixed_geom):
        raise InvalidGeometryError(f"Geometry could not be repaired ({reason})")

    return fixed_geom


def count_vertices(geom):
    """Count ring vertices in a Polygon/MultiPolygon, holes included"""
    if isinstance(geom, Polygon):
        if geom.is_empty:
            return 0
        return len(geom.exterior.coords) + sum(len(ring.coords) for ring in geom.interiors)
    elif isinstance(geom, MultiPolygon):
        return sum(count_vertices(poly) for poly in geom.geoms)
    elif hasattr(geom, 'geoms'):
        return sum(count_vertices(g) for g in geom.geoms)
    else:
        return 0


def part_count(geom):
    if geom is None or geom.is_empty:
        return 0
    return len(geom.geoms) if hasattr(geom, 'geoms') else 1


def to_crs_object(crs):
    """Accept 'EPSG:xxxx', WKT, proj strings or CRS objects"""
    try:
        return CRS.from_user_input(crs)
    except CRSError as e:
        raise CRSMismatchError(f"Unrecognised CRS {crs!r}: {e}") from e


def same_crs(crs_a, crs_b):
    return to_crs_object(crs_a).equals(to_crs_object(crs_b), ignore_axis_order=True)


def reproject_geometry(geom, from_crs, to_crs):
    """
    Reproject a single geometry between CRSs

    Raises:
        CRSMismatchError: a CRS is missing/unknown or the transform fails
    """
    if from_crs is None or to_crs is None:
        raise CRSMismatchError("Cannot reproject geometry without a CRS on both sides")
    if same_crs(from_crs, to_crs):
        return geom

    try:
        projected = gpd.GeoSeries([geom], crs=to_crs_object(from_crs)).to_crs(to_crs_object(to_crs)).iloc[0]
    except (CRSError, ProjError) as e:
        raise CRSMismatchError(f"Reprojection from {from_crs} to {to_crs} failed: {e}") from e

    if projected is None or (not projected.is_empty and not all(math.isfinite(v) for v in projected.bounds)):
        raise CRSMismatchError(f"Reprojection from {from_crs} to {to_crs} produced non-finite coordinates")

    return projected


def area_sqkm(geom, crs):
    """Area in km² measured in an equal-area projection"""
    if geom is None or geom.is_empty:
        return 0.0
    return reproject_geometry(geom, crs, EQUAL_AREA_CRS).area / 1_000_000


def local_metric_crs(longitudes, latitudes):
    """Azimuthal equidistant CRS centred on the mean record position"""
    # Circular mean so records either side of the antimeridian centre near 180
    radians = np.radians(np.asarray(longitudes, dtype=float))
    lon_0 = float(np.degrees(np.arctan2(np.mean(np.sin(radians)), np.mean(np.cos(radians)))))
    lat_0 = float(np.mean(latitudes))
    return CRS.from_proj4(
        f"+proj=aeqd +lat_0={lat_0:.6f} +lon_0={lon_0:.6f} "
        f"+x_0=0 +y_0=0 +datum=WGS84 +units=m +no_defs"
    )


def records_to_points(records):
    """One point per record, EPSG:4326"""
    longitudes = [record.longitude for record in records]
    latitudes = [record.latitude for record in records]
    return gpd.GeoSeries(gpd.points_from_xy(longitudes, latitudes), crs=GEOGRAPHIC_CRS)


def buffer_points(points, buffer_radius_m, metric_crs=None, resolution=BUFFER_RESOLUTION):
    """
    Buffer points by a radius in metres

    Buffering happens in a projected metric CRS; buffering degrees would
    stretch the disks east-west away from the equator.

    Args:
        points: GeoSeries of points with a CRS
        buffer_radius_m: Disk radius in metres
        metric_crs: Projected CRS to buffer in, None for a local
            azimuthal equidistant projection
        resolution: Segments per quarter circle

    Returns:
        GeoSeries of buffer polygons in the metric CRS
    """
    if metric_crs is None:
        geographic = points.to_crs(GEOGRAPHIC_CRS)
        metric_crs = local_metric_crs(geographic.x, geographic.y)
    else:
        metric_crs = to_crs_object(metric_crs)
        if not metric_crs.is_projected:
            raise CRSMismatchError(f"Buffer CRS {metric_crs.to_string()} is not projected (metric)")

    try:
        metric_points = points.to_crs(metric_crs)
    except (CRSError, ProjError) as e:
        raise CRSMismatchError(f"Could not project occurrences to {metric_crs.to_string()}: {e}") from e

    print(f"  🔵 Creating {buffer_radius_m:,.0f}m buffers around {len(metric_points):,} points...")
    return metric_points.buffer(buffer_radius_m, resolution=resolution)


def union_buffers(buffers, chunk_size=UNION_CHUNK_SIZE, workers=WORKERS):
    """
    Merge overlapping buffers into continuous areas

    Large inputs are unioned chunk by chunk and the chunk results merged
    afterwards. Chunk unions can run on a thread pool; results are merged in
    chunk order so the output does not depend on scheduling.
    """
    geometries = list(buffers)
    num_buffers = len(geometries)
    print(f"  🔗 Dissolving {num_buffers:,} buffer polygons...")

    if num_buffers <= chunk_size:
        return unary_union(geometries)

    chunks = [geometries[i:i + chunk_size] for i in range(0, num_buffers, chunk_size)]
    print(f"    🚀 Using chunked processing ({len(chunks)} chunks, {workers} worker(s))...")

    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            chunk_unions = list(tqdm(pool.map(unary_union, chunks), total=len(chunks),
                                     desc="    Union chunks", unit="chunk"))
    else:
        chunk_unions = [unary_union(chunk) for chunk in tqdm(chunks, desc="    Union chunks", unit="chunk")]

    return unary_union(chunk_unions)


def simplify_geometry(geom, tolerance):
    """Douglas-Peucker simplification that keeps ring topology"""
    return geom.simplify(tolerance, preserve_topology=True)


def build_range_polygon(records, buffer_radius_m=BUFFER_RADIUS_M,
                        simplify_tolerance_m=SIMPLIFY_TOLERANCE_M, metric_crs=None,
                        output_crs=TARGET_CRS, resolution=BUFFER_RESOLUTION,
                        chunk_size=UNION_CHUNK_SIZE, workers=WORKERS):
    """
    Build a single range polygon from filtered occurrence records

    Args:
        records: FilteredRecordSet or sequence of OccurrenceRecord
        buffer_radius_m: Buffer radius around each occurrence (metres)
        simplify_tolerance_m: Douglas-Peucker tolerance (metres), 0 skips
        metric_crs: Projected CRS for buffering/simplifying, None = local
            azimuthal equidistant
        output_crs: CRS of the returned polygon
        resolution: Buffer segments per quarter circle
        chunk_size: Buffers per union chunk
        workers: Threads for chunk unions

    Returns:
        RangePolygon in output_crs
    """
    records = list(records)
    if not records:
        raise EmptyInputError("No occurrence records to build a range from")
    if buffer_radius_m <= 0:
        raise RangeConfigError(f"buffer_radius_m must be positive, got {buffer_radius_m}")
    if simplify_tolerance_m < 0:
        raise RangeConfigError(f"simplify_tolerance_m cannot be negative, got {simplify_tolerance_m}")

    print(f"🗺️  Building range polygon from {len(records):,} records")

    points = records_to_points(records)
    buffers = buffer_points(points, buffer_radius_m, metric_crs=metric_crs, resolution=resolution)
    working_crs = buffers.crs

    merged_geometry = union_buffers(buffers, chunk_size=chunk_size, workers=workers)
    print(f"  🔢 Result: {part_count(merged_geometry)} separate polygon area(s)")

    if not is_valid_polygon(merged_geometry):
        print(f"  🔧 Repairing unioned geometry...")
    range_geom = repair_geometry(merged_geometry)

    if simplify_tolerance_m > 0:
        print(f"  🎨 Simplifying geometry with tolerance {simplify_tolerance_m}m...")
        original_vertices = count_vertices(range_geom)
        simplified = simplify_geometry(range_geom, simplify_tolerance_m)
        if not is_valid_polygon(simplified):
            reason = "empty result" if simplified.is_empty else explain_validity(simplified)
            raise SimplificationError(
                f"Simplification at {simplify_tolerance_m}m broke the range geometry ({reason})"
            )
        simplified_vertices = count_vertices(simplified)
        if original_vertices > 0:
            reduction_pct = 100 * (1 - simplified_vertices / original_vertices)
            print(f"  📉 Reduced vertices: {original_vertices:,} → {simplified_vertices:,} "
                  f"({reduction_pct:.1f}% reduction)")
        range_geom = simplified

    output_geom = reproject_geometry(range_geom, working_crs, output_crs)
    if not is_valid_polygon(output_geom):
        print(f"  🔧 Repairing geometry after reprojection to {output_crs}...")
        output_geom = repair_geometry(output_geom)

    print(f"  ✅ Range polygon: {part_count(output_geom)} part(s), "
          f"{area_sqkm(output_geom, output_crs):,.1f} km²")

    return RangePolygon(
        geometry=output_geom,
        crs=to_crs_object(output_crs),
        record_count=len(records),
    )

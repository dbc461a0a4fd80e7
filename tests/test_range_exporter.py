"""Tests for exporting clipped ranges."""

import geopandas as gpd
import pytest
from pyproj import CRS
from shapely.geometry import box

from boundary_clipper import ClippedRangePolygon, clip_range
from range_errors import DestinationExistsError, RangeConfigError
from range_exporter import export_range, read_exported_range
from range_geometry_utils import build_range_polygon
from region_selector import RegionBoundary

WGS84 = CRS.from_epsg(4326)


@pytest.fixture
def clipped_range(tight_cluster):
    range_polygon = build_range_polygon(tight_cluster)
    boundary = RegionBoundary('Willamette Valley', box(-123.6, 43.8, -122.99, 45.6), WGS84)
    return clip_range(range_polygon, boundary)


def test_round_trip_preserves_geometry_and_crs(tmp_path, clipped_range):
    destination = tmp_path / 'range.gpkg'

    exported = export_range(clipped_range, destination)
    reread = read_exported_range(destination)

    assert exported.path == destination
    assert exported.driver == 'GPKG'
    assert reread.crs.equals(clipped_range.crs, ignore_axis_order=True)
    assert reread.geometry.symmetric_difference(clipped_range.geometry).area < 1e-12
    assert reread.region_name == 'Willamette Valley'
    assert reread.record_count == 10


def test_geojson_round_trip(tmp_path, clipped_range):
    destination = tmp_path / 'range.geojson'

    export_range(clipped_range, destination)
    reread = read_exported_range(destination)

    assert reread.crs.equals(WGS84, ignore_axis_order=True)
    assert reread.geometry.symmetric_difference(clipped_range.geometry).area < 1e-12


def test_minimal_attribute_record(tmp_path, clipped_range):
    exported = export_range(clipped_range, tmp_path / 'range.geojson',
                            extra_attributes={'species': 2482513, 'taxon_key': None})

    attributes = gpd.read_file(exported.path).iloc[0]
    assert attributes['region'] == 'Willamette Valley'
    assert attributes['n_records'] == 10
    assert attributes['species'] == 2482513
    assert attributes['area_sqkm'] > 0
    assert 'taxon_key' not in exported.attributes


def test_existing_destination_is_not_overwritten(tmp_path, clipped_range):
    destination = tmp_path / 'range.geojson'
    destination.write_text('previous run')

    with pytest.raises(DestinationExistsError):
        export_range(clipped_range, destination)

    assert destination.read_text() == 'previous run'


def test_overwrite_replaces_existing_file(tmp_path, clipped_range):
    destination = tmp_path / 'range.geojson'
    destination.write_text('previous run')

    export_range(clipped_range, destination, overwrite=True)

    assert len(gpd.read_file(destination)) == 1
    assert sorted(p.name for p in tmp_path.iterdir()) == ['range.geojson']


def test_failed_write_leaves_nothing_behind(tmp_path, clipped_range, monkeypatch):
    def failing_to_file(self, filename, *args, **kwargs):
        with open(filename, 'w') as f:
            f.write('{"type": "FeatureCol')
        raise OSError('disk full')

    monkeypatch.setattr(gpd.GeoDataFrame, 'to_file', failing_to_file)

    with pytest.raises(OSError):
        export_range(clipped_range, tmp_path / 'range.geojson')

    assert list(tmp_path.iterdir()) == []


def test_shapefile_export_moves_sidecars(tmp_path, clipped_range):
    destination = tmp_path / 'range.shp'

    export_range(clipped_range, destination)

    names = {p.name for p in tmp_path.iterdir()}
    assert {'range.shp', 'range.shx', 'range.dbf', 'range.prj'} <= names
    assert read_exported_range(destination).crs.to_epsg() == 4326


def test_stale_shapefile_sidecar_blocks_export(tmp_path, clipped_range):
    (tmp_path / 'range.dbf').write_bytes(b'stale')

    with pytest.raises(DestinationExistsError):
        export_range(clipped_range, tmp_path / 'range.shp')

    assert (tmp_path / 'range.dbf').read_bytes() == b'stale'
    assert not (tmp_path / 'range.shp').exists()


def test_unreadable_export_raises_io_error(tmp_path):
    path = tmp_path / 'range.gpkg'
    path.write_bytes(b'not a geopackage')

    with pytest.raises(OSError):
        read_exported_range(path)


def test_unsupported_format_is_rejected(tmp_path, clipped_range):
    with pytest.raises(RangeConfigError):
        export_range(clipped_range, tmp_path / 'range.kml')


def test_coordinate_precision_rounds_output(tmp_path):
    polygon = ClippedRangePolygon(box(-123.123456, 44.123456, -122.987654, 44.654321), WGS84, 'Test', 3)

    exported = export_range(polygon, tmp_path / 'range.gpkg', coordinate_precision=3)

    geom = read_exported_range(exported.path).geometry
    for x, y in geom.exterior.coords:
        assert x == pytest.approx(round(x, 3), abs=1e-9)
        assert y == pytest.approx(round(y, 3), abs=1e-9)

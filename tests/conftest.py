"""Shared fixtures: synthetic occurrences around the Willamette Valley and a small ecoregion dataset."""

import math

import geopandas as gpd
import pytest
from shapely.geometry import box

from occurrence_records import OccurrenceRecord

BASE_LON = -123.0
BASE_LAT = 44.5
METRES_PER_DEGREE_LAT = 111_320


def offset(lon, lat, east_m=0.0, north_m=0.0):
    """Shift a lon/lat position by metres (small distances only)"""
    dlat = north_m / METRES_PER_DEGREE_LAT
    dlon = east_m / (METRES_PER_DEGREE_LAT * math.cos(math.radians(lat)))
    return lon + dlon, lat + dlat


def make_record(gbif_id, lon=BASE_LON, lat=BASE_LAT, year=2010, basis='HUMAN_OBSERVATION',
                uncertainty=50.0, species_key=2482513, dataset_key='ds-1', taxon_key=2482513):
    return OccurrenceRecord(
        gbif_id=gbif_id,
        taxon_key=taxon_key,
        longitude=lon,
        latitude=lat,
        year=year,
        basis_of_record=basis,
        coordinate_uncertainty_m=uncertainty,
        species_key=species_key,
        dataset_key=dataset_key,
    )


def cluster(start_id, lon, lat, count, spacing_m=500):
    """count records on an east-west line, spacing_m apart"""
    records = []
    for i in range(count):
        x, y = offset(lon, lat, east_m=i * spacing_m)
        records.append(make_record(str(start_id + i), lon=x, lat=y))
    return records


@pytest.fixture
def tight_cluster():
    """10 occurrences, every pair well under 10km apart"""
    first = cluster(1, BASE_LON, BASE_LAT, 5)
    lon, lat = offset(BASE_LON, BASE_LAT, north_m=600)
    return first + cluster(6, lon, lat, 5)


@pytest.fixture
def two_clusters():
    """Two groups of 5 occurrences, 50km apart north-south"""
    far_lon, far_lat = offset(BASE_LON, BASE_LAT, north_m=50_000)
    return cluster(1, BASE_LON, BASE_LAT, 5) + cluster(6, far_lon, far_lat, 5)


@pytest.fixture
def ecoregions_gdf():
    return gpd.GeoDataFrame(
        {'region_name': ['Willamette Valley', 'Coast Range', 'Cascades']},
        geometry=[
            box(-123.6, 43.8, -122.4, 45.6),
            box(-124.2, 43.8, -123.6, 45.6),
            box(-122.4, 43.8, -121.5, 45.6),
        ],
        crs='EPSG:4326',
    )


@pytest.fixture
def ecoregions_path(tmp_path, ecoregions_gdf):
    """Ecoregions stored in web mercator so selection has to reproject"""
    path = tmp_path / 'ecoregions.gpkg'
    ecoregions_gdf.to_crs('EPSG:3857').to_file(path, driver='GPKG')
    return path


@pytest.fixture
def occurrence_table(tmp_path, tight_cluster):
    """Tab separated GBIF style download of the tight cluster plus records the filters drop"""
    header = ['gbifID', 'datasetKey', 'basisOfRecord', 'decimalLatitude', 'decimalLongitude',
              'coordinateUncertaintyInMeters', 'year', 'taxonKey', 'speciesKey', 'scientificName']
    rows = []
    for record in tight_cluster:
        rows.append([record.gbif_id, record.dataset_key, record.basis_of_record, record.latitude,
                     record.longitude, record.coordinate_uncertainty_m, record.year,
                     record.taxon_key, record.species_key, 'Quercus garryana Douglas ex Hook.'])
    # Dropped: fossil, too old, unknown uncertainty, missing coordinates
    rows.append(['900', 'ds-1', 'FOSSIL_SPECIMEN', BASE_LAT, BASE_LON, 10, 2000, 2482513, 2482513, 'x'])
    rows.append(['901', 'ds-1', 'PRESERVED_SPECIMEN', BASE_LAT, BASE_LON, 10, 1850, 2482513, 2482513, 'x'])
    rows.append(['902', 'ds-1', 'HUMAN_OBSERVATION', BASE_LAT, BASE_LON, '', 2015, 2482513, 2482513, 'x'])
    rows.append(['903', 'ds-1', 'HUMAN_OBSERVATION', '', '', 10, 2015, 2482513, 2482513, 'x'])

    path = tmp_path / 'occurrences.csv'
    lines = ['\t'.join(header)] + ['\t'.join(str(v) for v in row) for row in rows]
    path.write_text('\n'.join(lines) + '\n', encoding='utf-8')
    return path

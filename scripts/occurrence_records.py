"""
Occurrence Records

Reads a GBIF occurrence download (simple CSV, tab separated, optionally
zipped) into immutable OccurrenceRecord values.
"""

import csv
from dataclasses import dataclass, asdict
from pathlib import Path

import pandas as pd

from range_errors import OccurrenceTableError

# GBIF simple download column -> record field
GBIF_COLUMNS = {
    'gbifID': 'gbif_id',
    'taxonKey': 'taxon_key',
    'decimalLongitude': 'longitude',
    'decimalLatitude': 'latitude',
    'year': 'year',
    'basisOfRecord': 'basis_of_record',
    'coordinateUncertaintyInMeters': 'coordinate_uncertainty_m',
    'speciesKey': 'species_key',
    'datasetKey': 'dataset_key',
}
REQUIRED_COLUMNS = ['decimalLongitude', 'decimalLatitude']
RECORD_FIELDS = list(GBIF_COLUMNS.values())


@dataclass(frozen=True)
class OccurrenceRecord:
    gbif_id: object
    taxon_key: object
    longitude: float
    latitude: float
    year: object = None
    basis_of_record: object = None
    coordinate_uncertainty_m: object = None
    species_key: object = None
    dataset_key: object = None


def _clean(value):
    """Turn pandas missing values into None"""
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    return value


def _as_int(value):
    value = _clean(value)
    return None if value is None else int(value)


def _as_float(value):
    value = _clean(value)
    return None if value is None else float(value)


def records_from_dataframe(df):
    """
    Convert a DataFrame with record field columns into OccurrenceRecords

    Rows without a usable longitude/latitude are skipped.

    Returns:
        (records, skipped_count)
    """
    missing = [col for col in ('longitude', 'latitude') if col not in df.columns]
    if missing:
        raise OccurrenceTableError(f"Occurrence table missing coordinate columns: {missing}")

    df = df.copy()
    df['longitude'] = pd.to_numeric(df['longitude'], errors='coerce')
    df['latitude'] = pd.to_numeric(df['latitude'], errors='coerce')
    valid = (
        df['longitude'].between(-180, 180) &
        df['latitude'].between(-90, 90)
    )
    skipped_count = int((~valid).sum())
    df = df[valid]

    records = []
    for row in df.to_dict('records'):
        records.append(OccurrenceRecord(
            gbif_id=_clean(row.get('gbif_id')),
            taxon_key=_as_int(row.get('taxon_key')),
            longitude=float(row['longitude']),
            latitude=float(row['latitude']),
            year=_as_int(row.get('year')),
            basis_of_record=_clean(row.get('basis_of_record')),
            coordinate_uncertainty_m=_as_float(row.get('coordinate_uncertainty_m')),
            species_key=_as_int(row.get('species_key')),
            dataset_key=_clean(row.get('dataset_key')),
        ))

    return records, skipped_count


def read_occurrence_table(table_path, sep='\t'):
    """
    Read a GBIF occurrence download into OccurrenceRecords

    Args:
        table_path: Path to the simple CSV (or the .zip GBIF delivers)
        sep: Column separator, GBIF uses tabs

    Returns:
        List of OccurrenceRecord in file order
    """
    table_path = Path(table_path)
    if not table_path.exists():
        raise FileNotFoundError(f"Occurrence table not found: {table_path}")

    print(f"📖 Loading occurrences from {table_path.name}...")
    try:
        df = pd.read_csv(
            table_path,
            sep=sep,
            usecols=lambda col: col in GBIF_COLUMNS,
            dtype={'gbifID': str, 'datasetKey': str, 'basisOfRecord': str},
            quoting=csv.QUOTE_NONE,  # GBIF downloads are unquoted
            low_memory=False,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise OccurrenceTableError(f"Could not parse {table_path.name}: {e}") from e

    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise OccurrenceTableError(f"{table_path.name} missing required columns: {missing}")

    df = df.rename(columns=GBIF_COLUMNS)
    records, skipped_count = records_from_dataframe(df)

    print(f"   ✅ Loaded {len(records):,} records")
    if skipped_count:
        print(f"   ⚠️  Skipped {skipped_count:,} rows with missing/invalid coordinates")

    return records


def records_to_dataframe(records):
    """Tabulate records, one row per record in input order"""
    return pd.DataFrame([asdict(record) for record in records], columns=RECORD_FIELDS)

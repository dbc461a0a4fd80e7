"""
Occurrence Record Filtering

Applies the quality filters to occurrence records before any geometry is
built. Stages run in a fixed order, each on the survivors of the last:

1. collection year >= min_year
2. basis of record not in the excluded set
3. coordinate uncertainty known and < max_uncertainty_m
4. drop duplicates on (longitude, latitude, species_key, dataset_key),
   keeping the first record seen
"""

from dataclasses import dataclass

import pandas as pd

from occurrence_records import records_to_dataframe
from range_config import MIN_YEAR, EXCLUDED_BASES, MAX_UNCERTAINTY_M

DEDUP_KEY = ['longitude', 'latitude', 'species_key', 'dataset_key']


@dataclass(frozen=True)
class FilteredRecordSet:
    records: tuple = ()
    stage_counts: tuple = ()   # (stage name, survivors) pairs

    def __len__(self):
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    @property
    def is_empty(self):
        return len(self.records) == 0


def normalize_basis(value):
    """FOSSIL_SPECIMEN, fossil specimen and Fossil Specimen are the same basis"""
    if value is None:
        return None
    return str(value).strip().upper().replace(' ', '_')


def filter_records(records, min_year=MIN_YEAR, excluded_bases=EXCLUDED_BASES,
                   max_uncertainty_m=MAX_UNCERTAINTY_M):
    """
    Filter occurrence records for range building

    Args:
        records: Sequence of OccurrenceRecord (a FilteredRecordSet also works)
        min_year: Oldest collection year kept
        excluded_bases: basisOfRecord values to drop
        max_uncertainty_m: Records must have uncertainty strictly below this.
            A missing uncertainty fails the test.

    Returns:
        FilteredRecordSet, possibly empty
    """
    records = tuple(records)
    df = records_to_dataframe(records)
    stage_counts = [('input', len(df))]

    # 1. Year
    year = pd.to_numeric(df['year'], errors='coerce')
    df = df[year >= min_year]
    stage_counts.append(('year', len(df)))

    # 2. Basis of record
    excluded = {normalize_basis(b) for b in excluded_bases}
    basis = df['basis_of_record'].map(normalize_basis)
    df = df[~basis.isin(excluded)]
    stage_counts.append(('basis_of_record', len(df)))

    # 3. Coordinate uncertainty, null excludes
    uncertainty = pd.to_numeric(df['coordinate_uncertainty_m'], errors='coerce')
    df = df[uncertainty.notna() & (uncertainty < max_uncertainty_m)]
    stage_counts.append(('coordinate_uncertainty', len(df)))

    # 4. Duplicates
    df = df.drop_duplicates(subset=DEDUP_KEY, keep='first')
    stage_counts.append(('deduplicate', len(df)))

    print(f"🔍 Filtered {len(records):,} → {len(df):,} records")
    for (_, before), (stage, after) in zip(stage_counts, stage_counts[1:]):
        if before != after:
            print(f"   • {stage}: dropped {before - after:,}")

    # The frame keeps the positional index of the input tuple
    kept = tuple(records[i] for i in df.index)
    return FilteredRecordSet(records=kept, stage_counts=tuple(stage_counts))

#!/usr/bin/env python3
"""
Create Species Range Polygon for Vulnerability Assessment

This script builds a species range from GBIF occurrence records by:
1. Selecting the named region from a boundary dataset
2. Filtering occurrences (year, basis of record, coordinate uncertainty, duplicates)
3. Buffering each occurrence and merging overlapping buffers into one polygon
4. Repairing and simplifying the merged polygon
5. Clipping the range to the region boundary
6. Exporting the clipped range as the assessment-area input file

Usage:
    python scripts/create_species_range.py \\
        --occurrences data/raw/gbif_download.csv \\
        --boundary data/raw/us_eco_l3.shp --name-field US_L3NAME \\
        --region "Willamette Valley" \\
        --output outputs/species_range/willamette_range.geojson

    # Compare against a broader boundary as well
    python scripts/create_species_range.py ... \\
        --compare-boundary data/raw/us_eco_l2.shp --compare-region "Western Cordillera"
"""

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path

from boundary_clipper import clip_range
from occurrence_records import read_occurrence_table
from range_config import RangeConfig, load_range_config
from range_errors import DestinationExistsError, SpeciesRangeError
from range_exporter import existing_outputs, export_range
from range_geometry_utils import area_sqkm, build_range_polygon, count_vertices, part_count
from record_filter import filter_records
from region_selector import select_region


def resolve_path(path, workdir=None):
    """Relative paths are taken relative to workdir when one is given"""
    if path is None:
        return None
    path = Path(path)
    if workdir is not None and not path.is_absolute():
        return Path(workdir) / path
    return path


def single_value(records, field):
    """The shared value of a record field, or None when records disagree"""
    values = {getattr(record, field) for record in records}
    return values.pop() if len(values) == 1 else None


def run_range_pipeline(config, occurrences_path, boundary_path, region_name, destination,
                       workdir=None, compare_boundary_path=None, compare_region=None,
                       compare_name_field=None):
    """
    Run the full range pipeline for one species/region pair

    Args:
        config: RangeConfig
        occurrences_path: GBIF occurrence download (tab separated)
        boundary_path: Region boundary dataset
        region_name: Region to select from the boundary dataset
        destination: Output vector file
        workdir: Base directory for relative paths
        compare_boundary_path: Optional broader boundary for a comparison clip
        compare_region: Region name in the comparison boundary
        compare_name_field: Name field in the comparison boundary
            (defaults to config.name_field)

    Returns:
        Summary dictionary of the run
    """
    occurrences_path = resolve_path(occurrences_path, workdir)
    boundary_path = resolve_path(boundary_path, workdir)
    destination = resolve_path(destination, workdir)

    existing = existing_outputs(destination)
    if existing and not config.overwrite:
        # Fail before any geometry work; export_range checks again on write
        raise DestinationExistsError(f"{existing[0]} already exists (pass overwrite to replace it)")

    print("\n=== Selecting Region Boundary ===")
    boundary = select_region(
        boundary_path, config.name_field, region_name,
        target_crs=config.target_crs, dissolve_matches=config.dissolve_matches,
    )

    print("\n=== Filtering Occurrence Records ===")
    records = read_occurrence_table(occurrences_path)
    filtered = filter_records(
        records,
        min_year=config.min_year,
        excluded_bases=config.excluded_bases,
        max_uncertainty_m=config.max_uncertainty_m,
    )
    if filtered.is_empty:
        print("  ⚠️  No records survived filtering")

    print("\n=== Building Range Polygon ===")
    range_polygon = build_range_polygon(
        filtered,
        buffer_radius_m=config.buffer_radius_m,
        simplify_tolerance_m=config.simplify_tolerance_m,
        metric_crs=config.metric_crs,
        output_crs=config.target_crs,
        resolution=config.buffer_resolution,
        chunk_size=config.union_chunk_size,
        workers=config.workers,
    )

    print("\n=== Clipping to Region ===")
    clipped = clip_range(range_polygon, boundary)

    comparison = None
    if compare_boundary_path is not None:
        print("\n=== Comparison Clip ===")
        compare_boundary = select_region(
            resolve_path(compare_boundary_path, workdir),
            compare_name_field or config.name_field,
            compare_region,
            target_crs=config.target_crs,
            dissolve_matches=config.dissolve_matches,
        )
        compare_clipped = clip_range(range_polygon, compare_boundary)
        comparison = {
            'region': compare_boundary.name,
            'area_sqkm': round(area_sqkm(compare_clipped.geometry, compare_clipped.crs), 3),
        }

    print("\n=== Exporting Range ===")
    exported = export_range(
        clipped,
        destination,
        overwrite=config.overwrite,
        extra_attributes={
            'species': single_value(filtered, 'species_key'),
            'taxon_key': single_value(filtered, 'taxon_key'),
            'buffer_m': config.buffer_radius_m,
            'simplify_m': config.simplify_tolerance_m,
        },
        coordinate_precision=config.coordinate_precision,
    )

    return {
        'timestamp': datetime.now().isoformat(),
        'region': region_name,
        'output_file': str(exported.path),
        'driver': exported.driver,
        'crs': exported.crs.to_string(),
        'record_counts': dict(filtered.stage_counts),
        'range': {
            'parts': part_count(range_polygon.geometry),
            'vertices': count_vertices(range_polygon.geometry),
            'area_sqkm': round(area_sqkm(range_polygon.geometry, range_polygon.crs), 3),
        },
        'clipped': {
            'parts': part_count(clipped.geometry),
            'vertices': count_vertices(clipped.geometry),
            'area_sqkm': exported.attributes['area_sqkm'],
        },
        'comparison': comparison,
        'config': config.to_dict(),
    }


def write_run_summary(summary, summary_path):
    summary_path = Path(summary_path)
    summary_path.parent.mkdir(parents=True, exist_ok=True)
    with open(summary_path, 'w') as f:
        json.dump(summary, f, indent=2, default=str)
    return summary_path


def build_parser():
    parser = argparse.ArgumentParser(description='Create a species range polygon clipped to a region')
    parser.add_argument('--occurrences', required=True, help='GBIF occurrence download (tab separated CSV)')
    parser.add_argument('--boundary', required=True, help='Region boundary dataset (shp, gpkg, geojson)')
    parser.add_argument('--region', required=True, help='Region name to select from the boundary dataset')
    parser.add_argument('--output', required=True, help='Output range file (.geojson, .gpkg or .shp)')
    parser.add_argument('--name-field', help='Boundary attribute holding region names (default: region_name)')
    parser.add_argument('--config', help='JSON config file with range parameters')
    parser.add_argument('--workdir', help='Base directory for relative paths')
    parser.add_argument('--min-year', type=int, help='Oldest collection year to keep (default: 1900)')
    parser.add_argument('--exclude-basis', action='append', metavar='BASIS',
                        help='basisOfRecord to drop, repeatable (default: FOSSIL_SPECIMEN)')
    parser.add_argument('--max-uncertainty-m', type=float,
                        help='Maximum coordinate uncertainty in metres (default: 10000)')
    parser.add_argument('--buffer-m', type=float, help='Buffer radius in metres (default: 5000)')
    parser.add_argument('--simplify-m', type=float, help='Simplification tolerance in metres (default: 100)')
    parser.add_argument('--metric-crs', help='Projected CRS for buffering (default: local azimuthal equidistant)')
    parser.add_argument('--target-crs', help='CRS of the boundary and output (default: EPSG:4326)')
    parser.add_argument('--workers', type=int, help='Threads for chunked buffer union (default: 1)')
    parser.add_argument('--precision', type=int, metavar='DECIMALS', help='Round output coordinates')
    parser.add_argument('--dissolve-matches', action='store_const', const=True,
                        help='Merge features sharing the region name instead of failing')
    parser.add_argument('--overwrite', action='store_const', const=True, help='Replace an existing output file')
    parser.add_argument('--compare-boundary', help='Broader boundary dataset for a comparison clip')
    parser.add_argument('--compare-region', help='Region name in the comparison boundary')
    parser.add_argument('--compare-name-field', help='Name field in the comparison boundary')
    parser.add_argument('--summary', help='Write a JSON run summary to this path')
    return parser


def main(argv=None):
    """Main function to build one species range"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.compare_boundary and not args.compare_region:
        parser.error('--compare-boundary requires --compare-region')

    print("=== Species Range Builder ===")

    try:
        config = load_range_config(resolve_path(args.config, args.workdir)) if args.config else RangeConfig()
        config = config.with_overrides(
            name_field=args.name_field,
            min_year=args.min_year,
            excluded_bases=args.exclude_basis,
            max_uncertainty_m=args.max_uncertainty_m,
            buffer_radius_m=args.buffer_m,
            simplify_tolerance_m=args.simplify_m,
            metric_crs=args.metric_crs,
            target_crs=args.target_crs,
            workers=args.workers,
            coordinate_precision=args.precision,
            dissolve_matches=args.dissolve_matches,
            overwrite=args.overwrite,
        )

        summary = run_range_pipeline(
            config,
            args.occurrences,
            args.boundary,
            args.region,
            args.output,
            workdir=args.workdir,
            compare_boundary_path=args.compare_boundary,
            compare_region=args.compare_region,
            compare_name_field=args.compare_name_field,
        )
    except (SpeciesRangeError, OSError) as e:
        print(f"\n❌ {type(e).__name__}: {e}")
        return 1

    # Summary report
    print("\n" + "=" * 60)
    print("SPECIES RANGE SUMMARY")
    print("=" * 60)
    counts = summary['record_counts']
    print(f"📋 Records: {counts['input']:,} loaded → {counts['deduplicate']:,} used")
    print(f"🗺️  Range: {summary['range']['parts']} part(s), {summary['range']['area_sqkm']:,.1f} km²")
    print(f"✂️  Clipped to {summary['region']}: {summary['clipped']['parts']} part(s), "
          f"{summary['clipped']['area_sqkm']:,.1f} km²")
    if summary['comparison']:
        print(f"🔍 Comparison ({summary['comparison']['region']}): "
              f"{summary['comparison']['area_sqkm']:,.1f} km²")
    print(f"📄 Output: {summary['output_file']}")

    if args.summary:
        summary_path = write_run_summary(summary, resolve_path(args.summary, args.workdir))
        print(f"\n💾 Detailed summary saved to: {summary_path}")

    print("\n🎉 Species range complete!")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Command-line interface for amplitude-truncation.
"""

import argparse
import sys
from pathlib import Path

import pandas as pd

from . import __version__
from .amplitude_table import load_predicted_amplitudes
from .config import DEFAULT_MAX_DISTANCE, DEFAULT_MIN_DISTANCE, ESTIMATE_COLUMNS, MIN_VISITS
from .counts import (
    build_site_visit_universe,
    count_site_visits,
    eligible_sites,
    get_truncation_summary,
    load_excluded_sites,
)
from .detections import create_detection_dataframe, load_site_metadata
from .output import abundance_filename, save_dataframe
from .pipeline import matrices_from_results
from .species_map import load_species_references
from .truncation import TruncationEngine


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="amplitude-truncation",
        description="Amplitude-based distance truncation of acoustic bird counts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
    )

    truncate_parser = subparsers.add_parser(
        "truncate",
        help="Write one abundance matrix per truncation distance",
    )
    truncate_parser.add_argument("tags", help="WildTrax tags CSV")
    truncate_parser.add_argument("recordings", help="WildTrax recordings CSV")
    truncate_parser.add_argument(
        "metadata", help="Site metadata CSV (location, years_since_logging, SM2)")
    truncate_parser.add_argument(
        "-o", "--output-dir",
        help="Directory for abundance matrices (default: ./abundance)",
        default="abundance",
    )
    truncate_parser.add_argument(
        "--predicted-amplitudes",
        help="Predicted amplitudes CSV (default: data folder)",
        default=None,
    )
    truncate_parser.add_argument(
        "--species-references",
        help="Species and references CSV (default: data folder)",
        default=None,
    )
    truncate_parser.add_argument(
        "--report",
        help="WildTrax report CSV with task comments for mic overrides",
        default=None,
    )
    truncate_parser.add_argument(
        "--visit-counts",
        help="CSV of location and visits; counted from recordings if omitted",
        default=None,
    )
    truncate_parser.add_argument(
        "--min-visits",
        type=int,
        default=MIN_VISITS,
        help=f"Minimum visits for a site to be kept (default: {MIN_VISITS})",
    )
    truncate_parser.add_argument(
        "--excluded-sites",
        help="File of locations to drop, one per line (default: data folder)",
        default=None,
    )
    truncate_parser.add_argument(
        "--min-distance", type=int, default=DEFAULT_MIN_DISTANCE,
        help=f"Shortest truncation distance in m (default: {DEFAULT_MIN_DISTANCE})",
    )
    truncate_parser.add_argument(
        "--max-distance", type=int, default=DEFAULT_MAX_DISTANCE,
        help=f"Longest truncation distance in m (default: {DEFAULT_MAX_DISTANCE})",
    )
    truncate_parser.add_argument(
        "-d", "--distance",
        type=float,
        action="append",
        help="Single truncation distance in m; may be repeated. Overrides the range.",
    )
    truncate_parser.add_argument(
        "--estimate",
        choices=ESTIMATE_COLUMNS,
        default="predicted",
        help="Prediction column used as threshold (default: predicted)",
    )
    truncate_parser.add_argument(
        "--occurrence",
        action="store_true",
        help="Write presence/absence instead of counts",
    )

    return parser


def run_truncate(args: argparse.Namespace) -> int:
    output_dir = Path(args.output_dir)

    amplitude_table = load_predicted_amplitudes(
        args.predicted_amplitudes, estimate=args.estimate)
    species_map = load_species_references(args.species_references)
    excluded_sites = load_excluded_sites(args.excluded_sites)

    tags_df = pd.read_csv(args.tags)
    recordings_df = pd.read_csv(args.recordings)
    metadata_df = load_site_metadata(args.metadata)
    report_df = pd.read_csv(args.report) if args.report else None

    detections = create_detection_dataframe(tags_df, metadata_df, report_df)

    if args.visit_counts:
        visit_counts = pd.read_csv(args.visit_counts)
    else:
        visit_counts = count_site_visits(recordings_df)
    sites = eligible_sites(visit_counts, min_visits=args.min_visits)
    site_visits = build_site_visit_universe(recordings_df, sites, excluded_sites)

    if args.distance:
        distances = args.distance
    else:
        distances = range(args.min_distance, args.max_distance + 1)

    engine = TruncationEngine(amplitude_table, species_map)
    results = engine.run(detections, distances)
    matrices = matrices_from_results(
        results, site_visits, engine.species, excluded_sites, occurrence=args.occurrence)

    for distance, matrix in matrices.items():
        save_dataframe(matrix, output_dir / abundance_filename(distance),
                       f"abundance matrix at {distance}m")
    save_dataframe(get_truncation_summary(results, engine.species),
                   output_dir / "truncation_summary.csv", "truncation summary")
    return 0


def main(argv=None):
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "truncate":
        if args.min_distance > args.max_distance:
            parser.error("--min-distance must not exceed --max-distance")
        return run_truncate(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())

"""
Abundance matrices from truncated detections.

Each matrix has one row per surveyed site visit (location + recording time)
and one integer column per species of interest. Visits with no retained songs
are kept as zero rows so the downstream count models see every survey.
"""

from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Union

import pandas as pd

from .config import DEFAULT_EXCLUDED_SITES, MIN_VISITS, SITE_VISIT_COLUMNS
from .truncation import FilteredResult


def load_excluded_sites(exclude_file: Optional[Union[str, Path]] = None) -> List[str]:
    """
    Load the sites to drop from every abundance matrix.

    Args:
        exclude_file: Path to a file with one location per line. Lines starting
                     with # are treated as comments. If None, uses the default
                     file from the data folder.

    Returns:
        List of excluded locations
    """
    if exclude_file is None:
        exclude_file = DEFAULT_EXCLUDED_SITES
    else:
        exclude_file = Path(exclude_file)

    if not exclude_file.exists():
        print(f"Warning: Excluded sites file not found at {exclude_file}")
        return []

    excluded_sites = []
    with open(exclude_file, 'r') as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith('#'):
                excluded_sites.append(line)

    return excluded_sites


def count_site_visits(recordings_df: pd.DataFrame) -> pd.DataFrame:
    """Number of distinct transcribed visits per location."""
    visits = recordings_df[SITE_VISIT_COLUMNS].drop_duplicates()
    return (visits.groupby('location')
            .size()
            .reset_index(name='visits'))


def eligible_sites(
    visit_counts: pd.DataFrame,
    min_visits: int = MIN_VISITS,
    count_col: str = 'visits'
) -> List[str]:
    """
    Sites with at least `min_visits` transcribed visits.

    Args:
        visit_counts: DataFrame with a location column and a visit count column.
        min_visits: Minimum number of visits.
        count_col: Name of the visit count column.
    """
    if 'location' not in visit_counts.columns or count_col not in visit_counts.columns:
        raise ValueError(
            f"Visit counts must contain 'location' and '{count_col}' columns")

    counts = pd.to_numeric(visit_counts[count_col], errors='coerce')
    sites = visit_counts.loc[counts >= min_visits, 'location'].drop_duplicates().tolist()
    print(f"{len(sites)} of {visit_counts['location'].nunique()} sites have "
          f"at least {min_visits} visits")
    return sites


def _parse_visits(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df['recording_date_time'] = pd.to_datetime(df['recording_date_time'])
    return df


def build_site_visit_universe(
    recordings_df: pd.DataFrame,
    eligible: Optional[Iterable[str]] = None,
    excluded_sites: Optional[Iterable[str]] = None
) -> pd.DataFrame:
    """
    All surveyed (location, recording_date_time) pairs counts are reconciled with.

    Args:
        recordings_df: Recordings with location and recording_date_time columns.
        eligible: If given, only these locations are kept.
        excluded_sites: Locations to remove.

    Returns:
        Unique site visits sorted by location and time.
    """
    universe = _parse_visits(recordings_df[SITE_VISIT_COLUMNS]).drop_duplicates()
    if eligible is not None:
        universe = universe[universe['location'].isin(list(eligible))]
    if excluded_sites:
        universe = universe[~universe['location'].isin(list(excluded_sites))]

    universe = universe.sort_values(SITE_VISIT_COLUMNS).reset_index(drop=True)
    print(f"Site-visit universe: {len(universe)} visits at "
          f"{universe['location'].nunique()} sites")
    return universe


def aggregate(
    filtered: Union[FilteredResult, pd.DataFrame],
    site_visits: pd.DataFrame,
    species_of_interest: Iterable[str],
    excluded_sites: Optional[Iterable[str]] = None
) -> pd.DataFrame:
    """
    Convert truncated tags to an abundance matrix.

    This function:
    1. Drops excluded sites and species outside species_of_interest
    2. Counts the number of detections per species per site visit
    3. Adds every site visit of the universe that has no detections as zeros
    4. Drops site visits that are not in the universe

    Args:
        filtered: FilteredResult from TruncationEngine, or its detections.
        site_visits: Site-visit universe with location and recording_date_time.
        species_of_interest: Species columns of the output, in order.
        excluded_sites: Locations removed before counting.

    Returns:
        DataFrame with location, recording_date_time and one count column per
        species of interest, sorted by location and time.
    """
    tags_df = filtered.detections if isinstance(filtered, FilteredResult) else filtered
    species_of_interest = list(species_of_interest)
    excluded_sites = list(excluded_sites or [])

    universe = _parse_visits(site_visits[SITE_VISIT_COLUMNS]).drop_duplicates()
    tags_df = _parse_visits(tags_df[SITE_VISIT_COLUMNS + ['species_code']])
    if excluded_sites:
        universe = universe[~universe['location'].isin(excluded_sites)]
        tags_df = tags_df[~tags_df['location'].isin(excluded_sites)]
    tags_df = tags_df[tags_df['species_code'].isin(species_of_interest)]

    # Count detections per location, recording_date_time, and species
    count_df = tags_df.groupby(
        SITE_VISIT_COLUMNS + ['species_code']
    ).size().reset_index(name='count')

    if count_df.empty:
        count_wide = universe.iloc[0:0].copy()
        for species in species_of_interest:
            count_wide[species] = pd.Series(dtype=int)
    else:
        count_wide = count_df.pivot_table(
            index=SITE_VISIT_COLUMNS,
            columns='species_code',
            values='count',
            aggfunc='sum',
            fill_value=0
        ).reindex(columns=species_of_interest, fill_value=0).reset_index()
        count_wide.columns.name = None

    outside = count_wide.merge(
        universe, on=SITE_VISIT_COLUMNS, how='left', indicator=True
    ).query('_merge == "left_only"')
    if len(outside):
        print(f"Warning: Dropped {len(outside)} site visits with detections that are "
              f"not in the site-visit universe ({int(outside[species_of_interest].sum().sum())} "
              f"detections)")

    # Merge with the universe to ensure complete coverage
    count_complete = universe.merge(count_wide, on=SITE_VISIT_COLUMNS, how='left')
    count_complete[species_of_interest] = (
        count_complete[species_of_interest].fillna(0).astype(int))
    count_complete = count_complete.sort_values(SITE_VISIT_COLUMNS).reset_index(drop=True)

    print(f"Final count dataframe: {len(count_complete)} recordings × "
          f"{len(species_of_interest)} species, "
          f"{int(count_complete[species_of_interest].sum().sum())} detections")

    return count_complete


def to_occurrence(counts: pd.DataFrame, species: Optional[Iterable[str]] = None) -> pd.DataFrame:
    """
    Convert an abundance matrix to presence/absence (1/0).

    Args:
        counts: Output of aggregate().
        species: Species columns to convert. Defaults to every column except
                location and recording_date_time.
    """
    if species is None:
        species = [col for col in counts.columns if col not in SITE_VISIT_COLUMNS]
    occurrence_df = counts.copy()
    for col in species:
        occurrence_df[col] = (occurrence_df[col] > 0).astype(int)
    return occurrence_df


def get_truncation_summary(
    results: Mapping[float, FilteredResult],
    species: Optional[Iterable[str]] = None
) -> pd.DataFrame:
    """
    Retained detections per truncation distance and species.

    Args:
        results: Output of TruncationEngine.run().
        species: Species to report. Defaults to every species retained at any
                distance.

    Returns:
        Wide DataFrame with a distance column, n_input, one column per species
        and a total column.
    """
    if species is None:
        found = set()
        for result in results.values():
            found.update(result.detections['species_code'].unique())
        species = sorted(found)
    species = list(species)

    records = []
    for distance, result in results.items():
        per_species = result.detections['species_code'].value_counts()
        row = {'distance': distance, 'n_input': result.n_input}
        for code in species:
            row[code] = int(per_species.get(code, 0))
        row['total'] = result.n_retained
        records.append(row)

    return pd.DataFrame(records, columns=['distance', 'n_input'] + species + ['total'])

"""
End-to-end truncation: detections in, one abundance matrix per distance out.
"""

from typing import Dict, Iterable, Mapping, Optional

import pandas as pd

from .counts import aggregate, to_occurrence
from .truncation import FilteredResult, TruncationEngine


def build_abundance_matrices(
    engine: TruncationEngine,
    detections: pd.DataFrame,
    site_visits: pd.DataFrame,
    distances: Optional[Iterable[float]] = None,
    excluded_sites: Optional[Iterable[str]] = None,
    occurrence: bool = False
) -> Dict[float, pd.DataFrame]:
    """
    Truncate detections at each distance and count them per site visit.

    Args:
        engine: TruncationEngine holding the amplitude table and species map.
        detections: Detection table (see create_detection_dataframe()).
        site_visits: Site-visit universe (see build_site_visit_universe()).
        distances: Truncation distances. Defaults to the working range.
        excluded_sites: Locations dropped from every matrix.
        occurrence: Return presence/absence instead of counts.

    Returns:
        Dictionary mapping each distance to its abundance matrix
    """
    excluded_sites = list(excluded_sites or [])
    results = engine.run(detections, distances)
    return matrices_from_results(results, site_visits, engine.species,
                                 excluded_sites, occurrence)


def matrices_from_results(
    results: Mapping[float, FilteredResult],
    site_visits: pd.DataFrame,
    species_of_interest: Iterable[str],
    excluded_sites: Optional[Iterable[str]] = None,
    occurrence: bool = False
) -> Dict[float, pd.DataFrame]:
    species_of_interest = list(species_of_interest)
    matrices = {}
    for distance, result in results.items():
        counts = aggregate(result, site_visits, species_of_interest, excluded_sites)
        matrices[distance] = to_occurrence(counts, species_of_interest) if occurrence else counts
    return matrices

"""
Distance truncation for birdsong detections using amplitude-based methods.

This module applies distance truncation on birdsong detections using the method
described in Lebeuf-Taylor et al., 2025. For a truncation distance, every focal
species gets an amplitude threshold per habitat class and recorder generation,
taken from the predicted amplitude of its reference species at that distance.
A song is kept if it is at least as loud as its threshold, i.e. if it was
likely produced within the truncation distance.

Cells without a calibrated threshold are kept as None and do not exclude
anything.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Tuple, Union

import pandas as pd

from .amplitude_table import AmplitudePredictionTable
from .config import (
    DEFAULT_MAX_DISTANCE,
    DEFAULT_MIN_DISTANCE,
    FORESTED_MIN_AGE,
    OPEN_MAX_AGE,
)
from .habitat import HABITATS, HARDWARE_GENERATIONS, HabitatClass, habitat_from_age
from .species_map import ReferenceSpeciesMap, SiblingCopy

ThresholdKey = Tuple[str, HabitatClass, bool]

DETECTION_COLUMNS = ['location', 'recording_date_time', 'species_code',
                     'mean_amp', 'years_since_logging', 'SM2']


def default_distances() -> range:
    """Working truncation distances, 30 to 500 m inclusive."""
    return range(DEFAULT_MIN_DISTANCE, DEFAULT_MAX_DISTANCE + 1)


@dataclass(frozen=True)
class ThresholdSnapshot:
    """Amplitude thresholds for every focal species at one distance."""

    distance: float
    cells: Mapping[ThresholdKey, Optional[float]] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'cells', MappingProxyType(dict(self.cells)))

    def threshold(
        self,
        species: str,
        habitat: Union[HabitatClass, str],
        legacy: bool
    ) -> Optional[float]:
        return self.cells.get((species, HabitatClass(habitat), bool(legacy)))

    def table(self, species: str) -> Dict[Tuple[HabitatClass, bool], Optional[float]]:
        """2x2 table of thresholds for one species, keyed by (habitat, legacy)."""
        return {
            (habitat, legacy): self.cells.get((species, habitat, legacy))
            for habitat in HABITATS
            for legacy in HARDWARE_GENERATIONS
        }

    @property
    def species(self) -> Tuple[str, ...]:
        return tuple(dict.fromkeys(key[0] for key in self.cells))

    @property
    def n_defined(self) -> int:
        return sum(value is not None for value in self.cells.values())

    def to_frame(self) -> pd.DataFrame:
        """Long-format thresholds: species_code, habitat, SM2, threshold (NaN if undefined)."""
        records = [
            {
                'species_code': species,
                'habitat': habitat.value,
                'SM2': int(legacy),
                'threshold': float('nan') if value is None else value,
            }
            for (species, habitat, legacy), value in self.cells.items()
        ]
        return pd.DataFrame(
            records, columns=['species_code', 'habitat', 'SM2', 'threshold']
        ).astype({'SM2': int, 'threshold': float})


@dataclass(frozen=True, eq=False)
class FilteredResult:
    """Detections surviving truncation at one distance."""

    distance: float
    detections: pd.DataFrame
    snapshot: ThresholdSnapshot
    n_input: int = 0
    n_unmapped: int = 0
    n_unclassified: int = 0

    @property
    def n_retained(self) -> int:
        return len(self.detections)


class TruncationEngine:
    """
    Builds threshold snapshots and filters detections against them.

    Args:
        amplitude_table: Predicted amplitudes of the reference species.
        species_map: Focal species and how their curve is resolved. Its species
                    are the working species set; everything else is dropped.
        open_max_age: Sites logged fewer years ago than this are open.
        forested_min_age: Sites logged at least this many years ago are forested.
    """

    def __init__(
        self,
        amplitude_table: AmplitudePredictionTable,
        species_map: ReferenceSpeciesMap,
        open_max_age: float = OPEN_MAX_AGE,
        forested_min_age: float = FORESTED_MIN_AGE
    ):
        self.amplitude_table = amplitude_table
        self.species_map = species_map
        self.open_max_age = open_max_age
        self.forested_min_age = forested_min_age

        calibrated = set(amplitude_table.species)
        for rule in species_map:
            if rule.reference not in calibrated:
                print(f"Warning: No predicted amplitudes for reference species "
                      f"{rule.reference} (for {rule.species})")

    @property
    def species(self) -> Tuple[str, ...]:
        return self.species_map.species

    def build_snapshot(self, distance: float) -> ThresholdSnapshot:
        """
        Resolve the thresholds of every focal species at `distance`.

        Species with their own or a proxy curve are looked up directly; sibling
        copies take the cells of their sibling once those are resolved.
        """
        resolved: Dict[ThresholdKey, Optional[float]] = {}
        for rule in self.species_map:
            if isinstance(rule, SiblingCopy):
                continue
            for habitat in HABITATS:
                for legacy in HARDWARE_GENERATIONS:
                    resolved[(rule.species, habitat, legacy)] = self.amplitude_table.threshold(
                        distance, rule.reference, habitat, legacy)

        cells: Dict[ThresholdKey, Optional[float]] = {}
        for rule in self.species_map:
            source = rule.sibling if isinstance(rule, SiblingCopy) else rule.species
            for habitat in HABITATS:
                for legacy in HARDWARE_GENERATIONS:
                    cells[(rule.species, habitat, legacy)] = resolved[(source, habitat, legacy)]

        return ThresholdSnapshot(distance=distance, cells=cells)

    def filter_detections(
        self,
        detections: pd.DataFrame,
        snapshot: ThresholdSnapshot,
        verbose: bool = True
    ) -> FilteredResult:
        """
        Keep the detections that pass the amplitude thresholds of a snapshot.

        A detection passes if its mean amplitude is at least the threshold for
        its species, habitat class (from years since logging) and SM2 flag, or
        if that threshold is undefined. Detections of species outside the
        working set, and from sites in the age gap or without an age, are
        dropped.

        Args:
            detections: DataFrame with one row per song (see DETECTION_COLUMNS).
            snapshot: Thresholds from build_snapshot().
            verbose: Print dropped and retained counts.

        Returns:
            FilteredResult whose detections carry habitat, threshold and
            distance columns.

        Raises:
            ValueError: If required columns are missing.
        """
        missing_columns = [
            col for col in DETECTION_COLUMNS if col not in detections.columns]
        if missing_columns:
            raise ValueError(
                f"Detections are missing required columns: {missing_columns}")

        tags_df = detections.copy()
        n_input = len(tags_df)

        in_scope = tags_df['species_code'].isin(self.species)
        unmapped = tags_df.loc[~in_scope, 'species_code']
        if verbose and len(unmapped):
            print(f"Warning: Dropped {len(unmapped)} detections of species outside "
                  f"the working set: {sorted(unmapped.astype(str).unique())}")
        tags_df = tags_df[in_scope].copy()

        tags_df['habitat'] = habitat_from_age(
            tags_df['years_since_logging'], self.open_max_age, self.forested_min_age)
        tags_df['SM2'] = pd.to_numeric(tags_df['SM2'], errors='coerce')
        # Only 0/1 flags key a snapshot cell
        classified = tags_df['habitat'].notna() & tags_df['SM2'].isin([0, 1])
        n_unclassified = int((~classified).sum())
        if verbose and n_unclassified:
            print(f"Warning: Dropped {n_unclassified} detections without a habitat "
                  f"class or a 0/1 SM2 flag")
        tags_df = tags_df[classified].copy()
        tags_df['SM2'] = tags_df['SM2'].astype(int)

        if 'threshold' in tags_df.columns:
            tags_df = tags_df.drop(columns=['threshold'])
        tags_df = tags_df.merge(
            snapshot.to_frame(),
            on=['species_code', 'habitat', 'SM2'],
            how='left'
        )

        passes = tags_df['threshold'].isna() | (tags_df['mean_amp'] >= tags_df['threshold'])
        truncated_tags = tags_df[passes].copy()
        truncated_tags['distance'] = snapshot.distance
        truncated_tags = truncated_tags.reset_index(drop=True)

        if verbose:
            print(f"Retained {len(truncated_tags)} individual tags that pass "
                  f"{snapshot.distance}m threshold")

        return FilteredResult(
            distance=snapshot.distance,
            detections=truncated_tags,
            snapshot=snapshot,
            n_input=n_input,
            n_unmapped=len(unmapped),
            n_unclassified=n_unclassified
        )

    def truncate(self, detections: pd.DataFrame, distance: float,
                 verbose: bool = True) -> FilteredResult:
        """Build the snapshot for `distance` and filter detections with it."""
        snapshot = self.build_snapshot(distance)
        if verbose and snapshot.n_defined == 0:
            print(f"Warning: No amplitude thresholds within tolerance at {distance}m")
        return self.filter_detections(detections, snapshot, verbose=verbose)

    def run(
        self,
        detections: pd.DataFrame,
        distances: Optional[Iterable[float]] = None
    ) -> Mapping[float, FilteredResult]:
        """
        Truncate detections at every distance of the working range.

        Distances are independent of each other. The result maps each distance
        to its FilteredResult and is read-only.
        """
        if distances is None:
            distances = default_distances()
        distances = list(distances)

        print(f"Truncating {len(detections)} detections at {len(distances)} distances...")
        results: Dict[float, FilteredResult] = {}
        for i, distance in enumerate(distances):
            # Data-quality warnings are the same at every distance
            results[distance] = self.truncate(detections, distance, verbose=(i == 0))

        if results:
            retained = [result.n_retained for result in results.values()]
            print(f"Retained between {min(retained)} and {max(retained)} detections "
                  f"across {len(results)} distances")
        return MappingProxyType(results)

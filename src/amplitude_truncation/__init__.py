"""
Amplitude Truncation - distance truncation of acoustic bird detections.
"""

__version__ = "0.2.0"

from . import amplitude_table, consistency, counts, detections, species_map, truncation
from .amplitude_table import AmplitudePredictionTable, load_predicted_amplitudes
from .counts import aggregate, build_site_visit_universe
from .habitat import HabitatClass, classify_habitat
from .species_map import ReferenceSpeciesMap, load_species_references
from .truncation import FilteredResult, ThresholdSnapshot, TruncationEngine

__all__ = [
    "__version__",
    "amplitude_table",
    "consistency",
    "counts",
    "detections",
    "species_map",
    "truncation",
    "AmplitudePredictionTable",
    "FilteredResult",
    "HabitatClass",
    "ReferenceSpeciesMap",
    "ThresholdSnapshot",
    "TruncationEngine",
    "aggregate",
    "build_site_visit_universe",
    "classify_habitat",
    "load_predicted_amplitudes",
    "load_species_references",
]

"""
Shared fixtures: a dense, monotonic amplitude table and a small detection set.

Predicted amplitude is base + species shift - distance / 10, so thresholds at
100 m are easy to work out by hand:

    OVEN  open/modern -20   open/SM2 -22   forested/modern -24   forested/SM2 -26
    TEWA  open/modern -22   open/SM2 -24   forested/modern -26   forested/SM2 -28
"""

import sys
from pathlib import Path

import pandas as pd
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from amplitude_truncation.amplitude_table import AmplitudePredictionTable
from amplitude_truncation.species_map import ReferenceSpeciesMap
from amplitude_truncation.truncation import TruncationEngine

BASES = {
    (0, 0): -10.0,
    (0, 1): -12.0,
    (1, 0): -14.0,
    (1, 1): -16.0,
}
SHIFTS = {'OVEN': 0.0, 'TEWA': -2.0}


def make_predicted_amps(distances=range(1, 501)) -> pd.DataFrame:
    rows = []
    for species, shift in SHIFTS.items():
        for (canopy, sm2), base in BASES.items():
            for distance in distances:
                predicted = base + shift - distance / 10
                rows.append({
                    'target_spp': species,
                    'distance': distance,
                    'canopy': canopy,
                    'SM2': sm2,
                    'predicted': predicted,
                    'lower': predicted - 2,
                    'upper': predicted + 2,
                })
    return pd.DataFrame(rows)


@pytest.fixture
def predicted_amps():
    return make_predicted_amps()


@pytest.fixture
def amplitude_table(predicted_amps):
    return AmplitudePredictionTable(predicted_amps)


@pytest.fixture
def species_map():
    # GCKI shares TEWA with RCKI and copies RCKI's thresholds
    return ReferenceSpeciesMap.from_pairs([
        ('OVEN', 'OVEN'),
        ('TEWA', 'TEWA'),
        ('RCKI', 'TEWA'),
        ('GCKI', 'TEWA'),
    ])


@pytest.fixture
def engine(amplitude_table, species_map):
    return TruncationEngine(amplitude_table, species_map)


@pytest.fixture
def detections():
    """
    Nine songs; at 100 m rows 0, 2, 3 and 7 pass, row 5 is in the age gap and
    row 6 is not a focal species.
    """
    return pd.DataFrame({
        'location': ['L1', 'L1', 'L2', 'L2', 'L2', 'L3', 'L1', 'L1', 'L4'],
        'recording_date_time': [
            '2024-06-01 06:00', '2024-06-01 06:00', '2024-06-02 06:00',
            '2024-06-02 06:00', '2024-06-02 06:00', '2024-06-03 06:00',
            '2024-06-01 06:00', '2024-06-01 06:00', '2024-06-04 06:00',
        ],
        'species_code': ['OVEN', 'OVEN', 'OVEN', 'TEWA', 'TEWA', 'OVEN',
                         'NONE', 'GCKI', 'RCKI'],
        'mean_amp': [-19.0, -21.0, -25.0, -27.0, -29.0, -5.0, -1.0, -21.9, -30.0],
        'years_since_logging': [5, 5, 20, 20, 20, 11, 5, 5, 15],
        'SM2': [0, 0, 1, 1, 1, 0, 0, 0, 0],
    })


@pytest.fixture
def site_visits():
    """Universe: every detection visit plus a second, silent visit at L1."""
    return pd.DataFrame({
        'location': ['L1', 'L1', 'L2', 'L3', 'L4'],
        'recording_date_time': ['2024-06-01 06:00', '2024-06-08 06:00',
                                '2024-06-02 06:00', '2024-06-03 06:00',
                                '2024-06-04 06:00'],
    })

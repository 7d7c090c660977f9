"""
Predicted amplitude surface from the sound-attenuation model.

The attenuation model is fitted outside this package and exported as a table
of predicted amplitudes (with interval bounds) per reference species, canopy
class and recorder generation over a dense distance grid. This module wraps
that export in a read-only lookup that snaps a requested distance to the
nearest modelled distance.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .config import DEFAULT_PREDICTED_AMPLITUDES, DISTANCE_TOLERANCE, ESTIMATE_COLUMNS
from .habitat import HabitatClass

CurveKey = Tuple[str, HabitatClass, bool]


@dataclass(frozen=True)
class AmplitudePrediction:
    """One row of the amplitude prediction table."""

    distance: float
    predicted: float
    lower: Optional[float] = None
    upper: Optional[float] = None


def _optional_float(value) -> Optional[float]:
    return None if pd.isna(value) else float(value)


class AmplitudePredictionTable:
    """
    Read-only nearest-distance lookup over predicted amplitudes.

    Rows are grouped by (target_spp, canopy, SM2). A lookup picks the row of
    the group whose distance is closest to the query; if several rows are
    equally close, the one that comes first in the source table wins. No row
    is returned when the closest distance is more than `tolerance` metres away.
    """

    REQUIRED_COLUMNS = ['target_spp', 'distance', 'canopy', 'SM2', 'predicted']

    def __init__(
        self,
        predicted_amps: pd.DataFrame,
        estimate: str = 'predicted',
        tolerance: float = DISTANCE_TOLERANCE
    ):
        """
        Args:
            predicted_amps: DataFrame with target_spp, distance, canopy, SM2 and
                           predicted columns. lower and upper are optional.
            estimate: Column used as the amplitude threshold ('predicted',
                     'lower' or 'upper').
            tolerance: Maximum distance (m) between a query and a table row.

        Raises:
            ValueError: If required columns are missing, the estimate column is
                       unknown or absent, or canopy/SM2 hold unknown codes.
        """
        missing_columns = [
            col for col in self.REQUIRED_COLUMNS if col not in predicted_amps.columns]
        if missing_columns:
            raise ValueError(
                f"Predicted amplitudes are missing required columns: {missing_columns}")

        if estimate not in ESTIMATE_COLUMNS:
            raise ValueError(
                f"Invalid estimate column: {estimate}. Use one of {ESTIMATE_COLUMNS}")
        if estimate not in predicted_amps.columns:
            raise ValueError(
                f"Estimate column '{estimate}' not found in predicted amplitudes")

        # Work on a copy so the source table can't change underneath us
        table = predicted_amps.copy().reset_index(drop=True)
        for bound in ('lower', 'upper'):
            if bound not in table.columns:
                table[bound] = np.nan

        try:
            table['distance'] = pd.to_numeric(table['distance'], errors='raise')
            table['SM2'] = pd.to_numeric(table['SM2'], errors='raise')
        except (ValueError, TypeError):
            raise ValueError(
                "Columns 'distance' and 'SM2' must be numeric in predicted amplitudes")

        # groupby would drop these silently
        unkeyed = table[['target_spp', 'canopy', 'SM2']].isna().any(axis=1)
        if unkeyed.any():
            print(f"Warning: Skipping {unkeyed.sum()} predicted amplitude records "
                  f"without target_spp, canopy or SM2")
            table = table[~unkeyed].reset_index(drop=True)

        self.estimate = estimate
        self.tolerance = float(tolerance)
        self._table = table[self.REQUIRED_COLUMNS + ['lower', 'upper']]

        self._curves: Dict[CurveKey, pd.DataFrame] = {}
        self._distances: Dict[CurveKey, np.ndarray] = {}
        # sort=False keeps first-seen group order; rows inside a group keep
        # their position in the source table, which settles distance ties
        for (species, canopy, sm2), curve in self._table.groupby(
                ['target_spp', 'canopy', 'SM2'], sort=False):
            key = (species, HabitatClass.from_canopy(canopy), bool(sm2))
            self._curves[key] = curve
            self._distances[key] = curve['distance'].to_numpy(dtype=float)

    def __len__(self) -> int:
        return len(self._table)

    @property
    def frame(self) -> pd.DataFrame:
        """Copy of the underlying table."""
        return self._table.copy()

    @property
    def species(self) -> List[str]:
        """Reference species with at least one curve, in table order."""
        return list(dict.fromkeys(key[0] for key in self._curves))

    def has_curve(self, species: str, habitat: Union[HabitatClass, str], legacy: bool) -> bool:
        return (species, HabitatClass(habitat), bool(legacy)) in self._curves

    def lookup(
        self,
        distance: float,
        species: str,
        habitat: Union[HabitatClass, str],
        legacy: bool
    ) -> Optional[AmplitudePrediction]:
        """
        Find the prediction at the modelled distance closest to `distance`.

        Returns:
            AmplitudePrediction, or None if the curve doesn't exist or no
            modelled distance is within tolerance.
        """
        key = (species, HabitatClass(habitat), bool(legacy))
        distances = self._distances.get(key)
        if distances is None or len(distances) == 0:
            return None

        differences = np.abs(distances - distance)
        # argmin returns the first minimum, i.e. the earliest row on ties
        nearest = int(np.argmin(differences))
        if differences[nearest] > self.tolerance:
            return None

        row = self._curves[key].iloc[nearest]
        return AmplitudePrediction(
            distance=float(row['distance']),
            predicted=float(row['predicted']),
            lower=_optional_float(row['lower']),
            upper=_optional_float(row['upper'])
        )

    def threshold(
        self,
        distance: float,
        species: str,
        habitat: Union[HabitatClass, str],
        legacy: bool
    ) -> Optional[float]:
        """Amplitude threshold (the configured estimate) at a distance, or None."""
        prediction = self.lookup(distance, species, habitat, legacy)
        if prediction is None:
            return None
        value = getattr(prediction, self.estimate)
        return None if value is None or pd.isna(value) else float(value)

    def estimate_distance(
        self,
        species: str,
        habitat: Union[HabitatClass, str],
        legacy: bool,
        amplitude: float
    ) -> Optional[float]:
        """
        Estimate the distance of a song from its measured amplitude.

        Picks the modelled distance whose predicted amplitude is closest to the
        measurement. Returns None when there is no curve, no amplitude, or no
        predicted amplitude on the curve.
        """
        key = (species, HabitatClass(habitat), bool(legacy))
        curve = self._curves.get(key)
        if curve is None or pd.isna(amplitude):
            return None

        predicted = curve['predicted'].to_numpy(dtype=float)
        if np.isnan(predicted).all():
            return None
        nearest = int(np.nanargmin(np.abs(predicted - amplitude)))
        return float(self._distances[key][nearest])


def load_predicted_amplitudes(
    file_path: Optional[Union[str, Path]] = None,
    estimate: str = 'predicted',
    tolerance: float = DISTANCE_TOLERANCE
) -> AmplitudePredictionTable:
    """
    Load the predicted amplitudes for different distances.

    Args:
        file_path: Path to the predicted amplitudes CSV. If None, uses default
                  file from the data folder.
        estimate: Column used as the amplitude threshold.
        tolerance: Maximum snap distance (m) for lookups.

    Returns:
        AmplitudePredictionTable built from the file
    """
    if file_path is None:
        file_path = DEFAULT_PREDICTED_AMPLITUDES

    file_path = Path(file_path)
    print(f"Loading predicted amplitudes from {file_path}...")
    predicted_amps = pd.read_csv(file_path)
    print(f"Loaded {len(predicted_amps)} predicted amplitude records")
    return AmplitudePredictionTable(predicted_amps, estimate=estimate, tolerance=tolerance)

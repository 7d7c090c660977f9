"""
Habitat classes and hardware generations used to key amplitude thresholds.

Thresholds are fitted on canopy cover from the playback experiment, but at
survey sites the habitat class is read off the harvest age: recently logged
sites count as open, older ones as forested, and the band between the two
classes (11 years since logging) belongs to neither.
"""

from enum import Enum
from typing import Optional, Union

import numpy as np
import pandas as pd

from .config import OPEN_MAX_AGE, FORESTED_MIN_AGE


class HabitatClass(str, Enum):
    """Acoustic habitat of an amplitude curve or a survey site."""

    OPEN = 'open'
    FORESTED = 'forested'

    @property
    def canopy(self) -> int:
        """Canopy code used in the amplitude prediction table."""
        return 0 if self is HabitatClass.OPEN else 1

    @classmethod
    def from_canopy(cls, value: Union[int, float, str]) -> 'HabitatClass':
        """
        Convert a canopy code (0 = open, 1 = forested) or a class name.

        Raises:
            ValueError: If the value is neither a known code nor a class name.
        """
        if isinstance(value, str):
            name = value.strip().lower()
            if name in ('open', 'forested'):
                return cls(name)
            try:
                value = float(name)
            except ValueError:
                raise ValueError(f"Unknown canopy value: {value!r}")
        if value == 0:
            return cls.OPEN
        if value == 1:
            return cls.FORESTED
        raise ValueError(f"Unknown canopy value: {value!r}")


HABITATS = (HabitatClass.OPEN, HabitatClass.FORESTED)

# SM2 flag: True for legacy Song Meter 2 recorders, False for newer units
HARDWARE_GENERATIONS = (True, False)


def classify_habitat(
    years_since_logging: Union[float, str, None],
    open_max_age: float = OPEN_MAX_AGE,
    forested_min_age: float = FORESTED_MIN_AGE
) -> Optional[HabitatClass]:
    """
    Classify a single site by years since logging.

    Returns:
        HabitatClass.OPEN below open_max_age, HabitatClass.FORESTED from
        forested_min_age upwards, None for ages in the gap or missing ages.
        Non-numeric ages (e.g. "unknown" in a CSV column) count as missing.
    """
    if years_since_logging is None:
        return None
    years_since_logging = pd.to_numeric(years_since_logging, errors='coerce')
    if pd.isna(years_since_logging):
        return None
    if years_since_logging < open_max_age:
        return HabitatClass.OPEN
    if years_since_logging >= forested_min_age:
        return HabitatClass.FORESTED
    return None


def habitat_from_age(
    ages: pd.Series,
    open_max_age: float = OPEN_MAX_AGE,
    forested_min_age: float = FORESTED_MIN_AGE
) -> pd.Series:
    """
    Vectorised classify_habitat over a Series of ages.

    Returns:
        Series of habitat names ('open' / 'forested') aligned with ages, with
        None where the age is missing or falls in the excluded band.
    """
    ages = pd.to_numeric(ages, errors='coerce')
    habitat = np.select(
        [ages < open_max_age, ages >= forested_min_age],
        [HabitatClass.OPEN.value, HabitatClass.FORESTED.value],
        default=None
    )
    return pd.Series(habitat, index=ages.index, dtype=object)

"""
Sanity check of truncated detections against their threshold snapshot.

Meant for the test suite: it re-derives the threshold key of every retained
song independently of the filter and confirms the song is loud enough.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import pandas as pd

from .config import FORESTED_MIN_AGE, OPEN_MAX_AGE
from .habitat import HabitatClass, classify_habitat
from .truncation import FilteredResult, ThresholdSnapshot


@dataclass(frozen=True)
class ConsistencyFailure:
    species: str
    habitat: Optional[HabitatClass]
    legacy: bool
    amplitude: float
    threshold: Optional[float]


@dataclass
class ConsistencyReport:
    distance: float
    passed: bool = True
    checked: int = 0
    failures: List[ConsistencyFailure] = field(default_factory=list)

    @property
    def failing_keys(self) -> List[Tuple[str, Optional[HabitatClass], bool]]:
        return list(dict.fromkeys(
            (failure.species, failure.habitat, failure.legacy) for failure in self.failures))


def verify(
    filtered: FilteredResult,
    snapshot: Optional[ThresholdSnapshot] = None,
    open_max_age: float = OPEN_MAX_AGE,
    forested_min_age: float = FORESTED_MIN_AGE
) -> ConsistencyReport:
    """
    Check that every retained detection meets its threshold.

    Args:
        filtered: Result of TruncationEngine.filter_detections().
        snapshot: Snapshot to check against. Defaults to the one that produced
                 the result.

    Returns:
        ConsistencyReport; a retained detection from an unclassifiable site
        or with an SM2 flag other than 0/1 also counts as a failure since the
        filter should have dropped it.
    """
    if snapshot is None:
        snapshot = filtered.snapshot

    report = ConsistencyReport(distance=snapshot.distance)
    for row in filtered.detections.itertuples(index=False):
        report.checked += 1
        habitat = classify_habitat(row.years_since_logging, open_max_age, forested_min_age)
        sm2 = pd.to_numeric(row.SM2, errors='coerce')
        legacy = bool(sm2)
        if habitat is None or sm2 not in (0, 1):
            report.failures.append(
                ConsistencyFailure(row.species_code, habitat, legacy, row.mean_amp, None))
            continue

        threshold = snapshot.threshold(row.species_code, habitat, legacy)
        if threshold is not None and not row.mean_amp >= threshold:
            report.failures.append(
                ConsistencyFailure(row.species_code, habitat, legacy, row.mean_amp, threshold))

    report.passed = not report.failures
    return report


def assert_consistent(
    filtered: FilteredResult,
    snapshot: Optional[ThresholdSnapshot] = None,
    **kwargs
) -> ConsistencyReport:
    """verify(), raising AssertionError on the first inconsistent result."""
    report = verify(filtered, snapshot, **kwargs)
    if not report.passed:
        raise AssertionError(
            f"{len(report.failures)} detections below threshold at {report.distance}m "
            f"for (species, habitat, SM2): {report.failing_keys}")
    return report

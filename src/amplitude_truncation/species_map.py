"""
Mapping of focal species onto reference species.

Not every focal species had enough calibration songs in the playback
experiment to fit its own attenuation curve. Those species borrow the curve of
a reference species with a similar song. When two focal species borrow the
same reference, the second one takes the first one's thresholds as they are.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pandas as pd

from .config import DEFAULT_SPECIES_REFERENCES


@dataclass(frozen=True)
class OwnCurve:
    """Species calibrated with its own attenuation curve."""

    species: str

    @property
    def reference(self) -> str:
        return self.species


@dataclass(frozen=True)
class ProxyCurve:
    """Species that uses a reference species' curve."""

    species: str
    proxy: str

    @property
    def reference(self) -> str:
        return self.proxy


@dataclass(frozen=True)
class SiblingCopy:
    """Species that copies the thresholds already resolved for a sibling."""

    species: str
    sibling: str
    proxy: str

    @property
    def reference(self) -> str:
        return self.proxy


ResolutionRule = Union[OwnCurve, ProxyCurve, SiblingCopy]


class ReferenceSpeciesMap:
    """Fixed set of focal species, each with the rule resolving its curve."""

    def __init__(self, rules: Iterable[ResolutionRule]):
        self._rules: Dict[str, ResolutionRule] = {}
        for rule in rules:
            if rule.species in self._rules:
                raise ValueError(f"Species {rule.species} is mapped more than once")
            self._rules[rule.species] = rule

        for rule in self._rules.values():
            if isinstance(rule, SiblingCopy):
                sibling = self._rules.get(rule.sibling)
                if sibling is None or isinstance(sibling, SiblingCopy):
                    raise ValueError(
                        f"{rule.species} copies {rule.sibling}, which has no curve of its own")
                if sibling.reference != rule.proxy:
                    raise ValueError(
                        f"{rule.species} and {rule.sibling} do not share reference {rule.proxy}")

        by_proxy: Dict[str, List[str]] = {}
        for rule in self._rules.values():
            by_proxy.setdefault(rule.reference, []).append(rule.species)
        self._by_proxy = {proxy: tuple(focal) for proxy, focal in by_proxy.items()}

    @classmethod
    def from_pairs(
        cls,
        pairs: Union[Mapping[str, str], Iterable[Tuple[str, str]]]
    ) -> 'ReferenceSpeciesMap':
        """
        Build the map from (species, reference) pairs.

        A species listed as its own reference gets OwnCurve. The first species
        borrowing a given reference gets ProxyCurve, any later one borrowing the
        same reference gets SiblingCopy of that first species.
        """
        if isinstance(pairs, Mapping):
            pairs = pairs.items()

        rules: List[ResolutionRule] = []
        first_borrower: Dict[str, str] = {}
        for species, reference in pairs:
            if species == reference:
                rules.append(OwnCurve(species))
            elif reference in first_borrower:
                rules.append(SiblingCopy(species, first_borrower[reference], reference))
            else:
                rules.append(ProxyCurve(species, reference))
                first_borrower[reference] = species
        return cls(rules)

    def __contains__(self, species: str) -> bool:
        return species in self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self):
        return iter(self._rules.values())

    @property
    def species(self) -> Tuple[str, ...]:
        """Working species set, in the order the map was built."""
        return tuple(self._rules)

    @property
    def references(self) -> Tuple[str, ...]:
        return tuple(self._by_proxy)

    def rule_for(self, species: str) -> Optional[ResolutionRule]:
        return self._rules.get(species)

    def reference_for(self, species: str) -> Optional[str]:
        """Reference species whose curve stands in for `species`, None if unmapped."""
        rule = self._rules.get(species)
        return None if rule is None else rule.reference

    def focal_species_for(self, reference: str) -> Tuple[str, ...]:
        """Focal species resolved through `reference` (empty if none)."""
        return self._by_proxy.get(reference, ())

    def to_dict(self) -> Dict[str, str]:
        return {species: rule.reference for species, rule in self._rules.items()}


def load_species_references(file_path: Optional[Union[str, Path]] = None) -> ReferenceSpeciesMap:
    """
    Load the mapping between species and reference species.

    Args:
        file_path: Path to the species and references CSV. If None, uses default
                  file from the data folder.

    Returns:
        ReferenceSpeciesMap built from the species and reference columns

    Raises:
        ValueError: If the file lacks the species or reference column.
    """
    if file_path is None:
        file_path = DEFAULT_SPECIES_REFERENCES

    file_path = Path(file_path)
    print(f"Loading species-reference mapping from {file_path}...")
    spp_df = pd.read_csv(file_path)

    if 'species' not in spp_df.columns or 'reference' not in spp_df.columns:
        raise ValueError(
            "Species reference file must contain 'species' and 'reference' columns")

    unreferenced = spp_df[spp_df['reference'].isna()]
    if not unreferenced.empty:
        print(f"Warning: Skipping {len(unreferenced)} species without a reference: "
              f"{unreferenced['species'].tolist()}")
    spp_df = spp_df[spp_df['reference'].notna()]

    species_map = ReferenceSpeciesMap.from_pairs(
        zip(spp_df['species'].str.strip(), spp_df['reference'].str.strip()))
    print(f"Loaded {len(species_map)} species-reference mappings")
    return species_map

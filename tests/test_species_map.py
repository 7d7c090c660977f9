"""
Tests for species_map.py module.

To run these tests:
    pytest tests/test_species_map.py -v
"""

import pytest
import pandas as pd

from amplitude_truncation.species_map import (
    OwnCurve,
    ProxyCurve,
    ReferenceSpeciesMap,
    SiblingCopy,
    load_species_references,
)


class TestFromPairs:
    """Test building the map from (species, reference) pairs."""

    def test_own_and_proxy_curves(self):
        """Test the rule assigned to each species."""
        species_map = ReferenceSpeciesMap.from_pairs({'BCCH': 'BCCH', 'RBNU': 'BCCH'})

        assert species_map.rule_for('BCCH') == OwnCurve('BCCH')
        assert species_map.rule_for('RBNU') == ProxyCurve('RBNU', 'BCCH')
        assert species_map.species == ('BCCH', 'RBNU')

    def test_shared_proxy_becomes_sibling_copy(self, species_map):
        """Test that the second borrower of a reference copies the first."""
        assert species_map.rule_for('RCKI') == ProxyCurve('RCKI', 'TEWA')
        assert species_map.rule_for('GCKI') == SiblingCopy('GCKI', 'RCKI', 'TEWA')

    def test_reference_for(self, species_map):
        """Test focal-to-reference lookups."""
        assert species_map.reference_for('OVEN') == 'OVEN'
        assert species_map.reference_for('RCKI') == 'TEWA'
        assert species_map.reference_for('GCKI') == 'TEWA'

    def test_unmapped_species(self, species_map):
        """Test that unknown codes are unmapped rather than defaulted."""
        assert species_map.reference_for('NONE') is None
        assert species_map.rule_for('NONE') is None
        assert 'NONE' not in species_map

    def test_focal_species_for(self, species_map):
        """Test reference-to-focal lookups."""
        assert species_map.focal_species_for('TEWA') == ('TEWA', 'RCKI', 'GCKI')
        assert species_map.focal_species_for('OVEN') == ('OVEN',)
        assert species_map.focal_species_for('WTSP') == ()

    def test_to_dict(self, species_map):
        assert species_map.to_dict() == {
            'OVEN': 'OVEN', 'TEWA': 'TEWA', 'RCKI': 'TEWA', 'GCKI': 'TEWA'}


class TestValidation:
    """Test invalid rule sets."""

    def test_duplicate_species(self):
        with pytest.raises(ValueError, match="more than once"):
            ReferenceSpeciesMap([OwnCurve('OVEN'), ProxyCurve('OVEN', 'TEWA')])

    def test_sibling_without_curve(self):
        with pytest.raises(ValueError, match="no curve of its own"):
            ReferenceSpeciesMap([SiblingCopy('GCKI', 'RCKI', 'TEWA')])

    def test_sibling_with_other_reference(self):
        with pytest.raises(ValueError, match="do not share"):
            ReferenceSpeciesMap([ProxyCurve('RCKI', 'TEWA'),
                                 SiblingCopy('GCKI', 'RCKI', 'OVEN')])


class TestLoadSpeciesReferences:
    """Test loading the mapping from CSV."""

    def test_load_from_csv(self, tmp_path):
        csv_path = tmp_path / "species_ref.csv"
        pd.DataFrame({
            'species': ['BCCH', 'WOTH', 'RBNU', 'BRCR'],
            'reference': ['BCCH', 'WOTH', 'BCCH', None],
        }).to_csv(csv_path, index=False)

        species_map = load_species_references(csv_path)

        assert len(species_map) == 3
        assert species_map.reference_for('RBNU') == 'BCCH'
        # Rows without a reference are skipped, leaving the species unmapped
        assert species_map.reference_for('BRCR') is None

    def test_missing_columns(self, tmp_path):
        csv_path = tmp_path / "species_ref.csv"
        pd.DataFrame({'species': ['BCCH'], 'proxy': ['BCCH']}).to_csv(csv_path, index=False)

        with pytest.raises(ValueError, match="'species' and 'reference'"):
            load_species_references(csv_path)

    def test_load_default(self):
        """Test the default mapping shipped in the data folder."""
        species_map = load_species_references()

        assert 'OVEN' in species_map
        assert isinstance(species_map.rule_for('GCKI'), SiblingCopy)
        assert species_map.rule_for('GCKI').sibling == 'RCKI'


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

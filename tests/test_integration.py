"""
Integration tests: WildTrax exports in, abundance matrices out.

To run these tests:
    pytest tests/test_integration.py -v

To skip them:
    pytest tests/ -v -m "not integration"
"""

import pytest
import pandas as pd

from amplitude_truncation import __version__
from amplitude_truncation.amplitude_table import AmplitudePredictionTable
from amplitude_truncation.cli import main
from amplitude_truncation.consistency import assert_consistent
from amplitude_truncation.counts import build_site_visit_universe
from amplitude_truncation.detections import create_detection_dataframe
from amplitude_truncation.pipeline import build_abundance_matrices
from amplitude_truncation.species_map import ReferenceSpeciesMap
from amplitude_truncation.truncation import TruncationEngine

from conftest import make_predicted_amps

AMP_COLS = ['left_freq_filter_tag_peak_level_dbfs', 'right_freq_filter_tag_peak_level_dbfs']


@pytest.fixture
def study_inputs(tmp_path):
    """Write a small study to CSV: three sites, ten visits each."""
    visits = [f'2024-06-{day:02d} 06:00' for day in range(1, 11)]
    recordings = pd.DataFrame(
        [(site, time) for site in ('YOUNG', 'OLD', 'BIG') for time in visits],
        columns=['location', 'recording_date_time'])
    # Only nine visits at SPARSE, below the ten-visit minimum
    sparse = pd.DataFrame({'location': 'SPARSE', 'recording_date_time': visits[:9]})
    recordings = pd.concat([recordings, sparse], ignore_index=True)
    recordings['task_is_complete'] = True

    tags = pd.DataFrame({
        'location': ['YOUNG', 'YOUNG', 'YOUNG', 'OLD', 'OLD', 'BIG', 'SPARSE', 'YOUNG'],
        'recording_date_time': [visits[0], visits[0], visits[1], visits[0],
                                visits[2], visits[0], visits[0], visits[3]],
        'species_code': ['OVEN', 'OVEN', 'TEWA', 'GCKI', 'OVEN', 'OVEN', 'OVEN', 'UNKN'],
        # OVEN open/modern is -20 at 100 m and -40 at 300 m
        AMP_COLS[0]: [-15.0, -35.0, -23.0, -29.0, -45.0, -10.0, -10.0, -10.0],
        AMP_COLS[1]: [-17.0, -35.0, -23.0, -29.0, -45.0, -10.0, -10.0, -10.0],
        'is_complete': True,
        'vocalization': 'Song',
        'aru_task_status': 'Transcribed',
    })

    metadata = pd.DataFrame({
        'location': ['YOUNG', 'OLD', 'BIG', 'SPARSE'],
        'years_since_logging': [4, 30, 4, 4],
        'SM2': [0, 1, 0, 0],
    })

    species_refs = pd.DataFrame({
        'species': ['OVEN', 'TEWA', 'RCKI', 'GCKI'],
        'reference': ['OVEN', 'TEWA', 'TEWA', 'TEWA'],
    })

    paths = {
        'tags': tmp_path / "tags.csv",
        'recordings': tmp_path / "recordings.csv",
        'metadata': tmp_path / "metadata.csv",
        'predicted': tmp_path / "predicted_amplitudes.csv",
        'species': tmp_path / "species_references.csv",
        'excluded': tmp_path / "excluded_sites.txt",
    }
    tags.to_csv(paths['tags'], index=False)
    recordings.to_csv(paths['recordings'], index=False)
    metadata.to_csv(paths['metadata'], index=False)
    make_predicted_amps().to_csv(paths['predicted'], index=False)
    species_refs.to_csv(paths['species'], index=False)
    paths['excluded'].write_text("# Oversized retention patch\nBIG\n")
    return paths


def run_cli(paths, output_dir, *extra):
    return main([
        'truncate',
        str(paths['tags']), str(paths['recordings']), str(paths['metadata']),
        '--output-dir', str(output_dir),
        '--predicted-amplitudes', str(paths['predicted']),
        '--species-references', str(paths['species']),
        '--excluded-sites', str(paths['excluded']),
        *extra,
    ])


@pytest.mark.integration
class TestCommandLine:
    """Run the truncate command end to end."""

    def test_writes_matrix_per_distance(self, study_inputs, tmp_path):
        output_dir = tmp_path / "out"

        assert run_cli(study_inputs, output_dir, '-d', '100', '-d', '300') == 0

        assert (output_dir / "abundance_100m.csv").exists()
        assert (output_dir / "abundance_300m.csv").exists()
        assert (output_dir / "truncation_summary.csv").exists()

    def test_matrix_contents(self, study_inputs, tmp_path):
        output_dir = tmp_path / "out"
        run_cli(study_inputs, output_dir, '-d', '100', '-d', '300')

        at_100 = pd.read_csv(output_dir / "abundance_100m.csv")
        at_300 = pd.read_csv(output_dir / "abundance_300m.csv")

        assert list(at_100.columns) == ['location', 'recording_date_time',
                                        'OVEN', 'TEWA', 'RCKI', 'GCKI']
        # BIG is excluded, SPARSE has too few visits
        assert set(at_100['location']) == {'YOUNG', 'OLD'}
        assert len(at_100) == 20
        assert at_100['OVEN'].sum() == 1
        assert at_300['OVEN'].sum() == 3
        assert at_100['GCKI'].sum() == 0
        assert at_300['GCKI'].sum() == 1
        assert at_300['TEWA'].sum() == 1

    def test_occurrence_output(self, study_inputs, tmp_path):
        output_dir = tmp_path / "out"
        run_cli(study_inputs, output_dir, '-d', '500', '--occurrence')

        at_500 = pd.read_csv(output_dir / "abundance_500m.csv")

        young = at_500[at_500['location'] == 'YOUNG']
        assert young['OVEN'].max() == 1
        assert young['OVEN'].sum() == 1

    def test_distance_range(self, study_inputs, tmp_path):
        output_dir = tmp_path / "out"
        run_cli(study_inputs, output_dir, '--min-distance', '98', '--max-distance', '101')

        written = sorted(path.name for path in output_dir.glob("abundance_*.csv"))
        assert written == ['abundance_100m.csv', 'abundance_101m.csv',
                           'abundance_98m.csv', 'abundance_99m.csv']
        summary = pd.read_csv(output_dir / "truncation_summary.csv")
        assert summary['distance'].tolist() == [98, 99, 100, 101]

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "truncate" in capsys.readouterr().out

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            main(['--version'])
        assert __version__ in capsys.readouterr().out


@pytest.mark.integration
class TestPipeline:
    """Run the library pipeline on the same study."""

    def test_build_abundance_matrices(self, study_inputs):
        tags = pd.read_csv(study_inputs['tags'])
        metadata = pd.read_csv(study_inputs['metadata'])
        recordings = pd.read_csv(study_inputs['recordings'])

        detections = create_detection_dataframe(tags, metadata)
        engine = TruncationEngine(
            AmplitudePredictionTable(make_predicted_amps()),
            ReferenceSpeciesMap.from_pairs(
                [('OVEN', 'OVEN'), ('TEWA', 'TEWA'), ('RCKI', 'TEWA'), ('GCKI', 'TEWA')]))
        universe = build_site_visit_universe(recordings)

        matrices = build_abundance_matrices(
            engine, detections, universe, distances=range(30, 501, 10))

        totals = [matrices[d][list(engine.species)].values.sum() for d in range(30, 501, 10)]
        assert all(a <= b for a, b in zip(totals, totals[1:]))
        for matrix in matrices.values():
            assert len(matrix) == len(universe)

        for result in engine.run(detections, range(30, 501, 10)).values():
            assert_consistent(result)


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-m", "integration"])

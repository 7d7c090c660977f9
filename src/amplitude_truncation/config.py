"""
Default settings for the truncation pipeline.

Every function that needs one of these values takes it as a keyword argument,
so the constants here only define what happens when nothing is passed.
"""

from pathlib import Path

# Repository data folder holding the default lookup files
PACKAGE_DIR = Path(__file__).parent.parent.parent
DATA_DIR = PACKAGE_DIR / "data"

DEFAULT_PREDICTED_AMPLITUDES = DATA_DIR / "all_spp_predicted_amplitudes.csv"
DEFAULT_SPECIES_REFERENCES = DATA_DIR / "species_references.csv"
DEFAULT_EXCLUDED_SITES = DATA_DIR / "excluded_sites.txt"

# Maximum gap (m) between a requested distance and the modelled grid
DISTANCE_TOLERANCE = 1.0

# Working range of truncation distances (m), both ends inclusive
DEFAULT_MIN_DISTANCE = 30
DEFAULT_MAX_DISTANCE = 500

# Years since logging: below OPEN_MAX_AGE is open, FORESTED_MIN_AGE and up is
# forested. Ages in between are not sampled and stay out of both classes.
OPEN_MAX_AGE = 11
FORESTED_MIN_AGE = 12

# Sites need at least this many transcribed visits to enter the universe
MIN_VISITS = 10

# Amplitude prediction columns usable as thresholds
ESTIMATE_COLUMNS = ('predicted', 'lower', 'upper')

# Identifier columns of a site visit
SITE_VISIT_COLUMNS = ['location', 'recording_date_time']

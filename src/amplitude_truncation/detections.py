"""
Detection table preparation from WildTrax exports.

Turns a WildTrax tags export into one row per song with its mean amplitude
across the two microphone channels, joined with the site attributes the
truncation needs (years since logging and recorder generation).
"""

from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd

from .truncation import DETECTION_COLUMNS

LEFT_AMP_COL = 'left_freq_filter_tag_peak_level_dbfs'
RIGHT_AMP_COL = 'right_freq_filter_tag_peak_level_dbfs'

METADATA_COLUMNS = ['location', 'years_since_logging', 'SM2']


def load_site_metadata(file_path: Union[str, Path]) -> pd.DataFrame:
    """
    Load site metadata (location, years_since_logging, SM2) from CSV.

    Returns:
        Metadata prepared with prepare_site_metadata()
    """
    file_path = Path(file_path)
    print(f"Loading site metadata from {file_path}...")
    metadata_df = pd.read_csv(file_path)
    print(f"Loaded metadata for {len(metadata_df)} sites")
    return prepare_site_metadata(metadata_df)


def prepare_site_metadata(metadata_df: pd.DataFrame) -> pd.DataFrame:
    """
    Prepare site metadata by ensuring correct column types.

    This function creates a copy of the input and fixes type issues:
    - Converts 'years_since_logging' to numeric (unparseable values become NaN)
    - Converts 'SM2' to numeric (NaN becomes 1, the legacy recorder)
    - Keeps one row per location

    Raises:
        ValueError: If required columns are missing or SM2 isn't a 0/1 flag.
    """
    missing_columns = [
        col for col in METADATA_COLUMNS if col not in metadata_df.columns]
    if missing_columns:
        raise ValueError(
            f"Metadata is missing required columns: {missing_columns}")

    metadata_df = metadata_df.copy()
    metadata_df['years_since_logging'] = pd.to_numeric(
        metadata_df['years_since_logging'], errors='coerce')
    metadata_df['SM2'] = pd.to_numeric(
        metadata_df['SM2'], errors='coerce').fillna(1)

    if not metadata_df['SM2'].isin([0, 1]).all():
        raise ValueError("Column 'SM2' must only contain 0 or 1")
    metadata_df['SM2'] = metadata_df['SM2'].astype(int)

    return metadata_df.drop_duplicates(subset=['location'])


def calculate_mean_amplitude(
    left_amp: float,
    right_amp: float,
    handle_missing: str = 'use_available'
) -> float:
    """
    Calculate mean amplitude from left and right microphone values.

    Args:
        left_amp: Amplitude from left microphone
        right_amp: Amplitude from right microphone
        handle_missing: How to handle missing values:
                       'use_available' - use whichever mic is available
                       'require_both' - return NaN if either is missing

    Returns:
        Mean amplitude value or NaN
    """
    left_valid = pd.notna(left_amp)
    right_valid = pd.notna(right_amp)

    if handle_missing not in ('use_available', 'require_both'):
        raise ValueError(f"Invalid handle_missing value: {handle_missing}")

    if left_valid and right_valid:
        return (left_amp + right_amp) / 2
    if handle_missing == 'use_available':
        if left_valid:
            return left_amp
        if right_valid:
            return right_amp
    return np.nan


def apply_mic_overrides(
    tags_df: pd.DataFrame,
    report_df: pd.DataFrame,
    left_amp_col: str = LEFT_AMP_COL,
    right_amp_col: str = RIGHT_AMP_COL,
    task_comments_col: str = 'task_comments'
) -> pd.DataFrame:
    """
    Apply microphone override based on task comments in the report.

    A location whose task comment says "use right mic only" (or left) gets that
    mic's amplitude copied over the other channel, so the mean is effectively
    the single working microphone.

    Returns:
        A copy of tags_df with amplitude columns adjusted.
    """
    tags_df = tags_df.copy()

    if task_comments_col not in report_df.columns or 'location' not in report_df.columns:
        print(f"Warning: 'location' or '{task_comments_col}' column not found in report. "
              f"Skipping mic overrides.")
        return tags_df

    comments = report_df[task_comments_col].fillna('').str.lower().str.strip()
    use_right_only = report_df.loc[comments == "use right mic only", 'location']
    use_left_only = report_df.loc[comments == "use left mic only", 'location']

    right_only_mask = tags_df['location'].isin(use_right_only)
    left_only_mask = tags_df['location'].isin(use_left_only)

    if right_only_mask.any():
        tags_df.loc[right_only_mask, left_amp_col] = tags_df.loc[right_only_mask, right_amp_col]
        print(f"Applied 'use right mic only' override to {right_only_mask.sum()} records")

    if left_only_mask.any():
        tags_df.loc[left_only_mask, right_amp_col] = tags_df.loc[left_only_mask, left_amp_col]
        print(f"Applied 'use left mic only' override to {left_only_mask.sum()} records")

    return tags_df


def create_detection_dataframe(
    tags_df: pd.DataFrame,
    metadata_df: pd.DataFrame,
    report_df: Optional[pd.DataFrame] = None,
    left_amp_col: str = LEFT_AMP_COL,
    right_amp_col: str = RIGHT_AMP_COL,
    handle_missing: str = 'use_available',
    filter_complete_only: bool = True,
    filter_vocalization: Optional[str] = 'Song',
    filter_task_status: Optional[str] = 'Transcribed'
) -> pd.DataFrame:
    """
    Create the detection table: one row per tagged song with its mean amplitude.

    Args:
        tags_df: DataFrame with WildTrax tags data.
        metadata_df: DataFrame with location, years_since_logging and SM2.
        report_df: Optional WildTrax report. Its task comments drive
                  microphone overrides.
        left_amp_col: Column name for left microphone amplitude.
        right_amp_col: Column name for right microphone amplitude.
        handle_missing: Passed to calculate_mean_amplitude().
        filter_complete_only: Only include complete recordings.
        filter_vocalization: Filter to specific vocalization type (e.g., 'Song').
        filter_task_status: Filter to specific task status (e.g., 'Transcribed').

    Returns:
        DataFrame with location, recording_date_time, species_code, mean_amp,
        years_since_logging and SM2 columns.
    """
    if left_amp_col not in tags_df.columns or right_amp_col not in tags_df.columns:
        raise ValueError(
            f"Required amplitude columns not found: {left_amp_col}, {right_amp_col}")

    if filter_complete_only and 'is_complete' in tags_df.columns:
        tags_df = tags_df[tags_df['is_complete'].isin(
            [True, 't', 'T', 'true', 'True'])]
        print(f"Filtered to {len(tags_df)} complete records")

    if filter_vocalization and 'vocalization' in tags_df.columns:
        tags_df = tags_df[tags_df['vocalization'] == filter_vocalization]
        print(f"Filtered to {len(tags_df)} {filter_vocalization} records")

    if filter_task_status and 'aru_task_status' in tags_df.columns:
        tags_df = tags_df[tags_df['aru_task_status'] == filter_task_status]
        print(f"Filtered to {len(tags_df)} {filter_task_status} records")

    if report_df is not None:
        tags_df = apply_mic_overrides(tags_df, report_df, left_amp_col, right_amp_col)

    tags_df = tags_df.copy()
    tags_df['mean_amp'] = [
        calculate_mean_amplitude(left, right, handle_missing)
        for left, right in zip(tags_df[left_amp_col], tags_df[right_amp_col])
    ]
    tags_df['mean_amp'] = tags_df['mean_amp'].astype(float)

    tags_df = tags_df[tags_df['mean_amp'].notna()].copy()
    print(f"Retained {len(tags_df)} records with valid amplitude")

    tags_df['recording_date_time'] = pd.to_datetime(tags_df['recording_date_time'])

    metadata_subset = prepare_site_metadata(metadata_df)[METADATA_COLUMNS]
    tags_df = tags_df.drop(
        columns=[col for col in ('years_since_logging', 'SM2') if col in tags_df.columns])
    tags_df = pd.merge(tags_df, metadata_subset, on='location', how='left')

    no_metadata = tags_df['years_since_logging'].isna()
    if no_metadata.any():
        print(f"Warning: {no_metadata.sum()} records have no years since logging "
              f"and will not be classified")

    extra_cols = [col for col in ('detection_time', 'task_duration') if col in tags_df.columns]
    return tags_df[DETECTION_COLUMNS + extra_cols].reset_index(drop=True)

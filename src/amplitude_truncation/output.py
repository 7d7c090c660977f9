"""
Writing pipeline outputs.
"""

from pathlib import Path
from typing import Union

import pandas as pd


def save_dataframe(
    df: pd.DataFrame,
    output_path: Union[str, Path],
    description: str = "dataframe"
) -> Path:
    """
    Save a dataframe to CSV, creating parent directories as needed.

    Returns:
        The path written to
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=False)
    print(f"Saved {description} ({len(df)} rows) to {output_path}")
    return output_path


def abundance_filename(distance: float) -> str:
    """File name of the abundance matrix truncated at `distance`."""
    if float(distance).is_integer():
        return f"abundance_{int(distance)}m.csv"
    return f"abundance_{distance}m.csv"

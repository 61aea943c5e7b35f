"""
Write DataFrames to disk in a format picked from the file suffix.
"""

from pathlib import Path

import pandas as pd

SUPPORTED_SUFFIXES = (".csv", ".json", ".parquet")


def export_table(df: pd.DataFrame, path) -> Path:
    """Write `df` to `path` (.csv, .json or .parquet) and return the path.

    List-valued columns (genres) are joined with "; " for CSV so the file
    stays one value per cell; JSON and Parquet keep them as lists.
    Parquet needs pyarrow (install the `parquet` extra).
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ValueError(f"Unsupported export format {suffix!r}; use one of {', '.join(SUPPORTED_SUFFIXES)}")

    path.parent.mkdir(parents=True, exist_ok=True)

    if suffix == ".csv":
        out = df.copy()
        for col in out.columns:
            if out[col].map(lambda v: isinstance(v, (list, tuple))).any():
                out[col] = out[col].map(lambda v: "; ".join(v) if isinstance(v, (list, tuple)) else v)
        out.to_csv(path, index=False)
    elif suffix == ".json":
        df.to_json(path, orient="records", force_ascii=False, indent=2)
    else:
        df.to_parquet(path, index=False)

    return path

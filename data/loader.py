from pathlib import Path

import click
import polars as pl

RAW_DATA_DIR = Path(__file__).parent / "raw"

# Practice-management exports arrive as CSV, TSV, or pipe-delimited text.
SEPARATORS = {
    ".csv": ",",
    ".tsv": "\t",
    ".tab": "\t",
    ".psv": "|",
}

DATA_SUFFIXES = {*SEPARATORS, ".txt", ".parquet"}


def _sniff_separator(filepath: Path) -> str:
    """Pick the delimiter that appears most often in the header line."""
    with open(filepath, encoding="utf-8-sig", errors="replace") as f:
        header = f.readline()
    counts = {sep: header.count(sep) for sep in (",", "\t", "|", ";")}
    best = max(counts, key=lambda sep: counts[sep])
    return best if counts[best] else ","


def load_frame(filepath: Path, separator: str | None = None) -> pl.DataFrame:
    """Load a billing export as a string-typed DataFrame.

    Every column is read as text so the normalizer decides how to parse
    currency cells. Parquet files are read as-is.
    """
    if filepath.suffix == ".parquet":
        return pl.read_parquet(filepath)

    if separator is None:
        separator = SEPARATORS.get(filepath.suffix.lower()) or _sniff_separator(filepath)

    return pl.read_csv(
        filepath,
        separator=separator,
        infer_schema=False,
        truncate_ragged_lines=True,
        encoding="utf8-lossy",
    )


def load_records(filepath: Path, separator: str | None = None) -> list[dict]:
    """Read a billing export into raw header -> value records."""
    click.echo(f"Reading billing export: {filepath}")
    df = load_frame(filepath, separator)
    # Blank spreadsheet rows come through as all-null records
    df = df.filter(~pl.all_horizontal(pl.all().is_null()))
    click.echo(f"  -> {len(df):,} rows, {len(df.columns)} columns")
    return df.to_dicts()


def find_dataset(data_dir: Path | None = None) -> Path:
    """Find the most recent billing export in the raw data directory."""
    if data_dir is None:
        data_dir = RAW_DATA_DIR

    if not data_dir.exists():
        raise click.ClickException(
            f"Data directory {data_dir} not found. "
            "Place your billing export in data/raw/ or pass --data-path."
        )

    data_files = [
        f for f in data_dir.iterdir()
        if f.is_file() and f.suffix.lower() in DATA_SUFFIXES
    ]
    if not data_files:
        raise click.ClickException(
            f"No CSV, TSV or Parquet files found in {data_dir}. "
            "Place your billing export in data/raw/ or pass --data-path."
        )

    return max(data_files, key=lambda f: (f.stat().st_mtime, f.name))

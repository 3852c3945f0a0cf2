import polars as pl

from data.models import AnalysisConfig, CanonicalLine, GroupKey, GroupStat
from engine.proxy import allowed_equals_charges, rank_frequencies, resolve_proxy

NEAR_TIE_RATIO = 0.6

KEY_COLUMNS = ["payer", "procedure_code", "place_of_service", "modifiers"]

SCHEMA = {
    "idx": pl.Int64,
    "payer": pl.Utf8,
    "procedure_code": pl.Utf8,
    "place_of_service": pl.Utf8,
    "modifiers": pl.Utf8,
    "units": pl.Utf8,
    "metric": pl.Float64,
    "eq_charges": pl.Boolean,
}


def build_key(payer: str, procedure_code: str, place_of_service: str, modifiers: str,
              units: str, include_units: bool) -> GroupKey:
    return GroupKey(payer, procedure_code, place_of_service, modifiers,
                    units if include_units else None)


def key_for(line: CanonicalLine, include_units: bool) -> GroupKey:
    return build_key(line.payer, line.procedure_code, line.place_of_service,
                     line.modifiers, line.units, include_units)


def key_columns(include_units: bool) -> list[str]:
    return KEY_COLUMNS + ["units"] if include_units else list(KEY_COLUMNS)


def lines_frame(lines: list[CanonicalLine], config: AnalysisConfig) -> pl.DataFrame:
    """One row per canonical line with its grouping attributes and active metric."""
    return pl.DataFrame(
        {
            "idx": [line.index for line in lines],
            "payer": [line.payer for line in lines],
            "procedure_code": [line.procedure_code for line in lines],
            "place_of_service": [line.place_of_service for line in lines],
            "modifiers": [line.modifiers for line in lines],
            "units": [line.units for line in lines],
            "metric": [line.metric(config.benchmark) for line in lines],
            "eq_charges": [allowed_equals_charges(line) for line in lines],
        },
        schema=SCHEMA,
    )


def distribution_flags(top_values: list[tuple[float, int]]) -> tuple[bool, bool]:
    """Return (multi_modal, near_tie) for a ranked frequency table."""
    if len(top_values) < 2:
        return False, False
    top_count, second_count = top_values[0][1], top_values[1][1]
    return top_count == second_count, second_count / top_count >= NEAR_TIE_RATIO


def aggregate(lines: list[CanonicalLine], config: AnalysisConfig) -> list[GroupStat]:
    """Bucket lines by group key and resolve each group's statistics and proxy.

    Distribution statistics use the unfiltered metric list; only the proxy
    itself is subject to decontamination. Groups come back ordered by key.
    """
    if not lines:
        return []

    by_index = {line.index: line for line in lines}
    columns = key_columns(config.include_units_in_key)

    grouped = (
        lines_frame(lines, config)
        .group_by(columns, maintain_order=True)
        .agg([
            pl.len().alias("n"),
            pl.col("metric").median().alias("median"),
            pl.col("metric").mean().alias("mean"),
            pl.col("metric").min().alias("min"),
            pl.col("metric").max().alias("max"),
            pl.col("eq_charges").sum().alias("n_eq_charges"),
            pl.col("idx").alias("line_idx"),
            pl.col("metric").alias("metrics"),
        ])
        .sort(columns)
    )

    stats = []
    for row in grouped.iter_rows(named=True):
        members = [by_index[i] for i in row["line_idx"]]
        key = key_for(members[0], config.include_units_in_key)
        proxy, method, narrowed = resolve_proxy(key, members, config)
        top_values = rank_frequencies(row["metrics"])
        multi_modal, near_tie = distribution_flags(top_values)

        stats.append(GroupStat(
            key=key,
            units=members[0].units,
            n=row["n"],
            proxy=proxy,
            method=method,
            median=row["median"],
            mean=row["mean"],
            min=row["min"],
            max=row["max"],
            n_eq_charges=row["n_eq_charges"],
            used_decontaminate=narrowed,
            top_values=top_values,
            multi_modal=multi_modal,
            near_tie=near_tie,
            lines=members,
        ))

    return stats

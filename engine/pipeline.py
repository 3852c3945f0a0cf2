from typing import Iterable

import click

from data.models import AnalysisConfig, AnalysisResult
from data.normalize import normalize_records
from engine.audits import compute_totals, denials, proxy_audits, unpaid_patients
from engine.classify import classify_groups
from engine.grouping import aggregate


def analyze(records: Iterable[dict], config: AnalysisConfig | None = None) -> AnalysisResult:
    """Run the full benchmark over raw export records.

    Always a complete recompute: the same records and config give the same
    result, so change the config (threshold, benchmark, overrides, ...) and
    call again rather than patching a previous result.
    """
    if config is None:
        config = AnalysisConfig()

    records = list(records)
    lines = normalize_records(records)
    dropped = len(records) - len(lines)
    if dropped:
        click.echo(f"Skipped {dropped:,} rows with no procedure code")

    groups = aggregate(lines, config)
    issues = classify_groups(groups, config)

    result = AnalysisResult(
        config=config,
        lines=lines,
        groups=groups,
        issues=issues,
        proxy_audits=proxy_audits(issues),
        denials=denials(lines, config),
        unpaid_patients=unpaid_patients(lines, config),
        totals=compute_totals(lines, groups, config),
    )

    flagged = sum(1 for i in issues if i.out_of_range)
    click.echo(f"Benchmarked {len(lines):,} lines across {len(groups):,} groups "
               f"({flagged:,} outside ±{config.threshold:g}%)")
    return result

from data.models import (
    WITHIN_RANGE,
    AnalysisConfig,
    Benchmark,
    CanonicalLine,
    GroupStat,
    Issue,
)
from data.normalize import normalize_modifiers

STATUS_LABELS = {
    Benchmark.PAID: ("Underpaid", "Overpaid"),
    Benchmark.ALLOWED: ("Underpayment", "Overpayment"),
}

EXPLANATIONS = {
    (Benchmark.PAID, "within"): "Paid aligns with proxy typical payment for same payer/CPT/POS/mods/units.",
    (Benchmark.PAID, "under"): (
        "Paid is below typical. Check missing modifier, bundling, site-of-service, or incorrect units."
    ),
    (Benchmark.PAID, "over"): (
        "Paid is above typical. Could be variant code, bilateral/bundle paid separately, or POS mismatch."
    ),
    (Benchmark.ALLOWED, "within"): "Allowed aligns with proxy contracted rate.",
    (Benchmark.ALLOWED, "under"): "Allowed is below typical for same group.",
    (Benchmark.ALLOWED, "over"): "Allowed is above typical.",
}


def deviation_pct(metric: float, proxy: float) -> float:
    """Percent difference of ``metric`` from ``proxy``; 0 when there is no proxy."""
    if not proxy:
        return 0.0
    return (metric - proxy) / proxy * 100


def classify(line: CanonicalLine, stat: GroupStat, config: AnalysisConfig) -> Issue:
    metric = line.metric(config.benchmark)
    delta = deviation_pct(metric, stat.proxy)
    under_label, over_label = STATUS_LABELS[config.benchmark]

    if abs(delta) <= config.threshold:
        status, band = WITHIN_RANGE, "within"
    elif delta < 0:
        status, band = under_label, "under"
    else:
        status, band = over_label, "over"

    return Issue(
        line=line,
        metric=metric,
        proxy=stat.proxy,
        deviation_pct=delta,
        status=status,
        explanation=EXPLANATIONS[(config.benchmark, band)],
        group=stat,
    )


def classify_groups(groups: list[GroupStat], config: AnalysisConfig) -> list[Issue]:
    """Classify every line, out-of-range lines first, largest deviation first."""
    issues = [classify(line, stat, config) for stat in groups for line in stat.lines]
    return sorted(issues, key=lambda i: (not i.out_of_range, -abs(i.deviation_pct)))


def derivation_text(stat: GroupStat) -> str:
    """How a group's proxy was derived, for display next to the proxy value."""
    top = ", ".join(f"{value:,.2f}×{count}" for value, count in stat.top_values[:5])
    cleaned = " (cleaned)" if stat.used_decontaminate else ""
    lines = [
        f"Method: {stat.method}{cleaned}",
        f"Group n: {stat.n}",
        f"Range: {stat.min:,.2f} – {stat.max:,.2f}",
        f"Median: {stat.median:,.2f}  Mean: {stat.mean:,.2f}",
        f"Top values: {top}",
    ]
    if stat.warning:
        lines.append(f"Warning: {stat.warning}")
    return "\n".join(lines)


def filter_issues(
    issues: list[Issue],
    payer: str = "",
    procedure_code: str = "",
    place_of_service: str = "",
    modifiers: str = "",
) -> list[Issue]:
    """Narrow issues the way an analyst slices the table; blank filters match everything."""
    payer = payer.lower()
    wanted_mods = normalize_modifiers(modifiers).lower() if modifiers else ""
    return [
        i for i in issues
        if (not payer or payer in i.line.payer.lower())
        and (not procedure_code or i.line.procedure_code == procedure_code)
        and (not place_of_service or i.line.place_of_service == place_of_service)
        and (not wanted_mods or i.line.modifiers.lower() == wanted_mods)
    ]

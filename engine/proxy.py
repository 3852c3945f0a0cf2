"""Proxy selection: the representative "typical" value of a benchmark group.

Small groups take the maximum (best-case payment); larger groups take the
most frequent cent-rounded value, breaking frequency ties toward the higher
dollar amount. A manual override always wins.
"""

import math
from collections import Counter
from typing import Iterable

from data.models import AnalysisConfig, Benchmark, CanonicalLine, GroupKey
from data.normalize import round2

CENT_TOLERANCE = 0.01
THIN_GROUP_MAX = 2

METHOD_MAX_WHEN_FEW = "max_when_few"
METHOD_MODE = "mode"
METHOD_MODE_TIE = "mode (tie→max)"
METHOD_OVERRIDE = "override"


def allowed_equals_charges(line: CanonicalLine) -> bool:
    return abs(line.allowed - line.charges) < CENT_TOLERANCE


def rank_frequencies(values: Iterable[float]) -> list[tuple[float, int]]:
    """Cent-rounded (value, count) pairs ranked by count desc, then value desc."""
    counts = Counter(round2(v) for v in values)
    return sorted(counts.items(), key=lambda item: (-item[1], -item[0]))


def select_proxy(values: list[float]) -> tuple[float, str]:
    """Pick the proxy value and the method name used to derive it."""
    rounded = [round2(v) for v in values]
    if len(rounded) <= THIN_GROUP_MAX:
        return (max(rounded) if rounded else 0.0), METHOD_MAX_WHEN_FEW

    ranked = rank_frequencies(rounded)
    top_value, top_count = ranked[0]
    second_count = ranked[1][1] if len(ranked) > 1 else 0
    return top_value, METHOD_MODE if top_count > second_count else METHOD_MODE_TIE


def candidate_metrics(lines: list[CanonicalLine], config: AnalysisConfig) -> tuple[list[float], bool]:
    """Metric values eligible for proxy selection, and whether they were narrowed.

    When benchmarking allowed amounts, lines whose allowed equals charges are
    dropped from a mixed group: those allowed values were filled from list
    charges upstream and are not a contracted rate.
    """
    metrics = [line.metric(config.benchmark) for line in lines]
    if config.benchmark is not Benchmark.ALLOWED or not config.decontaminate:
        return metrics, False

    flags = [allowed_equals_charges(line) for line in lines]
    if not (any(flags) and not all(flags)):
        return metrics, False

    cleaned = [line.allowed for line, eq in zip(lines, flags) if not eq]
    if not cleaned:
        return metrics, False
    return cleaned, True


def override_for(key: GroupKey, config: AnalysisConfig) -> float | None:
    value = config.overrides.get(key.label)
    if value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return round2(value) if math.isfinite(value) else None


def resolve_proxy(key: GroupKey, lines: list[CanonicalLine], config: AnalysisConfig) -> tuple[float, str, bool]:
    """Return (proxy, method, used_decontaminate) for one group."""
    candidates, narrowed = candidate_metrics(lines, config)
    proxy, method = select_proxy(candidates)

    override = override_for(key, config)
    if override is not None:
        return override, METHOD_OVERRIDE, narrowed
    return proxy, method, narrowed

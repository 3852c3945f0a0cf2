"""Secondary audit passes over classified lines.

These do not change any classification; a line can be both a denial and
underpaid, or both overpaid and a proxy-audit entry.
"""

from data.models import (
    AnalysisConfig,
    Benchmark,
    CanonicalLine,
    DenialEntry,
    DenialReason,
    GroupStat,
    Issue,
    PatientAggregate,
    ProxyAuditEntry,
    Totals,
)
from engine.proxy import CENT_TOLERANCE, THIN_GROUP_MAX, allowed_equals_charges

LOW_PROXY_FLOOR = 1.0

OVERPAID_STATUSES = {"Overpaid", "Overpayment"}

NOTE_CHARGES_AS_ALLOWED = "This line's Allowed equals Charges; the benchmark may have been built from charges."
NOTE_THIN_GROUP = "Proxy built from <=2 lines and is unstable. Consider widening the period or grouping."
NOTE_LOW_PROXY = "Proxy is below $1.00; the group's typical value is not a usable baseline."


def proxy_audits(issues: list[Issue]) -> list[ProxyAuditEntry]:
    """Overpayments whose baseline is itself suspect, largest gap first."""
    entries = []
    for issue in issues:
        if issue.status not in OVERPAID_STATUSES:
            continue

        line, stat = issue.line, issue.group
        charges_as_allowed = allowed_equals_charges(line) and line.charges > 0
        thin_group = stat.n <= THIN_GROUP_MAX
        low_proxy = stat.proxy < LOW_PROXY_FLOOR
        if not (charges_as_allowed or thin_group or low_proxy):
            continue

        if charges_as_allowed:
            note = NOTE_CHARGES_AS_ALLOWED
        elif thin_group:
            note = NOTE_THIN_GROUP
        else:
            note = NOTE_LOW_PROXY

        entries.append(ProxyAuditEntry(
            line=line,
            metric=issue.metric,
            proxy=stat.proxy,
            n_in_group=stat.n,
            method=stat.method + (" + decontaminated" if stat.used_decontaminate else ""),
            note=note,
        ))

    entries.sort(key=lambda e: abs(e.metric - e.proxy), reverse=True)
    return entries


def denial_reason(line: CanonicalLine, benchmark: Benchmark) -> DenialReason | None:
    if line.charges <= 0:
        return None
    written_off = (
        abs(line.adjustment + line.charges) < CENT_TOLERANCE
        and line.insurance_paid == 0
        and line.balance == 0
    )
    if written_off:
        return DenialReason.WRITE_OFF
    if line.metric(benchmark) == 0:
        return DenialReason.ZERO_METRIC
    return None


def denials(lines: list[CanonicalLine], config: AnalysisConfig) -> list[DenialEntry]:
    """Fully written-off lines and lines with no benchmark value despite charges, in input order."""
    entries = []
    for line in lines:
        reason = denial_reason(line, config.benchmark)
        if reason is not None:
            entries.append(DenialEntry(line=line, reason=reason))
    return entries


def unpaid_patients(lines: list[CanonicalLine], config: AnalysisConfig) -> list[PatientAggregate]:
    """Patients with charges but no insurer payment on any line, largest unpaid gap first."""
    by_patient: dict[str, list[CanonicalLine]] = {}
    for line in lines:
        by_patient.setdefault(line.patient, []).append(line)

    results = []
    for patient, items in by_patient.items():
        total_charges = sum(d.charges for d in items)
        total_paid = sum(d.insurance_paid for d in items)
        if total_paid != 0 or total_charges <= 0:
            continue

        total_allowed = sum(d.allowed for d in items)
        benchmarked = total_paid if config.benchmark is Benchmark.PAID else total_allowed
        payers = list(dict.fromkeys(d.payer for d in items))
        results.append(PatientAggregate(
            patient=patient,
            payers=", ".join(payers),
            total_charges=total_charges,
            total_allowed=total_allowed,
            total_insurance_paid=total_paid,
            total_balance=sum(d.balance for d in items),
            unpaid_gap=max(0.0, benchmarked - total_paid),
        ))

    results.sort(key=lambda p: p.unpaid_gap, reverse=True)
    return results


def compute_totals(lines: list[CanonicalLine], groups: list[GroupStat], config: AnalysisConfig) -> Totals:
    total_actual = sum(line.metric(config.benchmark) for line in lines)
    total_expected = sum(stat.proxy * stat.n for stat in groups)
    return Totals(
        total_insurance_paid=sum(line.insurance_paid for line in lines),
        total_actual=total_actual,
        total_expected=total_expected,
        delta=total_expected - total_actual,
        benchmark_label=config.benchmark.label,
    )

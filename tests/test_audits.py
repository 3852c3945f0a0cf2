"""Tests for proxy audits, denials, unpaid patients and totals."""

import pytest

from data.models import AnalysisConfig, Benchmark, DenialReason
from data.normalize import normalize_records
from engine.audits import (
    NOTE_CHARGES_AS_ALLOWED,
    NOTE_LOW_PROXY,
    NOTE_THIN_GROUP,
    compute_totals,
    denials,
    proxy_audits,
    unpaid_patients,
)
from engine.classify import classify_groups
from engine.grouping import aggregate
from tests.conftest import JANE, JOHN, NOPAY, make_record


def _audits(records, **config):
    cfg = AnalysisConfig(**config)
    return proxy_audits(classify_groups(aggregate(normalize_records(records), cfg), cfg))


def test_thin_group_overpayment_is_audited():
    # n=2 uses the max, so make the thin group overpaid via an override
    records = [make_record(ins=50), make_record(ins=80)]
    entries = _audits(records, overrides={"Aetna|99213|11|—": 40})
    assert [e.metric for e in entries] == [80.0, 50.0]
    assert entries[0].note == NOTE_THIN_GROUP
    assert entries[0].n_in_group == 2
    assert entries[0].method == "override"


def test_allowed_equals_charges_is_audited():
    records = [
        make_record(charges=150, ins=100),
        make_record(charges=150, ins=100),
        make_record(charges=150, ins=100),
        make_record(charges=150, ins=150),
    ]
    entries = _audits(records, benchmark=Benchmark.ALLOWED, decontaminate=False)
    assert len(entries) == 1
    assert entries[0].note == NOTE_CHARGES_AS_ALLOWED
    assert entries[0].metric == 150.0
    assert entries[0].proxy == 100.0


def test_low_proxy_is_audited():
    records = [make_record(ins=0.5), make_record(ins=0.5), make_record(ins=0.5), make_record(ins=20)]
    entries = _audits(records)
    assert len(entries) == 1
    assert entries[0].note == NOTE_LOW_PROXY


def test_confident_overpayment_is_not_audited(sample_rows):
    assert _audits(sample_rows) == []


def test_proxy_audits_sorted_by_gap():
    records = [make_record(ins=0.5)] * 3 + [make_record(ins=20), make_record(ins=60)]
    entries = _audits(records)
    assert [e.metric for e in entries] == [60.0, 20.0]


def test_write_off_is_a_denial():
    lines = normalize_records([make_record(charges=200, adj=-200)])
    [entry] = denials(lines, AnalysisConfig())
    assert entry.reason == DenialReason.WRITE_OFF


def test_write_off_is_a_denial_for_either_benchmark():
    lines = normalize_records([make_record(charges=200, adj=-200, pt=0, bal=0)])
    assert len(denials(lines, AnalysisConfig(benchmark=Benchmark.ALLOWED))) == 1


def test_zero_metric_is_a_denial():
    lines = normalize_records([make_record(charges=100, pt=40)])
    [entry] = denials(lines, AnalysisConfig(benchmark=Benchmark.PAID))
    assert entry.reason == DenialReason.ZERO_METRIC
    # allowed is 40 so nothing is denied under the allowed benchmark
    assert denials(lines, AnalysisConfig(benchmark=Benchmark.ALLOWED)) == []


def test_no_charges_no_denial():
    lines = normalize_records([make_record(charges=0)])
    assert denials(lines, AnalysisConfig()) == []


def test_denial_can_also_be_underpaid():
    records = [make_record(ins=100), make_record(ins=100), make_record(ins=100),
               make_record(charges=150, adj=-150)]
    cfg = AnalysisConfig()
    lines = normalize_records(records)
    issues = classify_groups(aggregate(lines, cfg), cfg)
    [denial] = denials(lines, cfg)
    issue = next(i for i in issues if i.line is denial.line)
    assert issue.status == "Underpaid"


def test_unpaid_patient_aggregates(sample_rows):
    [patient] = unpaid_patients(normalize_records(sample_rows), AnalysisConfig())
    assert patient.patient == NOPAY
    assert patient.total_charges == 300.0
    assert patient.total_insurance_paid == 0.0
    assert patient.payers == "United Health Care"
    assert patient.unpaid_gap == 0.0


def test_unpaid_gap_uses_allowed_benchmark():
    lines = normalize_records([
        make_record(patient=JANE, charges=200, bal=120),
        make_record(patient=JANE, charges=100, pt=30),
        make_record(patient=JOHN, charges=100, bal=20),
        make_record(patient="PAID, PAT", charges=100, ins=70),
    ])
    patients = unpaid_patients(lines, AnalysisConfig(benchmark=Benchmark.ALLOWED))
    assert [p.patient for p in patients] == [JANE, JOHN]
    assert patients[0].unpaid_gap == 150.0
    assert patients[0].total_balance == 120.0
    assert patients[0].total_charges == 300.0


def test_totals(sample_rows):
    cfg = AnalysisConfig()
    lines = normalize_records(sample_rows)
    totals = compute_totals(lines, aggregate(lines, cfg), cfg)
    assert totals.total_insurance_paid == pytest.approx(580.0)
    assert totals.total_actual == pytest.approx(580.0)
    assert totals.total_expected == pytest.approx(560.0)
    assert totals.delta == pytest.approx(-20.0)
    assert totals.benchmark_label == "Paid"

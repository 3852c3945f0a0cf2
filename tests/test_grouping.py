"""Tests for group keys and per-group statistics."""

from data.models import AnalysisConfig, Benchmark, GroupKey
from data.normalize import normalize_records
from engine.grouping import aggregate, build_key, distribution_flags, key_for
from tests.conftest import make_record


def test_key_excludes_units_by_default():
    key = build_key("Aetna", "99213", "11", "25", "2", include_units=False)
    assert key == GroupKey("Aetna", "99213", "11", "25", None)
    assert key.label == "Aetna|99213|11|25"


def test_key_with_units():
    key = build_key("Aetna", "99213", "11", "25", "2", include_units=True)
    assert key.label == "Aetna|99213|11|25|2"


def test_key_is_structured_not_joined():
    # A separator inside a field must not make two different groups collide.
    a = build_key("A|B", "1", "11", "25", "1", include_units=False)
    b = build_key("A", "B|1", "11", "25", "1", include_units=False)
    assert a.label == b.label
    assert a != b


def test_same_attributes_same_key_regardless_of_order(sample_rows):
    forward = normalize_records(sample_rows)
    backward = normalize_records(list(reversed(sample_rows)))
    assert {key_for(d, True) for d in forward} == {key_for(d, True) for d in backward}

    forward_stats = aggregate(forward, AnalysisConfig())
    backward_stats = aggregate(backward, AnalysisConfig())
    assert [s.key for s in forward_stats] == [s.key for s in backward_stats]
    assert [s.proxy for s in forward_stats] == [s.proxy for s in backward_stats]


def test_aggregate_groups_sample(sample_rows):
    stats = aggregate(normalize_records(sample_rows), AnalysisConfig())
    assert [s.key.payer for s in stats] == ["Aetna", "Cigna", "United Health Care"]

    aetna = stats[0]
    assert aetna.n == 4
    assert aetna.proxy == 100.0
    assert aetna.method == "mode"
    assert aetna.median == 110.0
    assert aetna.mean == 112.5
    assert aetna.min == 100.0
    assert aetna.max == 130.0
    assert aetna.top_values[0] == (100.0, 2)
    assert not aetna.multi_modal
    assert not aetna.near_tie


def test_aggregate_splits_on_units(sample_rows):
    stats = aggregate(normalize_records(sample_rows), AnalysisConfig(include_units_in_key=True))
    aetna = [s for s in stats if s.key.payer == "Aetna"]
    assert [(s.key.units, s.n, s.proxy, s.method) for s in aetna] == [
        ("1", 3, 100.0, "mode"),
        ("2", 1, 130.0, "max_when_few"),
    ]


def test_merged_payer_aliases_share_a_group(sample_rows):
    stats = aggregate(normalize_records(sample_rows), AnalysisConfig())
    uhc = stats[-1]
    assert uhc.key == GroupKey("United Health Care", "99215", "11", "25+59", None)
    assert uhc.n == 2
    assert uhc.proxy == 0.0


def test_statistics_ignore_decontamination():
    lines = normalize_records([
        make_record(charges=300, ins=300),
        make_record(charges=300, ins=300),
        make_record(charges=300, ins=200),
        make_record(charges=300, ins=200),
    ])
    [stat] = aggregate(lines, AnalysisConfig(benchmark=Benchmark.ALLOWED))
    assert stat.n_eq_charges == 2
    assert stat.used_decontaminate
    assert stat.proxy == 200.0
    assert stat.max == 300.0
    assert stat.mean == 250.0
    assert stat.multi_modal


def test_n_eq_charges_counted_for_paid_benchmark():
    lines = normalize_records([make_record(charges=100, ins=100), make_record(charges=100, ins=60)])
    [stat] = aggregate(lines, AnalysisConfig(benchmark=Benchmark.PAID))
    assert stat.n_eq_charges == 1
    assert not stat.used_decontaminate


def test_distribution_flags():
    assert distribution_flags([(10.0, 5)]) == (False, False)
    assert distribution_flags([(10.0, 3), (9.0, 3)]) == (True, True)
    assert distribution_flags([(10.0, 5), (9.0, 3)]) == (False, True)
    assert distribution_flags([(10.0, 5), (9.0, 2)]) == (False, False)


def test_aggregate_empty():
    assert aggregate([], AnalysisConfig()) == []

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, NamedTuple

DEFAULT_THRESHOLD = 10.0
MIN_THRESHOLD = 1.0
MAX_THRESHOLD = 30.0

NO_MODIFIERS = "—"
WITHIN_RANGE = "Within expected range"


class Benchmark(Enum):
    PAID = "paid"
    ALLOWED = "allowed"

    @property
    def label(self) -> str:
        return "Paid" if self is Benchmark.PAID else "Allowed"


@dataclass
class CanonicalLine:
    """A single billing line after header matching and cleanup."""
    index: int
    payer: str
    procedure_code: str
    place_of_service: str
    modifiers: str
    units: str
    patient: str = ""
    service_date: str = ""
    charges: float = 0.0
    insurance_paid: float = 0.0
    patient_payment: float = 0.0
    balance: float = 0.0
    allowed: float = 0.0
    adjustment: float = 0.0

    def metric(self, benchmark: Benchmark) -> float:
        return self.insurance_paid if benchmark is Benchmark.PAID else self.allowed


class GroupKey(NamedTuple):
    """Identity of a benchmark group. ``units`` is None when units are not part of the key."""
    payer: str
    procedure_code: str
    place_of_service: str
    modifiers: str
    units: str | None = None

    @property
    def label(self) -> str:
        """``|``-joined fields; a literal ``\\`` or ``|`` inside a field is backslash-escaped."""
        parts = [self.payer, self.procedure_code, self.place_of_service, self.modifiers]
        if self.units is not None:
            parts.append(self.units)
        return "|".join(p.replace("\\", "\\\\").replace("|", "\\|") for p in parts)


@dataclass(frozen=True)
class AnalysisConfig:
    """Every setting that drives a recompute. Build a new one to change anything."""
    threshold: float = DEFAULT_THRESHOLD
    benchmark: Benchmark = Benchmark.PAID
    decontaminate: bool = True
    include_units_in_key: bool = False
    overrides: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        if not MIN_THRESHOLD <= self.threshold <= MAX_THRESHOLD:
            raise ValueError(
                f"threshold must be between {MIN_THRESHOLD:g} and {MAX_THRESHOLD:g}, got {self.threshold}"
            )
        object.__setattr__(self, "overrides", MappingProxyType(dict(self.overrides)))


@dataclass
class GroupStat:
    """Distribution statistics and resolved proxy for one group."""
    key: GroupKey
    units: str
    n: int
    proxy: float
    method: str
    median: float
    mean: float
    min: float
    max: float
    n_eq_charges: int = 0
    used_decontaminate: bool = False
    top_values: list[tuple[float, int]] = field(default_factory=list)
    multi_modal: bool = False
    near_tie: bool = False
    lines: list[CanonicalLine] = field(default_factory=list, repr=False)

    @property
    def warning(self) -> str:
        if self.multi_modal:
            return "multi-modal (tie)"
        if self.near_tie:
            return "near tie"
        return ""


@dataclass
class Issue:
    """Classification of one line against its group's proxy."""
    line: CanonicalLine
    metric: float
    proxy: float
    deviation_pct: float
    status: str
    explanation: str
    group: GroupStat = field(repr=False)

    @property
    def out_of_range(self) -> bool:
        return self.status != WITHIN_RANGE


@dataclass
class ProxyAuditEntry:
    line: CanonicalLine
    metric: float
    proxy: float
    n_in_group: int
    method: str
    note: str = ""


class DenialReason(Enum):
    WRITE_OFF = "write_off"
    ZERO_METRIC = "zero_metric"


@dataclass
class DenialEntry:
    line: CanonicalLine
    reason: DenialReason


@dataclass
class PatientAggregate:
    patient: str
    payers: str
    total_charges: float
    total_allowed: float
    total_insurance_paid: float
    total_balance: float
    unpaid_gap: float


@dataclass
class Totals:
    total_insurance_paid: float
    total_actual: float
    total_expected: float
    delta: float
    benchmark_label: str


@dataclass
class AnalysisResult:
    """Everything produced by one full recompute."""
    config: AnalysisConfig
    lines: list[CanonicalLine] = field(default_factory=list)
    groups: list[GroupStat] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)
    proxy_audits: list[ProxyAuditEntry] = field(default_factory=list)
    denials: list[DenialEntry] = field(default_factory=list)
    unpaid_patients: list[PatientAggregate] = field(default_factory=list)
    totals: Totals | None = None

    def group_for(self, key: GroupKey) -> GroupStat | None:
        for stat in self.groups:
            if stat.key == key:
                return stat
        return None


@dataclass
class LookupResult:
    """Answer to an ad hoc group query. ``stat`` is None when nothing matched."""
    key: GroupKey
    found: bool
    stat: GroupStat | None = None
    top_values: list[tuple[float, int]] = field(default_factory=list)
    message: str = ""

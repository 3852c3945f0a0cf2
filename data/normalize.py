import math
import re
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any, Iterable

from data.aliases import canonical_payer_for
from data.models import NO_MODIFIERS, CanonicalLine

# Accepted header spellings per canonical field, in lookup order.
# Headers are compared after canonical_header(), so "Date of Service",
# "date_of_service" and "DATE-OF-SERVICE" all match the same entry.
FIELD_ALIASES = {
    "payer": ("Insurance", "Payer", "Payer_Name", "Insurance_Name"),
    "procedure_code": ("CPT", "CPT_Code", "Procedure_Code", "HCPCS", "HCPCS_Code"),
    "place_of_service": ("POS", "Place_of_Service"),
    "modifiers": ("Modifiers", "Modifier", "Mods"),
    "units": ("Days_or_Units", "Days_Or_Units", "Units"),
    "patient": ("Patient_Name", "Patient"),
    "service_date": ("Date_of_Service", "DOS", "Service_Date"),
    "charges": ("Charges", "Charge", "Billed_Amount"),
    "insurance_payment": ("Insurance_Payment", "Ins_Payment", "Insurance_Paid"),
    "patient_payment": ("Patient_Payment", "Pt_Payment", "Patient_Paid"),
    "balance": ("Balance",),
    "adjustment": ("Adjustment", "Adjustments"),
}

DEFAULT_UNITS = "1"

_CENT = Decimal("0.01")
_NON_NUMERIC = re.compile(r"[$,\s]")
_MODIFIER_SPLIT = re.compile(r"[,\s]+")


def canonical_header(header: Any) -> str:
    """Reduce a header to an uppercase token so spelling variants compare equal."""
    token = re.sub(r"\s+", "_", str(header or "").strip())
    return re.sub(r"[^A-Za-z0-9_]", "", token).upper()


def get_field(record: dict, *names: str) -> Any:
    """Return the first non-empty value stored under any of ``names``.

    Exact keys win; otherwise headers are compared by canonical token.
    """
    canonical = None
    for name in names:
        value = record.get(name)
        if value is None or value == "":
            if canonical is None:
                canonical = {}
                for header, raw in record.items():
                    canonical.setdefault(canonical_header(header), raw)
            value = canonical.get(canonical_header(name))
        if value is not None and value != "":
            return value
    return None


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def to_number(value: Any) -> float:
    """Parse a currency-ish cell. Anything unparseable is 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = _NON_NUMERIC.sub("", str(value))
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return 0.0
    return number if math.isfinite(number) else 0.0


def round2(value: float) -> float:
    """Round half-up to cents. Raises ValueError for non-finite amounts."""
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"cannot round non-finite amount {value!r}")
    exact = Decimal(repr(number))
    with localcontext() as ctx:
        # enough digits to hold every cent of the largest float
        ctx.prec = max(ctx.prec, exact.adjusted() + 3)
        return float(exact.quantize(_CENT, rounding=ROUND_HALF_UP))


def normalize_modifiers(raw: Any) -> str:
    tokens = {t.strip().upper() for t in _MODIFIER_SPLIT.split(as_text(raw)) if t.strip()}
    return "+".join(sorted(tokens)) if tokens else NO_MODIFIERS


def normalize_payer(raw: Any) -> str:
    name = as_text(raw)
    canonical = canonical_payer_for(name.upper())
    if canonical:
        return canonical
    name = re.sub(r"\s+", " ", name)
    name = re.sub(r"\s+-\s+", " - ", name)
    name = re.sub(r"\s+INC$", "", name, flags=re.IGNORECASE)
    return name.strip()


def normalize_units(raw: Any) -> str:
    return as_text(raw) or DEFAULT_UNITS


def compute_allowed(insurance_payment: float, patient_payment: float, balance: float) -> float:
    """Reconstructed allowed amount: insurer paid + patient paid + remaining balance."""
    total = abs(insurance_payment) + max(0.0, patient_payment) + max(0.0, balance)
    # an overflowing sum is treated like any other non-finite cell
    return round2(total) if math.isfinite(total) else 0.0


def normalize_record(record: dict, index: int = 0) -> CanonicalLine | None:
    """Convert one raw export row into a CanonicalLine, or None if it has no procedure code."""
    procedure_code = as_text(get_field(record, *FIELD_ALIASES["procedure_code"]))
    if not procedure_code:
        return None

    insurance_payment = to_number(get_field(record, *FIELD_ALIASES["insurance_payment"]))
    patient_payment = to_number(get_field(record, *FIELD_ALIASES["patient_payment"]))
    balance = to_number(get_field(record, *FIELD_ALIASES["balance"]))

    return CanonicalLine(
        index=index,
        payer=normalize_payer(get_field(record, *FIELD_ALIASES["payer"])),
        procedure_code=procedure_code,
        place_of_service=as_text(get_field(record, *FIELD_ALIASES["place_of_service"])),
        modifiers=normalize_modifiers(get_field(record, *FIELD_ALIASES["modifiers"])),
        units=normalize_units(get_field(record, *FIELD_ALIASES["units"])),
        patient=as_text(get_field(record, *FIELD_ALIASES["patient"])),
        service_date=as_text(get_field(record, *FIELD_ALIASES["service_date"])),
        charges=max(0.0, to_number(get_field(record, *FIELD_ALIASES["charges"]))),
        insurance_paid=abs(insurance_payment),
        patient_payment=max(0.0, patient_payment),
        balance=max(0.0, balance),
        allowed=compute_allowed(insurance_payment, patient_payment, balance),
        adjustment=to_number(get_field(record, *FIELD_ALIASES["adjustment"])),
    )


def normalize_records(records: Iterable[dict]) -> list[CanonicalLine]:
    """Normalize every record, dropping rows without a procedure code."""
    lines = []
    for record in records:
        line = normalize_record(record, index=len(lines))
        if line is not None:
            lines.append(line)
    return lines

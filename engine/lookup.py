from data.models import AnalysisResult, LookupResult
from data.normalize import FIELD_ALIASES, as_text, get_field, normalize_modifiers, normalize_payer, normalize_units
from engine.grouping import build_key

NOT_FOUND_MESSAGE = (
    "No matching group in loaded data (payer/CPT/POS/mods/units). "
    "The old proxy likely came from a different grouping or time period."
)
DECONTAMINATED_MESSAGE = (
    "Group had mixed lines (Allowed==Charges and others). "
    "Equals-charges lines were ignored when benchmarking Allowed."
)


def lookup(
    result: AnalysisResult,
    payer: str,
    procedure_code: str,
    place_of_service: str,
    modifiers: str = "",
    units: str = "1",
) -> LookupResult:
    """Find the proxy for a group descriptor in the last computed result.

    The descriptor is normalized like an export row and matched under the
    result's key variant, so units only matter when they are part of the key.
    """
    key = build_key(
        normalize_payer(payer),
        as_text(procedure_code),
        as_text(place_of_service),
        normalize_modifiers(modifiers),
        normalize_units(units),
        result.config.include_units_in_key,
    )

    stat = result.group_for(key)
    if stat is None:
        return LookupResult(key=key, found=False, message=NOT_FOUND_MESSAGE)

    if stat.multi_modal:
        message = "Multi-modal distribution (tie)"
    elif stat.near_tie:
        message = "Near tie in distribution"
    elif stat.used_decontaminate:
        message = DECONTAMINATED_MESSAGE
    else:
        message = ""

    return LookupResult(key=key, found=True, stat=stat, top_values=stat.top_values[:5], message=message)


def lookup_records(result: AnalysisResult, records: list[dict]) -> list[LookupResult]:
    """Bulk lookup of descriptor rows using the same header matching as exports."""
    return [
        lookup(
            result,
            payer=get_field(record, *FIELD_ALIASES["payer"]) or "",
            procedure_code=get_field(record, *FIELD_ALIASES["procedure_code"]) or "",
            place_of_service=get_field(record, *FIELD_ALIASES["place_of_service"]) or "",
            modifiers=get_field(record, *FIELD_ALIASES["modifiers"]) or "",
            units=get_field(record, *FIELD_ALIASES["units"]) or "1",
        )
        for record in records
    ]

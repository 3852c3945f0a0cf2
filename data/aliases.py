# Payer name aliases collapsed to a single canonical payer.
# Matching is a substring test against the uppercased raw payer name.
# Extend a table (or add a new canonical payer) without touching normalize.py.

PAYER_ALIASES: dict[str, tuple[str, ...]] = {
    "United Health Care": (
        "UNITED HEALTH",
        "UNITED HEALTH CARE",
        "UNITED HEALTHCARE",
        "UHC",
        "UHC – UNITEDHEALTHCARE",
        "UHC-UNITEDHEALTHCARE",
        "UHC – UNITED HEALTH CARE",
        "UNITED HEALTH CARE INSURANCE",
    ),
}


def canonical_payer_for(upper_name: str) -> str | None:
    """Return the canonical payer whose alias appears in ``upper_name``, if any."""
    for canonical, tokens in PAYER_ALIASES.items():
        if any(token in upper_name for token in tokens):
            return canonical
    return None

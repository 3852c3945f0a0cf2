"""Shared fixtures: a synthetic practice-management billing export."""

import csv
from pathlib import Path

import pytest

# Patients
JANE = "DOE, JANE"
JOHN = "SMITH, JOHN"
RICHARD = "ROE, RICHARD"
ANN = "LEE, ANN"
BO = "KIM, BO"
NOPAY = "NOPAY, PAT"       # two UHC lines, nothing paid by the insurer

HEADERS = [
    "Patient Name", "Date of Service", "Insurance", "CPT", "POS", "Modifiers",
    "Days or Units", "Charges", "Insurance Payment", "Patient Payment", "Balance", "Adjustment",
]


def make_record(
    payer: str = "Aetna",
    cpt: str = "99213",
    pos: str = "11",
    mods: str = "",
    units: str = "1",
    patient: str = JANE,
    dos: str = "01/02/2024",
    charges: float = 150.0,
    ins: float = 0.0,
    pt: float = 0.0,
    bal: float = 0.0,
    adj: float = 0.0,
) -> dict:
    """One export row keyed by the headers a real export uses."""
    return {
        "Patient Name": patient,
        "Date of Service": dos,
        "Insurance": payer,
        "CPT": cpt,
        "POS": pos,
        "Modifiers": mods,
        "Days or Units": units,
        "Charges": f"${charges:,.2f}",
        "Insurance Payment": f"{ins:.2f}",
        "Patient Payment": f"{pt:.2f}",
        "Balance": f"{bal:.2f}",
        "Adjustment": f"{adj:.2f}",
    }


def _generate_rows() -> list[dict]:
    rows = []

    # --- Aetna 99213/11: paid 100, 100, 120 (units 1) and 130 (units 2) ---
    rows.append(make_record(payer="Aetna Inc", patient=JANE, ins=100, pt=20, adj=-30))
    rows.append(make_record(patient=JOHN, ins=100, adj=-50))
    rows.append(make_record(patient=RICHARD, ins=120, adj=-30))
    rows.append(make_record(patient=JANE, dos="02/06/2024", units="2", ins=130, adj=-20))

    # --- Cigna 99214/22 mod 25: two lines, thin group ---
    rows.append(make_record(payer="Cigna", cpt="99214", pos="22", mods="25", patient=ANN,
                            charges=200, ins=50, adj=-150))
    rows.append(make_record(payer="Cigna", cpt="99214", pos="22", mods="25", patient=BO,
                            charges=200, ins=80, adj=-120))

    # --- UnitedHealthcare aliases, 99215/11 mods 25+59, nothing paid ---
    rows.append(make_record(payer="UHC-UnitedHealthcare", cpt="99215", mods="59, 25", patient=NOPAY,
                            charges=200, adj=-200))
    rows.append(make_record(payer="United Healthcare", cpt="99215", mods="25 59", patient=NOPAY,
                            charges=100))

    # --- No procedure code: dropped before grouping ---
    rows.append(make_record(cpt="  ", patient="BLANK, ROW", ins=999))

    return rows


@pytest.fixture
def sample_rows() -> list[dict]:
    return _generate_rows()


@pytest.fixture
def sample_csv(tmp_path: Path) -> Path:
    """Write the synthetic export as CSV and return its path."""
    filepath = tmp_path / "billing_export.csv"
    with open(filepath, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=HEADERS)
        writer.writeheader()
        writer.writerows(_generate_rows())
    return filepath

import csv
from pathlib import Path

import click

from data.loader import find_dataset, load_records
from data.models import DEFAULT_THRESHOLD, MAX_THRESHOLD, MIN_THRESHOLD, AnalysisConfig, Benchmark, GroupKey
from data.normalize import normalize_modifiers, normalize_payer, normalize_units
from data.overrides import DEFAULT_OVERRIDES_FILE, InvalidOverride, OverrideStore
from engine.classify import derivation_text, filter_issues
from engine.grouping import build_key
from engine.lookup import lookup, lookup_records
from engine.pipeline import analyze
from reports.pdf import generate_benchmark_pdf

OUTPUT_DIR = Path(__file__).parent / "output"

overrides_option = click.option(
    "--overrides", "overrides_path", default=None, type=click.Path(dir_okay=False, path_type=Path),
    help=f"Override store JSON file (default: {DEFAULT_OVERRIDES_FILE.name} in output/)",
)
units_option = click.option(
    "--units-in-key/--no-units-in-key", default=False,
    help="Include units in the grouping key (changes which overrides match)",
)


@click.group()
def cli():
    """Payment Benchmark — find under- and overpaid lines in billing exports."""
    pass


@cli.command("analyze")
@click.option("--data-path", default=None, type=click.Path(exists=True, path_type=Path),
              help="Path to billing export (auto-detected in data/raw/ if not specified)")
@click.option("--threshold", default=DEFAULT_THRESHOLD, type=click.FloatRange(MIN_THRESHOLD, MAX_THRESHOLD),
              help="Variance threshold in percent (1-30)")
@click.option("--benchmark", default=Benchmark.PAID.value,
              type=click.Choice([b.value for b in Benchmark]),
              help="Compare insurer paid amounts or reconstructed allowed amounts")
@click.option("--decontaminate/--no-decontaminate", default=True,
              help="Ignore Allowed==Charges lines when building Allowed proxies")
@units_option
@overrides_option
@click.option("--output-dir", default=None, type=click.Path(file_okay=False, path_type=Path),
              help="Where to write result CSVs")
@click.option("--pdf", is_flag=True, help="Also write a PDF report")
@click.option("--top", default=25, type=int, help="Number of top deviations to display")
@click.option("--payer", default="", help="Only display lines whose payer contains this text")
@click.option("--cpt", default="", help="Only display lines with this procedure code")
@click.option("--pos", default="", help="Only display lines with this place of service")
@click.option("--mods", default="", help="Only display lines with these modifiers")
def analyze_cmd(data_path: Path | None, threshold: float, benchmark: str, decontaminate: bool,
                units_in_key: bool, overrides_path: Path | None, output_dir: Path | None,
                pdf: bool, top: int, payer: str, cpt: str, pos: str, mods: str):
    """Benchmark every line of a billing export against its group's typical payment."""
    filepath = data_path or find_dataset()
    store = OverrideStore(overrides_path)
    overrides = store.load_all()
    if overrides:
        click.echo(f"Loaded {len(overrides)} proxy overrides from {store.path}")

    config = AnalysisConfig(
        threshold=threshold,
        benchmark=Benchmark(benchmark),
        decontaminate=decontaminate,
        include_units_in_key=units_in_key,
        overrides=overrides,
    )
    result = analyze(load_records(filepath), config)

    output_dir = output_dir or OUTPUT_DIR
    output_dir.mkdir(parents=True, exist_ok=True)
    for path in write_result_csvs(result, output_dir):
        click.echo(f"  -> {path}")

    t = result.totals
    click.echo(f"\nTotal insurance paid: ${t.total_insurance_paid:,.2f}")
    click.echo(f"Actual ({t.benchmark_label}): ${t.total_actual:,.2f}")
    click.echo(f"Expected (proxy x n): ${t.total_expected:,.2f}")
    click.echo(f"Expected - Actual: ${t.delta:,.2f}")
    click.echo(f"Proxy audits: {len(result.proxy_audits)} | Denials: {len(result.denials)} | "
               f"Unpaid patients: {len(result.unpaid_patients)}")

    shown = [i for i in filter_issues(result.issues, payer, cpt, pos, mods) if i.out_of_range]
    click.echo(f"\nTop {min(top, len(shown))} deviations:")
    click.echo("-" * 80)
    for rank, issue in enumerate(shown[:top], 1):
        d = issue.line
        click.echo(f"  {rank:3d}. {d.patient or '?'} {d.service_date} | {d.payer} {d.procedure_code} "
                   f"POS {d.place_of_service} {d.modifiers} | ${issue.metric:,.2f} vs ${issue.proxy:,.2f} "
                   f"({issue.deviation_pct:+.1f}%) {issue.status}")

    if pdf:
        pdf_path = generate_benchmark_pdf(result, output_dir=output_dir / "reports")
        click.echo(f"\nReport generated: {pdf_path}")


def write_result_csvs(result, output_dir: Path) -> list[Path]:
    """Write the five result tables as CSV files and return their paths."""
    benchmark_label = result.config.benchmark.label
    tables = {
        "groups.csv": (
            ["Insurance", "CPT", "POS", "Modifiers", "Units", "n", "Proxy", "Method", "Median", "Mean",
             "Min", "Max", "nEqCharges", "Decontaminated", "Warning"],
            [[s.key.payer, s.key.procedure_code, s.key.place_of_service, s.key.modifiers, s.units,
              s.n, f"{s.proxy:.2f}", s.method, f"{s.median:.2f}", f"{s.mean:.2f}", f"{s.min:.2f}",
              f"{s.max:.2f}", s.n_eq_charges, s.used_decontaminate, s.warning]
             for s in result.groups],
        ),
        "issues.csv": (
            ["Patient", "DOS", "Insurance", "CPT", "POS", "Modifiers", "Units", "Charges",
             benchmark_label, "Proxy", "ProxyDerivation", "DeviationPct", "Status", "Explanation"],
            [[i.line.patient, i.line.service_date, i.line.payer, i.line.procedure_code,
              i.line.place_of_service, i.line.modifiers, i.line.units, f"{i.line.charges:.2f}",
              f"{i.metric:.2f}", f"{i.proxy:.2f}", derivation_text(i.group),
              f"{i.deviation_pct:.1f}%", i.status, i.explanation]
             for i in result.issues],
        ),
        "proxy_audits.csv": (
            ["Patient", "DOS", "Insurance", "CPT", "POS", "Modifiers", "Units", "Charges", "Metric",
             "Proxy", "nInGroup", "Method", "Note"],
            [[a.line.patient, a.line.service_date, a.line.payer, a.line.procedure_code,
              a.line.place_of_service, a.line.modifiers, a.line.units, f"{a.line.charges:.2f}",
              f"{a.metric:.2f}", f"{a.proxy:.2f}", a.n_in_group, a.method, a.note]
             for a in result.proxy_audits],
        ),
        "denials.csv": (
            ["Patient", "DOS", "Insurance", "CPT", "POS", "Modifiers", "Units", "Charges",
             "InsurancePaid", "Adjustment", "Reason"],
            [[e.line.patient, e.line.service_date, e.line.payer, e.line.procedure_code,
              e.line.place_of_service, e.line.modifiers, e.line.units, f"{e.line.charges:.2f}",
              f"{e.line.insurance_paid:.2f}", f"{e.line.adjustment:.2f}", e.reason.value]
             for e in result.denials],
        ),
        "unpaid_patients.csv": (
            ["Patient", "Insurances", "TotalCharges", "TotalAllowed", "TotalInsurancePaid",
             "TotalBalance", "UnpaidGap"],
            [[p.patient, p.payers, f"{p.total_charges:.2f}", f"{p.total_allowed:.2f}",
              f"{p.total_insurance_paid:.2f}", f"{p.total_balance:.2f}", f"{p.unpaid_gap:.2f}"]
             for p in result.unpaid_patients],
        ),
    }

    paths = []
    for filename, (header, rows) in tables.items():
        path = output_dir / filename
        with open(path, "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(header)
            writer.writerows(rows)
        paths.append(path)
    return paths


def _override_key(payer: str, cpt: str, pos: str, mods: str, units: str, units_in_key: bool) -> GroupKey:
    key = build_key(normalize_payer(payer), cpt.strip(), pos.strip(), normalize_modifiers(mods),
                    normalize_units(units), units_in_key)
    if not (key.payer and key.procedure_code and key.place_of_service):
        raise click.UsageError("--payer, --cpt and --pos are required to identify a group")
    return key


def group_options(f):
    for option in reversed([
        click.option("--payer", required=True, help="Payer name (aliases are merged)"),
        click.option("--cpt", required=True, help="Procedure code"),
        click.option("--pos", required=True, help="Place of service"),
        click.option("--mods", default="", help="Modifiers, comma or space separated"),
        click.option("--units", default="1", help="Units (only used with --units-in-key)"),
        units_option,
        overrides_option,
    ]):
        f = option(f)
    return f


@cli.group()
def override():
    """Manage manual proxy overrides."""
    pass


@override.command("set")
@group_options
@click.option("--amount", required=True, help="Proxy amount to use for this group")
def override_set(payer, cpt, pos, mods, units, units_in_key, overrides_path, amount):
    """Set a manual proxy for one group."""
    key = _override_key(payer, cpt, pos, mods, units, units_in_key)
    store = OverrideStore(overrides_path)
    store.load_all()
    try:
        value = store.set(key, amount)
    except InvalidOverride as exc:
        raise click.BadParameter(str(exc), param_hint="--amount")
    path = store.save_all()
    click.echo(f"Override {key.label} = ${value:,.2f} saved to {path}")


@override.command("clear")
@group_options
def override_clear(payer, cpt, pos, mods, units, units_in_key, overrides_path):
    """Remove the manual proxy for one group."""
    key = _override_key(payer, cpt, pos, mods, units, units_in_key)
    store = OverrideStore(overrides_path)
    store.load_all()
    if not store.delete(key):
        click.echo(f"No override set for {key.label}")
        return
    store.save_all()
    click.echo(f"Cleared override for {key.label}")


@override.command("clear-all")
@overrides_option
def override_clear_all(overrides_path):
    """Remove every manual proxy."""
    store = OverrideStore(overrides_path)
    store.load_all()
    count = len(store)
    store.clear_all()
    store.save_all()
    click.echo(f"Cleared {count} overrides")


@override.command("list")
@overrides_option
def override_list(overrides_path):
    """Show every manual proxy."""
    store = OverrideStore(overrides_path)
    overrides = store.load_all()
    if not overrides:
        click.echo("No overrides set.")
        return
    for label, value in sorted(overrides.items()):
        click.echo(f"  {label}: ${value:,.2f}")


@cli.command("lookup")
@click.option("--data-path", default=None, type=click.Path(exists=True, path_type=Path),
              help="Path to billing export (auto-detected in data/raw/ if not specified)")
@click.option("--benchmark", default=Benchmark.PAID.value,
              type=click.Choice([b.value for b in Benchmark]))
@click.option("--decontaminate/--no-decontaminate", default=True)
@units_option
@overrides_option
@click.option("--payer", default="", help="Payer name")
@click.option("--cpt", default="", help="Procedure code")
@click.option("--pos", default="", help="Place of service")
@click.option("--mods", default="", help="Modifiers")
@click.option("--units", default="1", help="Units")
@click.option("--descriptors", default=None, type=click.Path(exists=True, path_type=Path),
              help="CSV of Insurance/CPT/POS/Modifiers/Units rows to look up in bulk")
def lookup_cmd(data_path, benchmark, decontaminate, units_in_key, overrides_path,
               payer, cpt, pos, mods, units, descriptors):
    """Show how the proxy for a group was derived."""
    if not descriptors and not cpt:
        raise click.UsageError("Pass --cpt (with --payer/--pos) or --descriptors")

    filepath = data_path or find_dataset()
    config = AnalysisConfig(
        benchmark=Benchmark(benchmark),
        decontaminate=decontaminate,
        include_units_in_key=units_in_key,
        overrides=OverrideStore(overrides_path).load_all(),
    )
    result = analyze(load_records(filepath), config)

    if descriptors:
        answers = lookup_records(result, load_records(descriptors))
    else:
        answers = [lookup(result, payer, cpt, pos, mods, units)]

    for answer in answers:
        click.echo(f"\n{answer.key.label}")
        if not answer.found:
            click.echo(f"  {answer.message}")
            continue
        stat = answer.stat
        method = stat.method + (" + decontaminated" if stat.used_decontaminate else "")
        click.echo(f"  Proxy: ${stat.proxy:,.2f} ({method})")
        click.echo(f"  n: {stat.n} (Allowed==Charges: {stat.n_eq_charges})")
        click.echo(f"  Range: ${stat.min:,.2f} - ${stat.max:,.2f}")
        click.echo(f"  Top values: " + ", ".join(f"{v:,.2f}x{c}" for v, c in answer.top_values))
        if answer.message:
            click.echo(f"  {answer.message}")


if __name__ == "__main__":
    cli()

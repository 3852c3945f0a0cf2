import json
import math
from pathlib import Path

import click

from data.models import GroupKey
from data.normalize import round2

DEFAULT_OVERRIDES_FILE = Path(__file__).parent.parent / "output" / "overrides.json"


class InvalidOverride(ValueError):
    """Raised when an override amount is not a finite number."""


def _label(key: GroupKey | str) -> str:
    return key.label if isinstance(key, GroupKey) else str(key)


def parse_amount(amount) -> float:
    """Validate a user-supplied override amount and round it to cents."""
    if isinstance(amount, bool):
        raise InvalidOverride(f"Override amount must be a number, got {amount!r}")
    try:
        value = float(str(amount).replace("$", "").replace(",", "").strip())
    except ValueError:
        raise InvalidOverride(f"Override amount must be a number, got {amount!r}") from None
    if not math.isfinite(value):
        raise InvalidOverride(f"Override amount must be finite, got {amount!r}")
    return round2(value)


class OverrideStore:
    """Manually supplied proxies keyed by group label, persisted as JSON.

    Every mutation replaces a single key or the whole map; a rejected
    amount leaves the previous state untouched.
    """

    def __init__(self, path: Path | None = None):
        self.path = path or DEFAULT_OVERRIDES_FILE
        self._values: dict[str, float] = {}

    def load_all(self) -> dict[str, float]:
        """Replace the in-memory map with the persisted one."""
        if not self.path.exists():
            self._values = {}
            return self.snapshot()

        try:
            raw = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            click.echo(f"Warning: could not read overrides from {self.path} ({exc}); starting empty", err=True)
            raw = {}

        values = {}
        for key, amount in (raw.items() if isinstance(raw, dict) else []):
            try:
                values[str(key)] = parse_amount(amount)
            except InvalidOverride:
                click.echo(f"Warning: ignoring non-numeric override for {key}", err=True)
        self._values = values
        return self.snapshot()

    def save_all(self) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._values, indent=2, sort_keys=True))
        return self.path

    def get(self, key: GroupKey | str) -> float | None:
        return self._values.get(_label(key))

    def set(self, key: GroupKey | str, amount) -> float:
        value = parse_amount(amount)
        self._values = {**self._values, _label(key): value}
        return value

    def delete(self, key: GroupKey | str) -> bool:
        label = _label(key)
        if label not in self._values:
            return False
        self._values = {k: v for k, v in self._values.items() if k != label}
        return True

    def clear_all(self):
        self._values = {}

    def snapshot(self) -> dict[str, float]:
        return dict(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, key) -> bool:
        return _label(key) in self._values

"""
Configuration Loader (``cidery_config.loader``).

Responsibility
--------------
Loads a configuration set YAML file and parses it into a frozen
``CideryConfig``.  Callers use ``cidery_config.get_active_config()``;
``load_config`` is exposed for tests and alternate sets.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass.
* Unknown ``guard_limits`` or ``tolerances`` keys raise ``ValueError``;
  absent keys keep their defaults.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  parsed YAML.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys in a rate table  -> ``KeyError`` propagates.
* Invalid date format  -> ``ValueError`` from ``date.fromisoformat``.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from cidery_config.schema import CideryConfig, OpeningBalances, Tolerances
from cidery_engines.guards.limits import GuardLimits
from cidery_engines.ttb.tax import DEFAULT_RATE_TABLE, TaxClassRate, TaxRateTable
from cidery_kernel.domain.entities import TaxClass
from cidery_kernel.domain.values import to_decimal


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """
    Parse a date from YAML (string or date object).

    Raises:
        ValueError: if ``value`` is not a valid date representation.
    """
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def _parse_optional_date(value: Any) -> date | None:
    if value is None:
        return None
    return parse_date(value)


def _field_types(cls) -> dict[str, str]:
    # Annotations are strings under ``from __future__ import annotations``.
    return {f.name: str(f.type) for f in dataclasses.fields(cls)}


def parse_guard_limits(data: dict[str, Any], bottle_tolerance: Decimal | None = None) -> GuardLimits:
    """Parse the ``guard_limits`` section over the domain defaults."""
    types = _field_types(GuardLimits)
    values: dict[str, Any] = {}
    for key, raw in data.items():
        if key not in types:
            raise ValueError(f"Unknown guard_limits key: {key!r}")
        if key == "quantity_max_by_unit":
            values[key] = {str(unit): to_decimal(v) for unit, v in raw.items()}
        elif types[key] == "int":
            values[key] = int(raw)
        else:
            values[key] = to_decimal(raw)
    if bottle_tolerance is not None:
        values["bottle_tolerance_l"] = bottle_tolerance
    return GuardLimits(**values)


def parse_tolerances(data: dict[str, Any]) -> Tolerances:
    known = {f.name for f in dataclasses.fields(Tolerances)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown tolerances keys: {sorted(unknown)}")
    return Tolerances(**{k: to_decimal(v) for k, v in data.items()})


def parse_rate_table(data: dict[str, Any]) -> TaxRateTable:
    """
    Parse one ``tax_rate_tables`` entry.

    Raises:
        KeyError: if ``version``, ``effective_from`` or ``rates`` is missing.
        ValueError: if a tax class name is unknown or a rate is invalid.
    """
    rates = {
        TaxClass(name): TaxClassRate(
            rate_per_gallon=to_decimal(rate["rate_per_gallon"]),
            credit_per_gallon=to_decimal(rate.get("credit_per_gallon", 0)),
        )
        for name, rate in data["rates"].items()
    }
    return TaxRateTable(
        version=str(data["version"]),
        effective_from=parse_date(data["effective_from"]),
        effective_to=_parse_optional_date(data.get("effective_to")),
        rates=rates,
        credit_limit_gallons=to_decimal(data.get("credit_limit_gallons", 30000)),
    )


def _parse_by_class(data: dict[str, Any] | None) -> dict[TaxClass, Decimal]:
    return {TaxClass(name): to_decimal(v) for name, v in (data or {}).items()}


def parse_opening_balances(data: dict[str, Any]) -> OpeningBalances:
    return OpeningBalances(
        as_of_date=_parse_optional_date(data.get("as_of_date")),
        bulk=_parse_by_class(data.get("bulk")),
        bottled=_parse_by_class(data.get("bottled")),
        spirits=to_decimal(data.get("spirits", 0)),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_config(data: dict[str, Any]) -> CideryConfig:
    tolerances = parse_tolerances(data.get("tolerances") or {})
    limits = parse_guard_limits(data.get("guard_limits") or {}, tolerances.bottle_l)
    tables = tuple(parse_rate_table(t) for t in data.get("tax_rate_tables") or ())
    return CideryConfig(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        limits=limits,
        tolerances=tolerances,
        rate_tables=tables or (DEFAULT_RATE_TABLE,),
        opening_balances=parse_opening_balances(data.get("opening_balances") or {}),
        checksum=compute_checksum(data),
    )


def load_config(path: Path | str) -> CideryConfig:
    """Load and parse a configuration set file."""
    return parse_config(load_yaml_file(Path(path)))

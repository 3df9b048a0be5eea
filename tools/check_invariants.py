#!/usr/bin/env python3
"""Presale invariant checks against the shipped sale parameters."""

import json
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = ROOT / "config"
PARAMS_FILENAME = "sale_params.json"

REQUIRED_KEYS = (
    "tier_limits",
    "individual_cap",
    "increment",
    "increment_ceiling",
    "increment_timelock_seconds",
    "max_page_size",
    "owner",
    "custodial_destination",
)


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def to_decimal(value, label: str, errors: list[str]):
    if isinstance(value, float):
        errors.append(f"{label} must be a string or integer, not a float ({value})")
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        errors.append(f"{label} is not a decimal value: {value!r}")
        return None


def check_tiers(params: dict, errors: list[str]) -> None:
    """Tier limits: exactly three, positive, strictly increasing."""
    limits = params["tier_limits"]
    if not isinstance(limits, list) or len(limits) != 3:
        errors.append("tier_limits must be a list of exactly 3 values")
        return
    values = [to_decimal(v, f"tier_limits[{i}]", errors) for i, v in enumerate(limits)]
    if any(v is None for v in values):
        return
    if values[0] <= 0:
        errors.append("tier_limits[0] must be positive")
    for lower, upper in zip(values, values[1:]):
        if upper <= lower:
            errors.append(f"tier_limits must be strictly increasing ({lower} >= {upper})")

    cap = to_decimal(params["individual_cap"], "individual_cap", errors)
    if cap is not None and cap <= 0:
        errors.append("individual_cap must be positive")


def check_increment(params: dict, errors: list[str]) -> None:
    """Increment: positive, within ceiling, divides every tier limit."""
    increment = to_decimal(params["increment"], "increment", errors)
    ceiling = to_decimal(params["increment_ceiling"], "increment_ceiling", errors)
    if increment is None or ceiling is None:
        return
    if increment <= 0:
        errors.append("increment must be positive")
        return
    if increment > ceiling:
        errors.append(f"increment ({increment}) exceeds increment_ceiling ({ceiling})")
    for i, raw in enumerate(params["tier_limits"]):
        limit = to_decimal(raw, f"tier_limits[{i}]", [])
        if limit is not None and limit % increment != 0:
            errors.append(
                f"tier_limits[{i}] ({limit}) is not a multiple of increment "
                f"({increment}); the tier could never be filled exactly"
            )
    if params["increment_timelock_seconds"] < 0:
        errors.append("increment_timelock_seconds cannot be negative")


def check(config_dir: Path = CONFIG_DIR) -> int:
    params = load_json(config_dir / PARAMS_FILENAME)
    errors: list[str] = []

    missing = [k for k in REQUIRED_KEYS if k not in params]
    if missing:
        errors.extend(f"missing key: {k}" for k in missing)
    else:
        check_tiers(params, errors)
        check_increment(params, errors)
        if params["max_page_size"] < 1:
            errors.append("max_page_size must be at least 1")
        if not params["owner"]:
            errors.append("owner must be non-empty")
        if not params["custodial_destination"]:
            errors.append("custodial_destination must be non-empty")

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant checks passed.")
    return 0


if __name__ == "__main__":
    sys.exit(check())

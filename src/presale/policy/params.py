"""Sale parameters — loads and validates config/sale_params.json.

Usage:
    params = SaleParams.from_config_dir(Path("config"))
    schedule = params.schedule()
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from presale.models.sale import TierSchedule


@dataclass(frozen=True)
class SaleParams:
    """Initial configuration of a presale.

    Values here only seed a fresh service. Once running, tier limits, the
    individual cap, the page size and the increment change through the
    privileged operations, and the persisted state wins over this file.
    """
    tier_limits: tuple[Decimal, Decimal, Decimal]
    individual_cap: Decimal
    increment: Decimal
    increment_ceiling: Decimal
    increment_timelock_seconds: int
    max_page_size: int
    owner: str
    custodial_destination: str

    PARAMS_FILENAME = "sale_params.json"

    def __post_init__(self) -> None:
        errors = self.validate()
        if errors:
            raise ValueError("Invalid sale parameters: " + "; ".join(errors))

    def validate(self) -> list[str]:
        """Check structural validity. Returns errors (empty = OK)."""
        errors: list[str] = []
        if len(self.tier_limits) != 3:
            errors.append(f"Expected 3 tier limits, got {len(self.tier_limits)}")
        else:
            l1, l2, l3 = self.tier_limits
            if l1 <= 0:
                errors.append("tier_limits[0] must be positive")
            if not l1 < l2 < l3:
                errors.append("tier_limits must be strictly increasing")
        if self.individual_cap <= 0:
            errors.append("individual_cap must be positive")
        if self.increment <= 0:
            errors.append("increment must be positive")
        if self.increment > self.increment_ceiling:
            errors.append(
                f"increment ({self.increment}) exceeds increment_ceiling "
                f"({self.increment_ceiling})"
            )
        if self.increment_timelock_seconds < 0:
            errors.append("increment_timelock_seconds cannot be negative")
        if self.max_page_size < 1:
            errors.append("max_page_size must be at least 1")
        if not self.owner:
            errors.append("owner must be non-empty")
        if not self.custodial_destination:
            errors.append("custodial_destination must be non-empty")
        return errors

    def schedule(self) -> TierSchedule:
        return TierSchedule(*self.tier_limits)

    @property
    def increment_timelock(self) -> timedelta:
        return timedelta(seconds=self.increment_timelock_seconds)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SaleParams:
        """Build from the raw JSON mapping.

        Raises:
            ValueError: missing keys or values that are not numbers.
        """
        try:
            return cls(
                tier_limits=tuple(_decimal(v) for v in data["tier_limits"]),
                individual_cap=_decimal(data["individual_cap"]),
                increment=_decimal(data["increment"]),
                increment_ceiling=_decimal(data["increment_ceiling"]),
                increment_timelock_seconds=int(data["increment_timelock_seconds"]),
                max_page_size=int(data["max_page_size"]),
                owner=str(data["owner"]),
                custodial_destination=str(data["custodial_destination"]),
            )
        except KeyError as e:
            raise ValueError(f"Sale parameters missing key: {e.args[0]}") from e

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> SaleParams:
        """Load parameters from the canonical config directory.

        Raises:
            FileNotFoundError: If sale_params.json does not exist.
            ValueError: If the parameters are structurally invalid.
        """
        path = config_dir / cls.PARAMS_FILENAME
        if not path.exists():
            raise FileNotFoundError(f"Sale parameters not found: {path}")
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return cls.from_dict(data)


def _decimal(value: Any) -> Decimal:
    # Floats would carry binary rounding into the ledger
    if isinstance(value, float):
        raise ValueError(f"Monetary values must be strings or integers, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Not a decimal value: {value!r}") from e

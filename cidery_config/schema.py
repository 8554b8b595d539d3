"""
Cidery configuration schema.

The frozen dataclasses a configuration set YAML file is parsed into.
Guard bounds, tax rate tables and opening balances reuse the engine and
domain types (``GuardLimits``, ``TaxRateTable``, ``OpeningBalances``) so
neither the engines nor the kernel import config.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from cidery_engines.guards.limits import DEFAULT_LIMITS, GuardLimits
from cidery_engines.ttb.period import DEFAULT_FORM_TOLERANCE_GALLONS
from cidery_engines.ttb.reconciliation import DEFAULT_VARIANCE_TOLERANCE_GALLONS
from cidery_engines.ttb.tax import DEFAULT_RATE_TABLE, TaxRateTable, select_rate_table
from cidery_kernel.domain.opening_balances import OpeningBalances


@dataclass(frozen=True)
class Tolerances:
    """Equality tolerances for volume checks."""

    bottle_l: Decimal = Decimal("0.05")
    form_balance_gallons: Decimal = DEFAULT_FORM_TOLERANCE_GALLONS
    reconciliation_variance_gallons: Decimal = DEFAULT_VARIANCE_TOLERANCE_GALLONS


@dataclass(frozen=True)
class CideryConfig:
    """The active configuration for one cidery deployment."""

    config_id: str
    version: int
    limits: GuardLimits = DEFAULT_LIMITS
    tolerances: Tolerances = field(default_factory=Tolerances)
    rate_tables: tuple[TaxRateTable, ...] = (DEFAULT_RATE_TABLE,)
    opening_balances: OpeningBalances = field(default_factory=OpeningBalances)
    checksum: str = ""

    def rate_table_for(self, as_of: date) -> TaxRateTable:
        """
        Raises:
            TaxRateNotFoundError: If no table is effective on ``as_of``.
        """
        return select_rate_table(self.rate_tables, as_of)

"""Organization opening balances: inventory on hand when TTB record keeping began."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from types import MappingProxyType

from cidery_kernel.domain.entities import TaxClass
from cidery_kernel.domain.values import ZERO


@dataclass(frozen=True)
class OpeningBalances:
    """
    Wine gallons per tax class (and proof gallons of spirits) on hand at
    ``as_of_date``.

    Applies to a period starting on or after ``as_of_date`` that has no
    finalized predecessor.
    """

    as_of_date: date | None = None
    bulk: Mapping[TaxClass, Decimal] = field(default_factory=dict)
    bottled: Mapping[TaxClass, Decimal] = field(default_factory=dict)
    spirits: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "bulk", MappingProxyType(dict(self.bulk)))
        object.__setattr__(self, "bottled", MappingProxyType(dict(self.bottled)))

    @property
    def bulk_total(self) -> Decimal:
        return sum(self.bulk.values(), ZERO)

    @property
    def bottled_total(self) -> Decimal:
        return sum(self.bottled.values(), ZERO)

    @property
    def total_gallons(self) -> Decimal:
        """Wine gallons on hand; spirits are reported separately."""
        return self.bulk_total + self.bottled_total

    def applies_to(self, period_start: date) -> bool:
        return self.as_of_date is not None and period_start >= self.as_of_date


NO_OPENING_BALANCES = OpeningBalances()

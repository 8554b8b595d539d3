"""
Tests for TTB unit conversion and the excise tax engine.

Covers:
- Liter / wine gallon conversion and rounding
- Hard cider tax with the small producer credit
- Credit allowance shared across classes and prior removals
- Tax class classification
- Rate table selection by effective date
"""

from datetime import date
from decimal import Decimal

import pytest

from cidery_engines.ttb.tax import (
    DEFAULT_RATE_TABLE,
    TaxClassRate,
    TaxRateTable,
    calculate_class_tax,
    calculate_hard_cider_tax,
    calculate_snapshot_tax,
    classify_tax_class,
    select_rate_table,
)
from cidery_engines.ttb.units import (
    juice_volume_to_liters,
    liters_to_wine_gallons,
    ml_to_wine_gallons,
    round_gallons,
    wine_gallons_to_liters,
)
from cidery_kernel.domain.entities import TaxClass
from cidery_kernel.exceptions import TaxClassNotRatedError, TaxRateNotFoundError


class TestUnits:
    def test_thousand_liters(self):
        assert liters_to_wine_gallons(1000) == Decimal("264.172")

    def test_negative_converts_to_zero(self):
        assert liters_to_wine_gallons("-5") == Decimal("0")
        assert wine_gallons_to_liters("-5") == Decimal("0")

    def test_gallons_to_liters(self):
        assert wine_gallons_to_liters(1) == Decimal("3.78541")

    def test_ml(self):
        assert round_gallons(ml_to_wine_gallons(750)) == Decimal("0.198")

    def test_round_half_up(self):
        assert round_gallons("1.0005") == Decimal("1.001")
        assert round_gallons("1.0004") == Decimal("1.000")

    @pytest.mark.parametrize(
        "unit,liters",
        [("L", Decimal("10")), ("gal", Decimal("37.8541")), ("mL", Decimal("0.010"))],
    )
    def test_juice_units(self, unit, liters):
        assert juice_volume_to_liters(10, unit) == liters

    def test_unknown_unit(self):
        with pytest.raises(ValueError, match="Unsupported"):
            juice_volume_to_liters(10, "hogshead")


class TestHardCiderTax:
    def test_thousand_gallons(self):
        result = calculate_hard_cider_tax(Decimal("1000"))

        assert result.gross_tax == Decimal("226.00")
        assert result.small_producer_credit == Decimal("56.00")
        assert result.net_tax_owed == Decimal("170.00")
        assert result.effective_rate == Decimal("0.1700")

    def test_credit_limited_by_prior_use(self):
        result = calculate_hard_cider_tax(Decimal("1000"), prior_gallons_credited=Decimal("29500"))

        assert result.credit_eligible_gallons == Decimal("500")
        assert result.small_producer_credit == Decimal("28.00")
        assert result.net_tax_owed == Decimal("198.00")
        assert result.effective_rate == Decimal("0.1980")

    def test_allowance_exhausted(self):
        result = calculate_hard_cider_tax(100, prior_gallons_credited=40000)
        assert result.small_producer_credit == Decimal("0.00")
        assert result.net_tax_owed == result.gross_tax

    @pytest.mark.parametrize("gallons", [0, -10])
    def test_nothing_removed(self, gallons):
        result = calculate_hard_cider_tax(gallons)
        assert result.net_tax_owed == Decimal("0")
        assert result.effective_rate == Decimal("0")

    def test_unrated_class(self):
        table = TaxRateTable(
            version="cider-only",
            effective_from=date(2018, 1, 1),
            rates={TaxClass.HARD_CIDER: TaxClassRate("0.226", "0.056")},
        )
        with pytest.raises(TaxClassNotRatedError):
            calculate_class_tax(10, table, TaxClass.SPARKLING_WINE)


class TestSnapshotTax:
    def test_classes_share_one_allowance(self):
        result = calculate_snapshot_tax(
            {TaxClass.WINE_UNDER_16: 2000, TaxClass.HARD_CIDER: 29000},
            DEFAULT_RATE_TABLE,
        )

        cider = result.by_class[TaxClass.HARD_CIDER]
        wine = result.by_class[TaxClass.WINE_UNDER_16]
        assert cider.credit_eligible_gallons == Decimal("29000")
        assert wine.credit_eligible_gallons == Decimal("1000")
        assert result.gallons_credited == Decimal("30000")
        assert result.total_gross_tax == Decimal("8694.00")
        assert result.total_credit == Decimal("2624.00")
        assert result.total_tax == Decimal("6070.00")
        assert result.rate_table_version == "cbma-2018"

    def test_zero_classes_omitted(self):
        result = calculate_snapshot_tax({"hard_cider": 10, "sparkling_wine": 0}, DEFAULT_RATE_TABLE)
        assert list(result.by_class) == [TaxClass.HARD_CIDER]


class TestClassifyTaxClass:
    @pytest.mark.parametrize(
        "abv,kwargs,expected",
        [
            ("6.5", {}, TaxClass.HARD_CIDER),
            ("8.5", {}, TaxClass.WINE_UNDER_16),
            ("6.5", {"is_cider": False}, TaxClass.WINE_UNDER_16),
            ("16", {}, TaxClass.WINE_UNDER_16),
            ("18", {}, TaxClass.WINE_16_TO_21),
            ("22", {}, TaxClass.WINE_21_TO_24),
            ("6.5", {"is_sparkling": True}, TaxClass.SPARKLING_WINE),
            ("6.5", {"is_carbonated": True}, TaxClass.CARBONATED_WINE),
        ],
    )
    def test_classes(self, abv, kwargs, expected):
        assert classify_tax_class(abv, **kwargs) == expected

    @pytest.mark.parametrize("abv", ["-1", "24.1", "NaN"])
    def test_invalid_abv(self, abv):
        with pytest.raises(ValueError):
            classify_tax_class(abv)


class TestRateTables:
    def test_latest_effective_table_wins(self):
        newer = TaxRateTable(
            version="2030",
            effective_from=date(2030, 1, 1),
            rates=dict(DEFAULT_RATE_TABLE.rates),
        )
        tables = (DEFAULT_RATE_TABLE, newer)

        assert select_rate_table(tables, date(2029, 12, 31)).version == "cbma-2018"
        assert select_rate_table(tables, date(2030, 1, 1)).version == "2030"

    def test_no_table_in_force(self):
        with pytest.raises(TaxRateNotFoundError):
            select_rate_table((DEFAULT_RATE_TABLE,), date(2010, 1, 1))

    def test_inverted_range_rejected(self):
        with pytest.raises(ValueError):
            TaxRateTable(
                version="bad",
                effective_from=date(2020, 1, 1),
                effective_to=date(2019, 1, 1),
                rates={},
            )

    def test_credit_cannot_exceed_rate(self):
        with pytest.raises(ValueError):
            TaxClassRate("0.10", "0.20")

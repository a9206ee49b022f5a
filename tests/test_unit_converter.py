"""Tests for mass unit conversion."""

from decimal import Decimal

import pytest

from odsquota.calculation import UnitConverter
from odsquota.exceptions import InvalidUnit
from odsquota.models import MassUnit


class TestFactorTable:
    """to_kilograms(x, unit) == x * factor[unit] for every supported unit."""

    @pytest.mark.parametrize("unit,factor", [
        ("g", Decimal("0.001")),
        ("kg", Decimal("1")),
        ("lb", Decimal("0.453592")),
        ("oz", Decimal("0.0283495")),
        ("ton", Decimal("1000")),
    ])
    def test_factor(self, unit, factor):
        quantity = Decimal("12.5")
        assert UnitConverter.to_kilograms(quantity, unit) == quantity * factor

    def test_enum_members_accepted(self):
        assert UnitConverter.to_kilograms(Decimal("2"), MassUnit.METRIC_TON) == Decimal("2000")

    def test_float_and_int_quantities(self):
        assert UnitConverter.to_kilograms(500, "g") == Decimal("0.500")
        assert UnitConverter.to_kilograms(2.5, "kg") == Decimal("2.5")

    def test_pound_is_exact(self):
        assert UnitConverter.to_kilograms(Decimal("10"), "lb") == Decimal("4.53592")


class TestUnitParsing:
    """Unit codes are normalised and aliases resolve to canonical units."""

    @pytest.mark.parametrize("raw,expected", [
        (" KG ", MassUnit.KILOGRAM),
        ("grams", MassUnit.GRAM),
        ("Pounds", MassUnit.POUND),
        ("lbs", MassUnit.POUND),
        ("ounce", MassUnit.OUNCE),
        ("tonne", MassUnit.METRIC_TON),
        ("metric_ton", MassUnit.METRIC_TON),
    ])
    def test_aliases(self, raw, expected):
        assert UnitConverter.parse_unit(raw) == expected

    def test_supported_units(self):
        assert UnitConverter.supported_units() == ["g", "kg", "lb", "oz", "ton"]


class TestInvalidInput:
    """Unknown units and non-finite quantities fail loudly."""

    @pytest.mark.parametrize("unit", ["litre", "", "kgs2", None])
    def test_unknown_unit_raises(self, unit):
        with pytest.raises(InvalidUnit) as exc_info:
            UnitConverter.to_kilograms(Decimal("1"), unit)
        assert exc_info.value.unit == unit
        assert "kg" in exc_info.value.context["supported_units"]

    def test_unknown_unit_does_not_pass_quantity_through(self):
        with pytest.raises(InvalidUnit):
            UnitConverter.to_kilograms(Decimal("42"), "gallon")

    @pytest.mark.parametrize("quantity", [Decimal("NaN"), Decimal("Infinity"), float("inf"), float("nan")])
    def test_non_finite_quantity_raises(self, quantity):
        with pytest.raises(ValueError):
            UnitConverter.to_kilograms(quantity, "kg")

    def test_negative_quantity_passes_through(self):
        assert UnitConverter.to_kilograms(Decimal("-3"), "kg") == Decimal("-3")

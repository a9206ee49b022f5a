# -*- coding: utf-8 -*-
"""
Mass Unit Conversion

All conversions are deterministic Decimal operations against a fixed factor
table. Fail loudly on unknown units: an unrecognised code raises
``InvalidUnit`` instead of passing the raw quantity through.

Supports:
- Mass: g, kg, lb, oz, ton (metric)
"""

from decimal import Decimal
from typing import Dict, List, Union

from odsquota.exceptions import InvalidUnit
from odsquota.models import MassUnit

Number = Union[int, float, Decimal, str]


class UnitConverter:
    """
    Deterministic mass converter with validation.

    GUARANTEES:
    - All conversions are exact Decimal multiplications
    - Same input -> Same output
    - Unknown units -> Loud failure (InvalidUnit)
    - Non-finite quantities -> ValueError
    """

    # Canonical unit -> kg multiplier
    FACTORS_TO_KG: Dict[MassUnit, Decimal] = {
        MassUnit.GRAM: Decimal('0.001'),
        MassUnit.KILOGRAM: Decimal('1'),
        MassUnit.POUND: Decimal('0.453592'),
        MassUnit.OUNCE: Decimal('0.0283495'),
        MassUnit.METRIC_TON: Decimal('1000'),
    }

    # Accepted spellings -> canonical unit
    ALIASES: Dict[str, MassUnit] = {
        'g': MassUnit.GRAM,
        'gr': MassUnit.GRAM,
        'gram': MassUnit.GRAM,
        'grams': MassUnit.GRAM,
        'kg': MassUnit.KILOGRAM,
        'kgs': MassUnit.KILOGRAM,
        'kilogram': MassUnit.KILOGRAM,
        'kilograms': MassUnit.KILOGRAM,
        'lb': MassUnit.POUND,
        'lbs': MassUnit.POUND,
        'pound': MassUnit.POUND,
        'pounds': MassUnit.POUND,
        'oz': MassUnit.OUNCE,
        'ounce': MassUnit.OUNCE,
        'ounces': MassUnit.OUNCE,
        'ton': MassUnit.METRIC_TON,
        'tons': MassUnit.METRIC_TON,
        't': MassUnit.METRIC_TON,
        'tonne': MassUnit.METRIC_TON,
        'tonnes': MassUnit.METRIC_TON,
        'metric_ton': MassUnit.METRIC_TON,
        'metric ton': MassUnit.METRIC_TON,
    }

    @classmethod
    def parse_unit(cls, unit: Union[MassUnit, str, None]) -> MassUnit:
        """
        Resolve a unit code to its canonical MassUnit.

        Raises:
            InvalidUnit: If the code is not a supported mass unit
        """
        if isinstance(unit, MassUnit):
            return unit
        if isinstance(unit, str):
            normalized = unit.strip().lower()
            if normalized in cls.ALIASES:
                return cls.ALIASES[normalized]
        raise InvalidUnit(unit, supported=cls.supported_units())

    @classmethod
    def to_kilograms(cls, quantity: Number, unit: Union[MassUnit, str]) -> Decimal:
        """
        Convert a mass quantity to kilograms.

        Args:
            quantity: Finite numeric quantity; negatives pass through
            unit: MassUnit member or unit code (e.g. 'lb', 'kilogram')

        Returns:
            Mass in kg as Decimal, unrounded

        Raises:
            InvalidUnit: If unit unknown
            ValueError: If quantity is NaN or infinite
        """
        factor = cls.FACTORS_TO_KG[cls.parse_unit(unit)]

        if not isinstance(quantity, Decimal):
            quantity = Decimal(str(quantity))
        if not quantity.is_finite():
            raise ValueError(f"Quantity must be finite, got {quantity}")

        return quantity * factor

    @classmethod
    def supported_units(cls) -> List[str]:
        """Canonical unit codes, in table order."""
        return [unit.value for unit in cls.FACTORS_TO_KG]


__all__ = ["UnitConverter"]

"""
ODS Quota Calculation Engine

Deterministic, Decimal-based CO2-equivalent computation for controlled
refrigerant imports.

Components:
- UnitConverter: Mass unit normalisation to kilograms
- CO2EquivalenceCalculator: Line item and batch CO2-equivalent figures
"""

from odsquota.calculation.unit_converter import UnitConverter
from odsquota.calculation.co2_calculator import CO2EquivalenceCalculator, round_co2

__all__ = [
    "UnitConverter",
    "CO2EquivalenceCalculator",
    "round_co2",
]

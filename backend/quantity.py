# backend/quantity.py

"""
Quantity value type.

A Quantity is an immutable count plus the unit it was expressed in.
raw_count_in_base_unit holds the count scaled by the well-known count
units (a dozen is 12 pieces); product-specific units such as "box" have
factor 1 here because their size belongs to the product's conversion graph.
"""

import re
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field

from quantity_errors import QuantityDivisionByZeroError, QuantityParseError


# Generic count units (factor = pieces per unit)
COUNT_UNIT_FACTORS: Dict[str, float] = {
    "pcs": 1.0,
    "piece": 1.0,
    "ea": 1.0,
    "dz": 12.0,
    "dozen": 12.0,
    "gr": 144.0,
    "gross": 144.0,
    "ream": 500.0,
    "score": 20.0
}

QUANTITY_PATTERN = re.compile(r"^([+-]?\d*\.?\d+(?:[eE][+-]?\d+)?)\s*(.+)$")


def unit_factor(unit: str) -> float:
    return COUNT_UNIT_FACTORS.get(unit, 1.0)


class Quantity(BaseModel):
    """Immutable count with its unit symbol"""
    model_config = ConfigDict(frozen=True)

    raw_count_in_base_unit: float
    unit_symbol: str = Field(min_length=1)

    def __init__(self, raw_count_in_base_unit: float, unit_symbol: str, **data):
        super().__init__(raw_count_in_base_unit=raw_count_in_base_unit, unit_symbol=unit_symbol, **data)

    @classmethod
    def of(cls, value: float, unit: str) -> "Quantity":
        return cls(raw_count_in_base_unit=value * unit_factor(unit), unit_symbol=unit)

    @classmethod
    def pieces(cls, value: float) -> "Quantity":
        return cls.of(value, "pcs")

    @classmethod
    def parse(cls, text: str) -> "Quantity":
        """
        Parse "<number><unit>" (whitespace between the two is optional).

        Raises:
            QuantityParseError: If the text does not match the grammar
        """
        match = QUANTITY_PATTERN.match((text or "").strip())
        if not match:
            raise QuantityParseError(text)
        unit = match.group(2).strip()
        if not unit:
            raise QuantityParseError(text)
        return cls.of(float(match.group(1)), unit)

    @property
    def value(self) -> float:
        """Amount expressed in unit_symbol"""
        return self.raw_count_in_base_unit / unit_factor(self.unit_symbol)

    def _with_raw(self, raw: float) -> "Quantity":
        return Quantity(raw_count_in_base_unit=raw, unit_symbol=self.unit_symbol)

    def __add__(self, other: "Quantity") -> "Quantity":
        if not isinstance(other, Quantity):
            return NotImplemented
        return self._with_raw(self.raw_count_in_base_unit + other.raw_count_in_base_unit)

    def __sub__(self, other: "Quantity") -> "Quantity":
        if not isinstance(other, Quantity):
            return NotImplemented
        return self._with_raw(self.raw_count_in_base_unit - other.raw_count_in_base_unit)

    def __mul__(self, factor: float) -> "Quantity":
        if isinstance(factor, Quantity):
            return NotImplemented
        return self._with_raw(self.raw_count_in_base_unit * factor)

    __rmul__ = __mul__

    def __truediv__(self, divisor: float) -> "Quantity":
        if isinstance(divisor, Quantity):
            return NotImplemented
        if divisor == 0:
            raise QuantityDivisionByZeroError(self.unit_symbol)
        return self._with_raw(self.raw_count_in_base_unit / divisor)

    def __str__(self) -> str:
        value = self.value
        formatted = str(int(value)) if float(value).is_integer() else f"{value:g}"
        return f"{formatted} {self.unit_symbol}"

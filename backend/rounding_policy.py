# backend/rounding_policy.py

"""
Rounding Policy - order quantity rules

A policy snaps a requested quantity onto what can actually be ordered:

1) Below minimum order quantity (MOQ)  -> the MOQ, snapped up onto the grid
2) Above maximum (when set)            -> UP fails hard, others clamp to the
                                          maximum snapped down onto the grid
3) First special rule whose range holds -> rule discipline + rule increment
4) Packaging unit                       -> nearest multiple, policy discipline
5) Increment unit (when > 1)            -> re-round step 4 result

A step 4/5 result below the MOQ or above the maximum is treated like steps 1
and 2. The steps repeat until the result is stable.

All multiple-of rounding goes through Decimal so that 0.3 / 0.1 is exactly 3.
"""

from decimal import (
    Decimal,
    ROUND_CEILING,
    ROUND_FLOOR,
    ROUND_HALF_DOWN,
    ROUND_HALF_EVEN,
    ROUND_HALF_UP,
)
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import logging

from pydantic import BaseModel, ConfigDict, Field, model_validator

from quantity_errors import (
    ConfigurationError,
    OrderExceedsMaximumError,
    QuantityRuleViolationError,
    configuration_errors,
)

logger = logging.getLogger(__name__)

# Remainders below this are floating point noise, not a rule violation
REMAINDER_TOLERANCE = 0.001

# Re-rounding passes apply() allows before giving up on a policy
MAX_SETTLE_PASSES = 16


class RoundingDiscipline(str, Enum):
    """Numeric rounding disciplines"""
    UP = "UP"
    DOWN = "DOWN"
    HALF_UP = "HALF_UP"
    HALF_DOWN = "HALF_DOWN"
    HALF_EVEN = "HALF_EVEN"


# Rounding method mapping (applied to value / unit)
ROUNDING_METHODS = {
    RoundingDiscipline.UP: ROUND_CEILING,
    RoundingDiscipline.DOWN: ROUND_FLOOR,
    RoundingDiscipline.HALF_UP: ROUND_HALF_UP,        # ties away from zero
    RoundingDiscipline.HALF_DOWN: ROUND_HALF_DOWN,    # exact .5 rounds down
    RoundingDiscipline.HALF_EVEN: ROUND_HALF_EVEN     # exact .5 goes to the even neighbour
}


def round_to_multiple(value: float, unit: float, discipline: RoundingDiscipline) -> float:
    """
    Round value to a multiple of unit.

    f = value / unit is rounded to an integer with the discipline and scaled
    back. A non-positive unit leaves the value untouched.
    """
    if unit <= 0:
        return value

    decimal_unit = Decimal(str(unit))
    steps = (Decimal(str(value)) / decimal_unit).to_integral_value(
        rounding=ROUNDING_METHODS[RoundingDiscipline(discipline)]
    )
    return float(steps * decimal_unit)


def _remainder(value: float, unit: float) -> float:
    return float(Decimal(str(value)) % Decimal(str(unit)))


# ==================== DATA MODELS ====================

class SpecialRule(BaseModel):
    """Override for quantities inside a closed range"""
    model_config = ConfigDict(frozen=True)

    range_start: float
    range_end: float
    discipline: RoundingDiscipline
    override_increment: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="before")
    @classmethod
    def _unpack_range(cls, data: Any) -> Any:
        # SpecialRule(range=(0, 143.9), ...) is accepted as shorthand
        if isinstance(data, dict) and "range" in data:
            data = dict(data)
            data["range_start"], data["range_end"] = data.pop("range")
        return data

    @model_validator(mode="after")
    def _check_range(self) -> "SpecialRule":
        if self.range_start > self.range_end:
            raise ValueError(f"range_start {self.range_start} is greater than range_end {self.range_end}")
        return self

    def __init__(self, **data):
        with configuration_errors("special rule"):
            super().__init__(**data)

    def contains(self, quantity: float) -> bool:
        return self.range_start <= quantity <= self.range_end


class QuantityValidationResult(BaseModel):
    """Outcome of a check-style validation: never a bare rejection"""
    is_valid: bool
    reason: Optional[str] = None
    suggested_quantity: Optional[float] = None


class RoundingPolicy(BaseModel):
    """
    Commercial rounding policy.

    Orderable quantities lie on a grid: multiples of the packaging unit, or
    of the increment unit when that is the coarser of the two. The minimum
    and maximum are snapped onto the grid (minimum up, maximum down), so
    the smallest quantity apply() hands out is smallest_orderable_quantity
    even when minimum_order_quantity itself is off the grid.

    allow_fractional is carried for callers that present quantities; the
    rounding steps themselves are fully described by the units above.
    """
    model_config = ConfigDict(frozen=True)

    minimum_order_quantity: float = Field(default=1.0, gt=0)
    packaging_unit: float = Field(default=1.0, gt=0)
    discipline: RoundingDiscipline = RoundingDiscipline.UP
    allow_fractional: bool = False
    increment_unit: float = Field(default=1.0, ge=1)
    maximum_order_quantity: Optional[float] = Field(default=None, gt=0)
    special_rules: Tuple[SpecialRule, ...] = ()

    @model_validator(mode="after")
    def _check_bounds(self) -> "RoundingPolicy":
        if self.increment_unit > 1:
            coarse = max(self.packaging_unit, self.increment_unit)
            fine = min(self.packaging_unit, self.increment_unit)
            if _remainder(coarse, fine) > REMAINDER_TOLERANCE:
                raise ValueError(
                    f"packaging_unit {self.packaging_unit} and increment_unit {self.increment_unit} "
                    f"must be multiples of one another"
                )
        if (
            self.maximum_order_quantity is not None
            and self.maximum_order_quantity < self.minimum_order_quantity
        ):
            raise ValueError(
                f"maximum_order_quantity {self.maximum_order_quantity} is below "
                f"minimum_order_quantity {self.minimum_order_quantity}"
            )
        largest = self.largest_orderable_quantity
        if largest is not None and largest < self.smallest_orderable_quantity:
            raise ValueError(
                f"no multiple of {self.grid_unit} lies between minimum_order_quantity "
                f"{self.minimum_order_quantity} and maximum_order_quantity {self.maximum_order_quantity}"
            )
        return self

    def __init__(self, **data):
        with configuration_errors("rounding policy"):
            super().__init__(**data)

    @property
    def grid_unit(self) -> float:
        if self.increment_unit > 1:
            return max(self.packaging_unit, self.increment_unit)
        return self.packaging_unit

    @property
    def smallest_orderable_quantity(self) -> float:
        return round_to_multiple(self.minimum_order_quantity, self.grid_unit, RoundingDiscipline.UP)

    @property
    def largest_orderable_quantity(self) -> Optional[float]:
        if self.maximum_order_quantity is None:
            return None
        return round_to_multiple(self.maximum_order_quantity, self.grid_unit, RoundingDiscipline.DOWN)

    def apply(self, quantity: float) -> float:
        """
        Apply the policy to a quantity.

        The steps are repeated on their own result until it stops moving, so
        a special rule that lands outside its range ends on a quantity the
        policy accepts unchanged: apply(apply(q)) == apply(q).

        Args:
            quantity: Requested quantity (in the unit the policy is attached to)

        Returns:
            Orderable quantity

        Raises:
            OrderExceedsMaximumError: Quantity above maximum under UP discipline
            ConfigurationError: Special rules that keep moving the quantity
        """
        result = self._round_once(quantity)
        for _ in range(MAX_SETTLE_PASSES):
            settled = self._round_once(result)
            if settled == result:
                return result
            logger.debug(f"{result} re-rounded to {settled}")
            result = settled
        raise ConfigurationError(
            f"Rounding policy does not settle on an orderable quantity for {quantity}",
            field="special_rules"
        )

    def _round_once(self, quantity: float) -> float:
        # Step 1: MOQ
        if quantity < self.minimum_order_quantity:
            logger.debug(f"{quantity} below MOQ {self.minimum_order_quantity}, raising to MOQ")
            return self.smallest_orderable_quantity

        # Step 2: Maximum
        maximum = self.maximum_order_quantity
        if maximum is not None and quantity > maximum:
            return self._above_maximum(quantity)

        # Step 3: Special rules (declaration order, first match wins)
        for rule in self.special_rules:
            if rule.contains(quantity):
                increment = rule.override_increment or self.increment_unit
                return round_to_multiple(quantity, increment, rule.discipline)

        # Step 4: Packaging unit
        rounded = round_to_multiple(quantity, self.packaging_unit, self.discipline)

        # Step 5: Increment unit
        if self.increment_unit > 1:
            rounded = round_to_multiple(rounded, self.increment_unit, self.discipline)

        # Rounding down or to nearest may leave the MOQ behind, rounding up may pass the maximum
        if rounded < self.minimum_order_quantity:
            return self.smallest_orderable_quantity
        if maximum is not None and rounded > maximum:
            return self._above_maximum(rounded)
        return rounded

    def _above_maximum(self, quantity: float) -> float:
        largest = self.largest_orderable_quantity
        if self.discipline == RoundingDiscipline.UP:
            raise OrderExceedsMaximumError(quantity, self.maximum_order_quantity, suggested_quantity=largest)
        logger.debug(f"{quantity} above maximum {self.maximum_order_quantity}, clamping to {largest}")
        return largest

    def is_valid_quantity(self, quantity: float) -> QuantityValidationResult:
        """
        Check a quantity against the policy without raising.

        Checks (first violation wins): minimum, maximum, increment remainder,
        packaging remainder, then special rules that would move the quantity.
        suggested_quantity is what apply() would order, or the largest orderable
        quantity where apply() refuses to round up past the maximum.
        """
        if quantity < self.minimum_order_quantity:
            return QuantityValidationResult(
                is_valid=False,
                reason=f"Quantity must be at least {self.minimum_order_quantity}",
                suggested_quantity=self._suggest(quantity)
            )

        maximum = self.maximum_order_quantity
        if maximum is not None and quantity > maximum:
            # apply() refuses to round UP past the maximum; the largest orderable quantity is the answer
            return QuantityValidationResult(
                is_valid=False,
                reason=f"Quantity cannot exceed {maximum}",
                suggested_quantity=self.largest_orderable_quantity
            )

        if self.increment_unit > 1 and _remainder(quantity, self.increment_unit) > REMAINDER_TOLERANCE:
            return QuantityValidationResult(
                is_valid=False,
                reason=f"Quantity must be in increments of {self.increment_unit}",
                suggested_quantity=self._suggest(quantity)
            )

        if self.packaging_unit > 1 and _remainder(quantity, self.packaging_unit) > REMAINDER_TOLERANCE:
            return QuantityValidationResult(
                is_valid=False,
                reason=f"Quantity must be in multiples of packaging unit ({self.packaging_unit})",
                suggested_quantity=self._suggest(quantity)
            )

        suggested = self._suggest(quantity)
        if any(rule.contains(quantity) for rule in self.special_rules) and abs(suggested - quantity) > REMAINDER_TOLERANCE:
            return QuantityValidationResult(
                is_valid=False,
                reason=f"Quantity {quantity} is adjusted by a special rule for its range",
                suggested_quantity=suggested
            )

        return QuantityValidationResult(is_valid=True, suggested_quantity=suggested)

    def _suggest(self, quantity: float) -> float:
        try:
            return self.apply(quantity)
        except OrderExceedsMaximumError as e:
            return e.suggested_quantity

    def validate_or_raise(self, quantity: float) -> float:
        result = self.is_valid_quantity(quantity)
        if not result.is_valid:
            raise QuantityRuleViolationError(result.reason, suggested_quantity=result.suggested_quantity)
        return quantity


# ==================== PRESETS ====================

RETAIL = RoundingPolicy(
    minimum_order_quantity=1.0,
    packaging_unit=1.0,
    discipline=RoundingDiscipline.UP,
    increment_unit=1.0
)

WHOLESALE = RoundingPolicy(
    minimum_order_quantity=12.0,
    packaging_unit=12.0,
    discipline=RoundingDiscipline.UP,
    increment_unit=12.0
)

BULK = RoundingPolicy(
    minimum_order_quantity=144.0,
    packaging_unit=144.0,
    discipline=RoundingDiscipline.UP,
    increment_unit=144.0,
    special_rules=(
        SpecialRule(range_start=0.0, range_end=143.9, discipline=RoundingDiscipline.UP, override_increment=144.0),
    )
)

B2B = RoundingPolicy(
    minimum_order_quantity=100.0,
    packaging_unit=10.0,
    discipline=RoundingDiscipline.HALF_UP,
    increment_unit=10.0,
    maximum_order_quantity=10000.0
)

BEVERAGE_6PACK = RoundingPolicy(
    minimum_order_quantity=6.0,
    packaging_unit=6.0,
    discipline=RoundingDiscipline.UP,
    increment_unit=6.0
)

# Half dozens are accepted on top of full dozens
EGG_DOZEN = RoundingPolicy(
    minimum_order_quantity=12.0,
    packaging_unit=12.0,
    discipline=RoundingDiscipline.UP,
    increment_unit=6.0,
    special_rules=(
        SpecialRule(range_start=0.0, range_end=5.9, discipline=RoundingDiscipline.UP, override_increment=6.0),
    )
)

# 500 sheets = 1 ream
PAPER_REAM = RoundingPolicy(
    minimum_order_quantity=500.0,
    packaging_unit=500.0,
    discipline=RoundingDiscipline.UP,
    increment_unit=500.0
)

PRESET_POLICIES: Dict[str, RoundingPolicy] = {
    "retail": RETAIL,
    "wholesale": WHOLESALE,
    "bulk": BULK,
    "b2b": B2B,
    "beverage": BEVERAGE_6PACK,
    "egg": EGG_DOZEN,
    "paper": PAPER_REAM
}


# ==================== POLICY SELECTION ====================

class PolicyOption(BaseModel):
    policy_name: str
    policy: RoundingPolicy
    result_quantity: float
    waste: float
    waste_percentage: float


class PolicyRecommendation(BaseModel):
    desired_quantity: float
    options: List[PolicyOption]
    recommended: Optional[PolicyOption] = None

    def format(self) -> str:
        lines = [f"Desired quantity: {self.desired_quantity}", "", "Available options:"]
        for option in self.options:
            marker = " [RECOMMENDED]" if option == self.recommended else ""
            lines.append(f"  {option.policy_name}{marker}:")
            lines.append(f"    Result: {option.result_quantity}")
            lines.append(f"    Waste: {option.waste} ({option.waste_percentage:.1f}%)")
        return "\n".join(lines)


class RoundingPolicySelector:
    """Named policies, presets pre-registered (names are case-insensitive)"""

    def __init__(self, register_presets: bool = True):
        self._policies: Dict[str, RoundingPolicy] = {}
        if register_presets:
            for name, policy in PRESET_POLICIES.items():
                self.register(name, policy)

    def register(self, name: str, policy: RoundingPolicy) -> None:
        self._policies[name.lower()] = policy

    def get(self, name: str) -> Optional[RoundingPolicy]:
        return self._policies.get(name.lower())

    @property
    def names(self) -> List[str]:
        return list(self._policies)

    def select_automatic(self, quantity: float, product_type: Optional[str] = None) -> RoundingPolicy:
        """Pick a policy by product type, falling back to quantity bands"""
        if product_type:
            policy = self.get(product_type)
            if policy is not None:
                return policy

        if quantity < 10:
            return RETAIL
        if quantity < 100:
            return WHOLESALE
        if quantity < 1000:
            return B2B
        return BULK

    def find_most_economical(
        self,
        desired_quantity: float,
        policy_names: Optional[List[str]] = None
    ) -> PolicyRecommendation:
        """
        Apply every candidate policy and recommend the one wasting least.

        Policies that refuse the quantity (UP above maximum) are left out.
        """
        options: List[PolicyOption] = []
        for name in policy_names if policy_names is not None else self.names:
            policy = self.get(name)
            if policy is None:
                continue
            try:
                rounded = policy.apply(desired_quantity)
            except QuantityRuleViolationError as e:
                logger.debug(f"Policy '{name}' refused {desired_quantity}: {e.message}")
                continue

            waste = rounded - desired_quantity
            waste_percentage = (waste / desired_quantity) * 100 if desired_quantity > 0 else 0.0
            options.append(PolicyOption(
                policy_name=name.lower(),
                policy=policy,
                result_quantity=rounded,
                waste=waste,
                waste_percentage=waste_percentage
            ))

        options.sort(key=lambda option: option.waste)
        return PolicyRecommendation(
            desired_quantity=desired_quantity,
            options=options,
            recommended=options[0] if options else None
        )

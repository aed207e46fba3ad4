# backend/quantity_errors.py

"""
Quantity Rules Engine - Error Taxonomy

Every error carries a stable error_code, a human message, the offending
field (when there is one) and a severity, so callers can turn them into
structured payloads without string matching.

HARD_ERROR: the request cannot be processed as given.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, Optional

from pydantic import ValidationError as PydanticValidationError


class QuantityRuleError(Exception):
    """Base quantity rules error"""
    def __init__(self, error_code: str, message: str, field: Optional[str] = None, severity: str = "HARD_ERROR"):
        self.error_code = error_code
        self.message = message
        self.field = field
        self.severity = severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "field": self.field,
            "severity": self.severity
        }


# ==================== CONFIGURATION ====================

class ConfigurationError(QuantityRuleError, ValueError):
    """Malformed setup (bad ratios, blank identifiers, unsorted levels)"""
    def __init__(self, message: str, field: Optional[str] = None, error_code: str = "CONFIGURATION_ERROR"):
        super().__init__(error_code, message, field=field, severity="HARD_ERROR")


class ProductNotFoundError(ConfigurationError):
    """No unit configuration registered for the product"""
    def __init__(self, product_id: str):
        super().__init__(
            f"Product configuration not found for '{product_id}'. Register the product before using it.",
            field="product_id",
            error_code="PRODUCT_NOT_FOUND"
        )
        self.product_id = product_id


class ChainNotFoundError(ConfigurationError):
    """Unit chain not registered"""
    def __init__(self, chain_name: str, known_chains: Iterable[str] = ()):
        known = ", ".join(known_chains) or "none"
        super().__init__(
            f"Unit chain '{chain_name}' not found. Registered chains: {known}",
            field="chain_name",
            error_code="CHAIN_NOT_FOUND"
        )
        self.chain_name = chain_name


class InvalidHierarchyError(ConfigurationError):
    """Packaging hierarchy levels are empty or not ascending"""
    def __init__(self, product_id: str, reason: str):
        super().__init__(
            f"Invalid packaging hierarchy for '{product_id}': {reason}",
            field="levels",
            error_code="INVALID_HIERARCHY"
        )


# ==================== LOOKUP ====================

class UnitNotFoundError(QuantityRuleError, LookupError):
    """Unit symbol absent from the scope that was searched"""
    def __init__(self, unit: str, scope: str, known_units: Iterable[str] = ()):
        known = ", ".join(known_units)
        message = f"Unit '{unit}' not found in {scope}."
        if known:
            message += f" Known units: {known}"
        super().__init__("UNKNOWN_UNIT", message, field="unit", severity="HARD_ERROR")
        self.unit = unit
        self.scope = scope


# ==================== BUSINESS RULES ====================

class QuantityRuleViolationError(QuantityRuleError):
    """Quantity breaks a rounding policy rule"""
    def __init__(self, message: str, suggested_quantity: Optional[float] = None, error_code: str = "RULE_VIOLATION"):
        super().__init__(error_code, message, field="quantity", severity="HARD_ERROR")
        self.suggested_quantity = suggested_quantity

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["suggested_quantity"] = self.suggested_quantity
        return payload


class OrderExceedsMaximumError(QuantityRuleViolationError):
    """Rounding up past the maximum order quantity is refused"""
    def __init__(self, quantity: float, maximum: float, suggested_quantity: Optional[float] = None):
        super().__init__(
            f"Quantity {quantity} exceeds maximum order quantity {maximum}",
            suggested_quantity=maximum if suggested_quantity is None else suggested_quantity,
            error_code="ORDER_EXCEEDS_MAXIMUM"
        )
        self.quantity = quantity
        self.maximum = maximum


# ==================== VALUE TYPE ====================

class QuantityParseError(QuantityRuleError, ValueError):
    """Input does not match '<number><unit>'"""
    def __init__(self, text: str):
        super().__init__(
            "PARSE_ERROR",
            f"Invalid quantity format: '{text}'. Expected '<number><unit>', e.g. '12 box'.",
            field="quantity",
            severity="HARD_ERROR"
        )
        self.text = text


class QuantityDivisionByZeroError(QuantityRuleError, ZeroDivisionError):
    """Quantity divided by zero"""
    def __init__(self, unit: str):
        super().__init__(
            "DIVISION_BY_ZERO",
            f"Cannot divide quantity in '{unit}' by zero",
            field="divisor",
            severity="HARD_ERROR"
        )


def configuration_error_from(
    error: PydanticValidationError,
    scope: str,
    error_code: str = "CONFIGURATION_ERROR"
) -> ConfigurationError:
    """First pydantic failure as a ConfigurationError naming the field"""
    first = error.errors()[0] if error.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ())) or None
    return ConfigurationError(
        f"Invalid {scope}: {first.get('msg', str(error))}" + (f" ({location})" if location else ""),
        field=location,
        error_code=error_code
    )


@contextmanager
def configuration_errors(scope: str) -> Iterator[None]:
    """Re-raise pydantic constraint failures as ConfigurationError"""
    try:
        yield
    except PydanticValidationError as e:
        raise configuration_error_from(e, scope) from e

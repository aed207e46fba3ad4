# backend/catalog_loader.py

"""
Catalog loader - product, packaging and chain definitions from JSON

{
  "products": [
    {"product_id": "WIDGET-1", "base_unit": "piece",
     "conversions": [{"unit": "box", "from_value": 1, "to_value": 10}],
     "rounding_policies": {"box": {"minimum_order_quantity": 1, "packaging_unit": 1}}}
  ],
  "packaging_hierarchies": [
    {"product_id": "WIDGET-1", "base_unit": "piece",
     "levels": [{"symbol": "piece", "display_name": "piece", "units_per_package": 1}]}
  ],
  "chains": [
    {"name": "Crates", "units": [{"symbol": "bottle", "display_name": "bottle",
                                  "factor_relative_to_previous": 1}]}
  ]
}

The definition models double as request bodies for the HTTP API.
"""

from pathlib import Path
from typing import Any, Dict, List, Union
import logging

from pydantic import BaseModel, Field

from packaging_decomposer import PackagingHierarchy, PackagingLevel
from quantity_conversion_service import QuantityConversionService
from quantity_errors import ConfigurationError, configuration_errors
from rounding_policy import RoundingPolicy
from unit_chain_converter import ChainUnit, UnitChain
from unit_conversion_graph import UnitConversionGraph

logger = logging.getLogger(__name__)


class ConversionDefinition(BaseModel):
    unit: str = Field(min_length=1)
    from_value: float = Field(gt=0)
    to_value: float = Field(gt=0)


class ProductDefinition(BaseModel):
    product_id: str = Field(min_length=1)
    base_unit: str = Field(min_length=1)
    conversions: List[ConversionDefinition] = []
    rounding_policies: Dict[str, RoundingPolicy] = {}

    def to_graph(self) -> UnitConversionGraph:
        return UnitConversionGraph.from_pairs(
            self.product_id,
            self.base_unit,
            [(conversion.unit, (conversion.from_value, conversion.to_value)) for conversion in self.conversions],
            self.rounding_policies
        )


class HierarchyDefinition(BaseModel):
    product_id: str = Field(min_length=1)
    levels: List[PackagingLevel]
    base_unit: str = "piece"

    def to_hierarchy(self) -> PackagingHierarchy:
        return PackagingHierarchy(product_id=self.product_id, levels=self.levels, base_unit=self.base_unit)


class ChainDefinition(BaseModel):
    name: str = Field(min_length=1)
    units: List[ChainUnit]

    def to_chain(self) -> UnitChain:
        return UnitChain(name=self.name, units=self.units)


class Catalog(BaseModel):
    products: List[ProductDefinition] = []
    packaging_hierarchies: List[HierarchyDefinition] = []
    chains: List[ChainDefinition] = []


def load_catalog(source: Union[str, Path, Dict[str, Any]]) -> Catalog:
    """
    Parse a catalog from a JSON file path or an already-decoded dict.

    Raises:
        ConfigurationError: Missing file, malformed JSON or invalid definitions
    """
    if isinstance(source, dict):
        with configuration_errors("catalog"):
            return Catalog.model_validate(source)

    path = Path(source)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read quantity catalog '{path}': {e}", field="catalog_path") from e

    with configuration_errors(f"catalog '{path}'"):
        return Catalog.model_validate_json(text)


def apply_catalog(service: QuantityConversionService, catalog: Catalog) -> None:
    """Register every definition; products before their hierarchies"""
    for product in catalog.products:
        service.register_product(product.to_graph())
    for hierarchy in catalog.packaging_hierarchies:
        service.register_packaging_hierarchy(hierarchy.product_id, hierarchy.to_hierarchy())
    for chain in catalog.chains:
        service.register_chain(chain.to_chain())

    logger.info(
        f"Catalog applied: {len(catalog.products)} products, "
        f"{len(catalog.packaging_hierarchies)} packaging hierarchies, {len(catalog.chains)} chains"
    )


def load_catalog_into(service: QuantityConversionService, source: Union[str, Path, Dict[str, Any]]) -> Catalog:
    catalog = load_catalog(source)
    apply_catalog(service, catalog)
    return catalog

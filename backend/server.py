from fastapi import FastAPI, APIRouter, HTTPException, Depends
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import os
import logging
from contextlib import contextmanager
from pathlib import Path
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from typing import List
from datetime import datetime, timezone

from catalog_loader import ChainDefinition, ProductDefinition, load_catalog_into
from packaging_decomposer import PackagingHierarchy, PackagingLevel
from quantity import Quantity
from quantity_conversion_service import QuantityConversionService
from quantity_errors import (
    ChainNotFoundError,
    ConfigurationError,
    ProductNotFoundError,
    QuantityRuleError,
    QuantityRuleViolationError,
    UnitNotFoundError,
    configuration_error_from,
)
from rounding_policy import RoundingPolicy
from unit_chain_converter import DEFAULT_CHAINS, UnitChain

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
QUANTITY_CATALOG_PATH = os.environ.get('QUANTITY_CATALOG_PATH')
REGISTER_DEFAULT_CHAINS = os.environ.get('REGISTER_DEFAULT_CHAINS', 'true').strip().lower() in ('1', 'true', 'yes')

# One service per process; endpoints receive it through get_service
quantity_service = QuantityConversionService()


def get_service() -> QuantityConversionService:
    return quantity_service


app = FastAPI(title="Quantity Rules Engine")

# ==================== CORS CONFIGURATION (MUST BE FIRST) ====================
# Default allowed origins for local development
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:3001",
    "http://127.0.0.1:3001",
]

cors_origins_env = os.environ.get('CORS_ORIGINS', '')
if cors_origins_env:
    cors_origins = [origin.strip() for origin in cors_origins_env.split(',') if origin.strip()]
else:
    cors_origins = DEFAULT_CORS_ORIGINS

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=cors_origins,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "Accept",
        "Origin",
    ],
    max_age=600,  # Cache preflight for 10 minutes
)

# ==================== HEALTH ENDPOINT (ROOT LEVEL) ====================
@app.get("/api/health")
async def health_check():
    """Health check endpoint for monitoring and CORS verification"""
    return {
        "ok": True,
        "time": datetime.now(timezone.utc).isoformat(),
        "service": "Quantity Rules Engine API",
        "version": "1.0.0"
    }


api_router = APIRouter(prefix="/api")


# ==================== ERROR MAPPING ====================

def status_for(error: QuantityRuleError) -> int:
    if isinstance(error, (UnitNotFoundError, ProductNotFoundError, ChainNotFoundError)):
        return 404
    if isinstance(error, QuantityRuleViolationError):
        return 422
    # ConfigurationError, parse and arithmetic errors
    return 400


@contextmanager
def http_errors(action: str):
    """Translate engine errors raised inside the block into HTTPException"""
    try:
        yield
    except HTTPException:
        raise
    except QuantityRuleError as e:
        logger.warning(f"Rejected request to {action}: [{e.error_code}] {e.message}")
        raise HTTPException(status_code=status_for(e), detail=e.to_dict())
    except PydanticValidationError as e:
        # Values the request models let through but a domain model refuses
        error = configuration_error_from(e, "request", error_code="VALIDATION_ERROR")
        logger.warning(f"Rejected request to {action}: [{error.error_code}] {error.message}")
        raise HTTPException(status_code=400, detail=error.to_dict())
    except Exception as e:
        logger.error(f"Failed to {action}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to {action}")


# ==================== REQUEST MODELS ====================

class HierarchyUpdate(BaseModel):
    levels: List[PackagingLevel]
    base_unit: str = "piece"


class ConvertRequest(BaseModel):
    quantity: str  # "12 box"
    target_unit: str = Field(min_length=1)


class QuantityRequest(BaseModel):
    quantity: str


class AvailabilityRequest(BaseModel):
    requested: str
    available: str


class RoundingRequest(BaseModel):
    policy: RoundingPolicy = RoundingPolicy()
    quantity: float


class ChainConvertRequest(BaseModel):
    value: float
    from_unit: str = Field(min_length=1)
    to_unit: str = Field(min_length=1)


class ChainSuggestRequest(BaseModel):
    quantity: float = Field(ge=0)


def quantity_payload(quantity: Quantity) -> dict:
    return {
        "value": quantity.value,
        "unit": quantity.unit_symbol,
        "raw_count_in_base_unit": quantity.raw_count_in_base_unit,
        "display": str(quantity)
    }


def chain_payload(chain: UnitChain) -> dict:
    return {
        "name": chain.name,
        "units": [
            {**unit.model_dump(), "cumulative_factor": chain.cumulative_factor(index)}
            for index, unit in enumerate(chain.units)
        ]
    }


# ==================== PRODUCT ROUTES ====================

@api_router.post("/products")
async def register_product(data: ProductDefinition, service: QuantityConversionService = Depends(get_service)):
    with http_errors("register product"):
        graph = data.to_graph()
        service.register_product(graph)
        return graph.to_dict()


@api_router.get("/products/{product_id}")
async def get_product(product_id: str, service: QuantityConversionService = Depends(get_service)):
    with http_errors("get product"):
        graph = service.get_product(product_id)
        hierarchy = service.get_packaging_hierarchy(product_id)
        return {
            **graph.to_dict(),
            "packaging_hierarchy": hierarchy.model_dump() if hierarchy else None
        }


@api_router.put("/products/{product_id}/packaging-hierarchy")
async def set_packaging_hierarchy(
    product_id: str,
    data: HierarchyUpdate,
    service: QuantityConversionService = Depends(get_service)
):
    with http_errors("register packaging hierarchy"):
        hierarchy = PackagingHierarchy(product_id=product_id, levels=data.levels, base_unit=data.base_unit)
        service.register_packaging_hierarchy(product_id, hierarchy)
        return hierarchy.model_dump()


@api_router.post("/products/{product_id}/convert")
async def convert_quantity(
    product_id: str,
    data: ConvertRequest,
    service: QuantityConversionService = Depends(get_service)
):
    with http_errors("convert quantity"):
        source = Quantity.parse(data.quantity)
        converted = service.convert(product_id, source, data.target_unit)
        return {
            "product_id": product_id,
            "source": quantity_payload(source),
            "result": quantity_payload(converted)
        }


@api_router.post("/products/{product_id}/packaging-suggestion")
async def packaging_suggestion(
    product_id: str,
    data: QuantityRequest,
    service: QuantityConversionService = Depends(get_service)
):
    with http_errors("suggest packaging"):
        suggestion = service.suggest_optimal_packaging(product_id, Quantity.parse(data.quantity))
        return {
            **suggestion.model_dump(),
            "display": suggestion.optimal.format() if suggestion.optimal else None
        }


@api_router.post("/products/{product_id}/availability")
async def check_availability(
    product_id: str,
    data: AvailabilityRequest,
    service: QuantityConversionService = Depends(get_service)
):
    with http_errors("check availability"):
        result = service.check_availability(
            product_id,
            Quantity.parse(data.requested),
            Quantity.parse(data.available)
        )
        return {
            "can_fulfill": result.can_fulfill,
            "requested": quantity_payload(result.requested),
            "available": quantity_payload(result.available),
            "requested_base": result.requested_base,
            "available_base": result.available_base,
            "shortage": quantity_payload(result.shortage) if result.shortage else None,
            "alternatives": [
                {
                    "description": option.description,
                    "quantity": quantity_payload(option.quantity),
                    "coverage": option.coverage
                }
                for option in result.alternatives
            ]
        }


# ==================== ROUNDING ROUTES ====================

@api_router.post("/rounding/apply")
async def apply_rounding(data: RoundingRequest):
    with http_errors("apply rounding policy"):
        return {"quantity": data.quantity, "result": data.policy.apply(data.quantity)}


@api_router.post("/rounding/validate")
async def validate_rounding(data: RoundingRequest):
    with http_errors("validate quantity"):
        return data.policy.is_valid_quantity(data.quantity).model_dump()


# ==================== CHAIN ROUTES ====================

@api_router.get("/chains")
async def list_chains(service: QuantityConversionService = Depends(get_service)):
    return [chain_payload(chain) for chain in service.chain_registry.chains()]


@api_router.post("/chains")
async def register_chain(data: ChainDefinition, service: QuantityConversionService = Depends(get_service)):
    with http_errors("register unit chain"):
        chain = data.to_chain()
        service.register_chain(chain)
        return chain_payload(chain)


@api_router.post("/chains/suggest")
async def suggest_chain_unit(data: ChainSuggestRequest, service: QuantityConversionService = Depends(get_service)):
    with http_errors("suggest unit"):
        suggestion = service.suggest_optimal_unit(data.quantity)
        return {
            **suggestion.model_dump(),
            "display": suggestion.recommended.format() if suggestion.recommended else None
        }


@api_router.post("/chains/{chain_name}/convert")
async def convert_in_chain(
    chain_name: str,
    data: ChainConvertRequest,
    service: QuantityConversionService = Depends(get_service)
):
    with http_errors("convert in chain"):
        source = Quantity.of(data.value, data.from_unit)
        result = service.chain_converter.convert(data.value, data.from_unit, data.to_unit, chain_name)
        fractional = service.to_fractional_representation(source, data.to_unit, chain_name)
        return {
            "chain_name": chain_name,
            "value": data.value,
            "from_unit": data.from_unit,
            "to_unit": data.to_unit,
            "result": result,
            "display": fractional.display_value
        }


# Include the router in the main app
app.include_router(api_router)

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@app.on_event("startup")
async def startup_event():
    logger.info(f"CORS origins: {cors_origins}")
    if REGISTER_DEFAULT_CHAINS:
        for chain in DEFAULT_CHAINS:
            quantity_service.register_chain(chain)
    if QUANTITY_CATALOG_PATH:
        catalog_path = Path(QUANTITY_CATALOG_PATH)
        if not catalog_path.is_absolute():
            catalog_path = ROOT_DIR / catalog_path
        try:
            load_catalog_into(quantity_service, catalog_path)
        except ConfigurationError as e:
            logger.error(f"Failed to load quantity catalog: {e.message}")
            raise

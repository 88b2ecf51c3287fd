"""
Product catalog API endpoints.
Public listing, search and pricing; admin product management and marketplace sync.
"""

import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from storefront.api.deps import (
    get_catalog,
    get_promotions,
    get_recommendations,
    require_admin,
    unwrap,
)
from storefront.core.config import Settings, get_settings
from storefront.models.user import ActivityAction
from storefront.schemas.product import (
    CatalogStats,
    ProductCreate,
    ProductFilter,
    ProductListResponse,
    ProductResponse,
    ProductUpdate,
    SyncReport,
)
from storefront.schemas.promotion import PriceQuote
from storefront.services.catalog import CatalogService
from storefront.services.marketplace_client import MarketplaceClient
from storefront.services.promotions import PromotionEngine
from storefront.services.recommendation import RecommendationEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["Products"])


@router.get("", response_model=ProductListResponse)
async def list_products(
    type: Optional[str] = Query(None, description="Product type"),
    price_min: Optional[Decimal] = Query(None, ge=0),
    price_max: Optional[Decimal] = Query(None, ge=0),
    rank: Optional[str] = None,
    skins_min: Optional[int] = Query(None, ge=0),
    region: Optional[str] = None,
    order_by: Optional[str] = Query(None, pattern="^(price|date|views)$"),
    order_direction: str = Query("desc", pattern="^(asc|desc)$"),
    limit: int = Query(100, ge=1, le=500),
    catalog: CatalogService = Depends(get_catalog),
):
    """List available products with optional filters."""
    filters = ProductFilter(
        type=type,
        price_min=price_min,
        price_max=price_max,
        rank=rank,
        skins_min=skins_min,
        region=region,
        order_by=order_by,
        order_direction=order_direction,
    )
    products = catalog.get_available_products(limit=limit, filters=filters)
    return ProductListResponse(products=products, total=len(products))


@router.get("/search", response_model=ProductListResponse)
async def search_products(
    q: str = Query(..., description="At least 3 characters"),
    limit: int = Query(20, ge=1, le=100),
    catalog: CatalogService = Depends(get_catalog),
):
    products = [ProductResponse.model_validate(p) for p in catalog.search_products(q, limit)]
    return ProductListResponse(products=products, total=len(products))


@router.get("/stats", response_model=CatalogStats)
async def catalog_stats(catalog: CatalogService = Depends(get_catalog)):
    return catalog.catalog_stats()


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str,
    user_id: Optional[str] = Query(None, description="Viewer; records a PRODUCT_VIEW"),
    catalog: CatalogService = Depends(get_catalog),
    recommendations: RecommendationEngine = Depends(get_recommendations),
):
    product = catalog.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")

    if user_id:
        recommendations.record_interaction(user_id, ActivityAction.PRODUCT_VIEW, {
            "product_id": product.id,
            "product_type": product.type,
        })
    return product


@router.get("/{product_id}/similar", response_model=ProductListResponse)
async def similar_products(
    product_id: str,
    limit: int = Query(3, ge=1, le=20),
    recommendations: RecommendationEngine = Depends(get_recommendations),
):
    products = recommendations.get_similar_products(product_id, limit)
    return ProductListResponse(products=products, total=len(products))


@router.get("/{product_id}/price", response_model=PriceQuote)
async def product_price(
    product_id: str,
    promo_code: Optional[str] = None,
    catalog: CatalogService = Depends(get_catalog),
    promotions: PromotionEngine = Depends(get_promotions),
):
    """Price after the best applicable promotion."""
    product = catalog.find(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    return promotions.resolve_price(product.id, product.price, product.type, promo_code)


# ─── Admin ──────────────────────────────────────────────────────────

@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    data: ProductCreate,
    admin_id: str = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
):
    return unwrap(catalog.create_product(data, admin_id))


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: str,
    changes: ProductUpdate,
    admin_id: str = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
):
    return unwrap(catalog.update_product(product_id, changes, admin_id))


@router.post("/sync", response_model=SyncReport)
async def sync_marketplace(
    admin_id: str = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog),
    settings: Settings = Depends(get_settings),
):
    """Pull listings from the external marketplace."""
    if not settings.LZT_ENABLED:
        return SyncReport(success=False, message="Marketplace sync is disabled")

    logger.info(f"[LZT SYNC] Triggered by {admin_id}")
    with MarketplaceClient(settings) as client:
        return catalog.sync_marketplace(client)

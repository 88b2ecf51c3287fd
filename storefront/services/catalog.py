"""
Product Catalog Service.

Listing, lookup, search and stats over the products table, plus the
conditional mark-sold used by payment approval and the marketplace sync.

Cache keys:
- products:all     unfiltered available listing
- product:<id>     single product lookups
Both are invalidated synchronously on every mutation.
"""

import logging
import random
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.core.config import Settings, get_settings
from storefront.core.encoding import to_jsonable
from storefront.core.redis import Cache
from storefront.core.results import ErrorKind, Result
from storefront.models.audit import AuditCategory, AuditSeverity, AuditStatus
from storefront.models.product import Product, ProductOrigin
from storefront.schemas.product import (
    CatalogStats,
    PriceStats,
    ProductCreate,
    ProductFilter,
    ProductResponse,
    ProductUpdate,
    SyncReport,
    TypeCount,
)
from storefront.services.audit_logger import AuditLogger
from storefront.services.marketplace_client import MarketplaceClient, MarketplaceError, as_int, map_details

logger = logging.getLogger(__name__)

PRODUCTS_KEY = "products:all"
PRODUCT_KEY_PREFIX = "product:"

MIN_SEARCH_LENGTH = 3


def product_key(product_id: str) -> str:
    return f"{PRODUCT_KEY_PREFIX}{product_id}"


def _matches_details(product: Product, filters: ProductFilter) -> bool:
    details = product.details or {}
    if filters.rank and details.get("rank") != filters.rank:
        return False
    if filters.skins_min is not None and as_int(details.get("skins")) < filters.skins_min:
        return False
    if filters.region and details.get("region") != filters.region:
        return False
    return True


class CatalogService:

    def __init__(
        self,
        db: Session,
        cache: Cache,
        audit: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.cache = cache
        self.settings = settings or get_settings()
        self.audit = audit or AuditLogger(db, self.settings)

    def invalidate(self, product_id: Optional[str] = None) -> None:
        self.cache.delete(PRODUCTS_KEY)
        if product_id:
            self.cache.delete(product_key(product_id))

    # ─── Reads ──────────────────────────────────────────────────────

    def find(self, product_id: str) -> Optional[Product]:
        """Uncached ORM lookup for callers that need the live row."""
        return self.db.get(Product, product_id)

    def get_product(self, product_id: str, count_view: bool = True) -> Optional[ProductResponse]:
        """
        Cached lookup. Each call counts a view; a cached record may show a
        view count up to PRODUCTS_CACHE_TTL old.
        """
        if count_view:
            try:
                self.db.execute(
                    update(Product)
                    .where(Product.id == product_id)
                    .values(views=Product.views + 1)
                    .execution_options(synchronize_session=False)
                )
                self.db.commit()
            except SQLAlchemyError as e:
                logger.warning(f"View counter update failed for {product_id}: {e}")
                self.db.rollback()

        cached = self.cache.get(product_key(product_id))
        if cached is not None:
            return ProductResponse.model_validate(cached)

        product = self.db.get(Product, product_id)
        if product is None:
            return None

        self.db.refresh(product)
        response = ProductResponse.model_validate(product)
        self.cache.set(product_key(product_id), response.model_dump(mode="json"), ttl=self.settings.PRODUCTS_CACHE_TTL)
        return response

    def _query(self, filters: ProductFilter, available_only: bool = True) -> list[Product]:
        query = self.db.query(Product)
        if available_only:
            query = query.filter(Product.available.is_(True), Product.sold.is_(False))
        if filters.type:
            query = query.filter(Product.type == filters.type.lower())
        if filters.price_min is not None:
            query = query.filter(Product.price >= filters.price_min)
        if filters.price_max is not None:
            query = query.filter(Product.price <= filters.price_max)

        ascending = filters.order_direction == "asc"
        if filters.order_by == "price":
            order = Product.price.asc() if ascending else Product.price.desc()
        elif filters.order_by == "date":
            order = Product.created_at.asc() if ascending else Product.created_at.desc()
        elif filters.order_by == "views":
            order = Product.views.desc()
        else:
            order = Product.created_at.desc()

        # rank / skins / region live in the JSON details column
        return [p for p in query.order_by(order).all() if _matches_details(p, filters)]

    def get_available_products(self, limit: int = 100, filters: Optional[ProductFilter] = None) -> list[ProductResponse]:
        """Available, unsold products. The unfiltered listing is cached."""
        filters = filters or ProductFilter()
        unfiltered = filters.is_empty()

        if unfiltered:
            cached = self.cache.get(PRODUCTS_KEY)
            if cached is not None:
                return [ProductResponse.model_validate(item) for item in cached[:limit]]

        products = [ProductResponse.model_validate(p) for p in self._query(filters)]

        if unfiltered:
            self.cache.set(
                PRODUCTS_KEY,
                [p.model_dump(mode="json") for p in products],
                ttl=self.settings.PRODUCTS_CACHE_TTL,
            )

        return products[:limit]

    def find_products(self, filters: ProductFilter, available_only: bool = True) -> list[Product]:
        """Uncached filtered query over the live rows."""
        return self._query(filters, available_only=available_only)

    def get_all_products(self) -> list[Product]:
        return self.db.query(Product).order_by(Product.created_at.desc()).all()

    def search_products(self, text: str, limit: int = 20) -> list[Product]:
        """Case-insensitive match on name, description, type and rank."""
        if not text or len(text.strip()) < MIN_SEARCH_LENGTH:
            return []

        needle = text.strip().lower()
        results = []
        for product in self._query(ProductFilter()):
            haystack = [
                product.name,
                product.description,
                product.type,
                str((product.details or {}).get("rank", "")),
            ]
            if any(needle in (field or "").lower() for field in haystack):
                results.append(product)
                if len(results) >= limit:
                    break
        return results

    def catalog_stats(self) -> CatalogStats:
        listed = self.db.query(Product).filter(Product.available.is_(True), Product.sold.is_(False))

        by_type = (
            listed.with_entities(Product.type, func.count(Product.id))
            .group_by(Product.type)
            .order_by(func.count(Product.id).desc())
            .all()
        )
        avg_price, min_price, max_price = listed.with_entities(
            func.avg(Product.price), func.min(Product.price), func.max(Product.price)
        ).one()

        return CatalogStats(
            total_available=listed.count(),
            by_type=[TypeCount(type=t, count=c) for t, c in by_type],
            prices=PriceStats(
                average=float(avg_price or 0),
                minimum=float(min_price or 0),
                maximum=float(max_price or 0),
            ),
            most_viewed=[ProductResponse.model_validate(p) for p in listed.order_by(Product.views.desc()).limit(5).all()],
            most_recent=[ProductResponse.model_validate(p) for p in listed.order_by(Product.created_at.desc()).limit(5).all()],
        )

    # ─── Writes ─────────────────────────────────────────────────────

    def create_product(
        self,
        data: ProductCreate,
        admin_id: Optional[str] = None,
        origin: str = ProductOrigin.MANUAL,
        origin_id: Optional[str] = None,
    ) -> Result[Product]:
        now = datetime.now()
        product_type = data.type.lower()
        product = Product(
            name=data.name or f"{product_type} #{random.randint(0, 9999)}",
            type=product_type,
            price=data.price,
            description=data.description,
            details=to_jsonable(data.details),
            available=data.available,
            sold=False,
            views=0,
            created_at=now,
            updated_at=now,
            created_by=admin_id,
            origin=origin,
            origin_id=origin_id,
            images=list(data.images),
        )

        try:
            self.db.add(product)
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to create product: {e}")
            self.db.rollback()
            return Result.failure(ErrorKind.DEPENDENCY_UNAVAILABLE, "Could not create product")

        self.invalidate()
        self.audit.log(
            "PRODUCT_CREATED", AuditCategory.PRODUCT, AuditSeverity.INFO, AuditStatus.SUCCESS,
            user_id=admin_id,
            product_id=product.id,
            product_name=product.name,
            product_price=product.price,
            details={"type": product.type, "origin": origin},
        )
        logger.info(f"New product created: {product.id}")
        return Result.success(product)

    def update_product(self, product_id: str, changes: ProductUpdate, admin_id: Optional[str] = None) -> Result[Product]:
        product = self.db.get(Product, product_id)
        if product is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Product not found")

        fields = changes.model_dump(exclude_unset=True)
        if fields.get("available") and product.sold:
            return Result.failure(ErrorKind.INVALID_STATE, "A sold product cannot be made available again")

        try:
            for name, value in fields.items():
                setattr(product, name, to_jsonable(value) if name == "details" else value)
            product.updated_at = datetime.now()
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to update product {product_id}: {e}")
            self.db.rollback()
            return Result.failure(ErrorKind.DEPENDENCY_UNAVAILABLE, "Could not update product")

        self.invalidate(product_id)
        self.audit.log(
            "PRODUCT_UPDATED", AuditCategory.PRODUCT, AuditSeverity.INFO, AuditStatus.SUCCESS,
            user_id=admin_id,
            product_id=product_id,
            product_name=product.name,
            product_price=product.price,
            details={"updated_fields": sorted(fields)},
        )
        logger.info(f"Product {product_id} updated")
        return Result.success(product)

    def mark_sold(self, product_id: str, buyer_id: str, commit: bool = True) -> Result[None]:
        """
        Conditional available→sold. Only one caller can win for a product.
        With commit=False the update joins the caller's transaction.
        """
        now = datetime.now()
        sold = self.db.execute(
            update(Product)
            .where(
                Product.id == product_id,
                Product.available.is_(True),
                Product.sold.is_(False),
            )
            .values(available=False, sold=True, sold_at=now, buyer_id=buyer_id, updated_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount

        if not sold:
            if self.db.get(Product, product_id) is None:
                return Result.failure(ErrorKind.NOT_FOUND, "Product not found")
            return Result.failure(ErrorKind.ALREADY_SOLD, "Product is no longer available")

        if commit:
            try:
                self.db.commit()
            except SQLAlchemyError as e:
                logger.error(f"Failed to mark product {product_id} as sold: {e}")
                self.db.rollback()
                return Result.failure(ErrorKind.DEPENDENCY_UNAVAILABLE, "Could not mark product as sold")

        self.invalidate(product_id)
        logger.info(f"Product {product_id} marked as sold to {buyer_id}")
        return Result.success()

    # ─── Marketplace sync ───────────────────────────────────────────

    def sync_marketplace(self, client: MarketplaceClient) -> SyncReport:
        """Upsert marketplace listings by (origin=LZT, origin_id)."""
        logger.info("[LZT SYNC] Starting marketplace sync")
        self.audit.log("LZT_SYNC_STARTED", AuditCategory.INTEGRATION, AuditSeverity.INFO, AuditStatus.SUCCESS)

        try:
            response = client.get_products({"status": "available", "limit": 100})
        except MarketplaceError as e:
            self.audit.log(
                "LZT_SYNC_FAILED", AuditCategory.INTEGRATION, AuditSeverity.ERROR, AuditStatus.ERROR,
                details={"message": str(e)},
            )
            return SyncReport(success=False, errors=1, message=str(e))

        items = response.get("data") if isinstance(response, dict) else None
        if not isinstance(items, list):
            logger.error("[LZT SYNC] Invalid response format from marketplace")
            self.audit.log(
                "LZT_SYNC_FAILED", AuditCategory.INTEGRATION, AuditSeverity.ERROR, AuditStatus.ERROR,
                details={"message": "Invalid response format"},
            )
            return SyncReport(success=False, errors=1, message="Invalid response format")

        added = updated = errors = 0
        for item in items:
            try:
                if self._upsert_listing(item):
                    added += 1
                else:
                    updated += 1
                self.db.commit()
            except (SQLAlchemyError, KeyError, TypeError, ValueError) as e:
                logger.error(f"[LZT SYNC] Failed to process item {item.get('id')}: {e}")
                self.db.rollback()
                errors += 1

        self.invalidate()
        logger.info(f"[LZT SYNC] Done: {added} added, {updated} updated, {errors} errors")
        self.audit.log(
            "LZT_SYNC_COMPLETED", AuditCategory.INTEGRATION, AuditSeverity.INFO, AuditStatus.SUCCESS,
            details={"added": added, "updated": updated, "errors": errors},
        )
        return SyncReport(success=True, added=added, updated=updated, errors=errors)

    def _upsert_listing(self, item: dict) -> bool:
        """Apply one marketplace item. Returns True when a product was created."""
        origin_id = str(item["id"])
        product_type = (item.get("type") or "valorant").lower()
        name = item.get("title") or f"{product_type.capitalize()} account"
        price = Decimal(str(item.get("price") or 0))
        now = datetime.now()

        product = (
            self.db.query(Product)
            .filter(Product.origin == ProductOrigin.LZT, Product.origin_id == origin_id)
            .first()
        )

        if product is None:
            self.db.add(Product(
                name=name,
                type=product_type,
                price=price,
                description=item.get("description") or "",
                details=to_jsonable(map_details(item)),
                available=item.get("status") == "available",
                sold=False,
                created_at=now,
                updated_at=now,
                origin=ProductOrigin.LZT,
                origin_id=origin_id,
                images=list(item.get("images") or []),
            ))
            return True

        product.name = name
        product.price = price
        product.description = item.get("description") or ""
        # Never resurrect a product sold here
        product.available = item.get("status") == "available" and not product.sold
        product.updated_at = now
        if item.get("details"):
            product.details = to_jsonable({**(product.details or {}), **map_details(item)})
        if isinstance(item.get("images"), list):
            product.images = item["images"]
        self.invalidate(product.id)
        return False

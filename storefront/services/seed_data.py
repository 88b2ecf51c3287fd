"""
Database Seed Script.

Seeds a small demo storefront:
- 3 buyer profiles with different preferences
- 12 game accounts across valorant, lol and fortnite with realistic details
- 1 running season promotion on valorant accounts
"""

import random
import logging
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from storefront.models.product import Product, ProductOrigin
from storefront.models.promotion import Promotion
from storefront.models.user import User, default_preferences

logger = logging.getLogger(__name__)

# Fixed ids for a deterministic demo
BUYERS = {
    "casual_buyer": {
        "user_id": "100000000000000001",
        "username": "lucas.gamer",
        "preferences": {"categories": ["valorant"], "price_range": [50, 200]},
    },
    "collector": {
        "user_id": "100000000000000002",
        "username": "ana_skins",
        "preferences": {"categories": ["valorant", "lol"], "price_range": [150, 600]},
    },
    "new_buyer": {
        "user_id": "100000000000000003",
        "username": "pedro",
        "preferences": {},
    },
}

PRODUCT_TYPES = {
    "valorant": {
        "ranks": ["Iron", "Bronze", "Silver", "Gold", "Platinum", "Diamond", "Ascendant", "Immortal"],
        "price_range": (39.90, 549.90),
        "skins_range": (0, 60),
        "regions": ["BR", "NA", "EU"],
    },
    "lol": {
        "ranks": ["Iron", "Bronze", "Silver", "Gold", "Platinum", "Emerald", "Diamond"],
        "price_range": (29.90, 399.90),
        "skins_range": (5, 150),
        "regions": ["BR", "LAN", "NA"],
    },
    "fortnite": {
        "ranks": ["Unranked"],
        "price_range": (19.90, 249.90),
        "skins_range": (10, 200),
        "regions": ["BR", "NA"],
    },
}

PRODUCTS_PER_TYPE = 4


def seed_database(db: Session) -> None:
    """
    Seeds buyers, products and a promotion.
    Skips seeding if products already exist.
    """
    existing = db.query(Product).count()
    if existing > 0:
        logger.info(f"Database already has {existing} products, skipping seed")
        return

    logger.info("Seeding database with demo storefront data...")
    random.seed(42)  # Deterministic for demo reproducibility
    now = datetime.now()

    for config in BUYERS.values():
        db.add(User(
            user_id=config["user_id"],
            username=config["username"],
            preferences={**default_preferences(), **config["preferences"]},
            created_at=now,
            last_active=now,
        ))

    for product_type, config in PRODUCT_TYPES.items():
        _generate_products(db, product_type, config, now)

    db.add(Promotion(
        title="Valorant Season Sale",
        description="10% off every Valorant account",
        type="season",
        discount=10.0,
        start_date=now,
        end_date=now + timedelta(hours=72),
        duration_hours=72,
        active=True,
        created_by="seed",
        product_ids=[],
        categories=["valorant"],
        created_at=now,
        updated_at=now,
    ))

    db.commit()
    logger.info("Database seeded successfully")


def _generate_products(db: Session, product_type: str, config: dict, now: datetime) -> None:
    """Generate listed accounts of one type."""
    price_min, price_max = config["price_range"]
    skins_min, skins_max = config["skins_range"]

    for i in range(PRODUCTS_PER_TYPE):
        rank = random.choice(config["ranks"])
        skins = random.randint(skins_min, skins_max)
        created = now - timedelta(days=random.uniform(0, 20))

        db.add(Product(
            name=f"{product_type.capitalize()} {rank} #{i + 1}",
            type=product_type,
            price=Decimal(str(round(random.uniform(price_min, price_max), 2))),
            description=f"{rank} account with {skins} skins",
            details={
                "rank": rank,
                "skins": skins,
                "level": random.randint(20, 300),
                "region": random.choice(config["regions"]),
                "verification": random.random() < 0.7,
            },
            available=True,
            sold=False,
            views=random.randint(0, 250),
            created_at=created,
            updated_at=created,
            origin=ProductOrigin.MANUAL,
            images=[],
        ))

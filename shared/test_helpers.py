"""
Test helper functions and factory methods for the catalog service.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from service_catalog.app.catalog.models import Product, ProductCategory, ProductImage, ProductStatus
from service_catalog.app.catalog.repository import CatalogRepository


def days_ago(days: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


class CatalogDataFactory:
    """Factory for creating catalog test data."""

    @staticmethod
    def create_product(
        name: str = "Test Product",
        category: ProductCategory = ProductCategory.WOODWORKING,
        status: ProductStatus = ProductStatus.AVAILABLE,
        is_public: bool = True,
        price: Optional[Decimal] = Decimal("100.00"),
        quantity: int = 1,
        description: str = "Test Description",
        created_at: Optional[datetime] = None,
        image_urls: Optional[List[str]] = None
    ) -> Product:
        """Create an unsaved product; the first image URL is the primary one."""
        images = [
            ProductImage(image_url=url, is_primary=index == 0)
            for index, url in enumerate(image_urls or [])
        ]
        return Product(
            name=name,
            description=description,
            category=category,
            status=status,
            quantity=quantity,
            price=price,
            is_public=is_public,
            created_at=created_at or datetime.now(timezone.utc),
            images=images
        )

    @staticmethod
    def create_sample_products() -> List[Product]:
        """Create a small portfolio across every category."""
        return [
            CatalogDataFactory.create_product(
                name="Ripple Blanket",
                description="Handmade crochet ripple blanket in soft, warm yarn.",
                category=ProductCategory.CROCHET,
                quantity=3,
                price=Decimal("30.00"),
                created_at=days_ago(20),
                image_urls=["/images/crochet/RippleBlanket.jpg"]
            ),
            CatalogDataFactory.create_product(
                name="Baby Booties 2",
                description="Adorable handcrafted baby booties made with soft yarn.",
                category=ProductCategory.CROCHET,
                quantity=1,
                price=Decimal("20.00"),
                created_at=days_ago(19),
                image_urls=["/images/crochet/BabyBooties2.jpg"]
            ),
            CatalogDataFactory.create_product(
                name="Walnut Cutting Board",
                description="End-grain walnut board finished with food-safe oil.",
                category=ProductCategory.WOODWORKING,
                status=ProductStatus.SOLD,
                quantity=0,
                price=Decimal("85.00"),
                created_at=days_ago(12),
                image_urls=["/images/wood/CuttingBoard.jpg", "/images/wood/CuttingBoardSide.jpg"]
            ),
            CatalogDataFactory.create_product(
                name="Engraved Family Sign",
                description="Laser engraved cedar sign, display piece.",
                category=ProductCategory.ENGRAVING,
                status=ProductStatus.DISPLAY_ONLY,
                price=None,
                created_at=days_ago(8),
                image_urls=["/images/engraving/FamilySign.jpg"]
            ),
            CatalogDataFactory.create_product(
                name="Animal Hats",
                description="Crochet animal hats, work in progress.",
                category=ProductCategory.CROCHET,
                is_public=False,
                quantity=2,
                price=Decimal("17.50"),
                created_at=days_ago(5)
            ),
        ]


async def seed_catalog(repository: CatalogRepository, products: List[Product]) -> List[Product]:
    """Add products in order and return the stored versions."""
    return [await repository.add(product) for product in products]

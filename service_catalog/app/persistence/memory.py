"""
In-memory catalog store.

Keeps products and images in separate tables, the way the relational
store does, so cascade and ordering behave the same. Used for local
development (CATALOG_STORE_BACKEND=memory) and tests.
"""

import asyncio
from typing import Callable, Dict, List, Optional

from shared.errors import NotFoundError
from shared.logging import get_logger
from ..catalog.models import Product, ProductCategory, ProductImage, ProductStatus, validate_product
from ..catalog.repository import CatalogRepository

UPDATABLE_FIELDS = ("name", "description", "category", "status", "quantity", "price", "is_public")


class InMemoryCatalogStore(CatalogRepository):
    """Process-local catalog store."""

    def __init__(self):
        self.logger = get_logger("catalog.persistence.memory")
        self._products: Dict[int, Product] = {}
        self._images: Dict[int, ProductImage] = {}
        self._next_product_id = 1
        self._next_image_id = 1
        self._write_lock = asyncio.Lock()

    async def start(self):
        self.logger.info("In-memory catalog store started")

    async def stop(self):
        self.logger.info("In-memory catalog store stopped")

    async def health_check(self) -> bool:
        return True

    async def get_by_id(
        self,
        product_id: int,
        include_images: bool = False,
        read_only: bool = False
    ) -> Optional[Product]:
        product = self._products.get(product_id)
        if product is None:
            return None
        return self._project(product, include_images, read_only)

    async def get_all(self, include_images: bool = False) -> List[Product]:
        return self._query(lambda p: True, include_images)

    async def get_public(self, include_images: bool = False) -> List[Product]:
        return self._query(lambda p: p.is_public, include_images)

    async def get_by_category(self, category: ProductCategory, include_images: bool = False) -> List[Product]:
        return self._query(lambda p: p.category == category, include_images)

    async def get_by_status(self, status: ProductStatus, include_images: bool = False) -> List[Product]:
        return self._query(lambda p: p.status == status, include_images)

    async def search(self, term: str, include_images: bool = False) -> List[Product]:
        if not (term or "").strip():
            return await self.get_all(include_images)
        needle = term.lower()
        return self._query(
            lambda p: needle in p.name.lower() or needle in p.description.lower(),
            include_images
        )

    async def add(self, product: Product) -> Product:
        validated = validate_product(product)

        async with self._write_lock:
            product_id = self._next_product_id
            images = []
            image_id = self._next_image_id
            for image in validated.images:
                images.append(image.model_copy(update={"id": image_id, "product_id": product_id}))
                image_id += 1
            row = validated.model_copy(update={"id": product_id, "images": []})

            # Everything above is computed before any table is touched
            self._products[product_id] = row
            for image in images:
                self._images[image.id] = image
            self._next_product_id = product_id + 1
            self._next_image_id = image_id

        self.logger.info("Product added", product_id=product_id, name=row.name, images=len(images))
        return self._project(row, include_images=True, read_only=False)

    async def update(self, product: Product) -> Product:
        if product.id is None:
            raise NotFoundError("Product has no id", {"product_id": None})
        validated = validate_product(product)

        async with self._write_lock:
            existing = self._products.get(validated.id)
            if existing is None:
                raise NotFoundError(f"Product with ID {validated.id} not found.", {"product_id": validated.id})

            changes = {name: getattr(validated, name) for name in UPDATABLE_FIELDS}
            row = existing.model_copy(update=changes)
            self._products[row.id] = row

        self.logger.info("Product updated", product_id=row.id)
        return self._project(row, include_images=True, read_only=False)

    async def delete(self, product_id: int) -> None:
        async with self._write_lock:
            if self._products.pop(product_id, None) is None:
                self.logger.debug("Product not found for deletion", product_id=product_id)
                return
            orphaned = [image_id for image_id, image in self._images.items() if image.product_id == product_id]
            for image_id in orphaned:
                del self._images[image_id]

        self.logger.info("Product deleted", product_id=product_id, images=len(orphaned))

    async def exists(self, product_id: int) -> bool:
        return product_id in self._products

    async def count_images(self, product_id: Optional[int] = None) -> int:
        """Number of image rows, optionally for one product."""
        if product_id is None:
            return len(self._images)
        return sum(1 for image in self._images.values() if image.product_id == product_id)

    def _query(self, predicate: Callable[[Product], bool], include_images: bool) -> List[Product]:
        rows = [p for p in list(self._products.values()) if predicate(p)]
        rows.sort(key=lambda p: (p.created_at, p.id), reverse=True)
        return [self._project(p, include_images, read_only=False) for p in rows]

    def _images_for(self, product_id: int) -> List[ProductImage]:
        images = [image for image in list(self._images.values()) if image.product_id == product_id]
        images.sort(key=lambda image: image.id)
        return images

    def _project(self, row: Product, include_images: bool, read_only: bool) -> Product:
        """Build the result shape; copies unless the caller promised not to mutate."""
        images = self._images_for(row.id) if include_images else []
        if read_only:
            return row.model_copy(update={"images": images})
        return row.model_copy(
            update={"images": [image.model_copy() for image in images]},
            deep=True
        )

"""
Repository contract for catalog access.

Implemented by the catalog stores and by the caching decorator, so call
sites depend only on this abstraction and the cache can be composed in or
left out without changing them.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from .models import Product, ProductCategory, ProductStatus


class CatalogRepository(ABC):
    """Product queries and administrative writes."""

    async def start(self):
        """Acquire resources (connection pools etc.)."""

    async def stop(self):
        """Release resources."""

    async def health_check(self) -> bool:
        return True

    @abstractmethod
    async def get_by_id(
        self,
        product_id: int,
        include_images: bool = False,
        read_only: bool = False
    ) -> Optional[Product]:
        """
        Look up a single product, or None when absent.

        read_only is a hint that the caller will not mutate the result, which
        lets a store skip copying. Correctness never depends on it.
        """

    @abstractmethod
    async def get_all(self, include_images: bool = False) -> List[Product]:
        """All products, newest first."""

    @abstractmethod
    async def get_public(self, include_images: bool = False) -> List[Product]:
        """Products visible to anonymous visitors, newest first."""

    @abstractmethod
    async def get_by_category(self, category: ProductCategory, include_images: bool = False) -> List[Product]:
        """Products in a category, newest first."""

    @abstractmethod
    async def get_by_status(self, status: ProductStatus, include_images: bool = False) -> List[Product]:
        """Products with a status, newest first."""

    @abstractmethod
    async def search(self, term: str, include_images: bool = False) -> List[Product]:
        """
        Case-insensitive substring match on name or description.

        An empty or whitespace-only term matches every product. Any other
        term is matched as given, surrounding whitespace included.
        """

    @abstractmethod
    async def add(self, product: Product) -> Product:
        """Persist a new product with its images; returns it with ids assigned."""

    @abstractmethod
    async def update(self, product: Product) -> Product:
        """
        Overwrite the mutable scalar fields of an existing product.

        Images and created_at are left untouched. Raises NotFoundError when
        no product has that id.
        """

    @abstractmethod
    async def delete(self, product_id: int) -> None:
        """Delete a product and its images. No-op when absent."""

    @abstractmethod
    async def exists(self, product_id: int) -> bool:
        """Whether a product with this id exists."""

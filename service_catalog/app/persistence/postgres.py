"""
PostgreSQL persistence layer for the Catalog Service.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Sequence

import asyncpg

from shared.errors import NotFoundError, StoreUnavailableError
from shared.logging import get_logger
from ..catalog.models import Product, ProductCategory, ProductImage, ProductStatus, validate_product
from ..catalog.repository import CatalogRepository

STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)

PRODUCT_COLUMNS = "id, name, description, category, status, quantity, price, is_public, created_at"
IMAGE_COLUMNS = "id, product_id, image_url, is_primary"
NEWEST_FIRST = "ORDER BY created_at DESC, id DESC"


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so the term matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PostgreSQLCatalogStore(CatalogRepository):
    """PostgreSQL catalog store."""

    def __init__(
        self,
        dsn: str,
        min_pool_size: int = 2,
        max_pool_size: int = 10,
        command_timeout: float = 30.0
    ):
        self.dsn = dsn
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout = command_timeout
        self.logger = get_logger("catalog.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout
            )

            # Create tables if they don't exist
            await self._create_tables()

            self.logger.info("PostgreSQL catalog store started")

        except STORE_ERRORS as e:
            self.logger.error("Failed to start PostgreSQL catalog store", error=str(e))
            raise StoreUnavailableError("Failed to start catalog store", {"error": str(e)}) from e

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL catalog store stopped")

    @asynccontextmanager
    async def _connection(self, operation: str):
        """Acquire a pooled connection, translating driver failures."""
        if self.pool is None:
            raise StoreUnavailableError("Catalog store not started", {"operation": operation})
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except STORE_ERRORS as e:
            self.logger.error("Catalog store operation failed", operation=operation, error=str(e))
            raise StoreUnavailableError("Catalog store operation failed", {
                "operation": operation,
                "error": str(e)
            }) from e

    async def _create_tables(self):
        """Create database tables."""
        async with self._connection("create_tables") as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS products (
                    id SERIAL PRIMARY KEY,
                    name VARCHAR(200) NOT NULL,
                    description VARCHAR(2000) NOT NULL DEFAULT '',
                    category VARCHAR(20) NOT NULL,
                    status VARCHAR(20) NOT NULL,
                    quantity INTEGER NOT NULL DEFAULT 0 CHECK (quantity >= 0),
                    price NUMERIC(18, 2) CHECK (price >= 0),
                    is_public BOOLEAN NOT NULL DEFAULT FALSE,
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS product_images (
                    id SERIAL PRIMARY KEY,
                    product_id INTEGER NOT NULL REFERENCES products(id) ON DELETE CASCADE,
                    image_url VARCHAR(500) NOT NULL,
                    is_primary BOOLEAN NOT NULL DEFAULT FALSE
                );
            """)

            # Create indexes
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_products_is_public ON products(is_public);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_products_category ON products(category);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_products_status ON products(status);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_products_created_at ON products(created_at DESC);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_products_public_category ON products(is_public, category);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_products_public_status ON products(is_public, status);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_product_images_product ON product_images(product_id);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_product_images_primary ON product_images(product_id, is_primary);
            """)

    async def get_by_id(
        self,
        product_id: int,
        include_images: bool = False,
        read_only: bool = False
    ) -> Optional[Product]:
        # Rows are always materialized fresh, so read_only needs no special path
        async with self._connection("get_by_id") as conn:
            row = await conn.fetchrow(f"""
                SELECT {PRODUCT_COLUMNS} FROM products WHERE id = $1
            """, product_id)

            if not row:
                return None

            images = await self._load_images(conn, [product_id]) if include_images else {}
            return self._row_to_product(row, images.get(product_id, []))

    async def get_all(self, include_images: bool = False) -> List[Product]:
        return await self._fetch_products("get_all", "", (), include_images)

    async def get_public(self, include_images: bool = False) -> List[Product]:
        return await self._fetch_products("get_public", "WHERE is_public = TRUE", (), include_images)

    async def get_by_category(self, category: ProductCategory, include_images: bool = False) -> List[Product]:
        return await self._fetch_products(
            "get_by_category", "WHERE category = $1", (ProductCategory(category).value,), include_images
        )

    async def get_by_status(self, status: ProductStatus, include_images: bool = False) -> List[Product]:
        return await self._fetch_products(
            "get_by_status", "WHERE status = $1", (ProductStatus(status).value,), include_images
        )

    async def search(self, term: str, include_images: bool = False) -> List[Product]:
        if not (term or "").strip():
            return await self.get_all(include_images)

        pattern = f"%{escape_like(term)}%"
        return await self._fetch_products(
            "search",
            "WHERE name ILIKE $1 ESCAPE '\\' OR description ILIKE $1 ESCAPE '\\'",
            (pattern,),
            include_images
        )

    async def add(self, product: Product) -> Product:
        validated = validate_product(product)

        async with self._connection("add") as conn:
            async with conn.transaction():
                row = await conn.fetchrow(f"""
                    INSERT INTO products (
                        name, description, category, status, quantity, price, is_public, created_at
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    RETURNING {PRODUCT_COLUMNS}
                """,
                    validated.name, validated.description, validated.category.value,
                    validated.status.value, validated.quantity, validated.price,
                    validated.is_public, validated.created_at
                )

                images = []
                for image in validated.images:
                    image_row = await conn.fetchrow(f"""
                        INSERT INTO product_images (product_id, image_url, is_primary)
                        VALUES ($1, $2, $3)
                        RETURNING {IMAGE_COLUMNS}
                    """, row["id"], image.image_url, image.is_primary)
                    images.append(self._row_to_image(image_row))

        self.logger.info("Product added", product_id=row["id"], name=validated.name, images=len(images))
        return self._row_to_product(row, images)

    async def update(self, product: Product) -> Product:
        if product.id is None:
            raise NotFoundError("Product has no id", {"product_id": None})
        validated = validate_product(product)

        async with self._connection("update") as conn:
            async with conn.transaction():
                row = await conn.fetchrow(f"""
                    UPDATE products SET
                        name = $2,
                        description = $3,
                        category = $4,
                        status = $5,
                        quantity = $6,
                        price = $7,
                        is_public = $8
                    WHERE id = $1
                    RETURNING {PRODUCT_COLUMNS}
                """,
                    validated.id, validated.name, validated.description, validated.category.value,
                    validated.status.value, validated.quantity, validated.price, validated.is_public
                )

                if not row:
                    raise NotFoundError(f"Product with ID {validated.id} not found.", {"product_id": validated.id})

                images = await self._load_images(conn, [validated.id])

        self.logger.info("Product updated", product_id=validated.id)
        return self._row_to_product(row, images.get(validated.id, []))

    async def delete(self, product_id: int) -> None:
        async with self._connection("delete") as conn:
            async with conn.transaction():
                # product_images rows go with it (ON DELETE CASCADE)
                result = await conn.execute("""
                    DELETE FROM products WHERE id = $1
                """, product_id)

        if result == "DELETE 1":
            self.logger.info("Product deleted", product_id=product_id)
        else:
            self.logger.debug("Product not found for deletion", product_id=product_id)

    async def exists(self, product_id: int) -> bool:
        async with self._connection("exists") as conn:
            return bool(await conn.fetchval("""
                SELECT EXISTS(SELECT 1 FROM products WHERE id = $1)
            """, product_id))

    async def count_images(self, product_id: Optional[int] = None) -> int:
        """Number of image rows, optionally for one product."""
        async with self._connection("count_images") as conn:
            if product_id is None:
                count = await conn.fetchval("SELECT COUNT(*) FROM product_images")
            else:
                count = await conn.fetchval(
                    "SELECT COUNT(*) FROM product_images WHERE product_id = $1", product_id
                )
            return count or 0

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self._connection("health_check") as conn:
                await conn.fetchval("SELECT 1")
                return True
        except StoreUnavailableError:
            return False

    async def _fetch_products(
        self,
        operation: str,
        where: str,
        args: Sequence[Any],
        include_images: bool
    ) -> List[Product]:
        async with self._connection(operation) as conn:
            rows = await conn.fetch(f"""
                SELECT {PRODUCT_COLUMNS} FROM products {where} {NEWEST_FIRST}
            """, *args)

            images: Dict[int, List[ProductImage]] = {}
            if include_images and rows:
                images = await self._load_images(conn, [row["id"] for row in rows])

        return [self._row_to_product(row, images.get(row["id"], [])) for row in rows]

    async def _load_images(self, conn, product_ids: List[int]) -> Dict[int, List[ProductImage]]:
        """Load images for several products in one round trip."""
        rows = await conn.fetch(f"""
            SELECT {IMAGE_COLUMNS} FROM product_images
            WHERE product_id = ANY($1::int[])
            ORDER BY id
        """, product_ids)

        grouped: Dict[int, List[ProductImage]] = {}
        for row in rows:
            grouped.setdefault(row["product_id"], []).append(self._row_to_image(row))
        return grouped

    def _row_to_image(self, row) -> ProductImage:
        return ProductImage(
            id=row["id"],
            product_id=row["product_id"],
            image_url=row["image_url"],
            is_primary=row["is_primary"]
        )

    def _row_to_product(self, row, images: List[ProductImage]) -> Product:
        """Convert database row to Product object."""
        return Product(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            category=ProductCategory(row["category"]),
            status=ProductStatus(row["status"]),
            quantity=row["quantity"],
            price=row["price"],
            is_public=row["is_public"],
            created_at=row["created_at"],
            images=images
        )

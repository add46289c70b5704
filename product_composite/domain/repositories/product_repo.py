# product_composite/domain/repositories/product_repo.py

from __future__ import annotations
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from product_composite.domain.models.product import Product

class ProductRepo:
    """
    Product repository backed by the 'products' collection.
    One document per productId (unique index); serviceAddress is never stored.
    """

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str = "products"):
        self.col = db[collection_name]

    async def ensure_indexes(self) -> None:
        await self.col.create_index("product_id", unique=True)

    async def insert(self, product: Product) -> Product:
        """Raises pymongo DuplicateKeyError when the productId already exists."""
        doc = product.model_dump(exclude={"service_address"})
        await self.col.insert_one(dict(doc))
        return product

    async def get_by_product_id(self, product_id: int) -> Optional[Product]:
        doc = await self.col.find_one({"product_id": product_id}, {"_id": 0})
        return Product.model_validate(doc) if doc else None

    async def delete_by_product_id(self, product_id: int) -> int:
        res = await self.col.delete_one({"product_id": product_id})
        return res.deleted_count

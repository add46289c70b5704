# product_composite/domain/repositories/review_repo.py

from __future__ import annotations
from typing import List
from motor.motor_asyncio import AsyncIOMotorDatabase
from product_composite.domain.models.product import Review

class ReviewRepo:
    """Reviews keyed by (product_id, review_id)."""

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str = "reviews"):
        self.col = db[collection_name]

    async def ensure_indexes(self) -> None:
        await self.col.create_index([("product_id", 1), ("review_id", 1)], unique=True)

    async def insert(self, review: Review) -> Review:
        doc = review.model_dump(exclude={"service_address"})
        await self.col.insert_one(dict(doc))
        return review

    async def find_by_product_id(self, product_id: int) -> List[Review]:
        cursor = self.col.find({"product_id": product_id}, {"_id": 0}).sort("review_id", 1)
        return [Review.model_validate(doc) async for doc in cursor]

    async def delete_by_product_id(self, product_id: int) -> int:
        res = await self.col.delete_many({"product_id": product_id})
        return res.deleted_count

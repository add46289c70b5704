# product_composite/domain/repositories/recommendation_repo.py

from __future__ import annotations
from typing import List
from motor.motor_asyncio import AsyncIOMotorDatabase
from product_composite.domain.models.product import Recommendation

class RecommendationRepo:
    """Recommendations keyed by (product_id, recommendation_id)."""

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str = "recommendations"):
        self.col = db[collection_name]

    async def ensure_indexes(self) -> None:
        await self.col.create_index([("product_id", 1), ("recommendation_id", 1)], unique=True)

    async def insert(self, recommendation: Recommendation) -> Recommendation:
        doc = recommendation.model_dump(exclude={"service_address"})
        await self.col.insert_one(dict(doc))
        return recommendation

    async def find_by_product_id(self, product_id: int) -> List[Recommendation]:
        cursor = self.col.find({"product_id": product_id}, {"_id": 0}).sort("recommendation_id", 1)
        return [Recommendation.model_validate(doc) async for doc in cursor]

    async def delete_by_product_id(self, product_id: int) -> int:
        res = await self.col.delete_many({"product_id": product_id})
        return res.deleted_count

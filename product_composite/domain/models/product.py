from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Literal

# camelCase on the wire, snake_case in code; immuable = safe
_RECORD_CONFIG = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class Product(BaseModel):
    product_id: int
    name: str
    weight: int
    service_address: Optional[str] = None

    model_config = _RECORD_CONFIG


class Recommendation(BaseModel):
    product_id: int
    recommendation_id: int
    author: str
    rate: int
    content: str
    service_address: Optional[str] = None

    model_config = _RECORD_CONFIG


class Review(BaseModel):
    product_id: int
    review_id: int
    author: str
    subject: str
    content: str
    service_address: Optional[str] = None

    model_config = _RECORD_CONFIG


class RecommendationSummary(BaseModel):
    recommendation_id: int
    author: str
    rate: int
    content: str

    model_config = _RECORD_CONFIG


class ReviewSummary(BaseModel):
    review_id: int
    author: str
    subject: str
    content: str

    model_config = _RECORD_CONFIG


class ServiceAddresses(BaseModel):
    composite: str = ""
    product: str = ""
    recommendation: str = ""
    review: str = ""

    model_config = _RECORD_CONFIG


class ProductAggregate(BaseModel):
    product_id: int
    name: str
    weight: int
    # None is accepted on input and treated as "no entries"
    recommendations: Optional[List[RecommendationSummary]] = Field(default_factory=list)
    reviews: Optional[List[ReviewSummary]] = Field(default_factory=list)
    service_addresses: Optional[ServiceAddresses] = None

    model_config = _RECORD_CONFIG


class HttpErrorInfo(BaseModel):
    timestamp: str
    path: str
    status: int
    message: str

    model_config = _RECORD_CONFIG


class HealthStatus(BaseModel):
    status: Literal["UP", "DOWN"]
    cause: Optional[str] = None

    model_config = _RECORD_CONFIG

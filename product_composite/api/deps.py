# product_composite/api/deps.py
from fastapi import Request

from product_composite.domain.services.composite_svc import ProductCompositeService


# Dependency for injecting the composite service built in the lifespan
def composite_service(request: Request) -> ProductCompositeService:
    return request.app.state.composite


# Dependency for injecting the domain service of a product/recommendation/review app
def domain_service(request: Request):
    return request.app.state.domain_service

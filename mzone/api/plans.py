"""
Plan catalog routes.

- GET  /plans: list catalog plans
- POST /plans/quote: price a plan with an optional discount code
"""
from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from mzone.core.responses import success
from mzone.features.plans.catalog import get_catalog
from mzone.features.pricing.service import compute_price
from mzone.models.plan import Catalog

router = APIRouter(prefix="/plans", tags=["plans"])


class QuoteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan: str
    discount_code: Optional[str] = Field(default=None, alias="discountCode")


@router.get("")
def list_plans(catalog: Catalog = Depends(get_catalog)):
    plans = [
        {
            "id": plan.id,
            "name": plan.name,
            "interval": plan.interval,
            "price": plan.price,
            "amountMinorUnits": plan.base_price_minor_units,
            "features": list(plan.features),
        }
        for plan in catalog.list_plans()
    ]
    return success({"plans": plans})


@router.post("/quote")
def quote(request: QuoteRequest, catalog: Catalog = Depends(get_catalog)):
    result = compute_price(request.plan, request.discount_code, catalog=catalog)
    return success(result.public())

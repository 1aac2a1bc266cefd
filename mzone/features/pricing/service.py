"""
mzone/features/pricing/service.py

Pricing engine: plan id + optional discount code -> chargeable amount.

Pure and deterministic. Amounts stay integral; the yearly multiplier is
applied with Decimal and rounded half-up to a whole minor unit.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from pydantic import BaseModel, ConfigDict

from mzone.core.errors import InvalidPlanError
from mzone.features.plans.catalog import get_catalog
from mzone.models.plan import Catalog, Plan


class PriceQuote(BaseModel):
    model_config = ConfigDict(frozen=True)

    plan: Plan
    original_amount: int
    final_amount: int
    applied_discount_code: Optional[str] = None

    def public(self) -> dict:
        return {
            "plan": self.plan.id,
            "originalAmount": self.original_amount,
            "finalAmount": self.final_amount,
            "discountCode": self.applied_discount_code,
        }


def apply_yearly_multiplier(monthly_amount: int, multiplier: Decimal) -> int:
    scaled = Decimal(monthly_amount) * multiplier
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_price(plan_id: str, discount_code: Optional[str] = None, catalog: Optional[Catalog] = None) -> PriceQuote:
    """
    Resolve a plan identifier and optional discount code to a final amount.

    A code restricted to another tier, or an unknown code, is ignored and
    the base price is charged.

    Raises:
        InvalidPlanError: plan_id (after stripping the discount suffix) is
            not in the catalog
    """
    catalog = catalog or get_catalog()

    plan = catalog.find_plan(plan_id)
    if plan is None:
        raise InvalidPlanError("Invalid plan")

    original_amount = plan.base_price_minor_units
    final_amount = original_amount
    applied = None

    discount = catalog.find_discount(discount_code)
    if discount is not None and discount.tier == plan.tier:
        final_amount = discount.override_price_minor_units
        if plan.is_yearly:
            final_amount = apply_yearly_multiplier(final_amount, catalog.yearly_multiplier)
        applied = discount.code

    return PriceQuote(
        plan=plan,
        original_amount=original_amount,
        final_amount=final_amount,
        applied_discount_code=applied,
    )

"""
mzone/models/plan.py

Catalog models: plans, discount codes and the read-only catalog holding them.

All amounts are integer minor currency units (kobo).
"""

from decimal import Decimal
from typing import Dict, List, Literal, Optional, Tuple
from pydantic import BaseModel, ConfigDict

Tier = Literal["standard", "pro"]
Interval = Literal["monthly", "yearly"]


class Plan(BaseModel):
    """A tier x billing interval product with a base price."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    tier: Tier
    interval: Interval
    base_price_minor_units: int
    features: Tuple[str, ...] = ()

    @property
    def price(self) -> int:
        """Base price in major units, as shown to clients."""
        return self.base_price_minor_units // 100

    @property
    def is_yearly(self) -> bool:
        return self.interval == "yearly"


class DiscountCode(BaseModel):
    """A code that overrides the monthly price of exactly one tier."""
    model_config = ConfigDict(frozen=True)

    code: str
    tier: Tier
    override_price_minor_units: int


class Catalog(BaseModel):
    """
    Read-only plan and discount catalog.

    Passed explicitly to pricing and reconciliation so tests can substitute
    their own catalog.
    """
    model_config = ConfigDict(frozen=True)

    plans: Dict[str, Plan]
    discount_codes: Dict[str, DiscountCode]
    yearly_multiplier: Decimal = Decimal("10.8")
    discount_suffix: str = "_discounted"

    def canonical_plan_key(self, plan_id: str) -> str:
        """Strip the discount-request suffix from a plan identifier."""
        key = (plan_id or "").strip()
        if self.discount_suffix and key.endswith(self.discount_suffix):
            key = key[: -len(self.discount_suffix)]
        return key

    def find_plan(self, plan_id: str) -> Optional[Plan]:
        return self.plans.get(self.canonical_plan_key(plan_id))

    def find_discount(self, code: Optional[str]) -> Optional[DiscountCode]:
        if not code:
            return None
        return self.discount_codes.get(code.strip().upper())

    def list_plans(self) -> List[Plan]:
        return list(self.plans.values())

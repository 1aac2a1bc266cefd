"""
mzone/features/plans/catalog.py

Default plan and discount catalog.

Prices are in kobo. Discount overrides are monthly prices; yearly plans
multiply them by the catalog's yearly multiplier.
"""

from decimal import Decimal
from functools import lru_cache

from mzone.models.plan import Catalog, DiscountCode, Plan


STANDARD_FEATURES = (
    "Unlimited Downloads",
    "All Premium Content",
    "Email Support",
    "No Ads",
    "Cancel Anytime",
)

PRO_FEATURES = (
    "Everything in Standard",
    "Priority Support 24/7",
    "Early Access Features",
    "Exclusive Pro Content",
    "Pro Tools & Resources",
)

DEFAULT_PLANS = {
    "standard_monthly": {"name": "Standard", "tier": "standard", "interval": "monthly", "price": 1600000},
    "standard_yearly": {"name": "Standard", "tier": "standard", "interval": "yearly", "price": 17280000},
    "pro_monthly": {"name": "Pro", "tier": "pro", "interval": "monthly", "price": 2200000},
    "pro_yearly": {"name": "Pro", "tier": "pro", "interval": "yearly", "price": 23760000},
}

DEFAULT_DISCOUNT_CODES = {
    "DX9Q-7M2A-K8P4": {"tier": "standard", "price": 700000},
    "R5TQ-Z91L-A7XK": {"tier": "standard", "price": 700000},
    "MP8A-QX47-L9TZ": {"tier": "pro", "price": 1100000},
    "K2Z9-PAX6-M7QF": {"tier": "pro", "price": 1100000},
}

YEARLY_MULTIPLIER = Decimal("10.8")


def build_catalog() -> Catalog:
    plans = {
        plan_id: Plan(
            id=plan_id,
            name=cfg["name"],
            tier=cfg["tier"],
            interval=cfg["interval"],
            base_price_minor_units=cfg["price"],
            features=STANDARD_FEATURES if cfg["tier"] == "standard" else PRO_FEATURES,
        )
        for plan_id, cfg in DEFAULT_PLANS.items()
    }
    codes = {
        code: DiscountCode(code=code, tier=cfg["tier"], override_price_minor_units=cfg["price"])
        for code, cfg in DEFAULT_DISCOUNT_CODES.items()
    }
    return Catalog(plans=plans, discount_codes=codes, yearly_multiplier=YEARLY_MULTIPLIER)


@lru_cache(maxsize=1)
def get_catalog() -> Catalog:
    """Process-wide default catalog (immutable)."""
    return build_catalog()

"""
Transaction intent and subscription records.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from stores that drop tzinfo."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TransactionIntent(BaseModel):
    """
    What a gateway charge is for.

    Travels through the gateway as transaction metadata and is the only
    input reconciliation trusts for what to activate. Wire keys are
    camelCase.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user_id: str = Field(alias="userId")
    full_name: Optional[str] = Field(default=None, alias="fullName")
    plan_id: str = Field(alias="plan")
    discount_code: Optional[str] = Field(default=None, alias="discountCode")
    original_amount: int = Field(alias="originalAmount")
    final_amount: int = Field(alias="finalAmount")

    def to_metadata(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)

    @classmethod
    def from_metadata(cls, metadata: Union[str, Dict[str, Any], None]) -> "TransactionIntent":
        """
        Parse gateway metadata back into an intent.

        Raises:
            ValueError: metadata missing, not an object, or missing fields
        """
        if isinstance(metadata, str):
            try:
                metadata = json.loads(metadata)
            except json.JSONDecodeError as e:
                raise ValueError(f"metadata is not valid JSON: {e}")
        if not isinstance(metadata, dict):
            raise ValueError("metadata missing")
        # pydantic's ValidationError subclasses ValueError
        return cls.model_validate(metadata)


class Subscription(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    plan: str
    amount_paid_minor_units: int
    reference: str
    discount_code: Optional[str] = None
    status: Literal["active"] = "active"
    start_date: datetime
    end_date: datetime
    created_at: datetime

    def summary(self) -> Dict[str, Any]:
        return {
            "plan": self.plan,
            "status": self.status,
            "endDate": self.end_date.isoformat(),
        }

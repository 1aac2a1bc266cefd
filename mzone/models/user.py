from datetime import datetime
from typing import Any, Dict
from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    full_name: str
    email: str
    password_hash: str
    is_subscribed: bool = False
    created_at: datetime

    @staticmethod
    def normalize_email(email: str) -> str:
        return (email or "").strip().lower()

    def public(self) -> Dict[str, Any]:
        """Client-facing representation (never includes the password hash)."""
        return {
            "id": self.id,
            "fullName": self.full_name,
            "email": self.email,
            "isSubscribed": self.is_subscribed,
        }

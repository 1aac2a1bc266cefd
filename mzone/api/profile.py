from fastapi import APIRouter, Depends

from mzone.core.auth import get_current_user_id
from mzone.core.responses import success
from mzone.features.subscriptions.service import get_active_subscription
from mzone.features.users.service import get_user

router = APIRouter(prefix="/user", tags=["user"])


@router.get("/profile")
def profile(user_id: str = Depends(get_current_user_id)):
    """User identity plus the current subscription (null when none is running)."""
    user = get_user(user_id)
    current = get_active_subscription(user.id)
    body = user.public()
    body["subscription"] = current.summary() if current else None
    return success({"user": body})

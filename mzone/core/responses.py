from typing import Any, Dict, Optional


def success(data: Optional[Dict[str, Any]] = None, message: str = "OK") -> Dict[str, Any]:
    """Standard success envelope: {"success": true, "message": ..., "data": ...}."""
    return {"success": True, "message": message, "data": data or {}}

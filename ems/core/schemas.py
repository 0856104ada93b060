from typing import Any, Dict, Optional
from pydantic import BaseModel
from fastapi.encoders import jsonable_encoder


class ErrorResponse(BaseModel):
    """Failure half of the response contract."""
    success: bool = False
    error: str
    code: str = "ERROR"
    details: Optional[Dict[str, Any]] = None


def ok(**data: Any) -> Dict[str, Any]:
    """Build a `{success: true, ...data}` payload with JSON-safe values."""
    return jsonable_encoder({"success": True, **data})


def fail(message: str, code: str = "ERROR", details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    body = ErrorResponse(error=message, code=code, details=details)
    return body.model_dump(mode="json", exclude_none=True)

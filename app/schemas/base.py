"""
Response envelopes
"""
from typing import Any, Generic, Optional, TypeVar

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """{success, data, store?, cached?, message?, count?}; endpoint specific keys are allowed"""
    success: bool = True
    data: Optional[T] = None
    store: Optional[str] = None
    cached: Optional[bool] = None
    message: Optional[str] = None
    count: Optional[int] = None

    model_config = ConfigDict(from_attributes=True, extra="allow")


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    error: Optional[str] = None


def envelope(data: Any = None, **extra: Any) -> dict[str, Any]:
    """Success envelope; unset optional fields are left out, data is passed through untouched."""
    body = ApiResponse[Any](**extra).model_dump(exclude={"data"}, exclude_none=True)
    body["data"] = data
    return body


def failure(message: str, error: Any = None, status_code: int = 500) -> JSONResponse:
    body = ErrorResponse(message=message, error=str(error) if error is not None else None)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))

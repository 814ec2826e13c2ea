from pydantic import BaseModel, Field
from typing import Any, Optional
import uuid


def new_request_id():
    return uuid.uuid4().hex


class SuccessResponse(BaseModel):
    """Envelope of every successful call: {success, request_id, data}"""
    success: Optional[bool] = Field(default=True)
    request_id: str = Field(default_factory=new_request_id)
    data: Optional[Any] = None


class ErrorDetail(BaseModel):
    code: str
    message: Any
    details: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Envelope rendered by the exception handlers; the session engine only checks the status code."""
    success: bool = False
    request_id: str = Field(default_factory=new_request_id)
    error: ErrorDetail

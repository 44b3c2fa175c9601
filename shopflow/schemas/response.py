from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional
import uuid


def _rid():
    return uuid.uuid4().hex


class SuccessResponse(BaseModel):
    """Envelope of every 2xx body: the payload plus a request id for tracing."""
    success: Optional[bool] = Field(default=True)
    request_id: str = Field(default_factory=_rid)
    data: Optional[Any] = None


class ErrorDetail(BaseModel):
    # validation errors add a 'details' list
    model_config = ConfigDict(extra="allow")

    code: str
    message: Any


class ErrorResponse(BaseModel):
    """Envelope written by the exception handlers."""
    success: bool = False
    request_id: str = Field(default_factory=_rid)
    error: ErrorDetail

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class DocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    file_type: str
    document_type: str
    approved: bool
    details: dict[str, Any] | None = Field(None, serialization_alias="metadata")
    uploaded_at: datetime


class DocumentListResponse(BaseModel):
    items: list[DocumentResponse]
    total: int


class PaymentRecord(BaseModel):
    id: uuid.UUID
    name: str
    month: str | None
    year: int | None
    status: Literal["verified", "pending"]
    uploaded_at: datetime


class PaymentHistoryResponse(BaseModel):
    items: list[PaymentRecord]
    total: int


class SignedUrlResponse(BaseModel):
    url: str
    expires_in: int


# ---------------------------------------------------------------------------
# Admin schemas
# ---------------------------------------------------------------------------


class DocumentApprovalRequest(BaseModel):
    approved: bool


class DocumentApprovalResponse(BaseModel):
    id: uuid.UUID
    approved: bool
    message: str

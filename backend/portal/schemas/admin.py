import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel

StudentStatusFilter = Literal["pending", "approved"]


class StudentListItem(BaseModel):
    id: uuid.UUID
    email: str
    first_name: str | None
    last_name: str | None
    student_id: str | None
    phone_number: str | None
    approved: bool
    created_at: datetime
    document_count: int


class StudentListResponse(BaseModel):
    items: list[StudentListItem]
    total: int


class StudentApprovalRequest(BaseModel):
    approved: bool


class StudentApprovalResponse(BaseModel):
    id: uuid.UUID
    approved: bool
    message: str

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from portal.core.auth import get_admin_user
from portal.core.database import get_db
from portal.models.profile import Profile
from portal.schemas.admin import (
    StudentApprovalRequest,
    StudentApprovalResponse,
    StudentListItem,
    StudentListResponse,
    StudentStatusFilter,
)
from portal.services.profiles import ProfileNotFoundError, list_students, set_student_approval

router = APIRouter()


@router.get("/students", response_model=StudentListResponse)
def admin_list_students(
    status_filter: StudentStatusFilter | None = Query(None, alias="status"),
    admin_user: Profile = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    approved = None if status_filter is None else status_filter == "approved"
    items = [
        StudentListItem(
            id=profile.id,
            email=profile.email,
            first_name=profile.first_name,
            last_name=profile.last_name,
            student_id=profile.student_id,
            phone_number=profile.phone_number,
            approved=profile.approved,
            created_at=profile.created_at,
            document_count=document_count,
        )
        for profile, document_count in list_students(db, approved=approved)
    ]
    return StudentListResponse(items=items, total=len(items))


@router.put("/students/{student_id}/approval", response_model=StudentApprovalResponse)
def admin_student_approval(
    student_id: uuid.UUID,
    body: StudentApprovalRequest,
    admin_user: Profile = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    try:
        profile = set_student_approval(db, student_id, body.approved)
    except ProfileNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    action_msg = "approved" if body.approved else "unapproved"
    return StudentApprovalResponse(
        id=profile.id,
        approved=profile.approved,
        message=f"Student {action_msg} successfully",
    )

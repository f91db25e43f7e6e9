"""Student profiles: registration status and admin approval."""

import logging
import uuid
from collections.abc import Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from portal.models.document import Document
from portal.models.profile import Profile

logger = logging.getLogger(__name__)

STATUS_ADMIN = "admin"
STATUS_DOCUMENTS_REQUIRED = "documents_required"
STATUS_PENDING_APPROVAL = "pending_approval"
STATUS_APPROVED = "approved"

EDITABLE_ATTRIBUTES = ("first_name", "last_name", "student_id", "phone_number", "bio")


class ProfileNotFoundError(Exception):
    """Raised when no student profile exists with the requested id."""


def missing_registration_documents(db: Session, user_id: uuid.UUID) -> list[str]:
    """Required registration document types the user has not uploaded yet."""
    uploaded = set(
        db.execute(
            select(Document.document_type).where(
                Document.user_id == user_id,
                Document.document_type.in_(Document.REQUIRED_REGISTRATION_TYPES),
            )
        ).scalars()
    )
    return [t for t in Document.REQUIRED_REGISTRATION_TYPES if t not in uploaded]


def registration_status(db: Session, profile: Profile) -> tuple[str, list[str]]:
    """Derive where a user stands in registration.

    Returns (status, missing document types). Admins are always "admin";
    students move from documents_required to pending_approval once every
    required document is on file, and to approved when an admin says so.
    """
    if profile.is_admin:
        return STATUS_ADMIN, []
    missing = missing_registration_documents(db, profile.id)
    if missing:
        return STATUS_DOCUMENTS_REQUIRED, missing
    if not profile.approved:
        return STATUS_PENDING_APPROVAL, []
    return STATUS_APPROVED, []


def update_profile(db: Session, profile: Profile, changes: dict) -> Profile:
    for attr in EDITABLE_ATTRIBUTES:
        if attr in changes:
            setattr(profile, attr, changes[attr])
    db.commit()
    db.refresh(profile)
    return profile


def list_students(
    db: Session, approved: bool | None = None
) -> Sequence[tuple[Profile, int]]:
    """Student profiles newest first, each with its uploaded document count."""
    doc_count = (
        select(Document.user_id, func.count().label("document_count"))
        .group_by(Document.user_id)
        .subquery()
    )
    query = (
        select(Profile, func.coalesce(doc_count.c.document_count, 0))
        .outerjoin(doc_count, doc_count.c.user_id == Profile.id)
        .where(Profile.role == Profile.ROLE_STUDENT)
    )
    if approved is not None:
        query = query.where(Profile.approved.is_(approved))
    rows = db.execute(query.order_by(Profile.created_at.desc())).all()
    return [(row[0], row[1]) for row in rows]


def set_student_approval(db: Session, profile_id: uuid.UUID, approved: bool) -> Profile:
    profile = db.get(Profile, profile_id)
    if profile is None or profile.role != Profile.ROLE_STUDENT:
        raise ProfileNotFoundError("Student not found")
    profile.approved = approved
    db.commit()
    db.refresh(profile)
    logger.info("Student %s %s", profile.id, "approved" if approved else "unapproved")
    return profile

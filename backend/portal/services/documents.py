"""Student documents and monthly payment proofs, served through signed download links."""

import calendar
import logging
import os
import uuid
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from pathlib import Path

import jwt
from fastapi import UploadFile
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal.core.config import settings
from portal.models.document import Document
from portal.models.profile import Profile

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {"application/pdf", "image/jpeg", "image/png"}
ALLOWED_EXTENSIONS = {".pdf", ".jpg", ".jpeg", ".png"}
DEFAULT_EXTENSIONS = {"application/pdf": ".pdf", "image/jpeg": ".jpg", "image/png": ".png"}

MONTHS = tuple(calendar.month_name[1:])

PAYMENT_STATUS_VERIFIED = "verified"
PAYMENT_STATUS_PENDING = "pending"


class DocumentError(Exception):
    """Base exception for document operations."""


class DocumentNotFoundError(DocumentError):
    """Raised when a document record or its stored file is missing."""


class DocumentFileValidationError(DocumentError):
    """Raised when an uploaded file fails validation."""


class PaymentAlreadySubmittedError(DocumentError):
    """Raised when a payment proof for the same month and year exists."""


class InvalidSignedUrlError(DocumentError):
    """Raised when a download token is forged, expired, or malformed."""


# ---------------------------------------------------------------------------
# Upload helpers
# ---------------------------------------------------------------------------


def _validate_upload(file: UploadFile) -> None:
    if file.content_type not in ALLOWED_CONTENT_TYPES:
        raise DocumentFileValidationError(
            f"Invalid file type '{file.content_type}'. Allowed: {', '.join(sorted(ALLOWED_CONTENT_TYPES))}"
        )
    if file.filename:
        ext = os.path.splitext(file.filename)[1].lower()
        if ext and ext not in ALLOWED_EXTENSIONS:
            raise DocumentFileValidationError(
                f"Invalid file extension '{ext}'. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
            )


def _validate_payment_period(month: str | None, year: int | None) -> dict:
    if month not in MONTHS:
        raise DocumentFileValidationError(f"Payment proofs need a month: one of {', '.join(MONTHS)}")
    current_year = datetime.now(timezone.utc).year
    if year is None or not current_year - 1 <= year <= current_year + 1:
        raise DocumentFileValidationError(
            f"Payment proofs need a year between {current_year - 1} and {current_year + 1}"
        )
    return {"month": month, "year": year}


def upload_root() -> Path:
    return Path(settings.UPLOAD_DIR)


async def _save_file(file: UploadFile, user_id: uuid.UUID, document_type: str) -> str:
    """Write an upload under the storage root and return its storage key."""
    max_bytes = settings.UPLOAD_MAX_FILE_SIZE_MB * 1024 * 1024
    content = await file.read()
    if len(content) > max_bytes:
        raise DocumentFileValidationError(
            f"File too large ({len(content)} bytes). Maximum: {settings.UPLOAD_MAX_FILE_SIZE_MB} MB"
        )
    if not content:
        raise DocumentFileValidationError("Uploaded file is empty")

    ext = os.path.splitext(file.filename or "")[1].lower() or DEFAULT_EXTENSIONS[file.content_type]
    key = f"{user_id}/{document_type}/{uuid.uuid4().hex}{ext}"
    path = upload_root() / key
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return key


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def get_document(db: Session, document_id: uuid.UUID) -> Document:
    document = db.get(Document, document_id)
    if document is None:
        raise DocumentNotFoundError("Document not found")
    return document


def list_documents(
    db: Session,
    user_id: uuid.UUID | None = None,
    document_type: str | None = None,
    approved: bool | None = None,
) -> Sequence[Document]:
    """Documents newest first, optionally narrowed to a user, type, or approval state."""
    query = select(Document)
    if user_id is not None:
        query = query.where(Document.user_id == user_id)
    if document_type is not None:
        query = query.where(Document.document_type == document_type)
    if approved is not None:
        query = query.where(Document.approved.is_(approved))
    return db.execute(query.order_by(Document.uploaded_at.desc())).scalars().all()


def payment_status(document: Document) -> str:
    return PAYMENT_STATUS_VERIFIED if document.approved else PAYMENT_STATUS_PENDING


def payment_history(db: Session, user_id: uuid.UUID) -> Sequence[Document]:
    return list_documents(db, user_id=user_id, document_type=Document.TYPE_PAYMENT_PROOF)


def has_payment_for(db: Session, user_id: uuid.UUID, month: str, year: int) -> bool:
    for proof in payment_history(db, user_id):
        details = proof.details or {}
        if details.get("month") == month and str(details.get("year")) == str(year):
            return True
    return False


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------


async def upload_document(
    db: Session,
    user: Profile,
    document_type: str,
    file: UploadFile,
    month: str | None = None,
    year: int | None = None,
) -> Document:
    """Store an uploaded file and record it against the user."""
    if document_type not in Document.VALID_DOCUMENT_TYPES:
        raise DocumentError(
            f"Invalid document type '{document_type}'. "
            f"Allowed: {', '.join(sorted(Document.VALID_DOCUMENT_TYPES))}"
        )

    details = None
    if document_type == Document.TYPE_PAYMENT_PROOF:
        details = _validate_payment_period(month, year)
        if has_payment_for(db, user.id, month, year):
            raise PaymentAlreadySubmittedError(f"A payment proof for {month} {year} has already been uploaded")

    _validate_upload(file)
    key = await _save_file(file, user.id, document_type)

    document = Document(
        user_id=user.id,
        name=file.filename or os.path.basename(key),
        file_type=file.content_type,
        file_path=key,
        document_type=document_type,
        details=details,
    )
    db.add(document)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        (upload_root() / key).unlink(missing_ok=True)
        raise
    db.refresh(document)
    logger.info("Stored %s document %s for user %s", document_type, document.id, user.id)
    return document


def set_document_approval(db: Session, document_id: uuid.UUID, approved: bool) -> Document:
    document = get_document(db, document_id)
    document.approved = approved
    db.commit()
    db.refresh(document)
    logger.info("Document %s %s", document.id, "approved" if approved else "unapproved")
    return document


# ---------------------------------------------------------------------------
# Signed download links
# ---------------------------------------------------------------------------


def create_download_token(document: Document) -> str:
    expire = datetime.now(timezone.utc) + timedelta(seconds=settings.SIGNED_URL_EXPIRE_SECONDS)
    payload = {
        "sub": document.file_path,
        "doc": str(document.id),
        "exp": expire,
        "type": "download",
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def resolve_download_token(token: str) -> Path:
    """Map a download token back to the stored file on disk."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise InvalidSignedUrlError("Download link has expired") from exc
    except jwt.PyJWTError as exc:
        raise InvalidSignedUrlError("Invalid download link") from exc

    if payload.get("type") != "download" or not payload.get("sub"):
        raise InvalidSignedUrlError("Invalid download link")

    root = upload_root().resolve()
    path = (root / payload["sub"]).resolve()
    if root not in path.parents:
        raise InvalidSignedUrlError("Invalid download link")
    if not path.is_file():
        raise DocumentNotFoundError("Stored file not found")
    return path

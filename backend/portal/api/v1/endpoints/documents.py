import uuid

from fastapi import APIRouter, Depends, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from portal.core.auth import get_admin_user, get_current_user
from portal.core.config import settings
from portal.core.database import get_db
from portal.models.document import Document
from portal.models.profile import Profile
from portal.schemas.documents import (
    DocumentApprovalRequest,
    DocumentApprovalResponse,
    DocumentListResponse,
    DocumentResponse,
    PaymentHistoryResponse,
    PaymentRecord,
    SignedUrlResponse,
)
from portal.services.documents import (
    DocumentError,
    DocumentFileValidationError,
    DocumentNotFoundError,
    InvalidSignedUrlError,
    PaymentAlreadySubmittedError,
    create_download_token,
    get_document,
    list_documents,
    payment_history,
    payment_status,
    resolve_download_token,
    set_document_approval,
    upload_document,
)

router = APIRouter()


@router.post("/", response_model=DocumentResponse, status_code=201)
async def upload(
    file: UploadFile,
    document_type: str = Form(...),
    month: str | None = Form(None),
    year: int | None = Form(None),
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Upload a registration document or a monthly payment proof.

    Accepts multipart form data with:
    - file: PDF, JPEG or PNG
    - document_type: student_id, study_permit, photo, payment_proof, or other
    - month, year: required for payment_proof
    """
    try:
        return await upload_document(db, current_user, document_type, file, month=month, year=year)
    except PaymentAlreadySubmittedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except DocumentFileValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    except DocumentError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.get("/", response_model=DocumentListResponse)
def my_documents(
    document_type: str | None = Query(None),
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    documents = list_documents(db, user_id=current_user.id, document_type=document_type)
    return DocumentListResponse(items=documents, total=len(documents))


@router.get("/payments", response_model=PaymentHistoryResponse)
def my_payments(
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    items = []
    for proof in payment_history(db, current_user.id):
        details = proof.details or {}
        items.append(
            PaymentRecord(
                id=proof.id,
                name=proof.name,
                month=details.get("month"),
                year=details.get("year"),
                status=payment_status(proof),
                uploaded_at=proof.uploaded_at,
            )
        )
    return PaymentHistoryResponse(items=items, total=len(items))


@router.get("/download")
def download(token: str = Query(...)):
    """Serve a stored file for a signed, short-lived token."""
    try:
        path = resolve_download_token(token)
    except InvalidSignedUrlError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return FileResponse(path)


@router.get("/{document_id}/signed-url", response_model=SignedUrlResponse)
def signed_url(
    document_id: uuid.UUID,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        document = get_document(db, document_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if document.user_id != current_user.id and not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to access this document",
        )

    token = create_download_token(document)
    return SignedUrlResponse(
        url=f"{settings.API_V1_PREFIX}/documents/download?token={token}",
        expires_in=settings.SIGNED_URL_EXPIRE_SECONDS,
    )


# ---------------------------------------------------------------------------
# Admin endpoints
# ---------------------------------------------------------------------------

admin_router = APIRouter()


@admin_router.get("/documents", response_model=DocumentListResponse)
def admin_list_documents(
    user_id: uuid.UUID | None = Query(None),
    document_type: str | None = Query(None),
    approved: bool | None = Query(None),
    admin_user: Profile = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    documents = list_documents(db, user_id=user_id, document_type=document_type, approved=approved)
    return DocumentListResponse(items=documents, total=len(documents))


@admin_router.put("/documents/{document_id}/approval", response_model=DocumentApprovalResponse)
def admin_document_approval(
    document_id: uuid.UUID,
    body: DocumentApprovalRequest,
    admin_user: Profile = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    """Admin approve or unapprove a document; approving a payment proof marks it verified."""
    try:
        document: Document = set_document_approval(db, document_id, body.approved)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    action_msg = "approved" if body.approved else "unapproved"
    return DocumentApprovalResponse(
        id=document.id,
        approved=document.approved,
        message=f"Document {action_msg} successfully",
    )

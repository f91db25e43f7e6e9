import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal.core.database import Base


class Document(Base):
    """An uploaded student document or monthly payment proof.

    ``file_path`` is the storage key relative to the upload root:
    ``<user_id>/<document_type>/<uuid><ext>``. For payment proofs the
    ``metadata`` column holds ``{"month": "January", "year": 2026}``.
    """

    __tablename__ = "documents"
    __table_args__ = (
        Index("ix_documents_user_type", "user_id", "document_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)
    document_type: Mapped[str] = mapped_column(String(30), nullable=False)
    approved: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    # "metadata" is reserved on declarative classes
    details: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    user: Mapped["Profile"] = relationship(back_populates="documents")

    TYPE_STUDENT_ID = "student_id"
    TYPE_STUDY_PERMIT = "study_permit"
    TYPE_PHOTO = "photo"
    TYPE_PAYMENT_PROOF = "payment_proof"
    TYPE_OTHER = "other"
    VALID_DOCUMENT_TYPES = {
        TYPE_STUDENT_ID,
        TYPE_STUDY_PERMIT,
        TYPE_PHOTO,
        TYPE_PAYMENT_PROOF,
        TYPE_OTHER,
    }
    # Registration is complete once all of these are on file
    REQUIRED_REGISTRATION_TYPES = (TYPE_STUDENT_ID, TYPE_STUDY_PERMIT, TYPE_PHOTO)

    def __repr__(self) -> str:
        return f"<Document {self.document_type} user_id={self.user_id}>"

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal.core.database import Base


class FormSubmission(Base):
    """One respondent's answers to a form or poll.

    The answers field is a JSONB dict keyed by field id:
        {
            "f1": "Free text here",   # short_text / long_text
            "f2": "Option A",         # single_choice / single_select
            "f3": ["X", "Z"],         # multi_choice
            "f4": "2026-10-19"        # date
        }

    Submissions are never updated; (form_id, user_id) is unique.
    """

    __tablename__ = "form_submissions"
    __table_args__ = (
        UniqueConstraint("form_id", "user_id", name="uq_form_submissions_form_user"),
        Index("ix_form_submissions_form_id", "form_id"),
        Index("ix_form_submissions_user_id", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    form_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("forms.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    answers: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    submitted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    form: Mapped["Form"] = relationship(back_populates="submissions")
    respondent: Mapped["Profile"] = relationship(back_populates="form_submissions")

    def __repr__(self) -> str:
        return f"<FormSubmission form={self.form_id} user={self.user_id}>"

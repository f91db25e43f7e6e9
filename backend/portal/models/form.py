import uuid
from datetime import datetime

from sqlalchemy import Boolean, Enum, ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal.core.database import Base


class Form(Base):
    """Form or poll definition with a JSONB fields array.

    Each entry in the fields array is a dict:
        {
            "id": "f1c2...",             # stable key used in answer maps
            "kind": "short_text" | "long_text" | "single_choice"
                    | "multi_choice" | "single_select" | "date",
            "label": "Question text",
            "required": true/false,
            "options": ["A", "B", ...],  # only for the choice kinds
            "placeholder": "hint"        # only for text and date kinds
        }

    The array is always written as a whole; see services.forms.fields for
    the shape rules enforced on read and write.
    """

    __tablename__ = "forms"
    __table_args__ = (
        Index("ix_forms_published", "published"),
        Index("ix_forms_created_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    form_kind: Mapped[str] = mapped_column(
        Enum("form", "poll", name="form_kind"),
        nullable=False,
        server_default="form",
    )
    fields: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("profiles.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())

    creator: Mapped["Profile"] = relationship()
    submissions: Mapped[list["FormSubmission"]] = relationship(
        back_populates="form",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        state = "published" if self.published else "draft"
        return f"<Form {self.title} ({self.form_kind}, {state})>"

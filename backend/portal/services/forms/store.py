"""Form definition store: create, edit, publish, list and delete."""

import logging
import uuid
from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from portal.models.form import Form
from portal.models.form_submission import FormSubmission
from portal.services.forms.aggregator import ResponseRecord
from portal.services.forms.exceptions import (
    FormNotFoundError,
    FormNotPublishedError,
    FormStorageError,
    FormValidationError,
)
from portal.services.forms.fields import FormField, dump_fields, parse_fields

logger = logging.getLogger(__name__)

FORM_KINDS = ("form", "poll")
MIN_TITLE_LENGTH = 3
MUTABLE_ATTRIBUTES = frozenset({"title", "description", "form_kind", "fields", "published"})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Database error while trying to %s", action)
        raise FormStorageError(f"Could not {action}") from exc


def _validate_title(title: str | None) -> list[str]:
    if title is None or len(title.strip()) < MIN_TITLE_LENGTH:
        return [f"Title must be at least {MIN_TITLE_LENGTH} characters"]
    return []


def _validate_form_kind(form_kind: str) -> list[str]:
    if form_kind not in FORM_KINDS:
        return [f"Form kind must be one of: {', '.join(FORM_KINDS)}"]
    return []


def _prepare_fields(raw: Iterable[Any]) -> list[dict[str, Any]]:
    """Validate fields for storage; a form needs at least one question."""
    items = list(raw)
    if not items:
        raise FormValidationError("A form needs at least one field")
    return dump_fields(parse_fields(items))


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def form_fields(form: Form) -> list[FormField]:
    """Typed fields of a stored form, validated on the way out."""
    return parse_fields(form.fields or [])


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def get_form(db: Session, form_id: uuid.UUID) -> Form:
    form = db.get(Form, form_id)
    if form is None:
        raise FormNotFoundError("Form not found")
    return form


def get_published_form(db: Session, form_id: uuid.UUID) -> Form:
    form = get_form(db, form_id)
    if not form.published:
        raise FormNotPublishedError("Form is not published")
    return form


def list_forms(
    db: Session,
    *,
    form_kind: str | None = None,
    search: str | None = None,
    published: bool | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[Sequence[Form], int]:
    """Forms newest first, optionally filtered by kind, visibility, and a
    case-insensitive substring of the title or description."""
    conditions = []
    if form_kind is not None:
        conditions.append(Form.form_kind == form_kind)
    if published is not None:
        conditions.append(Form.published.is_(published))
    if search:
        pattern = f"%{_escape_like(search.strip())}%"
        conditions.append(
            or_(
                Form.title.ilike(pattern, escape="\\"),
                Form.description.ilike(pattern, escape="\\"),
            )
        )

    total = db.execute(select(func.count()).select_from(Form).where(*conditions)).scalar_one()
    offset = (page - 1) * page_size
    forms = (
        db.execute(
            select(Form)
            .where(*conditions)
            .order_by(Form.created_at.desc(), Form.id)
            .offset(offset)
            .limit(page_size)
        )
        .scalars()
        .all()
    )
    return forms, total


def response_counts(db: Session, form_ids: Sequence[uuid.UUID]) -> dict[uuid.UUID, int]:
    if not form_ids:
        return {}
    rows = db.execute(
        select(FormSubmission.form_id, func.count())
        .where(FormSubmission.form_id.in_(form_ids))
        .group_by(FormSubmission.form_id)
    ).all()
    counts = {row[0]: row[1] for row in rows}
    return {form_id: counts.get(form_id, 0) for form_id in form_ids}


def response_count(db: Session, form_id: uuid.UUID) -> int:
    return db.execute(
        select(func.count()).select_from(FormSubmission).where(FormSubmission.form_id == form_id)
    ).scalar_one()


def list_submissions(db: Session, form_id: uuid.UUID) -> Sequence[FormSubmission]:
    """All submissions for a form, most recent first."""
    return (
        db.execute(
            select(FormSubmission)
            .options(selectinload(FormSubmission.respondent))
            .where(FormSubmission.form_id == form_id)
            .order_by(FormSubmission.submitted_at.desc())
        )
        .scalars()
        .all()
    )


def submitted_form_ids(db: Session, respondent_id: uuid.UUID) -> set[uuid.UUID]:
    rows = db.execute(select(FormSubmission.form_id).where(FormSubmission.user_id == respondent_id)).scalars()
    return set(rows)


def response_records(submissions: Iterable[FormSubmission]) -> list[ResponseRecord]:
    """Flatten submissions (with their respondent loaded) for the aggregator."""
    records = []
    for sub in submissions:
        respondent = sub.respondent
        records.append(
            ResponseRecord(
                respondent_name=(respondent.display_name if respondent else "") or "Unknown User",
                respondent_external_id=(respondent.student_id if respondent else None) or "",
                submitted_at=sub.submitted_at,
                answers=sub.answers or {},
            )
        )
    return records


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def create_form(
    db: Session,
    *,
    title: str,
    fields: Iterable[Any],
    created_by: uuid.UUID,
    description: str | None = None,
    form_kind: str = "form",
    published: bool = False,
) -> Form:
    errors = _validate_title(title) + _validate_form_kind(form_kind)
    if errors:
        raise FormValidationError(errors)
    stored_fields = _prepare_fields(fields)

    form = Form(
        title=title,
        description=description,
        form_kind=form_kind,
        fields=stored_fields,
        published=published,
        created_by=created_by,
    )
    db.add(form)
    _commit(db, "create form")
    db.refresh(form)
    logger.info("Created %s %s (%d fields, published=%s)", form_kind, form.id, len(stored_fields), published)
    return form


def update_form(db: Session, form_id: uuid.UUID, patch: dict[str, Any]) -> Form:
    """Replace the given attributes of a form in one write."""
    form = get_form(db, form_id)

    changes = {key: value for key, value in patch.items() if key in MUTABLE_ATTRIBUTES}
    if not changes:
        raise FormValidationError("No fields to update")

    errors: list[str] = []
    if "title" in changes:
        errors += _validate_title(changes["title"])
    if "form_kind" in changes:
        errors += _validate_form_kind(changes["form_kind"])
    if "published" in changes and changes["published"] is None:
        errors.append("Published flag must be true or false")
    if errors:
        raise FormValidationError(errors)
    if "fields" in changes:
        changes["fields"] = _prepare_fields(changes["fields"] or [])

    for attr, value in changes.items():
        setattr(form, attr, value)

    _commit(db, "update form")
    db.refresh(form)
    logger.info("Updated form %s (%s)", form.id, ", ".join(sorted(changes)))
    return form


def set_published(db: Session, form_id: uuid.UUID, value: bool) -> Form:
    form = get_form(db, form_id)
    form.published = value
    _commit(db, "change form visibility")
    db.refresh(form)
    logger.info("Form %s %s", form.id, "published" if value else "unpublished")
    return form


def delete_form(db: Session, form_id: uuid.UUID) -> None:
    """Delete a form together with every submission to it."""
    form = get_form(db, form_id)
    db.delete(form)
    _commit(db, "delete form")
    logger.info("Deleted form %s and its responses", form_id)

"""Response collection: one validated submission per respondent per form."""

import logging
import uuid
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from portal.models.form import Form
from portal.models.form_submission import FormSubmission
from portal.services.forms.exceptions import (
    DuplicateSubmissionError,
    FormNotPublishedError,
    FormStorageError,
    FormValidationError,
)
from portal.services.forms.fields import MULTI_VALUE_KINDS, FormField, is_answered, parse_fields

logger = logging.getLogger(__name__)


def validate_answers(fields: Sequence[FormField], answers: Mapping[str, Any]) -> list[str]:
    """Check answers against the form's fields, return list of errors.

    Keys that match no field are left alone.
    """
    errors: list[str] = []
    for f in fields:
        value = answers.get(f.id)

        if f.required and not is_answered(value):
            errors.append(f"Field '{f.label}' is required")
            continue
        if value is None:
            continue

        if f.kind in MULTI_VALUE_KINDS:
            if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
                errors.append(f"Field '{f.label}': answer must be a list of options")
        elif not isinstance(value, str):
            errors.append(f"Field '{f.label}': answer must be a string")

    return errors


def find_submission(db: Session, form_id: uuid.UUID, respondent_id: uuid.UUID) -> FormSubmission | None:
    return db.execute(
        select(FormSubmission).where(
            FormSubmission.form_id == form_id,
            FormSubmission.user_id == respondent_id,
        )
    ).scalar_one_or_none()


def has_submitted(db: Session, form_id: uuid.UUID, respondent_id: uuid.UUID) -> bool:
    return find_submission(db, form_id, respondent_id) is not None


def submit_response(
    db: Session,
    form_id: uuid.UUID,
    respondent_id: uuid.UUID,
    answers: Mapping[str, Any],
) -> FormSubmission:
    """Store a respondent's answers to a published form.

    Raises FormNotPublishedError for missing or draft forms,
    DuplicateSubmissionError on a second submission, FormValidationError
    when required answers are missing or mis-shaped, and FormStorageError
    when the write itself fails. Nothing is stored unless every check passes.
    """
    form = db.get(Form, form_id)
    if form is None or not form.published:
        raise FormNotPublishedError("Form is not open for responses")

    if has_submitted(db, form.id, respondent_id):
        logger.warning("Rejected duplicate submission to form %s by %s", form.id, respondent_id)
        raise DuplicateSubmissionError("You have already responded to this form")

    errors = validate_answers(parse_fields(form.fields or []), answers)
    if errors:
        raise FormValidationError(errors)

    submission = FormSubmission(
        form_id=form.id,
        user_id=respondent_id,
        answers=dict(answers),
        submitted_at=datetime.now(timezone.utc),
    )
    db.add(submission)
    try:
        db.commit()
    except IntegrityError as exc:
        # Concurrent submission won the race past the lookup above
        db.rollback()
        logger.warning("Unique constraint rejected submission to form %s by %s", form_id, respondent_id)
        raise DuplicateSubmissionError("You have already responded to this form") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to store submission to form %s", form_id)
        raise FormStorageError("Could not store the response") from exc

    db.refresh(submission)
    logger.info("Stored submission %s to form %s", submission.id, form_id)
    return submission

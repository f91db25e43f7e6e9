"""Forms and polls API for operators and respondents."""

import uuid
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from portal.core.auth import get_admin_user, get_current_user
from portal.core.config import settings
from portal.core.database import get_db
from portal.models.profile import Profile
from portal.schemas.forms import (
    AvailableForm,
    FormCreate,
    FormDetailResponse,
    FormKind,
    FormListResponse,
    FormPublishRequest,
    FormResponse,
    FormSubmissionCreate,
    FormSubmissionDetail,
    FormSubmissionListResponse,
    FormSubmissionSchema,
    FormSummaryResponse,
    FormUpdate,
    FormView,
)
from portal.services.forms import aggregator, collector, store
from portal.services.forms.exceptions import (
    DuplicateSubmissionError,
    FormError,
    FormNotFoundError,
    FormNotPublishedError,
    FormStorageError,
    FormValidationError,
)

router = APIRouter()

_STATUS_BY_ERROR = (
    (FormValidationError, 422),
    (FormNotFoundError, 404),
    (FormNotPublishedError, 409),
    (DuplicateSubmissionError, 409),
    (FormStorageError, 503),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _http_error(exc: FormError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def _get_form_or_404(form_id: uuid.UUID, db: Session):
    try:
        return store.get_form(db, form_id)
    except FormNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


def _content_disposition(filename: str) -> str:
    fallback = filename.encode("ascii", "ignore").decode("ascii").replace('"', "")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


# ---------------------------------------------------------------------------
# Operator endpoints
# ---------------------------------------------------------------------------


@router.post("/", response_model=FormResponse, status_code=201)
def create_form(
    payload: FormCreate,
    admin_user: Profile = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    data = payload.model_dump()
    try:
        return store.create_form(
            db,
            title=data["title"],
            description=data["description"],
            form_kind=data["form_kind"],
            published=data["published"],
            fields=data["fields"],
            created_by=admin_user.id,
        )
    except FormError as exc:
        raise _http_error(exc)


@router.get("/", response_model=FormListResponse)
def list_forms(
    form_kind: FormKind | None = Query(None),
    search: str | None = Query(None),
    published: bool | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.FORMS_DEFAULT_PAGE_SIZE, ge=1, le=100),
    admin_user: Profile = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    forms, total = store.list_forms(
        db,
        form_kind=form_kind,
        search=search,
        published=published,
        page=page,
        page_size=page_size,
    )
    counts = store.response_counts(db, [f.id for f in forms])
    items = [
        FormDetailResponse.model_validate(f).model_copy(update={"response_count": counts[f.id]})
        for f in forms
    ]
    return FormListResponse(items=items, total=total, page=page, page_size=page_size)


@router.get("/available", response_model=list[AvailableForm])
def list_available_forms(
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Published forms for respondents, each flagged when the caller already answered it."""
    forms, _ = store.list_forms(db, published=True, page=1, page_size=1000)
    submitted = store.submitted_form_ids(db, current_user.id)
    return [
        AvailableForm(
            id=f.id,
            title=f.title,
            description=f.description,
            form_kind=f.form_kind,
            created_at=f.created_at,
            field_count=len(f.fields or []),
            submitted=f.id in submitted,
        )
        for f in forms
    ]


@router.get("/{form_id}", response_model=FormDetailResponse)
def get_form(
    form_id: uuid.UUID,
    admin_user: Profile = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    form = _get_form_or_404(form_id, db)
    detail = FormDetailResponse.model_validate(form)
    detail.response_count = store.response_count(db, form.id)
    return detail


@router.put("/{form_id}", response_model=FormResponse)
def update_form(
    form_id: uuid.UUID,
    payload: FormUpdate,
    admin_user: Profile = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    try:
        return store.update_form(db, form_id, payload.model_dump(exclude_unset=True))
    except FormError as exc:
        raise _http_error(exc)


@router.put("/{form_id}/publish", response_model=FormResponse)
def publish_form(
    form_id: uuid.UUID,
    payload: FormPublishRequest,
    admin_user: Profile = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    try:
        return store.set_published(db, form_id, payload.published)
    except FormError as exc:
        raise _http_error(exc)


@router.delete("/{form_id}", status_code=204)
def delete_form(
    form_id: uuid.UUID,
    admin_user: Profile = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    try:
        store.delete_form(db, form_id)
    except FormError as exc:
        raise _http_error(exc)


@router.get("/{form_id}/responses", response_model=FormSubmissionListResponse)
def list_form_responses(
    form_id: uuid.UUID,
    admin_user: Profile = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    _get_form_or_404(form_id, db)
    submissions = store.list_submissions(db, form_id)
    items = [
        FormSubmissionDetail(
            id=sub.id,
            form_id=sub.form_id,
            user_id=sub.user_id,
            answers=sub.answers or {},
            submitted_at=sub.submitted_at,
            respondent_name=record.respondent_name,
            respondent_student_id=record.respondent_external_id or None,
        )
        for sub, record in zip(submissions, store.response_records(submissions))
    ]
    return FormSubmissionListResponse(items=items, total=len(items))


@router.get("/{form_id}/summary", response_model=FormSummaryResponse)
def form_summary(
    form_id: uuid.UUID,
    admin_user: Profile = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    form = _get_form_or_404(form_id, db)
    try:
        fields = store.form_fields(form)
    except FormError as exc:
        raise _http_error(exc)
    records = store.response_records(store.list_submissions(db, form_id))
    return FormSummaryResponse(
        form_id=form.id,
        title=form.title,
        total_responses=len(records),
        fields=aggregator.summarize(fields, records),
    )


@router.get("/{form_id}/responses/download")
def download_form_responses(
    form_id: uuid.UUID,
    admin_user: Profile = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    """Export all responses as CSV, one row per respondent."""
    form = _get_form_or_404(form_id, db)
    try:
        fields = store.form_fields(form)
    except FormError as exc:
        raise _http_error(exc)
    records = store.response_records(store.list_submissions(db, form_id))
    content = aggregator.render_csv(aggregator.build_export(fields, records))

    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": _content_disposition(aggregator.export_filename(form.title))},
    )


# ---------------------------------------------------------------------------
# Respondent endpoints
# ---------------------------------------------------------------------------


@router.get("/{form_id}/view", response_model=FormView)
def view_form(
    form_id: uuid.UUID,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        form = store.get_published_form(db, form_id)
    except FormError as exc:
        raise _http_error(exc)
    return FormView(
        id=form.id,
        title=form.title,
        description=form.description,
        form_kind=form.form_kind,
        fields=form.fields or [],
        submitted=collector.has_submitted(db, form.id, current_user.id),
    )


@router.post("/{form_id}/responses", response_model=FormSubmissionSchema, status_code=201)
def submit_form_response(
    form_id: uuid.UUID,
    payload: FormSubmissionCreate,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return collector.submit_response(db, form_id, current_user.id, payload.answers)
    except FormError as exc:
        raise _http_error(exc)

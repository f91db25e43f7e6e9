import uuid
from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from portal.services.forms.fields import FieldKind, FormField

FormKind = Literal["form", "poll"]


# ---------------------------------------------------------------------------
# Form CRUD schemas
# ---------------------------------------------------------------------------


class FormCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    form_kind: FormKind = "form"
    published: bool = False
    fields: list[FormField]


class FormUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    form_kind: FormKind | None = None
    published: bool | None = None
    fields: list[FormField] | None = None


class FormPublishRequest(BaseModel):
    published: bool


class FormResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    description: str | None
    form_kind: FormKind
    fields: list[dict[str, Any]]
    published: bool
    created_by: uuid.UUID
    created_at: datetime
    updated_at: datetime


class FormDetailResponse(FormResponse):
    response_count: int = 0


class FormListResponse(BaseModel):
    items: list[FormDetailResponse]
    total: int
    page: int
    page_size: int


# ---------------------------------------------------------------------------
# Respondent-facing schemas
# ---------------------------------------------------------------------------


class AvailableForm(BaseModel):
    """A published form as listed to respondents."""

    id: uuid.UUID
    title: str
    description: str | None
    form_kind: FormKind
    created_at: datetime
    field_count: int
    submitted: bool


class FormView(BaseModel):
    """A published form ready to be filled in; locked once submitted."""

    id: uuid.UUID
    title: str
    description: str | None
    form_kind: FormKind
    fields: list[dict[str, Any]]
    submitted: bool


# ---------------------------------------------------------------------------
# Submission schemas
# ---------------------------------------------------------------------------


class FormSubmissionCreate(BaseModel):
    """Answers keyed by field id."""

    answers: dict[str, Any] = Field(
        ...,
        description="Map of field id to answer (string, or list of strings for multi_choice)",
    )


class FormSubmissionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    form_id: uuid.UUID
    user_id: uuid.UUID
    answers: dict[str, Any]
    submitted_at: datetime


class FormSubmissionDetail(FormSubmissionSchema):
    respondent_name: str
    respondent_student_id: str | None


class FormSubmissionListResponse(BaseModel):
    items: list[FormSubmissionDetail]
    total: int


# ---------------------------------------------------------------------------
# Summary schemas
# ---------------------------------------------------------------------------


class OptionTally(BaseModel):
    option: str
    count: int
    percentage: int


class ChoiceFieldSummary(BaseModel):
    """Per-option counts for single_choice, single_select and multi_choice."""

    summary_type: Literal["choice"] = "choice"
    field_id: str
    label: str
    kind: FieldKind
    total_responses: int
    answered_total: int
    options: list[OptionTally]


class TextFieldSummary(BaseModel):
    """Answered/skipped counts for short_text, long_text and date.

    ``answers`` lists the non-empty answers for text kinds and is None for
    date fields.
    """

    summary_type: Literal["text"] = "text"
    field_id: str
    label: str
    kind: FieldKind
    total_responses: int
    answered: int
    skipped: int
    percentage_answered: int
    answers: list[str] | None = None


FieldSummary = Annotated[Union[ChoiceFieldSummary, TextFieldSummary], Field(discriminator="summary_type")]


class FormSummaryResponse(BaseModel):
    form_id: uuid.UUID
    title: str
    total_responses: int
    fields: list[FieldSummary]

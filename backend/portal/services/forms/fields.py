"""Question kinds and the shape rules each kind implies.

Fields are stored as plain JSON inside ``forms.fields``. Every read and
write goes through :func:`parse_fields`, so code past this module only
ever sees one of the three typed field models below.
"""

import uuid
from collections.abc import Iterable, Sequence
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from portal.services.forms.exceptions import FormValidationError

FieldKind = Literal["short_text", "long_text", "single_choice", "multi_choice", "single_select", "date"]

FIELD_KINDS: tuple[str, ...] = ("short_text", "long_text", "single_choice", "multi_choice", "single_select", "date")
CHOICE_KINDS = frozenset({"single_choice", "multi_choice", "single_select"})
TEXT_KINDS = frozenset({"short_text", "long_text"})
MULTI_VALUE_KINDS = frozenset({"multi_choice"})

MIN_OPTIONS = 2


def options_required(kind: str) -> bool:
    """True when fields of this kind must carry an options list."""
    return kind in CHOICE_KINDS


def new_field_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Field models
# ---------------------------------------------------------------------------


class _BaseField(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=new_field_id, min_length=1, max_length=100)
    label: str = Field(..., min_length=1, max_length=1000)
    required: bool = False

    @field_validator("label")
    @classmethod
    def _label_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("label must not be blank")
        return value


class _FreeInputField(_BaseField):
    placeholder: str | None = Field(None, max_length=255)
    options: list[str] | None = None

    @field_validator("options")
    @classmethod
    def _no_options(cls, value: list[str] | None) -> None:
        # An empty list is coerced away, anything else is a shape error
        if value:
            raise ValueError("options are only allowed on choice fields")
        return None


class TextField(_FreeInputField):
    kind: Literal["short_text", "long_text"]


class DateField(_FreeInputField):
    kind: Literal["date"]


class ChoiceField(_BaseField):
    kind: Literal["single_choice", "multi_choice", "single_select"]
    options: list[str] = Field(..., min_length=MIN_OPTIONS)
    placeholder: str | None = None

    @field_validator("options")
    @classmethod
    def _options_not_blank(cls, value: list[str]) -> list[str]:
        if any(not option.strip() for option in value):
            raise ValueError("options must not be blank")
        if len(set(value)) != len(value):
            raise ValueError("options must be unique")
        return value

    @field_validator("placeholder")
    @classmethod
    def _drop_placeholder(cls, value: str | None) -> None:
        return None


FormField = Annotated[Union[TextField, DateField, ChoiceField], Field(discriminator="kind")]

_fields_adapter: TypeAdapter[list[FormField]] = TypeAdapter(list[FormField])


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------


def _format_error(error: dict) -> str:
    loc = error.get("loc", ())
    where = f"Field {loc[0]}" if loc else "Fields"
    attr = ".".join(str(part) for part in loc[2:])
    if attr:
        where = f"{where} ({attr})"
    return f"{where}: {error.get('msg', 'invalid value')}"


def parse_fields(raw: Iterable[Any]) -> list[FormField]:
    """Validate a JSON-like fields array and return typed field models.

    Raises FormValidationError listing every problem found.
    """
    try:
        fields = _fields_adapter.validate_python(list(raw))
    except ValidationError as exc:
        raise FormValidationError([_format_error(err) for err in exc.errors()]) from exc

    seen: set[str] = set()
    duplicates: list[str] = []
    for field in fields:
        if field.id in seen:
            duplicates.append(f"Duplicate field id '{field.id}'")
        seen.add(field.id)
    if duplicates:
        raise FormValidationError(duplicates)
    return fields


def dump_fields(fields: Sequence[FormField]) -> list[dict[str, Any]]:
    """Serialize typed fields back to the stored JSON shape (``None`` keys omitted)."""
    return [field.model_dump(exclude_none=True) for field in fields]


def is_answered(value: Any) -> bool:
    """Non-empty string, non-empty list, or any other non-null value."""
    if value is None:
        return False
    if isinstance(value, (str, list, tuple, dict)):
        return len(value) > 0
    return True

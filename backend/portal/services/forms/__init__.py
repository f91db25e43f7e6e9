"""Forms and polls: field schema, definition store, response collection and aggregation."""

from portal.services.forms.exceptions import (
    DuplicateSubmissionError,
    FormError,
    FormNotFoundError,
    FormNotPublishedError,
    FormStorageError,
    FormValidationError,
)
from portal.services.forms.fields import (
    CHOICE_KINDS,
    FIELD_KINDS,
    ChoiceField,
    DateField,
    FormField,
    TextField,
    dump_fields,
    options_required,
    parse_fields,
)

__all__ = [
    "CHOICE_KINDS",
    "FIELD_KINDS",
    "ChoiceField",
    "DateField",
    "DuplicateSubmissionError",
    "FormError",
    "FormField",
    "FormNotFoundError",
    "FormNotPublishedError",
    "FormStorageError",
    "FormValidationError",
    "TextField",
    "dump_fields",
    "options_required",
    "parse_fields",
]

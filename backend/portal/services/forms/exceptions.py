"""Forms service exceptions."""


class FormError(Exception):
    """Base exception for form and response operations."""


class FormValidationError(FormError):
    """Raised when a form definition or a submission fails validation."""

    def __init__(self, errors: list[str] | str) -> None:
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__("; ".join(self.errors))


class FormNotFoundError(FormError):
    """Raised when no form exists with the requested id."""


class FormNotPublishedError(FormError):
    """Raised when responses are sent to a draft or missing form."""


class DuplicateSubmissionError(FormError):
    """Raised when a respondent has already answered the form."""


class FormStorageError(FormError):
    """Raised when the database rejects or fails a read or write."""

from portal.models.document import Document
from portal.models.form import Form
from portal.models.form_submission import FormSubmission
from portal.models.profile import Profile

__all__ = [
    "Document",
    "Form",
    "FormSubmission",
    "Profile",
]

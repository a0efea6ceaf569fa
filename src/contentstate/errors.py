"""Error taxonomy for the content reconciliation core."""
from typing import Any, Dict, List, Optional

from pydantic import ValidationError


class ContentStateError(Exception):
    """Base class for all contentstate errors."""


class FormValidationError(ContentStateError):
    """The form schema rejected the current values.

    Raised before any network call so the UI can surface errors inline,
    one list of messages per flat form key.
    """

    def __init__(self, field_errors: Dict[str, List[str]]):
        self.field_errors = field_errors
        summary = ", ".join(f"{key}: {'; '.join(msgs)}" for key, msgs in sorted(field_errors.items()))
        super().__init__(f"Form validation failed ({summary})")

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> 'FormValidationError':
        """Group pydantic error entries by their top-level form key."""
        field_errors: Dict[str, List[str]] = {}
        for error in exc.errors():
            loc = error.get('loc') or ('__root__',)
            key = str(loc[0])
            field_errors.setdefault(key, []).append(error.get('msg', 'invalid value'))
        return cls(field_errors)


class BackendError(ContentStateError):
    """An external collaborator (HTTP API, store) failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class SaveFailure(ContentStateError):
    """Persisting the core product fields failed; nothing was saved."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class PartialSaveFailure(ContentStateError):
    """Core fields were saved but a sub-record save (e.g. variations) failed."""

    def __init__(self, failed_part: str, cause: Optional[BaseException] = None):
        self.failed_part = failed_part
        self.cause = cause
        super().__init__(f"Saved core fields but '{failed_part}' failed: {cause}")


class ConflictDetectionError(ContentStateError):
    """The external snapshot could not be fetched; conflict state is unknown."""

    def __init__(self, product_id: Any, cause: Optional[BaseException] = None):
        self.product_id = product_id
        self.cause = cause
        super().__init__(f"Conflict detection failed for product {product_id}: {cause}")


class VersionPersistenceFailure(ContentStateError):
    """A version record could not be persisted. Logged, never raised to callers."""

    def __init__(self, product_id: Any, trigger_type: str, cause: Optional[BaseException] = None):
        self.product_id = product_id
        self.trigger_type = trigger_type
        self.cause = cause
        super().__init__(f"Failed to persist {trigger_type} version for product {product_id}: {cause}")

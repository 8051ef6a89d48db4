class DraftGridError(Exception):
    """Base class for draftgrid errors."""


class ConfigError(DraftGridError):
    """Raised when settings contain an invalid value."""


# ---------------------------------------------------------------------------
# Draft editing
# ---------------------------------------------------------------------------


class NotEditable(DraftGridError):
    """Raised when an edit is attempted outside edit mode or on a read-only field."""


class UnknownRecordError(NotEditable):
    """Raised when an edit targets a record that is not part of the draft."""


class UnknownFieldError(DraftGridError):
    """Raised when a field name is not declared for the view."""


class InvalidFieldValue(DraftGridError):
    """Raised when a raw value cannot be coerced to its field kind."""

    def __init__(self, field: str, raw: object, reason: str) -> None:
        super().__init__(f"invalid value {raw!r} for {field}: {reason}")
        self.field = field
        self.raw = raw
        self.reason = reason


class EditModeError(DraftGridError):
    """Raised when edit mode is entered twice."""


class UnsavedChangesError(DraftGridError):
    """Raised when leaving edit mode would silently drop pending edits."""


class CommitInProgress(DraftGridError):
    """Raised when a commit is requested while another one is running."""


class CommitError(DraftGridError):
    """Raised when a batch commit did not apply every pending record.

    The :class:`~draftgrid.draft.CommitReport` describing the partial
    outcome is available as :attr:`report`.
    """

    def __init__(self, report) -> None:  # noqa: ANN001 - avoid import cycle
        super().__init__(report.summary())
        self.report = report


# ---------------------------------------------------------------------------
# View presets
# ---------------------------------------------------------------------------


class DuplicateName(DraftGridError):
    """Raised when creating a preset whose name is already taken."""


class NotFound(DraftGridError):
    """Raised when a preset name is unknown."""


class InvalidPresetError(DraftGridError):
    """Raised when a preset name, order or visibility map is malformed."""


class NoPresetBufferError(DraftGridError):
    """Raised when a buffer operation is attempted with no preset under edit."""


class PersistenceWarning(DraftGridError):
    """Raised when the preset store could not be written.

    The in-memory mutation is kept; persisted and in-memory state diverge
    until the next successful write.
    """


class StoreLoadError(DraftGridError):
    """Raised when a key-value store file cannot be parsed."""


# ---------------------------------------------------------------------------
# Remote gateway
# ---------------------------------------------------------------------------


class GatewayError(DraftGridError):
    """Raised for failures reported by the remote collection API."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class Unauthorized(GatewayError):
    """Raised when the API rejects the credentials (401/403)."""


class RecordNotFound(GatewayError):
    """Raised when the API reports an unknown record (404)."""


class ValidationError(GatewayError):
    """Raised when the API refuses a payload (400/409/422)."""


class NetworkError(GatewayError):
    """Raised when the API cannot be reached."""

"""
Typed errors shared across the voice memo pipeline.

Lower layers raise these; the worker and the service decide whether a
failure is skipped, recorded or shown to the user.
"""

from enum import Enum


class NoteErrorKind(str, Enum):
    """Failure classes reported by the note-creation target."""

    AUTOMATION_PERMISSION_DENIED = "automation_permission_denied"
    TARGET_NOT_RUNNING = "target_not_running"
    TARGET_HANDLER_FAILED = "target_handler_failed"
    LAUNCH_FAILED = "launch_failed"
    ACCOUNT_UNAVAILABLE = "account_unavailable"
    GENERIC_SCRIPT_ERROR = "generic_script_error"


_REMEDIATION = {
    NoteErrorKind.AUTOMATION_PERMISSION_DENIED: (
        "Notes automation permission denied: {detail}. Open System Settings > Privacy & Security > "
        "Automation and allow this app to control Notes."
    ),
    NoteErrorKind.ACCOUNT_UNAVAILABLE: (
        "Notes default account is unavailable: {detail}. Open Notes once and ensure an account exists."
    ),
    NoteErrorKind.TARGET_NOT_RUNNING: "Notes is not ready: {detail}. Open Notes once and retry.",
    NoteErrorKind.TARGET_HANDLER_FAILED: "Notes AppleEvent handler failed: {detail}. Retrying may resolve this.",
    NoteErrorKind.LAUNCH_FAILED: "Failed to launch Notes: {detail}",
    NoteErrorKind.GENERIC_SCRIPT_ERROR: "Notes automation failed: {detail}",
}


class NoteCreationError(Exception):
    """A note could not be created."""

    def __init__(self, kind: NoteErrorKind, detail: str = ""):
        super().__init__(kind, detail)
        self.kind = NoteErrorKind(kind)
        self.detail = detail

    def __str__(self) -> str:
        return _REMEDIATION[self.kind].format(detail=self.detail or "unknown error")


class AccessError(Exception):
    """The watch folder cannot be used."""


class AccessDeniedError(AccessError):
    """The folder exists but cannot be read."""


class StaleAccessGrantError(AccessError):
    """The saved folder reference no longer points at the same directory."""


class WatchSetupError(Exception):
    """A watch session could not start; carries a remediation hint."""

    def __init__(self, message: str, hint: str = ""):
        super().__init__(message)
        self.hint = hint

    def __str__(self) -> str:
        message = super().__str__()
        return f"{message} {self.hint}".strip()


class InstanceLockedError(Exception):
    """Another process already owns this data directory."""

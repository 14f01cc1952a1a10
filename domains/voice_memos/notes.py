"""
Note-creation target: Apple Notes driven through ``osascript``.

Provides:
- The script codec (line endings, HTML wrapping, AppleScript escaping)
- Classification of script failures into ``NoteErrorKind``
- Launching Notes and waiting for its process
- ``create_note`` with an HTML primary call, a plain-text fallback and the
  retry policy around both

Callers pass a pre-rendered title and body; no templating happens here.
"""

import re
import subprocess
import time
from typing import Callable, Optional, Protocol

from loguru import logger

from domains.voice_memos.errors import NoteCreationError, NoteErrorKind
from domains.voice_memos.retry import RETRYABLE_KINDS, RetryPolicy

SCRIPT_TIMEOUT = 120  # seconds
_ERROR_CODE_PATTERN = re.compile(r"\((-?\d+)\)")


class NoteTarget(Protocol):
    def create_note(self, title: str, body: str) -> None:
        ...


# =====================================================
# Codec
# =====================================================

def normalize_line_endings(text: str) -> str:
    """Convert every line ending to ``\\r``, which Notes treats as a line break."""
    return text.replace("\r\n", "\r").replace("\n", "\r")


def escape_html(text: str) -> str:
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def wrap_as_notes_html(text: str) -> str:
    """Wrap normalized text as an HTML note body."""
    with_breaks = escape_html(text).replace("\r", "<br>")
    return f"<html><body>{with_breaks}</body></html>"


def escape_for_applescript(text: str) -> str:
    """Escape text for use inside an AppleScript string literal."""
    return (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\r", "\\r")
        .replace("\n", "\\n")
    )


def build_create_script(folder_name: str, title: str, body: str, bundle_id: str) -> str:
    """Build the AppleScript that files a note into ``folder_name``."""
    return f"""
set folderName to "{escape_for_applescript(folder_name)}"
set noteTitle to "{escape_for_applescript(title)}"
set noteBody to "{escape_for_applescript(body)}"

tell application id "{escape_for_applescript(bundle_id)}"
    launch
    activate
    delay 0.3
    set acc to default account
    set targetFolder to missing value

    tell acc
        repeat with f in folders
            if name of f is folderName then
                set targetFolder to f
                exit repeat
            end if
        end repeat

        if targetFolder is missing value then
            set targetFolder to make new folder with properties {{name:folderName}}
        end if

        make new note at targetFolder with properties {{name:noteTitle, body:noteBody}}
    end tell
end tell
""".strip()


def classify_script_error(message: str, error_number: Optional[int] = None) -> NoteCreationError:
    """
    Map an AppleScript failure to a typed error.

    Args:
        message: Error text from osascript
        error_number: AppleScript error number, parsed from ``message`` if absent

    Returns:
        NoteCreationError with the matching kind
    """
    lower = message.lower()
    if error_number is None:
        match = _ERROR_CODE_PATTERN.search(message)
        if match:
            error_number = int(match.group(1))

    if error_number == -1743 or "not authorized to send apple events" in lower:
        kind = NoteErrorKind.AUTOMATION_PERMISSION_DENIED
    elif error_number == -10000 or "appleevent handler failed" in lower:
        kind = NoteErrorKind.TARGET_HANDLER_FAILED
    elif (
        error_number == -600
        or "application isn’t running" in lower
        or "application is not running" in lower
    ):
        kind = NoteErrorKind.TARGET_NOT_RUNNING
    elif "default account" in lower:
        kind = NoteErrorKind.ACCOUNT_UNAVAILABLE
    else:
        kind = NoteErrorKind.GENERIC_SCRIPT_ERROR

    return NoteCreationError(kind, message)


# =====================================================
# Client
# =====================================================

class NotesClient:
    """Creates notes in Apple Notes."""

    def __init__(
        self,
        folder_name: str = "VoiceMemoTranscriber",
        bundle_id: str = "com.apple.Notes",
        process_name: str = "Notes",
        launch_timeout: float = 6.0,
        policy: Optional[RetryPolicy] = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        log=None,
    ):
        """
        Initialize Notes client.

        Args:
            folder_name: Notes folder receiving new notes
            bundle_id: Notes application bundle identifier
            process_name: Process name used to detect a running Notes
            launch_timeout: Seconds to wait for Notes to appear after launch
            policy: Retry policy for the create call
            runner: ``subprocess.run`` compatible callable
            sleep: Sleep function
            clock: Monotonic clock
            log: Logger handle
        """
        self.folder_name = folder_name
        self.bundle_id = bundle_id
        self.process_name = process_name
        self.launch_timeout = launch_timeout
        self.policy = policy or RetryPolicy(sleep=sleep)
        self._run = runner
        self._sleep = sleep
        self._clock = clock
        self.log = log or logger.bind(component="notes")

    def create_note(self, title: str, body: str):
        """
        Create a note, retrying transient failures.

        Each attempt sends the HTML body first; if that fails with a
        retry-worthy error, the plain-text body is tried within the same
        attempt before the attempt counts as failed.

        Raises:
            NoteCreationError: Terminal failure or retries exhausted
        """
        normalized = normalize_line_endings(body)
        html_body = wrap_as_notes_html(normalized)

        self.log.info("createNote start")
        self.ensure_running()

        def attempt():
            try:
                self._run_script(build_create_script(self.folder_name, title, html_body, self.bundle_id), stdin=True)
            except NoteCreationError as e:
                if e.kind not in RETRYABLE_KINDS:
                    raise
                self.log.warning(f"HTML create got {e.kind.value}, trying plain-text fallback")
                self._run_script(build_create_script(self.folder_name, title, normalized, self.bundle_id))

        self.policy.run(attempt, reinitialize=self.ensure_running, log=self.log)
        self.log.success("createNote succeeded")

    def is_running(self) -> bool:
        """Check whether the Notes process is alive."""
        try:
            result = self._run(["pgrep", "-x", self.process_name], capture_output=True, text=True)
        except OSError as e:
            self.log.debug(f"pgrep unavailable: {e}")
            return False
        return result.returncode == 0

    def ensure_running(self):
        """
        Make sure Notes is running, launching it if needed.

        Raises:
            NoteCreationError: ``launch_failed`` if the launch command fails,
                ``target_not_running`` if the process never appears
        """
        if self.is_running():
            self.log.debug("Notes already running")
            self._sleep(0.3)
            return

        self.log.info("Launching Notes")
        try:
            result = self._run(["open", "-b", self.bundle_id], capture_output=True, text=True, timeout=10)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise NoteCreationError(NoteErrorKind.LAUNCH_FAILED, str(e)) from e

        if result.returncode != 0:
            detail = (result.stderr or "").strip() or f"open exited with {result.returncode}"
            raise NoteCreationError(NoteErrorKind.LAUNCH_FAILED, detail)

        deadline = self._clock() + self.launch_timeout
        while self._clock() < deadline:
            if self.is_running():
                self.log.info("Notes process is running")
                return
            self._sleep(0.2)

        raise NoteCreationError(NoteErrorKind.TARGET_NOT_RUNNING, "Timed out waiting for Notes process.")

    def _run_script(self, script: str, stdin: bool = False):
        if stdin:
            args, kwargs = ["osascript", "-"], {"input": script}
        else:
            args, kwargs = ["osascript", "-e", script], {}

        try:
            result = self._run(args, capture_output=True, text=True, timeout=SCRIPT_TIMEOUT, **kwargs)
        except subprocess.TimeoutExpired as e:
            raise NoteCreationError(NoteErrorKind.TARGET_HANDLER_FAILED, f"osascript timed out after {e.timeout}s") from e
        except OSError as e:
            raise NoteCreationError(NoteErrorKind.GENERIC_SCRIPT_ERROR, f"osascript unavailable: {e}") from e

        if result.returncode != 0:
            message = (result.stderr or "").strip() or "unknown error"
            raise classify_script_error(message)

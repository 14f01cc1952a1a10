"""
Retry policy for the note-creation call.

``target_not_running`` and ``target_handler_failed`` usually clear up once
the notes application has finished launching, so those are retried with an
escalating sleep and a re-initialization step before each retry. Every
other failure kind is terminal and propagates immediately.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, TypeVar

import tenacity
from loguru import logger

from domains.voice_memos.errors import NoteCreationError, NoteErrorKind

T = TypeVar("T")

RETRYABLE_KINDS = frozenset({NoteErrorKind.TARGET_NOT_RUNNING, NoteErrorKind.TARGET_HANDLER_FAILED})


def is_retryable_note_error(exc: BaseException) -> bool:
    """Check if exception is a retry-worthy note-creation failure."""
    return isinstance(exc, NoteCreationError) and exc.kind in RETRYABLE_KINDS


@dataclass
class RetryPolicy:
    """Bounded retry with escalating backoff: ``min(cap, base * attempt)``."""

    max_attempts: int = 4
    cap: float = 2.5
    base_delays: Dict[NoteErrorKind, float] = field(
        default_factory=lambda: {
            NoteErrorKind.TARGET_NOT_RUNNING: 0.5,
            NoteErrorKind.TARGET_HANDLER_FAILED: 0.7,
        }
    )
    sleep: Callable[[float], None] = time.sleep

    def delay_for(self, kind: NoteErrorKind, attempt: int) -> float:
        """Sleep before retrying after failed attempt number ``attempt``."""
        return min(self.cap, self.base_delays.get(kind, 0.5) * attempt)

    def run(
        self,
        call: Callable[[], T],
        reinitialize: Optional[Callable[[], None]] = None,
        log=None,
    ) -> T:
        """
        Run ``call`` under this policy.

        Args:
            call: One attempt; raises ``NoteCreationError`` on failure
            reinitialize: Run before each retry (e.g. relaunch the target).
                Errors it raises propagate.
            log: Logger handle

        Returns:
            Whatever ``call`` returns

        Raises:
            NoteCreationError: Terminal error, or the last error once
                attempts are exhausted
        """
        log = log or logger.bind(component="retry")

        def _wait(retry_state: tenacity.RetryCallState) -> float:
            exc = retry_state.outcome.exception()
            return self.delay_for(exc.kind, retry_state.attempt_number)

        def _before_sleep(retry_state: tenacity.RetryCallState):
            exc = retry_state.outcome.exception()
            log.warning(
                f"Attempt {retry_state.attempt_number}/{self.max_attempts} failed "
                f"({exc.kind.value}), reinitializing and retrying"
            )
            if reinitialize is not None:
                reinitialize()

        retrying = tenacity.Retrying(
            retry=tenacity.retry_if_exception(is_retryable_note_error),
            stop=tenacity.stop_after_attempt(self.max_attempts),
            wait=_wait,
            before_sleep=_before_sleep,
            sleep=self.sleep,
            reraise=True,
        )
        return retrying(call)

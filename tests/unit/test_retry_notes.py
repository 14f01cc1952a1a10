import subprocess

import pytest

from domains.voice_memos.errors import NoteCreationError, NoteErrorKind
from domains.voice_memos.notes import (
    NotesClient,
    build_create_script,
    classify_script_error,
    escape_for_applescript,
    normalize_line_endings,
    wrap_as_notes_html,
)
from domains.voice_memos.retry import RetryPolicy


def failing_then(kinds, result="ok"):
    """Callable raising one NoteCreationError per entry of ``kinds``, then returning ``result``."""
    calls = []

    def call():
        calls.append(len(calls) + 1)
        if len(calls) <= len(kinds):
            raise NoteCreationError(kinds[len(calls) - 1], "boom")
        return result

    return call, calls


class TestRetryPolicy:
    def test_retryable_errors_back_off_then_succeed(self):
        sleeps = []
        reinits = []
        call, calls = failing_then([NoteErrorKind.TARGET_NOT_RUNNING, NoteErrorKind.TARGET_NOT_RUNNING])

        result = RetryPolicy(sleep=sleeps.append).run(call, reinitialize=lambda: reinits.append(1))

        assert result == "ok"
        assert calls == [1, 2, 3]
        assert sleeps == [0.5, 1.0]
        assert len(reinits) == 2

    def test_handler_failures_use_their_own_base_delay(self):
        sleeps = []
        call, _ = failing_then([NoteErrorKind.TARGET_HANDLER_FAILED] * 2)

        RetryPolicy(sleep=sleeps.append).run(call)

        assert sleeps == pytest.approx([0.7, 1.4])

    def test_terminal_error_is_not_retried(self):
        sleeps = []
        call, calls = failing_then([NoteErrorKind.AUTOMATION_PERMISSION_DENIED])

        with pytest.raises(NoteCreationError) as exc_info:
            RetryPolicy(sleep=sleeps.append).run(call)

        assert exc_info.value.kind == NoteErrorKind.AUTOMATION_PERMISSION_DENIED
        assert calls == [1]
        assert sleeps == []

    def test_exhaustion_reraises_the_last_error(self):
        sleeps = []
        call, calls = failing_then([NoteErrorKind.TARGET_NOT_RUNNING] * 10)

        with pytest.raises(NoteCreationError) as exc_info:
            RetryPolicy(sleep=sleeps.append).run(call)

        assert exc_info.value.kind == NoteErrorKind.TARGET_NOT_RUNNING
        assert calls == [1, 2, 3, 4]
        assert sleeps == [0.5, 1.0, 1.5]

    def test_delay_is_capped(self):
        policy = RetryPolicy()

        assert policy.delay_for(NoteErrorKind.TARGET_NOT_RUNNING, 10) == 2.5
        assert policy.delay_for(NoteErrorKind.TARGET_HANDLER_FAILED, 4) == 2.5

    def test_reinitialize_errors_propagate(self):
        call, calls = failing_then([NoteErrorKind.TARGET_NOT_RUNNING])

        def relaunch():
            raise NoteCreationError(NoteErrorKind.LAUNCH_FAILED, "no such app")

        with pytest.raises(NoteCreationError) as exc_info:
            RetryPolicy(sleep=lambda s: None).run(call, reinitialize=relaunch)

        assert exc_info.value.kind == NoteErrorKind.LAUNCH_FAILED
        assert calls == [1]


class TestClassification:
    @pytest.mark.parametrize(
        "message, kind",
        [
            ("execution error: Not authorized to send Apple events to Notes. (-1743)",
             NoteErrorKind.AUTOMATION_PERMISSION_DENIED),
            ("execution error: Notes got an error: AppleEvent handler failed. (-10000)",
             NoteErrorKind.TARGET_HANDLER_FAILED),
            ("execution error: Notes got an error: Application isn’t running. (-600)",
             NoteErrorKind.TARGET_NOT_RUNNING),
            ("execution error: Can’t get default account. (-1728)", NoteErrorKind.ACCOUNT_UNAVAILABLE),
            ("syntax error: Expected end of line (-2741)", NoteErrorKind.GENERIC_SCRIPT_ERROR),
        ],
    )
    def test_classify_script_error(self, message, kind):
        error = classify_script_error(message)

        assert error.kind == kind
        assert error.detail == message

    def test_explicit_error_number_wins(self):
        assert classify_script_error("weird", error_number=-600).kind == NoteErrorKind.TARGET_NOT_RUNNING

    def test_error_messages_carry_remediation(self):
        denied = str(NoteCreationError(NoteErrorKind.AUTOMATION_PERMISSION_DENIED, "x"))
        account = str(NoteCreationError(NoteErrorKind.ACCOUNT_UNAVAILABLE, "x"))

        assert "Privacy & Security" in denied
        assert "Open Notes once" in account


class TestCodec:
    def test_line_endings_become_carriage_returns(self):
        assert normalize_line_endings("a\r\nb\nc\rd") == "a\rb\rc\rd"

    def test_html_wrapping_escapes_and_breaks_lines(self):
        assert wrap_as_notes_html('1 < 2 & "x"\rnext') == (
            "<html><body>1 &lt; 2 &amp; &quot;x&quot;<br>next</body></html>"
        )

    def test_applescript_escaping(self):
        assert escape_for_applescript('say "hi" \\ bye\r') == 'say \\"hi\\" \\\\ bye\\r'

    def test_script_embeds_escaped_values(self):
        script = build_create_script("Memos", 'Title "1"', "body", "com.apple.Notes")

        assert 'set folderName to "Memos"' in script
        assert 'set noteTitle to "Title \\"1\\""' in script
        assert 'tell application id "com.apple.Notes"' in script
        assert "{name:noteTitle, body:noteBody}" in script


class FakeRunner:
    """Stands in for ``subprocess.run``: scripted pgrep/open/osascript results."""

    def __init__(self, running=True, open_rc=0, osascript=()):
        self.running = running
        self.open_rc = open_rc
        self.osascript = list(osascript)
        self.calls = []

    def __call__(self, args, **kwargs):
        self.calls.append((args, kwargs))
        tool = args[0]
        if tool == "pgrep":
            return subprocess.CompletedProcess(args, 0 if self.running else 1, "", "")
        if tool == "open":
            if self.open_rc == 0:
                self.running = True
            return subprocess.CompletedProcess(args, self.open_rc, "", "Unable to find application")
        if tool == "osascript":
            stderr = self.osascript.pop(0) if self.osascript else ""
            return subprocess.CompletedProcess(args, 1 if stderr else 0, "", stderr)
        raise AssertionError(f"unexpected command {args}")

    def scripts(self):
        return [args for args, _ in self.calls if args[0] == "osascript"]


def make_client(runner, sleeps=None):
    ticks = iter(range(1000))
    return NotesClient(
        runner=runner,
        sleep=(sleeps.append if sleeps is not None else lambda s: None),
        clock=lambda: float(next(ticks)),
    )


HANDLER_FAILED = "Notes got an error: AppleEvent handler failed. (-10000)"
NOT_RUNNING = "Notes got an error: Application isn’t running. (-600)"
DENIED = "Not authorized to send Apple events to Notes. (-1743)"


class TestNotesClient:
    def test_html_primary_succeeds(self):
        runner = FakeRunner()

        make_client(runner).create_note("2024-05-01 09:30", "hello\nfile:///a.m4a")

        scripts = runner.scripts()
        assert len(scripts) == 1
        assert scripts[0] == ["osascript", "-"]
        stdin = runner.calls[-1][1]["input"]
        assert "<html><body>hello<br>file:///a.m4a</body></html>" in stdin

    def test_plain_text_fallback_after_retryable_primary_failure(self):
        runner = FakeRunner(osascript=[HANDLER_FAILED])

        make_client(runner).create_note("t", "line1\nline2")

        scripts = runner.scripts()
        assert len(scripts) == 2
        assert scripts[1][:2] == ["osascript", "-e"]
        assert 'set noteBody to "line1\\rline2"' in scripts[1][2]

    def test_terminal_error_skips_fallback_and_retries(self):
        runner = FakeRunner(osascript=[DENIED])

        with pytest.raises(NoteCreationError) as exc_info:
            make_client(runner).create_note("t", "b")

        assert exc_info.value.kind == NoteErrorKind.AUTOMATION_PERMISSION_DENIED
        assert len(runner.scripts()) == 1

    def test_persistent_transient_failures_exhaust_four_attempts(self):
        sleeps = []
        runner = FakeRunner(osascript=[NOT_RUNNING] * 8)

        with pytest.raises(NoteCreationError) as exc_info:
            make_client(runner, sleeps).create_note("t", "b")

        assert exc_info.value.kind == NoteErrorKind.TARGET_NOT_RUNNING
        assert len(runner.scripts()) == 8
        # 0.3 settle delays from ensure_running interleave with the backoff
        assert [s for s in sleeps if s != 0.3] == [0.5, 1.0, 1.5]

    def test_launches_notes_when_not_running(self):
        runner = FakeRunner(running=False)

        make_client(runner).create_note("t", "b")

        commands = [args[0] for args, _ in runner.calls]
        assert commands[:3] == ["pgrep", "open", "pgrep"]
        assert commands[-1] == "osascript"

    def test_launch_failure_is_reported(self):
        runner = FakeRunner(running=False, open_rc=1)

        with pytest.raises(NoteCreationError) as exc_info:
            make_client(runner).create_note("t", "b")

        assert exc_info.value.kind == NoteErrorKind.LAUNCH_FAILED
        assert runner.scripts() == []

    def test_osascript_timeout_is_a_handler_failure(self):
        class TimingOutRunner(FakeRunner):
            def __call__(self, args, **kwargs):
                if args[0] == "osascript":
                    self.calls.append((args, kwargs))
                    raise subprocess.TimeoutExpired(args, 120)
                return super().__call__(args, **kwargs)

        runner = TimingOutRunner()

        with pytest.raises(NoteCreationError) as exc_info:
            make_client(runner).create_note("t", "b")

        assert exc_info.value.kind == NoteErrorKind.TARGET_HANDLER_FAILED
        assert len(runner.scripts()) == 8

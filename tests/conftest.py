"""Shared fixtures: isolated settings and in-memory collaborators."""

import threading
from pathlib import Path
from typing import Optional

import pytest

from app.utils.config import Settings


class FakeTranscriber:
    """Returns a fixed transcript, or raises a fixed error."""

    def __init__(self, text: str = "hello", error: Optional[BaseException] = None, authorized: bool = True):
        self.text = text
        self.error = error
        self.authorized = authorized
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def request_authorization(self) -> bool:
        return self.authorized

    def transcribe(self, path: str, locale: str) -> str:
        with self._lock:
            self.calls.append((path, locale))
        if self.error is not None:
            raise self.error
        return self.text


class FakeNotes:
    """Records created notes, or raises a fixed error."""

    def __init__(self, error: Optional[BaseException] = None):
        self.error = error
        self.notes: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def create_note(self, title: str, body: str):
        if self.error is not None:
            raise self.error
        with self._lock:
            self.notes.append((title, body))


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings that keep all state under ``tmp_path`` and never sleep long."""
    return Settings(
        _env_file=None,
        data_dir=tmp_path / "data",
        log_dir=tmp_path / "logs",
        stability_wait_interval=0.01,
        max_stability_attempts=50,
    )


@pytest.fixture
def fake_transcriber() -> FakeTranscriber:
    return FakeTranscriber(text="hello world")


@pytest.fixture
def fake_notes() -> FakeNotes:
    return FakeNotes()


@pytest.fixture
def transcriber_factory():
    return FakeTranscriber


@pytest.fixture
def notes_factory():
    return FakeNotes

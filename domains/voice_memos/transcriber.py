"""
Transcription collaborator.

The pipeline only depends on the ``Transcriber`` protocol:
``request_authorization()`` and ``transcribe(path, locale)``. The bundled
implementation runs faster-whisper locally; the model is loaded lazily and
cached per model size.
"""

import threading
from pathlib import Path
from typing import Dict, Optional, Protocol

from loguru import logger


class FileVanishedError(FileNotFoundError):
    """The source file disappeared between the stability check and its use."""


class TranscriptionError(Exception):
    """Base class for typed transcription failures."""

    message = "Transcription failed."

    def __str__(self) -> str:
        return self.message


class AuthorizationDeniedError(TranscriptionError):
    message = "Speech recognition permission denied."


class RecognizerUnavailableError(TranscriptionError):
    message = "Speech recognizer unavailable for selected locale."


class NoResultError(TranscriptionError):
    message = "No transcription result received."


class RecognitionFailedError(TranscriptionError):
    """Recognition ran but failed."""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def __str__(self) -> str:
        return f"Speech recognition failed: {self.detail}"


class Transcriber(Protocol):
    def request_authorization(self) -> bool:
        ...

    def transcribe(self, path: str, locale: str) -> str:
        ...


_model_cache: Dict[str, object] = {}
_model_lock = threading.Lock()


def language_for_locale(locale: str) -> str:
    """Map a locale identifier (``ja-JP``, ``en_US``) to a language code."""
    return locale.replace("_", "-").split("-")[0].lower()


class WhisperTranscriber:
    """Local transcription with faster-whisper."""

    def __init__(self, model_size: str = "medium", device: str = "auto", log=None):
        self.model_size = model_size
        self.device = device
        self.log = log or logger.bind(component="transcriber")
        self._model = None

    def _load_model(self):
        cache_key = f"{self.model_size}:{self.device}"
        with _model_lock:
            if cache_key in _model_cache:
                self._model = _model_cache[cache_key]
                return

            from faster_whisper import WhisperModel

            self.log.info(f"Loading Whisper model '{self.model_size}' on {self.device}...")
            self._model = WhisperModel(self.model_size, device=self.device)
            _model_cache[cache_key] = self._model
            self.log.success("Whisper model loaded")

    def request_authorization(self) -> bool:
        """
        Report whether the engine can be used.

        A local engine needs no user consent; this checks that the model can
        be loaded. Repeated calls are cheap once the model is cached.
        """
        if self._model is not None:
            return True
        try:
            self._load_model()
        except ImportError as e:
            self.log.error(f"faster-whisper is not installed: {e}")
            return False
        except (OSError, RuntimeError, ValueError) as e:
            self.log.error(f"Cannot load Whisper model '{self.model_size}': {e}")
            return False
        return True

    def transcribe(self, path: str, locale: str) -> str:
        """
        Transcribe an audio file.

        Args:
            path: Local audio file path
            locale: Locale identifier such as ``ja-JP``

        Returns:
            Transcript text

        Raises:
            FileVanishedError: If the file no longer exists
            TranscriptionError: On any engine failure or empty result
        """
        if not self.request_authorization():
            raise AuthorizationDeniedError()

        if not Path(path).is_file():
            raise FileVanishedError(path)

        language = language_for_locale(locale) or None
        self.log.info(f"Transcribing {Path(path).name} (language={language})...")

        try:
            segments, _info = self._model.transcribe(
                path,
                language=language,
                beam_size=5,
                vad_filter=True,
            )
            parts = [segment.text.strip() for segment in segments]
        except FileNotFoundError as e:
            raise FileVanishedError(path) from e
        except ValueError as e:
            raise RecognizerUnavailableError() from e
        except (OSError, RuntimeError) as e:
            raise RecognitionFailedError(str(e)) from e

        return finalize_transcript(" ".join(part for part in parts if part))


def finalize_transcript(text: Optional[str]) -> str:
    """
    Trim a raw engine result.

    Raises:
        NoResultError: If nothing but whitespace remains
    """
    text = (text or "").strip()
    if not text:
        raise NoResultError()
    return text

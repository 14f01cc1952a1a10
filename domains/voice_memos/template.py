"""
Note templates.

A template is plain text with placeholder tokens. The first rendered line
becomes the note title and the remaining lines become the body. The
transcript token is appended when missing so the transcript is never
silently dropped.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

TRANSCRIPT_TOKEN = "{transcribed_text}"

PLACEHOLDERS = ("{date}", "{time}", TRANSCRIPT_TOKEN, "{original_audio}", "{filename}")

DEFAULT_TEMPLATE = "{date} {time}\n{transcribed_text}\n{original_audio}"

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"

_TOKEN_PATTERN = re.compile("|".join(re.escape(token) for token in PLACEHOLDERS))


@dataclass(frozen=True)
class RenderedNote:
    """Title and body ready for the note-creation target."""

    title: str
    body: str


def ensure_transcript_token(template: str) -> str:
    """Append the transcript token on its own line if the template lacks it."""
    if TRANSCRIPT_TOKEN in template:
        return template
    if not template.strip():
        return TRANSCRIPT_TOKEN
    return template.rstrip("\n") + "\n" + TRANSCRIPT_TOKEN


def audio_reference(audio_path: str) -> str:
    """Return a ``file://`` URL for ``audio_path`` (already-URL strings pass through)."""
    if "://" in audio_path:
        return audio_path
    return Path(audio_path).absolute().as_uri()


def filename_of(audio_path: str) -> str:
    """Return the last path component of a path or file URL."""
    return audio_path.rstrip("/").rsplit("/", 1)[-1]


def render_note(
    template: str,
    transcript: str,
    audio_path: str,
    now: Optional[datetime] = None,
) -> RenderedNote:
    """
    Render a note from ``template``.

    Tokens are substituted in a single pass, so a transcript that happens to
    contain ``{date}`` is left alone.

    Args:
        template: Template text
        transcript: Transcribed text
        audio_path: Source audio path or file URL
        now: Render time (defaults to the current local time)

    Returns:
        RenderedNote whose title is the first rendered line
    """
    now = now or datetime.now()
    values: Dict[str, str] = {
        "{date}": now.strftime(DATE_FORMAT),
        "{time}": now.strftime(TIME_FORMAT),
        TRANSCRIPT_TOKEN: transcript,
        "{original_audio}": audio_reference(audio_path),
        "{filename}": filename_of(audio_path),
    }

    text = _TOKEN_PATTERN.sub(lambda m: values[m.group(0)], ensure_transcript_token(template))
    title, sep, body = text.partition("\n")

    # Single-line templates keep everything in the body under a timestamp title
    if not sep:
        return RenderedNote(title=f"{values['{date}']} {values['{time}']}", body=text)

    if not title.strip():
        title = f"{values['{date}']} {values['{time}']}"

    return RenderedNote(title=title, body=body)

"""
Note template endpoints.
"""

from fastapi import APIRouter, Depends

from app.api.deps import get_service
from app.models.schemas import TemplateBody
from domains.voice_memos.service import IngestionService

router = APIRouter()


@router.get("", response_model=TemplateBody)
def get_template(service: IngestionService = Depends(get_service)):
    """Get the current note template."""
    return TemplateBody(template=service.preferences.current.note_template)


@router.put("", response_model=TemplateBody)
def set_template(body: TemplateBody, service: IngestionService = Depends(get_service)):
    """
    Replace the note template.

    The first rendered line becomes the note title. If ``{transcribed_text}``
    is missing, the transcript is appended on its own line when rendering.
    """
    prefs = service.preferences.set_template(body.template)
    return TemplateBody(template=prefs.note_template)


@router.delete("", response_model=TemplateBody)
def reset_template(service: IngestionService = Depends(get_service)):
    """Reset the note template to the default."""
    prefs = service.preferences.reset_template()
    return TemplateBody(template=prefs.note_template)

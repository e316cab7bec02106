"""Template preview (mounted only when PREVIEW_MODE is set)."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from hydrophone.core.deps import get_templates
from hydrophone.core.errors import ConfirmationError, ValidationError
from hydrophone.core.language import DEFAULT_LANGUAGE
from hydrophone.db.enums import TemplateName
from hydrophone.schemas.confirmation import StatusRead
from hydrophone.services import template_service
from hydrophone.services.localizer import LocalizerError
from hydrophone.services.template_service import RenderError, TemplateLoadError, TemplateRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["preview"])


class PreviewFailed(ConfirmationError):
    status_code = 500
    default_detail = "Error generating the preview"


@router.get("/preview/{template}", response_class=HTMLResponse)
def preview(
    template: str,
    lang: str = DEFAULT_LANGUAGE,
    registry: TemplateRegistry = Depends(get_templates),
):
    """Render ``template`` with sample content in ``lang``."""
    try:
        name = TemplateName(template)
    except ValueError:
        raise ValidationError("Incorrect template name") from None
    if len(lang) != 2:
        lang = DEFAULT_LANGUAGE
    try:
        return template_service.render_preview(registry, name.value, lang)
    except RenderError as exc:
        logger.error("Preview of %s failed: %s", template, exc)
        raise PreviewFailed(str(exc)) from exc


@router.post("/refreshlocal", response_model=StatusRead)
def refresh_locales():
    """Reload templates and translations from disk."""
    try:
        registry = template_service.refresh_registry()
    except (TemplateLoadError, LocalizerError) as exc:
        logger.error("Template refresh failed: %s", exc)
        raise PreviewFailed("Error reloading templates") from exc
    return StatusRead(reason=f"{len(registry.templates)} templates loaded")

"""Theme listing and switching."""

from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from hdm_boot.dependencies import get_theme_service, require_permission
from hdm_boot.exceptions import ProblemDetailsException
from hdm_boot.models.problem import ProblemDetails
from hdm_boot.models.user import User
from hdm_boot.services.theme_service import ThemeService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/theme", tags=["Theme"])


class SwitchThemeRequest(BaseModel):
    theme: str = Field(..., min_length=1)


@router.get("", summary="List Themes")
def list_themes(themes: ThemeService = Depends(get_theme_service)) -> Dict[str, Any]:
    return {"success": True, "data": themes.describe()}


@router.post("", summary="Switch Theme")
def switch_theme(
    payload: SwitchThemeRequest,
    user: User = Depends(require_permission("admin.access")),
    themes: ThemeService = Depends(get_theme_service),
) -> Dict[str, Any]:
    try:
        themes.set_active_theme(payload.theme)
    except ValueError as e:
        raise ProblemDetailsException(ProblemDetails.validation_error(str(e))) from e

    logger.info("theme_switched_via_api", theme=payload.theme, user_id=user.id)
    return {
        "success": True,
        "message": "Theme switched successfully",
        "data": themes.get_theme_config(),
    }

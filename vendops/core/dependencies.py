# vendops/core/dependencies.py
from fastapi import Depends, Request

from vendops.config.settings import Settings, get_settings
from vendops.config.logging import get_logger
from vendops.core.exceptions import InvalidGroupingError, InvalidWindowError
from vendops.schemas.analytics import MoverGrouping
from vendops.services.analytics_service import AnalyticsService
from vendops.services.sales_service import KEY_FUNCTIONS

logger = get_logger(__name__)

# Grouping keys exposed over HTTP; the composite pair key stays internal
MOVER_GROUPINGS = [grouping.value for grouping in MoverGrouping]


def get_app_settings(request: Request) -> Settings:
    """Settings the app was built with, falling back to the cached global."""
    return getattr(request.app.state, "settings", None) or get_settings()


def get_analytics_service(settings: Settings = Depends(get_app_settings)) -> AnalyticsService:
    """Fresh analytics service per request; the engine keeps no state between calls."""
    return AnalyticsService(settings=settings)


def validate_window(days: int, settings: Settings) -> int:
    """Reject windows outside 1..MAX_WINDOW_DAYS."""
    if days < 1 or days > settings.MAX_WINDOW_DAYS:
        logger.info(f"Rejected report window of {days} days")
        raise InvalidWindowError(days, settings.MAX_WINDOW_DAYS)
    return days


def validate_grouping(group_by: str) -> str:
    if group_by not in MOVER_GROUPINGS or group_by not in KEY_FUNCTIONS:
        raise InvalidGroupingError(group_by, MOVER_GROUPINGS)
    return group_by

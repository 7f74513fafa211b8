"""Domain error -> HTTP status mapping shared by the standings/bracket routers."""
from fastapi import HTTPException

from app.services.errors import (
    InvalidResultError,
    ManualRankingError,
    NotFoundError,
    PromotionError,
    TemplatesNotFoundError,
)


def http_error(exc: PromotionError) -> HTTPException:
    if isinstance(exc, (NotFoundError, TemplatesNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (ManualRankingError, InvalidResultError)):
        return HTTPException(status_code=422, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))

"""
業務異常 -> HTTPException

每一種錯誤對應不同的 status code，body 的 detail 另外帶上錯誤種類：
    {"detail": {"code": "PhaseError", "message": "..."}}
"""
import logging

from fastapi import HTTPException

from core.exceptions import (
    ChainGameException,
    NotFound,
    IllegalState,
    PhaseError,
    Conflict,
    InsufficientPlayers,
)

# 順序重要：子類別要排在父類別前面（PhaseError 是 IllegalState 的子類）
STATUS_BY_KIND = [
    (NotFound, 404, "NotFound"),
    (PhaseError, 423, "PhaseError"),
    (IllegalState, 400, "IllegalState"),
    (Conflict, 409, "Conflict"),
    (InsufficientPlayers, 422, "InsufficientPlayers"),
]

logger = logging.getLogger(__name__)


def to_http_exception(error: ChainGameException) -> HTTPException:
    for kind, status_code, code in STATUS_BY_KIND:
        if isinstance(error, kind):
            return HTTPException(
                status_code=status_code,
                detail={"code": code, "message": str(error)}
            )
    logger.error(f"Unmapped game error: {error!r}")
    return HTTPException(status_code=500, detail="Internal error")

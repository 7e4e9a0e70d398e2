"""
Claim API Endpoints - 淘汰申報與確認

重點：
1. 只能申報自己目前的目標
2. 目標已有等待中的 claim 時直接回 409，不排隊
3. 確認淘汰與重新串接目標鏈在同一個 transaction 內完成（EliminationManager）
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
import logging

from database import get_db
from models import ClaimStatus
from schemas import ClaimSubmit, ClaimResolve, ClaimResponse, ClaimStateResponse
from core.elimination_manager import EliminationManager, PendingClaim
from core.participant_manager import ParticipantManager
from core.exceptions import ChainGameException
from api.errors import to_http_exception

router = APIRouter(prefix="/api/games", tags=["claims"])
logger = logging.getLogger(__name__)


@router.post("/{game_id}/claims", response_model=ClaimResponse)
def submit_claim(game_id: str, data: ClaimSubmit, db: Session = Depends(get_db)):
    """
    申報淘汰（claimant endpoint）

    前置條件：
    - 遊戲在 ACTIVE 階段
    - target 是 claimant 目前的目標
    - target 沒有等待中的 claim

    流程：
    1. 建立 PENDING claim
    2. state_version 提升，目標透過短輪詢看到待確認的 claim
    """
    try:
        return EliminationManager.submit_claim(
            db,
            game_id,
            data.claimant_id,
            data.target_id,
            method=data.method,
            description=data.description
        )
    except ChainGameException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to submit claim: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{game_id}/claims/resolve", response_model=ClaimResponse)
def resolve_claim(game_id: str, data: ClaimResolve, db: Session = Depends(get_db)):
    """
    確認或否認 claim（target endpoint）

    - confirmed=true：target 被淘汰，claimant 接手 target 的目標；只剩一人時遊戲結束
    - confirmed=false：claim 作廢，claimant 之後可以再申報
    """
    try:
        claim = EliminationManager.resolve_claim(db, game_id, data.target_id, data.confirmed)
        logger.info(
            "Claim %s %s (game=%s)",
            claim.id,
            "confirmed" if data.confirmed else "denied",
            game_id
        )
        return claim
    except ChainGameException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to resolve claim: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{game_id}/claims", response_model=List[ClaimResponse])
def list_claims(
    game_id: str,
    status: Optional[ClaimStatus] = Query(None),
    db: Session = Depends(get_db)
):
    """claim 紀錄（status=pending 即為目前所有待確認的 claim）"""
    try:
        if status == ClaimStatus.PENDING:
            return ParticipantManager.pending_claims(db, game_id)
        return EliminationManager.list_claims(db, game_id, status)
    except ChainGameException as e:
        raise to_http_exception(e)


@router.get("/{game_id}/participants/{participant_id}/claim", response_model=ClaimStateResponse)
def get_claim_state(game_id: str, participant_id: str, db: Session = Depends(get_db)):
    """玩家（作為目標）目前是否有待確認的 claim"""
    try:
        state = EliminationManager.get_claim_state(db, game_id, participant_id)
        if isinstance(state, PendingClaim):
            return ClaimStateResponse(
                pending=True,
                claim_id=state.claim_id,
                claimant_id=state.claimant_id,
                method=state.method,
                description=state.description,
                submitted_at=state.submitted_at
            )
        return ClaimStateResponse(pending=False)
    except ChainGameException as e:
        raise to_http_exception(e)

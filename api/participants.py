"""
Participant API Endpoints

職責：
1. Operator 管理玩家名單（新增 / 改名 / 移除，只限 SETUP）
2. 玩家用代碼登入
3. 查詢玩家資訊與目前的目標
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import (
    ParticipantCreate,
    ParticipantRename,
    ParticipantJoin,
    ParticipantResponse,
    TargetResponse,
    ActionResponse,
)
from core.participant_manager import ParticipantManager
from core.exceptions import ChainGameException
from api.errors import to_http_exception

router = APIRouter(prefix="/api/games", tags=["participants"])
logger = logging.getLogger(__name__)


@router.post("/{game_id}/participants", response_model=ParticipantResponse)
def add_participant(game_id: str, data: ParticipantCreate, db: Session = Depends(get_db)):
    """
    新增玩家（Operator endpoint）

    前置條件：
    - 遊戲在 SETUP 階段

    返回：
        - id / code：代碼交給玩家本人用來登入
    """
    try:
        return ParticipantManager.add_participant(db, game_id, data.name)
    except ChainGameException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to add participant: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{game_id}/participants", response_model=List[ParticipantResponse])
def list_participants(game_id: str, db: Session = Depends(get_db)):
    """玩家名單（Operator 用，包含代碼與目標）"""
    try:
        return ParticipantManager.list_participants(db, game_id)
    except ChainGameException as e:
        raise to_http_exception(e)


@router.patch("/{game_id}/participants/{participant_id}", response_model=ParticipantResponse)
def rename_participant(
    game_id: str,
    participant_id: str,
    data: ParticipantRename,
    db: Session = Depends(get_db)
):
    try:
        return ParticipantManager.rename_participant(db, game_id, participant_id, data.name)
    except ChainGameException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to rename participant: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.delete("/{game_id}/participants/{participant_id}", response_model=ActionResponse)
def remove_participant(game_id: str, participant_id: str, db: Session = Depends(get_db)):
    """
    移除玩家（只限 SETUP）

    遊戲開始後不能移除玩家，要離開只能被淘汰
    """
    try:
        ParticipantManager.remove_participant(db, game_id, participant_id)
        return ActionResponse(status="ok")
    except ChainGameException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to remove participant: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{game_id}/join", response_model=ParticipantResponse)
def join_game(game_id: str, data: ParticipantJoin, db: Session = Depends(get_db)):
    """
    玩家用代碼登入（代碼不分大小寫，重複登入沒有副作用）

    只有存活的玩家可以登入
    """
    try:
        participant = ParticipantManager.mark_joined(db, game_id, data.code)
        logger.info(f"Participant {participant.id} logged in to game {game_id}")
        return participant
    except ChainGameException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to join game: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{game_id}/participants/{participant_id}/target", response_model=TargetResponse)
def get_current_target(game_id: str, participant_id: str, db: Session = Depends(get_db)):
    """取得玩家目前的目標"""
    try:
        target = ParticipantManager.get_current_target(db, game_id, participant_id)
        if target is None:
            return TargetResponse()
        return TargetResponse(target_id=target.id, target_name=target.name)
    except ChainGameException as e:
        raise to_http_exception(e)

"""
Game API Endpoints - 短輪詢版

職責：
1. 建立 / 查詢遊戲
2. 開始、重置遊戲（Operator endpoint）
3. /state 與 /events 供前端短輪詢（比對 state_version）
"""
import random
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import GameResponse, GameStateResponse, EventResponse
from core.game_manager import GameManager, default_rng
from core.exceptions import ChainGameException
from services.snapshot_service import build_game_snapshot
from services.state_service import list_events
from api.errors import to_http_exception

router = APIRouter(prefix="/api/games", tags=["games"])
logger = logging.getLogger(__name__)


def get_rng() -> random.Random:
    """
    FastAPI dependency：目標分配用的亂數來源

    測試時用 app.dependency_overrides[get_rng] 注入固定 seed
    """
    return default_rng()


@router.post("", response_model=GameResponse)
def create_game(db: Session = Depends(get_db)):
    """建立新遊戲（SETUP 階段）"""
    try:
        return GameManager.create_game(db)
    except Exception as e:
        logger.error(f"Failed to create game: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/current", response_model=GameResponse)
def get_current_game(db: Session = Depends(get_db)):
    """取得最新建立的遊戲"""
    try:
        return GameManager.get_current_game(db)
    except ChainGameException as e:
        raise to_http_exception(e)


@router.get("/{game_id}", response_model=GameResponse)
def get_game(game_id: str, db: Session = Depends(get_db)):
    try:
        return GameManager.get_game(db, game_id)
    except ChainGameException as e:
        raise to_http_exception(e)


@router.get("/{game_id}/state", response_model=GameStateResponse)
def get_game_state(game_id: str, db: Session = Depends(get_db)):
    """
    取得遊戲快照（短輪詢）

    返回：
        - state_version: 每次狀態變更都會遞增，前端比對即可知道是否需要更新
        - phase / winner_id / alive_count
        - participants: 公開資訊（不含代碼與目標）
    """
    try:
        return build_game_snapshot(db, game_id)
    except ChainGameException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to build game state: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{game_id}/events", response_model=List[EventResponse])
def get_game_events(
    game_id: str,
    since_version: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    """取得 since_version 之後的事件（前端用來顯示通知）"""
    try:
        GameManager.get_game(db, game_id)
        return list_events(db, game_id, since_version)
    except ChainGameException as e:
        raise to_http_exception(e)


@router.post("/{game_id}/start", response_model=GameResponse)
def start_game(
    game_id: str,
    db: Session = Depends(get_db),
    rng: Optional[random.Random] = Depends(get_rng)
):
    """
    開始遊戲（Operator endpoint）

    前置條件：
    - 遊戲在 SETUP 階段
    - 至少 2 位玩家已登入

    效果：
    - 已登入的玩家隨機排成一個目標循環
    - 狀態轉換 SETUP -> ACTIVE
    """
    try:
        game = GameManager.start_game(db, game_id, rng=rng)
        logger.info(f"Game {game_id} started via API")
        return game
    except ChainGameException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to start game: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{game_id}/reset", response_model=GameResponse)
def reset_game(game_id: str, db: Session = Depends(get_db)):
    """
    重置遊戲（Operator endpoint）

    效果：
    - 所有玩家復活、登出、清除目標與 claim
    - 狀態回到 SETUP
    """
    try:
        return GameManager.reset_game(db, game_id)
    except ChainGameException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to reset game: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")

"""
狀態版本服務

每一次成功的寫入都會把 Game.state_version 加一並寫入一筆 EventLog，
前端只要短輪詢 /state（或 /events?since_version=N）比對版本號就能知道是否有變化。

注意：呼叫者必須已經持有遊戲鎖，並且在同一個 transaction 內（不在這裡 commit）
"""
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from models import Game, EventLog

logger = logging.getLogger(__name__)


def bump_state_version(
    db: Session,
    game: Game,
    reason: str,
    data: Optional[Dict[str, Any]] = None
) -> int:
    """
    提升遊戲的 state_version 並記錄事件

    參數：
        db: SQLAlchemy Session
        game: 已鎖定的 Game
        reason: 事件類型（例如：CLAIM_SUBMITTED）
        data: 事件附帶資料（JSON）

    返回：
        新的版本號
    """
    game.state_version = (game.state_version or 0) + 1
    db.add(EventLog(
        game_id=game.id,
        version=game.state_version,
        event_type=reason,
        data=data or {}
    ))
    db.flush()

    logger.debug("Game %s state_version -> %s (%s)", game.id, game.state_version, reason)
    return game.state_version


def list_events(db: Session, game_id: str, since_version: int = 0) -> List[EventLog]:
    """取得 since_version 之後的事件（依版本排序）"""
    return (
        db.query(EventLog)
        .filter(EventLog.game_id == game_id, EventLog.version > since_version)
        .order_by(EventLog.version, EventLog.id)
        .all()
    )

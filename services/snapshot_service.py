"""
遊戲快照服務

提供前端（玩家畫面 / 主持人畫面）輪詢用的唯讀資料。
讀取不拿遊戲鎖，改用樂觀讀取：
1. 先讀一次 state_version
2. 收集遊戲、玩家與 pending claim
3. 再讀一次 state_version，前後不同表示中途有寫入 commit，重試

因此回傳的快照一定對應到某一個已 commit 的版本。
快照裡不會出現通行碼與目標等機密欄位。
"""
from typing import Any, Dict, Optional
import logging

from sqlalchemy.orm import Session

from models import Game, Participant, EliminationClaim, ClaimStatus
from core.exceptions import GameNotFound
from core.locks import game_mutex

logger = logging.getLogger(__name__)

MAX_SNAPSHOT_ATTEMPTS = 5


def _read_version(db: Session, game_id: str) -> Optional[int]:
    return db.query(Game.state_version).filter(Game.id == game_id).scalar()


def _collect(db: Session, game_id: str) -> Dict[str, Any]:
    game = db.query(Game).populate_existing().filter(Game.id == game_id).first()
    if game is None:
        raise GameNotFound(game_id)

    participants = (
        db.query(Participant)
        .populate_existing()
        .filter(Participant.game_id == game_id, Participant.removed_at.is_(None))
        .order_by(Participant.created_at, Participant.id)
        .all()
    )
    pending_targets = {
        target_id
        for (target_id,) in db.query(EliminationClaim.target_id).filter(
            EliminationClaim.game_id == game_id,
            EliminationClaim.status == ClaimStatus.PENDING
        )
    }

    return {
        "game_id": game.id,
        "phase": game.phase,
        "state_version": game.state_version,
        "winner_id": game.winner_id,
        "alive_count": sum(1 for p in participants if p.is_alive),
        "participants": [
            {
                "id": p.id,
                "name": p.name,
                "is_alive": p.is_alive,
                "has_joined": p.has_joined,
                "has_pending_claim": p.id in pending_targets,
                "last_activity": p.last_activity,
            }
            for p in participants
        ],
    }


def build_game_snapshot(db: Session, game_id: str) -> Dict[str, Any]:
    """
    取得一場遊戲的一致快照

    寫入太頻繁導致重試次數用完時，改在遊戲互斥鎖內讀取，
    保證不會拿到讀到一半的狀態。
    """
    for attempt in range(1, MAX_SNAPSHOT_ATTEMPTS + 1):
        before = _read_version(db, game_id)
        if before is None:
            raise GameNotFound(game_id)

        snapshot = _collect(db, game_id)
        after = _read_version(db, game_id)
        # 結束讀取 transaction，下一次輪詢（或重試）才看得到新的 commit
        db.rollback()

        if before == after == snapshot["state_version"]:
            return snapshot

        logger.debug("Snapshot of game %s raced a writer (attempt %s), retrying", game_id, attempt)

    logger.warning("Snapshot of game %s did not settle after %s attempts", game_id, MAX_SNAPSHOT_ATTEMPTS)
    with game_mutex(game_id):
        try:
            return _collect(db, game_id)
        finally:
            db.rollback()
